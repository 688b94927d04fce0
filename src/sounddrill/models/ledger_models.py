"""Models for ledger records and tracked items."""
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple, Union

from sounddrill.exceptions import InvalidArgument

PAIR_SEPARATOR = "-"


class ItemKind(Enum):
    """Kinds of tracked practice items."""
    SOUND = "sound"  # phoneme or sound contrast, e.g. "/θ/" or "/θ/ vs /f/"
    PAIR = "pair"  # minimal pair, e.g. "thirteen-fourteen"
    WORD = "word"  # single word, e.g. "cat"

    @classmethod
    def coerce(cls, kind: Union["ItemKind", str]) -> "ItemKind":
        """Return the ItemKind for a kind or its string value."""
        if isinstance(kind, cls):
            return kind
        try:
            return cls(kind)
        except ValueError:
            raise InvalidArgument(f"Unknown item kind: {kind!r}") from None


def pair_key(pair: Union[str, Sequence[str]]) -> str:
    """Build the ledger key for a minimal pair."""
    if isinstance(pair, str):
        words = pair.split(PAIR_SEPARATOR)
    else:
        words = list(pair)
        if any(not isinstance(word, str) or PAIR_SEPARATOR in word for word in words):
            raise InvalidArgument(f"Malformed pair: {pair!r}")
    if len(words) != 2 or not all(word.strip() for word in words):
        raise InvalidArgument(f"Malformed pair key: {pair!r}")
    return PAIR_SEPARATOR.join(words)


def split_pair_key(key: str) -> Tuple[str, str]:
    """Return the two words of a pair key."""
    first, second = pair_key(key).split(PAIR_SEPARATOR)
    return first, second


@dataclass(frozen=True)
class TrackedItem:
    """A unit of practice: a sound, a pair or a word."""
    kind: ItemKind
    key: str

    @classmethod
    def create(cls, kind: Union[ItemKind, str], key: Union[str, Sequence[str]]) -> "TrackedItem":
        """Create a tracked item, normalizing pair keys."""
        kind = ItemKind.coerce(kind)
        if kind is ItemKind.PAIR:
            key = pair_key(key)
        elif not isinstance(key, str) or not key:
            raise InvalidArgument(f"Malformed {kind.value} key: {key!r}")
        return cls(kind, key)


@dataclass(frozen=True)
class AttemptMetadata:
    """Context stored with the latest attempt on an item.

    ``mode`` and ``difficulty_sound`` are read back by the engine; every
    other field is informational.
    """
    mode: Optional[str] = None
    difficulty_sound: Optional[str] = None
    speech_mode: Optional[str] = None
    played_word: Optional[str] = None
    pair: Optional[Tuple[str, str]] = None
    word: Optional[str] = None
    position: Optional[int] = None
    syllable_count: Optional[int] = None
    user_guess: Optional[int] = None
    sound_count: Optional[int] = None
    user_count: Optional[int] = None
    difficulty: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "AttemptMetadata":
        """Create metadata from a mapping, rejecting unknown keys."""
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise InvalidArgument(f"Unknown metadata fields: {sorted(unknown)}")
        values = dict(data)
        if values.get("pair") is not None:
            values["pair"] = tuple(values["pair"])
        return cls(**values)

    def merged(self, newer: "AttemptMetadata") -> "AttemptMetadata":
        """Return a copy with every field set on ``newer`` overwriting ours."""
        updates = {
            f.name: getattr(newer, f.name)
            for f in fields(newer)
            if getattr(newer, f.name) is not None
        }
        return replace(self, **updates)

    def to_dict(self) -> Dict[str, Any]:
        """Return the set fields as a JSON-friendly dict."""
        data = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            data[f.name] = list(value) if isinstance(value, tuple) else value
        return data


@dataclass(frozen=True)
class AccuracyRecord:
    """Accumulated accuracy for one tracked item."""
    correct: int = 0
    total: int = 0
    last_attempt: Optional[datetime] = None
    metadata: AttemptMetadata = field(default_factory=AttemptMetadata)

    @property
    def accuracy(self) -> Optional[float]:
        """Share of correct attempts, None when never attempted."""
        if self.total == 0:
            return None
        return self.correct / self.total

    def with_attempt(
        self, is_correct: bool, timestamp: datetime, metadata: AttemptMetadata
    ) -> "AccuracyRecord":
        """Return the record after one more attempt."""
        return AccuracyRecord(
            correct=self.correct + (1 if is_correct else 0),
            total=self.total + 1,
            last_attempt=timestamp,
            metadata=self.metadata.merged(metadata),
        )

    def combined(self, newer: "AccuracyRecord") -> "AccuracyRecord":
        """Return the record holding the attempts of both records."""
        last_attempts = [value for value in (self.last_attempt, newer.last_attempt) if value is not None]
        return AccuracyRecord(
            correct=self.correct + newer.correct,
            total=self.total + newer.total,
            last_attempt=max(last_attempts) if last_attempts else None,
            metadata=self.metadata.merged(newer.metadata),
        )


@dataclass(frozen=True)
class SessionRecord:
    """One completed practice session."""
    mode: str
    timestamp: datetime
    stats: Dict[str, Any] = field(default_factory=dict)
