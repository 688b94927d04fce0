"""Models for read-only practice catalogs."""
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sounddrill.exceptions import InvalidArgument
from sounddrill.models.ledger_models import pair_key

DIFFICULTY_LEVELS = ("easy", "medium", "hard")


def _require(data: Mapping[str, Any], key: str, entry: str) -> Any:
    if key not in data or data[key] in (None, "", []):
        raise InvalidArgument(f"Catalog {entry} entry is missing {key!r}: {dict(data)}")
    return data[key]


def _difficulty(data: Mapping[str, Any], entry: str) -> str:
    difficulty = data.get("difficulty", "medium")
    if difficulty not in DIFFICULTY_LEVELS:
        raise InvalidArgument(f"Catalog {entry} entry has unknown difficulty {difficulty!r}")
    return difficulty


@dataclass(frozen=True)
class SoundSpec:
    """One sound of a word: the letters that spell it and its phoneme."""
    letter: str
    phoneme: str
    color_tag: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SoundSpec":
        return cls(
            letter=_require(data, "letter", "sound"),
            phoneme=_require(data, "phoneme", "sound"),
            color_tag=data.get("color"),
        )


@dataclass(frozen=True)
class WordEntry:
    """A word broken into its sounds."""
    word: str
    sounds: Tuple[SoundSpec, ...]
    image_ref: Optional[str] = None

    @property
    def phonemes(self) -> List[str]:
        return [sound.phoneme for sound in self.sounds]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WordEntry":
        return cls(
            word=_require(data, "word", "word"),
            sounds=tuple(SoundSpec.from_dict(sound) for sound in _require(data, "sounds", "word")),
            image_ref=data.get("image"),
        )


@dataclass(frozen=True)
class MinimalPair:
    """Two words that differ by one sound."""
    pair_id: str
    words: Tuple[str, str]
    difficulty_sound: Optional[str] = None  # e.g. "/θ/ vs /f/"
    difficulty: str = "medium"
    category: Optional[str] = None
    difference: Optional[str] = None  # initial_consonant, final_consonant, vowel, stress_pattern
    tips: Dict[str, str] = field(default_factory=dict)  # word -> articulation tip
    visual_cue: Optional[str] = None

    @property
    def key(self) -> str:
        """Ledger key of the pair."""
        return pair_key(self.words)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MinimalPair":
        words = _require(data, "pair", "minimal pair")
        if len(words) != 2:
            raise InvalidArgument(f"A minimal pair needs exactly two words: {words!r}")
        first, second = words
        pair_key((first, second))
        return cls(
            pair_id=data.get("id") or f"{first}-{second}",
            words=(first, second),
            difficulty_sound=data.get("difficulty_sound"),
            difficulty=_difficulty(data, "minimal pair"),
            category=data.get("category"),
            difference=data.get("difference"),
            tips=dict(data.get("tips") or {}),
            visual_cue=data.get("visual_cue"),
        )


@dataclass(frozen=True)
class SyllableWord:
    """A word with its syllables and stress pattern (1 = stressed)."""
    word: str
    syllables: Tuple[str, ...]
    stress_pattern: Tuple[int, ...]
    difficulty: str = "easy"
    tip: Optional[str] = None

    @property
    def syllable_count(self) -> int:
        return len(self.syllables)

    @property
    def beat_pattern(self) -> str:
        return "".join("●" if stress == 1 else "○" for stress in self.stress_pattern)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SyllableWord":
        word = _require(data, "word", "syllable")
        syllables = tuple(_require(data, "syllables", "syllable"))
        stress_pattern = tuple(data.get("stress_pattern") or [1] * len(syllables))
        if len(stress_pattern) != len(syllables):
            raise InvalidArgument(f"Stress pattern of {word!r} does not match its syllables")
        return cls(
            word=word,
            syllables=syllables,
            stress_pattern=stress_pattern,
            difficulty=_difficulty(data, "syllable"),
            tip=data.get("tip"),
        )


@dataclass(frozen=True)
class Catalog:
    """All practice content available to the sessions."""
    words: Tuple[WordEntry, ...] = ()
    minimal_pairs: Tuple[MinimalPair, ...] = ()
    syllable_words: Tuple[SyllableWord, ...] = ()

    def pairs(self, difficulty: Optional[str] = None) -> List[MinimalPair]:
        """Minimal pairs, optionally of one difficulty."""
        return [pair for pair in self.minimal_pairs if difficulty is None or pair.difficulty == difficulty]

    def syllables(self, difficulty: Optional[str] = None, syllable_count: Optional[int] = None) -> List[SyllableWord]:
        """Syllable words, optionally filtered by difficulty and syllable count."""
        return [
            word
            for word in self.syllable_words
            if (difficulty is None or word.difficulty == difficulty)
            and (syllable_count is None or word.syllable_count == syllable_count)
        ]

    def find_word(self, word: str) -> Optional[WordEntry]:
        return next((entry for entry in self.words if entry.word == word), None)

    def all_phonemes(self) -> List[str]:
        """Distinct phonemes across all words, in first-seen order."""
        seen: Dict[str, None] = {}
        for entry in self.words:
            for phoneme in entry.phonemes:
                seen.setdefault(phoneme, None)
        return list(seen)
