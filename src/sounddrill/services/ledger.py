"""Performance ledger: the single owner of accuracy state."""
import copy
import logging
import uuid
from datetime import UTC, datetime
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from sounddrill import monitoring
from sounddrill.exceptions import InvalidArgument
from sounddrill.models.ledger_models import (
    AccuracyRecord,
    AttemptMetadata,
    ItemKind,
    SessionRecord,
    TrackedItem,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
MetadataLike = Union[AttemptMetadata, Mapping[str, Any], None]


def utc_now() -> datetime:
    """Current time in UTC."""
    return datetime.now(UTC)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO timestamp, treating naive values as UTC."""
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


class Ledger:
    """Per-item accuracy for sounds, pairs and words plus global counters.

    All mutation goes through ``record_attempt``, ``record_session`` and
    ``reset``. Each mutation bumps ``version`` so that persisted snapshots
    can be ordered. Versions are only comparable within one ``lineage``:
    a ledger started without its stored history gets a lineage of its own.
    """

    def __init__(self, start_date: Optional[datetime] = None, clock: Optional[Clock] = None):
        """Create an empty ledger."""
        self._clock = clock or utc_now
        self._records: Dict[ItemKind, Dict[str, AccuracyRecord]] = {kind: {} for kind in ItemKind}
        self._session_history: List[SessionRecord] = []
        self._total_attempts = 0
        self._total_correct = 0
        self._start_date = start_date or self._clock()
        self._version = 0
        self._lineage = uuid.uuid4().hex

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def total_attempts(self) -> int:
        return self._total_attempts

    @property
    def total_correct(self) -> int:
        return self._total_correct

    @property
    def start_date(self) -> datetime:
        return self._start_date

    @property
    def version(self) -> int:
        return self._version

    @property
    def lineage(self) -> str:
        return self._lineage

    @property
    def session_history(self) -> Sequence[SessionRecord]:
        return tuple(self._session_history)

    def records(self, kind: Union[ItemKind, str]) -> Mapping[str, AccuracyRecord]:
        """Read-only view of the records of one kind, in insertion order."""
        return MappingProxyType(self._records[ItemKind.coerce(kind)])

    def record_attempt(
        self,
        kind: Union[ItemKind, str],
        key: Union[str, Sequence[str]],
        is_correct: bool,
        metadata: MetadataLike = None,
    ) -> AccuracyRecord:
        """Record one attempt on an item and return its updated record."""
        item = TrackedItem.create(kind, key)
        if not isinstance(metadata, AttemptMetadata):
            metadata = AttemptMetadata.from_dict(metadata)

        current = self._records[item.kind].get(item.key, AccuracyRecord())
        updated = current.with_attempt(bool(is_correct), self._clock(), metadata)
        self._records[item.kind][item.key] = updated

        self._total_attempts += 1
        if is_correct:
            self._total_correct += 1
        self._version += 1
        monitoring.attempts_recorded.labels(
            kind=item.kind.value, outcome="correct" if is_correct else "incorrect"
        ).inc()

        logger.debug(
            f"Recorded {item.kind.value} attempt for {item.key!r}: "
            f"correct={is_correct}, {updated.correct}/{updated.total}"
        )
        return updated

    def get_record(self, kind: Union[ItemKind, str], key: Union[str, Sequence[str]]) -> Optional[AccuracyRecord]:
        """Get the record for an item, None when it was never attempted."""
        item = TrackedItem.create(kind, key)
        return self._records[item.kind].get(item.key)

    def record_session(self, mode: str, stats: Optional[Mapping[str, Any]] = None) -> SessionRecord:
        """Append a finished session to the history."""
        if not mode:
            raise InvalidArgument("A session needs a mode identifier")
        session = SessionRecord(mode=mode, timestamp=self._clock(), stats=dict(stats or {}))
        self._session_history.append(session)
        self._version += 1
        monitoring.sessions_recorded.labels(mode=mode).inc()
        logger.info(f"Recorded {mode} session, {len(self._session_history)} sessions total")
        return session

    def reset(self) -> None:
        """Reinitialize all records and counters with a fresh start date."""
        self._records = {kind: {} for kind in ItemKind}
        self._session_history = []
        self._total_attempts = 0
        self._total_correct = 0
        self._start_date = self._clock()
        self._version += 1
        logger.info("Ledger reset")

    def snapshot(self) -> "Ledger":
        """Return an independent copy of the ledger."""
        return copy.deepcopy(self)

    def to_data(self) -> Dict[str, Any]:
        """Convert to serializable data for storage."""
        return {
            "version": self._version,
            "lineage": self._lineage,
            "start_date": self._start_date.isoformat(),
            "total_attempts": self._total_attempts,
            "total_correct": self._total_correct,
            "records": {
                kind.value: {
                    key: {
                        "correct": record.correct,
                        "total": record.total,
                        "last_attempt": record.last_attempt.isoformat() if record.last_attempt else None,
                        "metadata": record.metadata.to_dict(),
                    }
                    for key, record in records.items()
                }
                for kind, records in self._records.items()
            },
            "session_history": [
                {
                    "mode": session.mode,
                    "timestamp": session.timestamp.isoformat(),
                    "stats": dict(session.stats),
                }
                for session in self._session_history
            ],
        }

    @classmethod
    def from_data(cls, data: Mapping[str, Any], clock: Optional[Clock] = None) -> "Ledger":
        """Create a Ledger instance from stored data."""
        ledger = cls(start_date=parse_timestamp(data.get("start_date")), clock=clock)
        for kind_value, records in data.get("records", {}).items():
            kind = ItemKind.coerce(kind_value)
            for key, record in records.items():
                ledger._records[kind][key] = AccuracyRecord(
                    correct=record["correct"],
                    total=record["total"],
                    last_attempt=parse_timestamp(record.get("last_attempt")),
                    metadata=AttemptMetadata.from_dict(record.get("metadata")),
                )
        ledger._session_history = [
            SessionRecord(
                mode=session["mode"],
                timestamp=parse_timestamp(session["timestamp"]),
                stats=dict(session.get("stats") or {}),
            )
            for session in data.get("session_history", [])
        ]
        ledger._total_attempts = data.get("total_attempts", 0)
        ledger._total_correct = data.get("total_correct", 0)
        ledger._version = data.get("version", 0)
        if data.get("lineage"):
            ledger._lineage = data["lineage"]
        return ledger

    def absorb(self, stored: "Ledger") -> None:
        """Fold a stored ledger into this one, keeping the attempts of both.

        Used when practice started in memory because the stored ledger could
        not be loaded. Afterwards this ledger continues the stored lineage.
        """
        for kind in ItemKind:
            records = dict(stored._records[kind])
            for key, record in self._records[kind].items():
                records[key] = records[key].combined(record) if key in records else record
            self._records[kind] = records

        self._session_history = list(stored._session_history) + self._session_history
        self._total_attempts += stored._total_attempts
        self._total_correct += stored._total_correct
        self._start_date = min(self._start_date, stored._start_date)
        self._lineage = stored._lineage
        self._version = max(self._version, stored._version) + 1
        logger.info(
            f"Absorbed stored ledger at version {stored.version}, "
            f"{self._total_attempts} attempts in total"
        )
