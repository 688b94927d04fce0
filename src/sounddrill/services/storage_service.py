"""Persistence of ledgers in the database."""
import logging
from typing import Any, Callable, Dict, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from sounddrill import monitoring
from sounddrill.exceptions import LineageConflict, StorageUnavailable
from sounddrill.models.base import SessionLocal
from sounddrill.models.models import ItemRecord, Learner, SessionEntry
from sounddrill.services.ledger import Clock, Ledger, parse_timestamp

logger = logging.getLogger(__name__)


def _isoformat(value) -> Optional[str]:
    return value.isoformat() if value is not None else None


class LedgerStore:
    """Loads and saves ledgers keyed by user.

    Saves are snapshot based: a snapshot older than the stored version of the
    same lineage is skipped so a late save of stale data never overwrites
    newer state. A snapshot of another lineage is refused with
    ``LineageConflict`` since saving it would drop the stored history.
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal, clock: Optional[Clock] = None):
        """Initialize the store with a database session factory."""
        self.session_factory = session_factory
        self.clock = clock

    def _get_learner(self, db: Session, user_key: str) -> Optional[Learner]:
        return db.query(Learner).filter(Learner.user_key == user_key).first()

    def load_ledger(self, user_key: str) -> Ledger:
        """Load the user's ledger, or a fresh one when nothing is stored."""
        db = self.session_factory()
        try:
            learner = self._get_learner(db, user_key)
            monitoring.storage_operations.labels(operation_type="load").inc()
            if not learner:
                logger.info(f"No stored ledger for {user_key}, starting fresh")
                return Ledger(clock=self.clock)

            data = {
                "version": learner.version,
                "lineage": learner.lineage,
                "start_date": _isoformat(learner.start_date),
                "total_attempts": learner.total_attempts,
                "total_correct": learner.total_correct,
                "records": {},
                "session_history": [
                    {
                        "mode": entry.mode,
                        "timestamp": _isoformat(entry.timestamp),
                        "stats": entry.stats or {},
                    }
                    for entry in learner.sessions
                ],
            }
            for row in learner.records:
                data["records"].setdefault(row.kind, {})[row.key] = {
                    "correct": row.correct,
                    "total": row.total,
                    "last_attempt": _isoformat(row.last_attempt),
                    "metadata": row.details or {},
                }
            logger.info(f"Loaded ledger for {user_key} at version {learner.version}")
            return Ledger.from_data(data, clock=self.clock)
        except SQLAlchemyError as e:
            logger.error(f"Error loading ledger for {user_key}: {e}")
            monitoring.storage_errors.labels(error_type=type(e).__name__).inc()
            raise StorageUnavailable(f"Could not load ledger for {user_key}") from e
        finally:
            db.close()

    def save_ledger(self, user_key: str, ledger: Ledger) -> bool:
        """Save the ledger's current state. Returns False on failure."""
        return self.save_snapshot(user_key, ledger.to_data())

    def save_snapshot(self, user_key: str, data: Mapping[str, Any]) -> bool:
        """Save serialized ledger data. Returns False on failure.

        Raises LineageConflict when the stored ledger has another lineage.
        """
        db = self.session_factory()
        try:
            learner = self._get_learner(db, user_key)
            if learner and learner.lineage and learner.lineage != data.get("lineage"):
                monitoring.storage_errors.labels(error_type="LineageConflict").inc()
                raise LineageConflict(
                    f"Stored ledger for {user_key} is lineage {learner.lineage}, "
                    f"snapshot is {data.get('lineage')}"
                )
            if learner and learner.version > data["version"]:
                logger.info(
                    f"Skipping stale snapshot for {user_key}: "
                    f"version {data['version']} < stored {learner.version}"
                )
                return True

            if not learner:
                learner = Learner(user_key=user_key)
                db.add(learner)

            learner.start_date = parse_timestamp(data["start_date"])
            learner.total_attempts = data["total_attempts"]
            learner.total_correct = data["total_correct"]
            learner.version = data["version"]
            learner.lineage = data.get("lineage")

            self._sync_records(learner, data["records"])
            self._sync_sessions(learner, data["session_history"])

            db.commit()
            monitoring.storage_operations.labels(operation_type="save").inc()
            logger.debug(f"Saved ledger for {user_key} at version {data['version']}")
            return True
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error saving ledger for {user_key}: {e}")
            monitoring.storage_errors.labels(error_type=type(e).__name__).inc()
            return False
        finally:
            db.close()

    def _sync_records(self, learner: Learner, records: Mapping[str, Mapping[str, Dict[str, Any]]]) -> None:
        existing = {(row.kind, row.key): row for row in learner.records}
        seen = set()
        for kind, kind_records in records.items():
            for key, record in kind_records.items():
                seen.add((kind, key))
                row = existing.get((kind, key))
                if row is None:
                    row = ItemRecord(kind=kind, key=key)
                    learner.records.append(row)
                row.correct = record["correct"]
                row.total = record["total"]
                row.last_attempt = parse_timestamp(record.get("last_attempt"))
                row.details = dict(record.get("metadata") or {})

        # Records dropped by a reset
        for item, row in existing.items():
            if item not in seen:
                learner.records.remove(row)

    def _sync_sessions(self, learner: Learner, history: list) -> None:
        stored = len(learner.sessions)
        if stored > len(history):
            # The ledger was reset since the last save
            learner.sessions.clear()
            stored = 0
        for position, session in enumerate(history[stored:], start=stored):
            learner.sessions.append(
                SessionEntry(
                    position=position,
                    mode=session["mode"],
                    timestamp=parse_timestamp(session["timestamp"]),
                    stats=dict(session.get("stats") or {}),
                )
            )


class LedgerSync:
    """Best-effort saving of a ledger.

    The newest unsaved snapshot is kept and retried on the next flush. A
    pending snapshot is only ever replaced by a newer one. When the stored
    ledger could not be loaded, or turns out to have another lineage, the
    stored ledger is loaded and absorbed before anything is saved.
    """

    def __init__(self, store: LedgerStore, user_key: str, reconcile: bool = False):
        self.store = store
        self.user_key = user_key
        self.pending: Optional[Dict[str, Any]] = None
        self.needs_reconcile = reconcile

    @property
    def has_pending(self) -> bool:
        return self.pending is not None

    def flush(self, ledger: Ledger) -> bool:
        """Snapshot the ledger and try to save it."""
        if self.needs_reconcile and not self._reconcile(ledger):
            self._keep(ledger.to_data())
            return False
        self._keep(ledger.to_data())
        return self.retry()

    def _keep(self, data: Dict[str, Any]) -> None:
        if self.pending is None or data["version"] >= self.pending["version"]:
            self.pending = data

    def _reconcile(self, ledger: Ledger) -> bool:
        try:
            stored = self.store.load_ledger(self.user_key)
        except StorageUnavailable as e:
            logger.warning(f"Stored ledger for {self.user_key} still unavailable: {e}")
            return False
        ledger.absorb(stored)
        self.needs_reconcile = False
        return True

    def retry(self) -> bool:
        """Try to save the pending snapshot, if any."""
        if self.pending is None:
            return True
        try:
            saved = self.store.save_snapshot(self.user_key, self.pending)
        except LineageConflict as e:
            logger.warning(f"Ledger for {self.user_key} must absorb the stored one first: {e}")
            self.needs_reconcile = True
            saved = False
        except StorageUnavailable as e:
            logger.warning(f"Storage unavailable for {self.user_key}: {e}")
            saved = False

        if saved:
            self.pending = None
        else:
            logger.warning(
                f"Ledger for {self.user_key} not saved, keeping version "
                f"{self.pending['version']} for retry"
            )
        return saved
