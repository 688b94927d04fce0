"""Classification of ledger items into problem, mastered and neutral."""
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from sounddrill.config import settings, ClassificationSettings
from sounddrill.models.ledger_models import (
    AccuracyRecord,
    AttemptMetadata,
    ItemKind,
    TrackedItem,
    split_pair_key,
)
from sounddrill.services import difficulty_adapter
from sounddrill.services.ledger import Ledger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ItemStats:
    """Accuracy of one attempted item."""
    kind: ItemKind
    key: str
    accuracy: float
    correct: int
    total: int
    last_attempt: Optional[datetime] = None
    metadata: AttemptMetadata = field(default_factory=AttemptMetadata)

    @property
    def attempts(self) -> int:
        return self.total

    @property
    def words(self) -> Optional[Tuple[str, str]]:
        """The two words of a pair item."""
        if self.kind is not ItemKind.PAIR:
            return None
        return split_pair_key(self.key)


@dataclass(frozen=True)
class OverallStats:
    """Aggregate statistics over the whole ledger."""
    total_accuracy: float
    total_attempts: int
    total_correct: int
    items_practiced: Dict[ItemKind, int]
    sessions_completed: int
    days_active: int
    mastered_count: int
    problem_count: int


@dataclass(frozen=True)
class Recommendations:
    """Items the learner should focus on."""
    sounds: List[ItemStats]
    pairs: List[ItemStats]

    @property
    def has_problem_areas(self) -> bool:
        return bool(self.sounds or self.pairs)


@dataclass(frozen=True)
class ProgressSummary:
    """Overall statistics with recommendations and recent mastery."""
    stats: OverallStats
    recommendations: Recommendations
    recent_mastery: List[ItemStats]


def _item_stats(kind: ItemKind, key: str, record: AccuracyRecord) -> ItemStats:
    return ItemStats(
        kind=kind,
        key=key,
        accuracy=record.accuracy,
        correct=record.correct,
        total=record.total,
        last_attempt=record.last_attempt,
        metadata=record.metadata,
    )


class ClassificationService:
    """Read-only queries over a ledger."""

    def __init__(self, ledger: Ledger, thresholds: Optional[ClassificationSettings] = None):
        """Initialize the service with the ledger it reads."""
        self.ledger = ledger
        self.thresholds = thresholds or settings.classification

    def _matching(self, kind: Union[ItemKind, str], predicate) -> List[ItemStats]:
        kind = ItemKind.coerce(kind)
        return [
            _item_stats(kind, key, record)
            for key, record in self.ledger.records(kind).items()
            if predicate(record)
        ]

    def is_problem(self, record: AccuracyRecord) -> bool:
        """Check if a record is below the problem threshold with enough attempts."""
        return (
            record.total >= self.thresholds.problem_min_attempts
            and record.accuracy < self.thresholds.problem_threshold
        )

    def is_mastered(self, record: AccuracyRecord) -> bool:
        """Check if a record is at or above the mastered threshold with enough attempts."""
        return (
            record.total >= self.thresholds.mastered_min_attempts
            and record.accuracy >= self.thresholds.mastered_threshold
        )

    def get_problem_items(self, kind: Union[ItemKind, str]) -> List[ItemStats]:
        """Get problem items, worst accuracy first."""
        items = self._matching(kind, self.is_problem)
        return sorted(items, key=lambda stats: stats.accuracy)

    def get_mastered_items(self, kind: Union[ItemKind, str]) -> List[ItemStats]:
        """Get mastered items, best accuracy first."""
        items = self._matching(kind, self.is_mastered)
        return sorted(items, key=lambda stats: stats.accuracy, reverse=True)

    def get_new_items(self, kind: Union[ItemKind, str], keys: Iterable[Union[str, Sequence[str]]]) -> List[str]:
        """Get the keys that were never attempted, in the given order."""
        new_keys = []
        for key in keys:
            item = TrackedItem.create(kind, key)
            if self.ledger.get_record(item.kind, item.key) is None:
                new_keys.append(item.key)
        return new_keys

    def get_accuracy(self, kind: Union[ItemKind, str], key: Union[str, Sequence[str]]) -> Optional[ItemStats]:
        """Get accuracy for an item, None when it was never attempted."""
        item = TrackedItem.create(kind, key)
        record = self.ledger.get_record(item.kind, item.key)
        if record is None or record.total == 0:
            return None
        return _item_stats(item.kind, item.key, record)

    def get_overall_stats(self) -> OverallStats:
        """Get overall statistics."""
        total_attempts = self.ledger.total_attempts
        total_accuracy = self.ledger.total_correct / total_attempts if total_attempts > 0 else 0.0

        # Elapsed days since the ledger was started, counting the first day
        elapsed = self.ledger.clock() - self.ledger.start_date
        days_active = max(1, math.ceil(elapsed / timedelta(days=1)))

        return OverallStats(
            total_accuracy=total_accuracy,
            total_attempts=total_attempts,
            total_correct=self.ledger.total_correct,
            items_practiced={kind: len(self.ledger.records(kind)) for kind in ItemKind},
            sessions_completed=len(self.ledger.session_history),
            days_active=days_active,
            mastered_count=len(self.get_mastered_items(ItemKind.SOUND)),
            problem_count=len(self.get_problem_items(ItemKind.SOUND)),
        )

    def get_recommendations(self, limit: int = 5) -> Recommendations:
        """Get the worst sounds and pairs to practice next."""
        return Recommendations(
            sounds=self.get_problem_items(ItemKind.SOUND)[:limit],
            pairs=self.get_problem_items(ItemKind.PAIR)[:limit],
        )

    def get_item_difficulty(
        self, kind: Union[ItemKind, str], key: Union[str, Sequence[str]]
    ) -> difficulty_adapter.Difficulty:
        """Recommend a presentation difficulty for one item."""
        stats = self.get_accuracy(kind, key)
        if stats is None:
            return difficulty_adapter.recommend_difficulty(None, 0)
        return difficulty_adapter.recommend_difficulty(stats.accuracy, stats.total)

    def should_encourage(self, kind: Union[ItemKind, str], key: Union[str, Sequence[str]]) -> bool:
        """Check if the learner is struggling with an attempted item."""
        stats = self.get_accuracy(kind, key)
        return stats is not None and stats.accuracy < self.thresholds.encourage_below

    def get_progress_summary(self) -> ProgressSummary:
        """Get overall statistics with recommendations."""
        return ProgressSummary(
            stats=self.get_overall_stats(),
            recommendations=self.get_recommendations(),
            recent_mastery=self.get_mastered_items(ItemKind.SOUND)[:3],
        )
