"""Selection of the next item to practice."""
import logging
import random
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, Sequence, TypeVar

from sounddrill import monitoring
from sounddrill.config import settings, SelectorSettings
from sounddrill.exceptions import NoContentAvailable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class FocusArea(Enum):
    """Why an item was selected."""
    PROBLEM = "problem"
    NEW = "new"
    MASTERED = "mastered"


@dataclass(frozen=True)
class Selection(Generic[T]):
    """An item chosen for practice."""
    item: T
    focus_area: FocusArea
    reason: str


class PracticeSelector:
    """Weighted choice between problem, new and mastered items.

    About 70% of draws go to the worst problem item, 20% to a random new
    item and the rest to a random mastered item, falling through to the
    next pool when one is empty.
    """

    def __init__(self, rng: Optional[random.Random] = None, weights: Optional[SelectorSettings] = None):
        self.rng = rng or random.Random()
        self.weights = weights or settings.selector

    def select_next(
        self,
        problem_items: Sequence[Any],
        mastered_items: Sequence[Any],
        new_items: Sequence[Any],
    ) -> Optional[Selection]:
        """Pick the next practice item, None when all pools are empty."""
        draw = self.rng.random()
        problem_cutoff = self.weights.problem_weight
        new_cutoff = problem_cutoff + self.weights.new_weight

        if draw < problem_cutoff and problem_items:
            # Problem items come sorted worst-first
            selection = Selection(problem_items[0], FocusArea.PROBLEM, "Focusing on challenging area")
        elif draw < new_cutoff and new_items:
            selection = Selection(self.rng.choice(new_items), FocusArea.NEW, "Trying something new")
        elif mastered_items:
            selection = Selection(self.rng.choice(mastered_items), FocusArea.MASTERED, "Quick review")
        elif new_items:
            selection = Selection(self.rng.choice(new_items), FocusArea.NEW, "Starting fresh")
        else:
            logger.info("No practice items available")
            return None

        monitoring.practice_selections.labels(focus_area=selection.focus_area.value).inc()
        logger.debug(f"Selected {selection.item!r} ({selection.focus_area.value}), draw={draw:.3f}")
        return selection

    def require_next(
        self,
        problem_items: Sequence[Any],
        mastered_items: Sequence[Any],
        new_items: Sequence[Any],
    ) -> Selection:
        """Pick the next practice item or raise NoContentAvailable."""
        selection = self.select_next(problem_items, mastered_items, new_items)
        if selection is None:
            raise NoContentAvailable("No problem, new or mastered items to practice")
        return selection
