"""Models for practice session data structures."""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict


class SessionMode(Enum):
    """Available practice modes."""
    BASE = "base"  # Base mode
    PAIR_DISCRIMINATION = "pair_discrimination"  # Which of two words was spoken
    SYLLABLE_COUNT = "syllable_count"  # How many syllables a word has
    SOUND_DECOMPOSITION = "sound_decomposition"  # Break a word into its sounds
    STRUCTURE_EXPLORATION = "structure_exploration"  # Walk through words sound by sound


class RoundState(Enum):
    """States of one practice round."""
    IDLE = "idle"  # No item loaded, or the round is complete
    STIMULUS_READY = "stimulus_ready"  # Item loaded, not yet played
    AWAITING_RESPONSE = "awaiting_response"  # Played, waiting for an answer
    EVALUATED = "evaluated"  # Answer is being evaluated
    AWAITING_RETRY = "awaiting_retry"  # Answer missed, same item may be retried


@dataclass
class SessionStats:
    """Running score of a session."""
    score: int = 0
    streak: int = 0
    best_streak: int = 0
    total_attempts: int = 0
    correct_count: int = 0
    items_seen: int = 0

    @property
    def accuracy(self) -> float:
        if self.total_attempts == 0:
            return 0.0
        return self.correct_count / self.total_attempts

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a dict stored with the session history."""
        return {
            "score": self.score,
            "best_streak": self.best_streak,
            "total_attempts": self.total_attempts,
            "correct_count": self.correct_count,
            "items_seen": self.items_seen,
            "accuracy": round(self.accuracy, 3),
        }
