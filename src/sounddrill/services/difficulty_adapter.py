"""Difficulty adapter.

Maps an item's accuracy history to presentation decisions: difficulty,
speech rate, background noise and how much support feedback should show.
Struggling items are presented more gently, mastered items get harder
variants. Every function here is pure.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sounddrill.config import (
    BREAK_AFTER_MINUTES,
    BREAK_BELOW_ACCURACY,
    COLD_START_ATTEMPTS,
    EXAGGERATED_SPEECH_BELOW,
    MASTERED_ACCURACY_THRESHOLD,
    NOISE_MIN_ATTEMPTS,
    PROBLEM_ACCURACY_THRESHOLD,
    STREAK_BONUS_MAX,
    STREAK_BONUS_STEPS,
)


class Difficulty(Enum):
    """Presentation difficulty."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class SpeechMode(Enum):
    """How a stimulus is spoken."""
    EXAGGERATED = "exaggerated"  # very slow and clear
    NORMAL = "normal"
    NOISE = "noise"  # advanced challenge


class EncouragementLevel(Enum):
    """Tone of the support shown with feedback."""
    CELEBRATE = "celebrate"
    GENTLE = "gentle"
    SUPPORTIVE = "supportive"
    STRONG = "strong"


@dataclass(frozen=True)
class SpeechRecommendation:
    """Recommended speech rate and mode."""
    rate: float
    mode: SpeechMode
    reason: str


@dataclass(frozen=True)
class FeedbackIntensity:
    """Which support affordances feedback should show."""
    show_hint: bool
    show_comparison: bool
    show_tip: bool
    encouragement_level: EncouragementLevel

    @property
    def affordance_count(self) -> int:
        return sum([self.show_hint, self.show_comparison, self.show_tip])


@dataclass(frozen=True)
class BreakAdvice:
    """Whether the learner should pause."""
    should_break: bool
    reason: Optional[str] = None


def recommend_difficulty(accuracy: Optional[float], total_attempts: int) -> Difficulty:
    """Calculate recommended difficulty level based on accuracy."""
    # Need a few attempts to make a judgment
    if total_attempts < COLD_START_ATTEMPTS or accuracy is None:
        return Difficulty.MEDIUM

    if accuracy >= MASTERED_ACCURACY_THRESHOLD:
        return Difficulty.HARD
    if accuracy >= PROBLEM_ACCURACY_THRESHOLD:
        return Difficulty.MEDIUM
    return Difficulty.EASY


def recommend_speech_rate(accuracy: Optional[float], total_attempts: int) -> SpeechRecommendation:
    """Recommend speech rate based on performance."""
    if total_attempts < COLD_START_ATTEMPTS or accuracy is None:
        return SpeechRecommendation(0.7, SpeechMode.NORMAL, "Starting with normal speed")

    if accuracy < EXAGGERATED_SPEECH_BELOW:
        return SpeechRecommendation(0.4, SpeechMode.EXAGGERATED, "Slowing down to help distinguish sounds")

    if accuracy >= MASTERED_ACCURACY_THRESHOLD:
        return SpeechRecommendation(0.8, SpeechMode.NORMAL, "Great progress! Trying normal speed")

    return SpeechRecommendation(0.7, SpeechMode.NORMAL, "Maintaining steady pace")


def should_add_noise(accuracy: Optional[float], total_attempts: int) -> bool:
    """Background noise only once clean audio is reliably mastered."""
    if accuracy is None:
        return False
    return total_attempts >= NOISE_MIN_ATTEMPTS and accuracy >= MASTERED_ACCURACY_THRESHOLD


def get_feedback_intensity(attempts: int, is_correct: bool) -> FeedbackIntensity:
    """Get feedback support for the n-th attempt on the same item.

    Support never decreases as attempts on an item increase.
    """
    if is_correct:
        return FeedbackIntensity(False, False, False, EncouragementLevel.CELEBRATE)

    if attempts <= 1:
        return FeedbackIntensity(False, False, False, EncouragementLevel.GENTLE)

    if attempts == 2:
        return FeedbackIntensity(True, True, False, EncouragementLevel.SUPPORTIVE)

    return FeedbackIntensity(True, True, True, EncouragementLevel.STRONG)


def calculate_streak_bonus(streak: int) -> int:
    """Bonus points for consecutive correct answers."""
    for below, bonus in STREAK_BONUS_STEPS:
        if streak < below:
            return bonus
    return STREAK_BONUS_MAX


def should_take_break(session_minutes: float, recent_accuracy: float) -> BreakAdvice:
    """Suggest a break after a long session or when accuracy drops."""
    if session_minutes > BREAK_AFTER_MINUTES:
        return BreakAdvice(True, "Great work! Time for a quick break.")

    # Falling accuracy suggests fatigue
    if recent_accuracy < BREAK_BELOW_ACCURACY:
        return BreakAdvice(True, "Let's take a break and come back fresh.")

    return BreakAdvice(False, None)
