"""Composition of supportive feedback for answers."""
import logging
import random
import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Union

from sounddrill import feedback_messages, monitoring

logger = logging.getLogger(__name__)

SoundPairKey = FrozenSet[str]

_PHONEME_PATTERN = re.compile(r"^/([^/\s]+)/$")


class FeedbackType(Enum):
    """Outcome the feedback responds to."""
    CORRECT = "correct"
    INCORRECT = "incorrect"


class FeedbackTone(Enum):
    """Register of the feedback message."""
    ENCOURAGING = "encouraging"
    SUPPORTIVE = "supportive"


@dataclass(frozen=True)
class FeedbackResult:
    """Feedback to render for one answer. Never persisted."""
    type: FeedbackType
    message: str
    tone: FeedbackTone
    show_replay: bool
    show_hint: bool
    show_tip: bool
    suggestion: Optional[str] = None
    tip: Optional[str] = None
    attempts: int = 1


def sound_pair_key(difficulty_sound: Union[str, Sequence[str], None]) -> Optional[SoundPairKey]:
    """Canonical unordered key for a contrast such as "/θ/ vs /f/".

    Returns None when the value does not name exactly two phonemes.
    """
    if not difficulty_sound:
        return None
    if isinstance(difficulty_sound, str):
        parts = [part.strip() for part in difficulty_sound.split(" vs ")]
    else:
        parts = [part.strip() for part in difficulty_sound]
    if len(parts) != 2:
        return None

    phonemes = []
    for part in parts:
        match = _PHONEME_PATTERN.match(part if part.startswith("/") else f"/{part}/")
        if not match:
            return None
        phonemes.append(match.group(1))
    if phonemes[0] == phonemes[1]:
        return None
    return frozenset(phonemes)


def contains_forbidden_word(text: str, forbidden: Iterable[str] = feedback_messages.FORBIDDEN_WORDS) -> bool:
    """Check text for vocabulary that frames an answer as a failure."""
    lowered = text.lower()
    return any(re.search(rf"\b{re.escape(word)}\b", lowered) for word in forbidden)


class FeedbackComposer:
    """Builds feedback results from phrase tables.

    Phrase choice uses the injected random source so tests can be
    deterministic.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        correct_phrases: Optional[List[str]] = None,
        streak_phrases: Optional[Mapping[int, str]] = None,
        supportive_phrases: Optional[List[str]] = None,
        sound_pair_feedback: Optional[Mapping[Iterable[str], Mapping[str, str]]] = None,
        encouragement: Optional[List[str]] = None,
        hints: Optional[Mapping[int, List[str]]] = None,
    ):
        self.rng = rng or random.Random()
        self.correct_phrases = list(correct_phrases or feedback_messages.CORRECT_GENERAL)
        self.streak_phrases = dict(streak_phrases or feedback_messages.STREAK_MESSAGES)
        self.supportive_phrases = list(supportive_phrases or feedback_messages.SUPPORTIVE_GENERAL)
        self.encouragement = list(encouragement or feedback_messages.ENCOURAGEMENT)
        self.hints = dict(hints or feedback_messages.HINTS)
        self.sound_pair_feedback: Dict[SoundPairKey, Mapping[str, str]] = {
            frozenset(phonemes): entry
            for phonemes, entry in (sound_pair_feedback or feedback_messages.SOUND_PAIR_FEEDBACK).items()
        }
        self._check_supportive_vocabulary()

    def _check_supportive_vocabulary(self) -> None:
        texts = list(self.supportive_phrases) + list(self.encouragement)
        for entry in self.sound_pair_feedback.values():
            texts.extend(value for value in entry.values() if value)
        for level_hints in self.hints.values():
            texts.extend(level_hints)
        for text in texts:
            if contains_forbidden_word(text):
                raise ValueError(f"Supportive phrase uses forbidden wording: {text!r}")

    def _pick(self, phrases: Sequence[str]) -> str:
        if not phrases:
            return ""
        return self.rng.choice(phrases)

    def compose(
        self,
        is_correct: bool,
        difficulty_sound: Union[str, Sequence[str], None] = None,
        streak: int = 0,
        attempts: int = 1,
    ) -> FeedbackResult:
        """Compose feedback for an answer."""
        if is_correct:
            result = self._compose_correct(streak)
        else:
            result = self._compose_supportive(difficulty_sound, attempts)
        monitoring.feedback_composed.labels(type=result.type.value).inc()
        return result

    def _compose_correct(self, streak: int) -> FeedbackResult:
        message = self.streak_phrases.get(streak) or self._pick(self.correct_phrases)
        return FeedbackResult(
            type=FeedbackType.CORRECT,
            message=message,
            tone=FeedbackTone.ENCOURAGING,
            show_replay=False,
            show_hint=False,
            show_tip=False,
        )

    def _compose_supportive(self, difficulty_sound, attempts: int) -> FeedbackResult:
        message = self._pick(self.supportive_phrases)
        suggestion = None
        tip = None

        specific = self.sound_pair_feedback.get(sound_pair_key(difficulty_sound))
        if specific:
            # Targeted explanation on the first miss only
            if attempts == 1:
                message = specific["message"]
            if attempts >= 2:
                tip = specific.get("tip")
        elif difficulty_sound:
            logger.debug(f"No specific feedback for {difficulty_sound!r}")

        if attempts >= 3:
            suggestion = self._pick(self.encouragement)

        return FeedbackResult(
            type=FeedbackType.INCORRECT,
            message=message,
            tone=FeedbackTone.SUPPORTIVE,
            show_replay=True,
            show_hint=attempts >= 2,
            show_tip=tip is not None,
            suggestion=suggestion,
            tip=tip,
            attempts=attempts,
        )

    def get_hint(self, attempts: int) -> Optional[str]:
        """Get a progressively stronger hint, None before the second attempt."""
        if attempts < 2:
            return None
        level = min(attempts - 1, max(self.hints))
        return self._pick(self.hints.get(level, []))

    def get_encouragement(self) -> str:
        """Get a random encouragement phrase."""
        return self._pick(self.encouragement)
