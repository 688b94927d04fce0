"""Practice session orchestration for each practice mode."""
import logging
import random
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Deque, Dict, List, Optional, Sequence, Tuple, Type, Union, final

from sounddrill import monitoring
from sounddrill.config import settings, SessionSettings
from sounddrill.exceptions import InvalidArgument
from sounddrill.models.catalog_models import DIFFICULTY_LEVELS, Catalog, MinimalPair, SoundSpec, SyllableWord, WordEntry
from sounddrill.models.ledger_models import ItemKind, SessionRecord, TrackedItem
from sounddrill.models.session_models import RoundState, SessionMode, SessionStats
from sounddrill.services import difficulty_adapter
from sounddrill.services.classification_service import ClassificationService
from sounddrill.services.difficulty_adapter import BreakAdvice, SpeechMode
from sounddrill.services.feedback_composer import FeedbackComposer, FeedbackResult
from sounddrill.services.ledger import Clock, Ledger
from sounddrill.services.practice_selector import FocusArea, PracticeSelector, Selection
from sounddrill.services.speech_service import (
    SilentSpeechPresenter,
    SpeechOptions,
    SpeechPresenter,
    SpeechStep,
    speech_options_for_mode,
)
from sounddrill.services.storage_service import LedgerSync

logger = logging.getLogger(__name__)

WORD_RATE = 0.6
COMPARISON_PAUSE_MS = 2000
SYLLABLE_PAUSE_MS = 800
WORD_BEFORE_SYLLABLES_PAUSE_MS = 1500
MAX_DISTRACTORS = 4


def get_all_subclasses(cls):
    """Get all subclasses of a class."""
    all_subclasses = []
    for subclass in cls.__subclasses__():
        all_subclasses.append(subclass)
        all_subclasses.extend(get_all_subclasses(subclass))
    return all_subclasses


@dataclass(frozen=True)
class AttemptRecord:
    """One ledger attempt produced by an evaluated round."""
    kind: ItemKind
    key: Union[str, Sequence[str]]
    is_correct: bool
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RoundOutcome:
    """Result of an evaluated answer."""
    is_correct: bool
    feedback: FeedbackResult
    points: int
    bonus: int
    score: int
    streak: int
    attempts: int
    recorded: Tuple[TrackedItem, ...] = ()
    reveal_answer: Optional[str] = None
    saved: bool = True


class BaseSessionOrchestrator(ABC):
    """Base class for all practice modes.

    A round moves through ``RoundState``: an item is loaded by ``next``,
    played by ``play_stimulus`` and answered with ``submit``. An answer is
    only evaluated once the stimulus has been played.
    """

    """Fields and methods that must be implemented by subclasses."""
    mode: SessionMode = SessionMode.BASE
    tracked_kind: ItemKind = ItemKind.WORD

    @abstractmethod
    def _candidates(self) -> Sequence[Any]:
        """Catalog items this mode can present."""
        raise NotImplementedError("Subclasses must implement this method")

    @abstractmethod
    def _item_key(self, item: Any) -> str:
        """Ledger key of a catalog item."""
        raise NotImplementedError("Subclasses must implement this method")

    @abstractmethod
    def _stimulus_steps(self) -> List[SpeechStep]:
        """Speech sequence presenting the current item."""
        raise NotImplementedError("Subclasses must implement this method")

    @abstractmethod
    def _evaluate(self, response: Any) -> bool:
        """Check a response against the current item."""
        raise NotImplementedError("Subclasses must implement this method")

    def _attempts_for(self, response: Any, is_correct: bool) -> List[AttemptRecord]:
        """Ledger attempts produced by an evaluated response."""
        return [AttemptRecord(self.tracked_kind, self._item_key(self.current), is_correct, {"mode": self.mode.value})]

    def _prepare(self, item: Any) -> None:
        """Per-item setup after an item is loaded."""

    def _setup(self) -> None:
        """Per-mode setup after construction."""

    def _accepts(self, response: Any) -> bool:
        """Whether a response can be evaluated at all."""
        return response is not None

    def _difficulty_sound(self) -> Optional[str]:
        return None

    def _reveal_answer(self, is_correct: bool) -> Optional[str]:
        return None

    """Fields and methods that must not be overridden by subclasses."""

    @final
    def __init__(
        self,
        ledger: Ledger,
        catalog: Catalog,
        selector: Optional[PracticeSelector] = None,
        composer: Optional[FeedbackComposer] = None,
        speech: Optional[SpeechPresenter] = None,
        sync: Optional[LedgerSync] = None,
        classification: Optional[ClassificationService] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Clock] = None,
        session_settings: Optional[SessionSettings] = None,
    ):
        self.ledger = ledger
        self.catalog = catalog
        self.rng = rng or random.Random()
        self.selector = selector or PracticeSelector(rng=self.rng)
        self.composer = composer or FeedbackComposer(rng=self.rng)
        self.speech = speech or SilentSpeechPresenter()
        self.sync = sync
        self.classification = classification or ClassificationService(ledger)
        self.clock = clock or ledger.clock
        self.session_settings = session_settings or settings.session

        self.state = RoundState.IDLE
        self.current: Optional[Any] = None
        self.focus_area: Optional[FocusArea] = None
        self.stimulus_played = False
        self.attempts = 0  # attempts on the current item
        self.stats = SessionStats()
        self.recent_results: Deque[bool] = deque(maxlen=self.session_settings.recent_window)
        self.started_at = self.clock()
        self.round_started_at = self.started_at
        self.finished: Optional[SessionRecord] = None
        self._setup()

    @final
    def next(self) -> Optional[Selection]:
        """Load a freshly selected item, None when there is nothing to practice."""
        selection = self._select()
        if selection is None:
            logger.info(f"No content available for {self.mode.value}")
            self.current = None
            self.state = RoundState.IDLE
            return None
        self._load(selection)
        return selection

    def _select(self) -> Optional[Selection]:
        candidates = {self._item_key(item): item for item in self._candidates()}
        problem = [
            candidates[stats.key]
            for stats in self.classification.get_problem_items(self.tracked_kind)
            if stats.key in candidates
        ]
        mastered = [
            candidates[stats.key]
            for stats in self.classification.get_mastered_items(self.tracked_kind)
            if stats.key in candidates
        ]
        new = [candidates[key] for key in self.classification.get_new_items(self.tracked_kind, candidates)]
        if not new:
            # Everything was attempted, keep neutral items in rotation
            excluded = {id(item) for item in problem + mastered}
            new = [item for item in candidates.values() if id(item) not in excluded]
        return self.selector.select_next(problem, mastered, new)

    @final
    def _load(self, selection: Selection) -> None:
        self.current = selection.item
        self.focus_area = selection.focus_area
        self.stimulus_played = False
        self.attempts = 0
        self.stats.items_seen += 1
        self._prepare(selection.item)
        self.state = RoundState.STIMULUS_READY
        self.round_started_at = self.clock()
        logger.debug(f"{self.mode.value}: loaded {self._item_key(selection.item)!r} ({selection.focus_area.value})")

    @final
    def play_stimulus(self) -> bool:
        """Present the current item. Replays are allowed at any time."""
        if self.current is None:
            return False
        self.speech.present_sequence(self._stimulus_steps())
        self.stimulus_played = True
        if self.state is RoundState.STIMULUS_READY:
            self.state = RoundState.AWAITING_RESPONSE
        return True

    @final
    def submit(self, response: Any) -> Optional[RoundOutcome]:
        """Evaluate an answer. Does nothing unless the stimulus was played."""
        if self.state is not RoundState.AWAITING_RESPONSE or not self.stimulus_played:
            logger.debug(f"{self.mode.value}: ignoring response in state {self.state.value}")
            return None
        if not self._accepts(response):
            return None

        self.state = RoundState.EVALUATED
        self.attempts += 1
        is_correct = self._evaluate(response)

        # Ledger first, then feedback, then score
        recorded = []
        for attempt in self._attempts_for(response, is_correct):
            self.ledger.record_attempt(attempt.kind, attempt.key, attempt.is_correct, attempt.metadata)
            recorded.append(TrackedItem.create(attempt.kind, attempt.key))

        streak = self.stats.streak + 1 if is_correct else 0
        feedback = self.composer.compose(
            is_correct,
            difficulty_sound=self._difficulty_sound(),
            streak=streak,
            attempts=self.attempts,
        )

        points, bonus = self._update_score(is_correct)
        saved = self.sync.flush(self.ledger) if self.sync else True

        elapsed = (self.clock() - self.round_started_at).total_seconds()
        monitoring.round_duration.labels(mode=self.mode.value).observe(max(elapsed, 0.0))
        self.state = RoundState.IDLE if is_correct else RoundState.AWAITING_RETRY
        return RoundOutcome(
            is_correct=is_correct,
            feedback=feedback,
            points=points,
            bonus=bonus,
            score=self.stats.score,
            streak=self.stats.streak,
            attempts=self.attempts,
            recorded=tuple(recorded),
            reveal_answer=self._reveal_answer(is_correct),
            saved=saved,
        )

    @final
    def _update_score(self, is_correct: bool) -> Tuple[int, int]:
        stats = self.stats
        stats.total_attempts += 1
        self.recent_results.append(is_correct)
        if not is_correct:
            stats.streak = 0
            return 0, 0

        stats.correct_count += 1
        stats.streak += 1
        stats.best_streak = max(stats.best_streak, stats.streak)
        points = self.session_settings.points_per_correct
        bonus = 0
        if self.session_settings.apply_streak_bonus:
            bonus = difficulty_adapter.calculate_streak_bonus(stats.streak)
        stats.score += points + bonus
        return points, bonus

    @final
    def try_again(self) -> bool:
        """Answer the same item again after a miss."""
        if self.state is not RoundState.AWAITING_RETRY:
            return False
        self.state = RoundState.AWAITING_RESPONSE
        return True

    @final
    def break_advice(self) -> BreakAdvice:
        """Check session length and recent accuracy for fatigue."""
        minutes = (self.clock() - self.started_at) / timedelta(minutes=1)
        if self.recent_results:
            recent_accuracy = sum(self.recent_results) / len(self.recent_results)
        else:
            recent_accuracy = 1.0
        return difficulty_adapter.should_take_break(minutes, recent_accuracy)

    @final
    def finish(self) -> SessionRecord:
        """Record the session in the ledger and save it."""
        if self.finished is not None:
            return self.finished
        stats = self.stats.to_dict()
        stats["duration_minutes"] = round((self.clock() - self.started_at) / timedelta(minutes=1), 1)
        self.finished = self.ledger.record_session(self.mode.value, stats)
        if self.sync:
            self.sync.flush(self.ledger)
        self.current = None
        self.state = RoundState.IDLE
        logger.info(f"Finished {self.mode.value} session: {stats}")
        return self.finished


class PairDiscriminationSession(BaseSessionOrchestrator):
    """Hear one word of a minimal pair and pick which one it was."""

    mode = SessionMode.PAIR_DISCRIMINATION
    tracked_kind = ItemKind.PAIR

    def _setup(self) -> None:
        self.difficulty: Optional[str] = None
        self.speech_mode_override: Optional[SpeechMode] = None
        self.target_word: Optional[str] = None
        self.speech_mode = SpeechMode.NORMAL
        self.speech_options = SpeechOptions()

    def set_difficulty(self, difficulty: Optional[str]) -> None:
        if difficulty is not None and difficulty not in DIFFICULTY_LEVELS:
            raise InvalidArgument(f"Unknown difficulty: {difficulty!r}")
        self.difficulty = difficulty

    def set_speech_mode(self, speech_mode: Union[SpeechMode, str, None]) -> None:
        """Force a speech mode, or None to adapt it to the pair's history."""
        self.speech_mode_override = SpeechMode(speech_mode) if speech_mode is not None else None
        if self.current is not None:
            self._choose_speech(self.current)

    def _candidates(self) -> Sequence[MinimalPair]:
        return self.catalog.pairs(self.difficulty)

    def _item_key(self, item: MinimalPair) -> str:
        return item.key

    def _prepare(self, item: MinimalPair) -> None:
        self.target_word = self.rng.choice(item.words)
        self._choose_speech(item)

    def _choose_speech(self, item: MinimalPair) -> None:
        base_rate = settings.speech.default_rate
        if self.speech_mode_override is not None:
            self.speech_mode = self.speech_mode_override
        else:
            stats = self.classification.get_accuracy(ItemKind.PAIR, item.key)
            accuracy, total = (stats.accuracy, stats.total) if stats else (None, 0)
            if difficulty_adapter.should_add_noise(accuracy, total):
                self.speech_mode = SpeechMode.NOISE
            else:
                recommendation = difficulty_adapter.recommend_speech_rate(accuracy, total)
                self.speech_mode = recommendation.mode
                base_rate = recommendation.rate
        self.speech_options = speech_options_for_mode(self.speech_mode, base_rate)

    def _stimulus_steps(self) -> List[SpeechStep]:
        return [SpeechStep(self.target_word, self.speech_options, 0)]

    def _accepts(self, response: Any) -> bool:
        return isinstance(response, str) and response in self.current.words

    def _evaluate(self, response: str) -> bool:
        return response == self.target_word

    def _difficulty_sound(self) -> Optional[str]:
        return self.current.difficulty_sound

    def _attempts_for(self, response: str, is_correct: bool) -> List[AttemptRecord]:
        pair = self.current
        attempts = [
            AttemptRecord(
                ItemKind.PAIR,
                pair.key,
                is_correct,
                {
                    "mode": self.mode.value,
                    "difficulty_sound": pair.difficulty_sound,
                    "speech_mode": self.speech_mode.value,
                    "played_word": self.target_word,
                },
            )
        ]
        if pair.difficulty_sound:
            attempts.append(
                AttemptRecord(
                    ItemKind.SOUND,
                    pair.difficulty_sound,
                    is_correct,
                    {"mode": self.mode.value, "pair": pair.words, "speech_mode": self.speech_mode.value},
                )
            )
        return attempts

    def compare(self) -> bool:
        """Play both words of the pair one after the other."""
        if self.current is None or not self.stimulus_played:
            return False
        first, second = self.current.words
        self.speech.present_sequence([
            SpeechStep(f"First word: {first}", self.speech_options, COMPARISON_PAUSE_MS),
            SpeechStep(f"Second word: {second}", self.speech_options, 0),
        ])
        return True

    def play_word(self, word: str) -> bool:
        """Play one word of the current pair on demand."""
        if self.current is None or word not in self.current.words:
            return False
        self.speech.present(word, self.speech_options)
        return True

    def tip_for(self, word: str) -> Optional[str]:
        return self.current.tips.get(word) if self.current else None


class SyllableCountSession(BaseSessionOrchestrator):
    """Hear a word beat by beat and count its syllables."""

    mode = SessionMode.SYLLABLE_COUNT
    tracked_kind = ItemKind.WORD

    def _setup(self) -> None:
        self.difficulty: Optional[str] = None

    def set_difficulty(self, difficulty: Optional[str]) -> None:
        if difficulty is not None and difficulty not in DIFFICULTY_LEVELS:
            raise InvalidArgument(f"Unknown difficulty: {difficulty!r}")
        self.difficulty = difficulty

    def _candidates(self) -> Sequence[SyllableWord]:
        return self.catalog.syllables(difficulty=self.difficulty)

    def _item_key(self, item: SyllableWord) -> str:
        return item.word

    def _stimulus_steps(self) -> List[SpeechStep]:
        word = self.current
        steps = [SpeechStep(word.word, SpeechOptions(rate=WORD_RATE), WORD_BEFORE_SYLLABLES_PAUSE_MS)]
        for syllable, stress in zip(word.syllables, word.stress_pattern):
            if stress == 1:
                options = SpeechOptions(rate=0.5, pitch=1.2, volume=1.0)
            else:
                options = SpeechOptions(rate=0.6, pitch=1.0, volume=0.8)
            steps.append(SpeechStep(syllable, options, SYLLABLE_PAUSE_MS))
        return steps

    def _accepts(self, response: Any) -> bool:
        try:
            int(response)
        except (TypeError, ValueError):
            return False
        return True

    def _evaluate(self, response: Any) -> bool:
        return int(response) == self.current.syllable_count

    def _attempts_for(self, response: Any, is_correct: bool) -> List[AttemptRecord]:
        word = self.current
        return [
            AttemptRecord(
                ItemKind.WORD,
                word.word,
                is_correct,
                {
                    "mode": self.mode.value,
                    "syllable_count": word.syllable_count,
                    "user_guess": int(response),
                    "difficulty": word.difficulty,
                },
            )
        ]

    def _reveal_answer(self, is_correct: bool) -> Optional[str]:
        if is_correct or self.attempts < self.session_settings.reveal_answer_after:
            return None
        word = self.current
        return f"{word.word} has {word.syllable_count} syllables: {'-'.join(word.syllables)} {word.beat_pattern}"


class SoundDecompositionSession(BaseSessionOrchestrator):
    """Hear a word and pick its sounds in order from a pool."""

    mode = SessionMode.SOUND_DECOMPOSITION
    tracked_kind = ItemKind.WORD

    def _setup(self) -> None:
        self.sound_pool: List[str] = []

    def _candidates(self) -> Sequence[WordEntry]:
        return self.catalog.words

    def _item_key(self, item: WordEntry) -> str:
        return item.word

    def _prepare(self, item: WordEntry) -> None:
        phonemes = item.phonemes
        others = [phoneme for phoneme in self.catalog.all_phonemes() if phoneme not in phonemes]
        self.rng.shuffle(others)
        distractors = others[: min(MAX_DISTRACTORS, len(phonemes))]
        pool = list(dict.fromkeys(phonemes)) + distractors
        self.rng.shuffle(pool)
        self.sound_pool = pool

    def _stimulus_steps(self) -> List[SpeechStep]:
        return [SpeechStep(self.current.word, SpeechOptions(rate=WORD_RATE), 0)]

    def _accepts(self, response: Any) -> bool:
        return response is not None and not isinstance(response, str) and len(response) > 0

    def _evaluate(self, response: Sequence[str]) -> bool:
        return list(response) == self.current.phonemes

    def _attempts_for(self, response: Sequence[str], is_correct: bool) -> List[AttemptRecord]:
        word = self.current
        attempts = [
            AttemptRecord(
                ItemKind.WORD,
                word.word,
                is_correct,
                {"mode": self.mode.value, "sound_count": len(word.sounds), "user_count": len(response)},
            )
        ]
        for position, phoneme in enumerate(word.phonemes):
            got_it = position < len(response) and response[position] == phoneme
            attempts.append(
                AttemptRecord(
                    ItemKind.SOUND,
                    phoneme,
                    got_it,
                    {"mode": self.mode.value, "word": word.word, "position": position},
                )
            )
        return attempts

    def hint(self) -> Optional[SoundSpec]:
        """Reveal the first sound of the word."""
        if self.current is None:
            return None
        return self.current.sounds[0]

    def play_sound(self, phoneme: str) -> None:
        self.speech.present_phoneme(phoneme)


class StructureExplorationSession(BaseSessionOrchestrator):
    """Walk through the words in order, voicing each sound."""

    mode = SessionMode.STRUCTURE_EXPLORATION
    tracked_kind = ItemKind.WORD

    def _setup(self) -> None:
        self.position = -1

    def _candidates(self) -> Sequence[WordEntry]:
        return self.catalog.words

    def _item_key(self, item: WordEntry) -> str:
        return item.word

    def _select(self) -> Optional[Selection]:
        words = self._candidates()
        if not words:
            return None
        self.position = (self.position + 1) % len(words)
        return Selection(words[self.position], FocusArea.NEW, f"Word {self.position + 1} of {len(words)}")

    def _stimulus_steps(self) -> List[SpeechStep]:
        return [SpeechStep(self.current.word, SpeechOptions(), 0)]

    def _evaluate(self, response: Any) -> bool:
        # Acknowledging a word always completes it
        return True

    def _attempts_for(self, response: Any, is_correct: bool) -> List[AttemptRecord]:
        return []

    def voice_sound(self, index: int) -> bool:
        """Voice one sound of the current word."""
        if self.current is None or not 0 <= index < len(self.current.sounds):
            return False
        self.speech.present_phoneme(self.current.sounds[index].phoneme)
        return True


def get_orchestrator_classes() -> Dict[SessionMode, Type[BaseSessionOrchestrator]]:
    """Map each practice mode to its orchestrator class."""
    return {
        subclass.mode: subclass
        for subclass in get_all_subclasses(BaseSessionOrchestrator)
        if subclass.mode is not SessionMode.BASE
    }


def create_orchestrator(mode: Union[SessionMode, str], **kwargs) -> BaseSessionOrchestrator:
    """Create the orchestrator for a practice mode."""
    try:
        mode = SessionMode(mode)
    except ValueError:
        raise InvalidArgument(f"Unknown practice mode: {mode!r}") from None
    classes = get_orchestrator_classes()
    if mode not in classes:
        raise InvalidArgument(f"No orchestrator for practice mode: {mode.value}")
    return classes[mode](**kwargs)
