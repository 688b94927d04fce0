"""Tests for practice session orchestration."""
import random
from unittest.mock import MagicMock

import pytest

from sounddrill.config import SessionSettings
from sounddrill.exceptions import InvalidArgument
from sounddrill.models.catalog_models import Catalog
from sounddrill.models.ledger_models import ItemKind, TrackedItem
from sounddrill.models.session_models import RoundState, SessionMode
from sounddrill.services.difficulty_adapter import SpeechMode
from sounddrill.services.feedback_composer import FeedbackType
from sounddrill.services.ledger import Ledger
from sounddrill.services.practice_selector import FocusArea, PracticeSelector
from sounddrill.services.session_service import (
    PairDiscriminationSession,
    SoundDecompositionSession,
    StructureExplorationSession,
    SyllableCountSession,
    create_orchestrator,
    get_orchestrator_classes,
)
from sounddrill.services.speech_service import SilentSpeechPresenter
from sounddrill.services.storage_service import LedgerStore, LedgerSync


@pytest.fixture
def speech() -> SilentSpeechPresenter:
    return SilentSpeechPresenter()


@pytest.fixture
def make_session(ledger: Ledger, catalog: Catalog, speech: SilentSpeechPresenter, rng: random.Random):
    """Factory for orchestrators sharing the test ledger, catalog and speech."""

    def make(session_class, **kwargs):
        kwargs.setdefault("rng", rng)
        kwargs.setdefault("speech", speech)
        return session_class(ledger=ledger, catalog=kwargs.pop("catalog", catalog), **kwargs)

    return make


@pytest.fixture
def pair_session(make_session) -> PairDiscriminationSession:
    """Pair session limited to the thirteen/fourteen pair."""
    session = make_session(PairDiscriminationSession)
    session.set_difficulty("hard")
    return session


def other_word(session: PairDiscriminationSession) -> str:
    first, second = session.current.words
    return second if session.target_word == first else first


def answer_correctly(session: PairDiscriminationSession):
    session.next()
    session.play_stimulus()
    return session.submit(session.target_word)


def test_submit_before_playback_is_ignored(pair_session: PairDiscriminationSession, ledger: Ledger) -> None:
    """Test that no answer is evaluated before the stimulus was played."""
    assert pair_session.submit("thirteen") is None

    pair_session.next()
    assert pair_session.state is RoundState.STIMULUS_READY
    assert pair_session.submit(pair_session.target_word) is None
    assert ledger.total_attempts == 0


def test_correct_pair_answer(pair_session: PairDiscriminationSession, ledger: Ledger) -> None:
    """Test a correct round records the pair and its sound contrast."""
    selection = pair_session.next()
    assert selection.item.key == "thirteen-fourteen"
    assert pair_session.target_word in ("thirteen", "fourteen")

    assert pair_session.play_stimulus()
    assert pair_session.state is RoundState.AWAITING_RESPONSE
    outcome = pair_session.submit(pair_session.target_word)

    assert outcome.is_correct
    assert outcome.feedback.type is FeedbackType.CORRECT
    assert (outcome.points, outcome.score, outcome.streak) == (10, 10, 1)
    assert outcome.recorded == (
        TrackedItem(ItemKind.PAIR, "thirteen-fourteen"),
        TrackedItem(ItemKind.SOUND, "/θ/ vs /f/"),
    )
    pair_record = ledger.get_record("pair", "thirteen-fourteen")
    assert pair_record.metadata.played_word == pair_session.target_word
    assert pair_record.metadata.difficulty_sound == "/θ/ vs /f/"
    assert ledger.get_record("sound", "/θ/ vs /f/").metadata.pair == ("thirteen", "fourteen")
    assert pair_session.state is RoundState.IDLE


def test_miss_then_retry_escalates_feedback(pair_session: PairDiscriminationSession, ledger: Ledger) -> None:
    """Test that retrying the same item raises support."""
    pair_session.next()
    pair_session.play_stimulus()
    target = pair_session.target_word

    first = pair_session.submit(other_word(pair_session))
    assert not first.is_correct
    assert first.streak == 0
    assert first.feedback.show_replay
    assert not first.feedback.show_hint
    assert first.feedback.message == "These both use your teeth, but /θ/ uses your tongue too"
    assert pair_session.state is RoundState.AWAITING_RETRY
    assert pair_session.submit(target) is None

    assert pair_session.try_again()
    assert pair_session.state is RoundState.AWAITING_RESPONSE
    second = pair_session.submit(other_word(pair_session))

    assert second.attempts == 2
    assert second.feedback.show_hint
    assert second.feedback.tip is not None
    assert pair_session.target_word == target
    assert ledger.get_record("pair", "thirteen-fourteen").total == 2


def test_try_again_only_after_a_miss(pair_session: PairDiscriminationSession) -> None:
    """Test that a correct answer cannot be retried."""
    answer_correctly(pair_session)

    assert not pair_session.try_again()


def test_streak_milestone_feedback(pair_session: PairDiscriminationSession) -> None:
    """Test that the composer sees the streak including the current answer."""
    outcomes = [answer_correctly(pair_session) for _ in range(5)]

    assert outcomes[-1].streak == 5
    assert outcomes[-1].feedback.message == "You're on a roll!"
    assert outcomes[-1].score == 50
    assert pair_session.stats.best_streak == 5


def test_streak_bonus_when_enabled(make_session) -> None:
    """Test the optional streak bonus."""
    session = make_session(PairDiscriminationSession, session_settings=SessionSettings(apply_streak_bonus=True))
    session.set_difficulty("hard")

    outcomes = [answer_correctly(session) for _ in range(3)]

    assert [outcome.bonus for outcome in outcomes] == [0, 0, 5]
    assert outcomes[-1].score == 35


def test_no_content(make_session) -> None:
    """Test that an empty catalog gives no item instead of an error."""
    session = make_session(PairDiscriminationSession, catalog=Catalog())

    assert session.next() is None
    assert session.state is RoundState.IDLE
    assert not session.play_stimulus()


def test_problem_pair_is_selected_first(make_session, ledger: Ledger) -> None:
    """Test that the selector sees problem pairs from the ledger."""
    for is_correct in (False, False, True, False):
        ledger.record_attempt("pair", "bat-pat", is_correct)
    draws = MagicMock(spec=random.Random)
    draws.random.return_value = 0.1
    session = make_session(PairDiscriminationSession, selector=PracticeSelector(rng=draws))

    selection = session.next()

    assert selection.item.key == "bat-pat"
    assert selection.focus_area is FocusArea.PROBLEM


def test_speech_adapts_to_pair_history(make_session, ledger: Ledger, speech: SilentSpeechPresenter) -> None:
    """Test exaggerated speech for a struggling pair."""
    for is_correct in (False, False, True, False):
        ledger.record_attempt("pair", "thirteen-fourteen", is_correct)
    draws = MagicMock(spec=random.Random)
    draws.random.return_value = 0.1
    session = make_session(PairDiscriminationSession, selector=PracticeSelector(rng=draws))
    session.set_difficulty("hard")

    session.next()
    session.play_stimulus()

    assert session.speech_mode is SpeechMode.EXAGGERATED
    assert speech.spoken[-1].options.rate == 0.4
    assert speech.spoken[-1].options.pitch == 1.2


def test_noise_for_mastered_pair(make_session, ledger: Ledger) -> None:
    """Test the noise challenge after reliable mastery."""
    for _ in range(10):
        ledger.record_attempt("pair", "thirteen-fourteen", True)
    session = make_session(PairDiscriminationSession)
    session.set_difficulty("hard")

    session.next()

    assert session.speech_mode is SpeechMode.NOISE


def test_speech_mode_override(pair_session: PairDiscriminationSession, speech: SilentSpeechPresenter) -> None:
    """Test forcing a speech mode."""
    pair_session.set_speech_mode("exaggerated")
    pair_session.next()
    pair_session.play_stimulus()

    assert pair_session.speech_mode is SpeechMode.EXAGGERATED
    assert speech.spoken[-1].options.rate == 0.4

    with pytest.raises(ValueError):
        pair_session.set_speech_mode("whisper")


def test_compare_plays_both_words(pair_session: PairDiscriminationSession, speech: SilentSpeechPresenter) -> None:
    """Test the comparison of both words after playback."""
    pair_session.next()
    assert not pair_session.compare()

    pair_session.play_stimulus()
    assert pair_session.compare()

    assert [step.text for step in speech.spoken[-2:]] == ["First word: thirteen", "Second word: fourteen"]
    assert speech.spoken[-2].pause_after_ms == 2000


def test_invalid_difficulty(pair_session: PairDiscriminationSession) -> None:
    with pytest.raises(InvalidArgument):
        pair_session.set_difficulty("extreme")


def test_answer_outside_pair_is_ignored(pair_session: PairDiscriminationSession) -> None:
    """Test that an answer that is neither word is not evaluated."""
    pair_session.next()
    pair_session.play_stimulus()

    assert pair_session.submit("fifteen") is None
    assert pair_session.attempts == 0


def test_replay_keeps_state(pair_session: PairDiscriminationSession, speech: SilentSpeechPresenter) -> None:
    """Test that replaying after feedback does not change the round."""
    pair_session.next()
    pair_session.play_stimulus()
    pair_session.submit(other_word(pair_session))

    assert pair_session.play_stimulus()
    assert pair_session.state is RoundState.AWAITING_RETRY
    assert len(speech.spoken) == 2


def test_syllable_count_round(make_session, ledger: Ledger, speech: SilentSpeechPresenter) -> None:
    """Test a syllable count round and its staged stimulus."""
    session = make_session(SyllableCountSession)
    session.set_difficulty("medium")
    session.next()
    session.play_stimulus()

    assert [step.text for step in speech.spoken] == ["banana", "ba", "na", "na"]
    assert speech.spoken[0].pause_after_ms == 1500
    stressed = speech.spoken[2].options
    unstressed = speech.spoken[1].options
    assert (stressed.rate, stressed.pitch, stressed.volume) == (0.5, 1.2, 1.0)
    assert (unstressed.rate, unstressed.pitch, unstressed.volume) == (0.6, 1.0, 0.8)

    assert session.submit("many") is None
    outcome = session.submit("3")

    assert outcome.is_correct
    record = ledger.get_record("word", "banana")
    assert record.metadata.user_guess == 3
    assert record.metadata.syllable_count == 3
    assert record.metadata.mode == "syllable_count"


def test_syllable_answer_revealed_after_two_misses(make_session) -> None:
    """Test that the answer is shown after the second miss."""
    session = make_session(SyllableCountSession)
    session.set_difficulty("medium")
    session.next()
    session.play_stimulus()

    first = session.submit(2)
    session.try_again()
    second = session.submit(4)

    assert first.reveal_answer is None
    assert "ba-na-na" in second.reveal_answer


def test_sound_decomposition_round(make_session, ledger: Ledger) -> None:
    """Test that a decomposition round records the word and each sound position."""
    session = make_session(SoundDecompositionSession)
    session.next()
    word = session.current
    phonemes = word.phonemes

    assert set(phonemes) <= set(session.sound_pool)
    assert len(session.sound_pool) == len(phonemes) + 3
    assert session.hint() == word.sounds[0]

    session.play_stimulus()
    assert session.submit([]) is None
    outcome = session.submit([phonemes[0], phonemes[2]])

    assert not outcome.is_correct
    assert outcome.recorded[0] == TrackedItem(ItemKind.WORD, word.word)
    assert len(outcome.recorded) == 4
    assert ledger.get_record("sound", phonemes[0]).correct == 1
    assert ledger.get_record("sound", phonemes[1]).correct == 0
    assert ledger.get_record("sound", phonemes[2]).correct == 0
    assert ledger.get_record("sound", phonemes[2]).metadata.position == 2
    assert ledger.get_record("word", word.word).metadata.user_count == 2


def test_structure_exploration_walks_in_order(make_session, ledger: Ledger, speech: SilentSpeechPresenter) -> None:
    """Test that exploration walks the words and records no attempts."""
    session = make_session(StructureExplorationSession)
    seen = []
    for _ in range(4):
        session.next()
        seen.append(session.current.word)
        session.play_stimulus()
        outcome = session.submit(True)
        assert outcome.is_correct
        assert outcome.recorded == ()

    assert seen == ["cat", "dog", "sun", "cat"]
    assert ledger.total_attempts == 0
    assert session.stats.score == 40

    assert session.voice_sound(0)
    assert speech.spoken[-1].text == "kuh"
    assert not session.voice_sound(7)


def test_break_advice(pair_session: PairDiscriminationSession, clock) -> None:
    """Test fatigue by time and by recent accuracy."""
    assert not pair_session.break_advice().should_break

    pair_session.next()
    pair_session.play_stimulus()
    for _ in range(3):
        pair_session.submit(other_word(pair_session))
        pair_session.try_again()
    assert pair_session.break_advice().should_break

    clock.advance(minutes=21)
    assert pair_session.break_advice().should_break


def test_break_advice_after_long_session(pair_session: PairDiscriminationSession, clock) -> None:
    clock.advance(minutes=21)

    assert pair_session.break_advice().should_break


def test_finish_records_session(pair_session: PairDiscriminationSession, ledger: Ledger, clock) -> None:
    """Test that finishing records the session once."""
    sync = MagicMock(spec=LedgerSync)
    pair_session.sync = sync
    answer_correctly(pair_session)
    clock.advance(minutes=6)

    session_record = pair_session.finish()

    assert session_record.mode == "pair_discrimination"
    assert session_record.stats["score"] == 10
    assert session_record.stats["duration_minutes"] == 6.0
    assert pair_session.finish() is session_record
    assert len(ledger.session_history) == 1
    assert sync.flush.call_count == 2


def test_storage_failure_does_not_block_feedback(pair_session: PairDiscriminationSession, ledger: Ledger) -> None:
    """Test that a failed save still updates the ledger and gives feedback."""
    store = MagicMock(spec=LedgerStore)
    store.save_snapshot.return_value = False
    pair_session.sync = LedgerSync(store, "someone")

    outcome = answer_correctly(pair_session)

    assert outcome.is_correct
    assert not outcome.saved
    assert outcome.feedback.message
    assert ledger.get_record("pair", "thirteen-fourteen").total == 1
    assert pair_session.sync.has_pending


def test_create_orchestrator(ledger: Ledger, catalog: Catalog) -> None:
    """Test creating orchestrators by mode."""
    classes = get_orchestrator_classes()
    assert set(classes) == {
        SessionMode.PAIR_DISCRIMINATION,
        SessionMode.SYLLABLE_COUNT,
        SessionMode.SOUND_DECOMPOSITION,
        SessionMode.STRUCTURE_EXPLORATION,
    }

    session = create_orchestrator("syllable_count", ledger=ledger, catalog=catalog)
    assert isinstance(session, SyllableCountSession)

    with pytest.raises(InvalidArgument):
        create_orchestrator("karaoke", ledger=ledger, catalog=catalog)
    with pytest.raises(InvalidArgument):
        create_orchestrator(SessionMode.BASE, ledger=ledger, catalog=catalog)


def test_tip_for_word(pair_session: PairDiscriminationSession) -> None:
    """Test articulation tips for the words of the current pair."""
    assert pair_session.tip_for("thirteen") is None

    pair_session.next()

    assert pair_session.tip_for("thirteen") == "Tongue between your teeth"
    assert pair_session.tip_for("fourteen") is None


def test_play_sound_from_pool(make_session, speech: SilentSpeechPresenter) -> None:
    """Test voicing a sound from the decomposition pool."""
    session = make_session(SoundDecompositionSession)
    session.next()

    session.play_sound("/k/")

    assert speech.spoken[-1].text == "kuh"
    assert speech.spoken[-1].options.rate == 0.5


def test_play_word(pair_session: PairDiscriminationSession, speech: SilentSpeechPresenter) -> None:
    """Test playing either word of the pair on demand."""
    assert not pair_session.play_word("thirteen")

    pair_session.set_speech_mode("exaggerated")
    pair_session.next()

    assert pair_session.play_word("fourteen")
    assert speech.spoken[-1].text == "fourteen"
    assert speech.spoken[-1].options.rate == 0.4
    assert not pair_session.play_word("fifteen")
    assert pair_session.state is RoundState.STIMULUS_READY
