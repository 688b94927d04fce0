"""Tests for the main application."""
import random
from typing import Generator
from unittest.mock import MagicMock, patch

import pytest
from faker import Faker

from sounddrill.__main__ import main
from sounddrill.app import SoundDrill
from sounddrill.exceptions import StorageUnavailable
from sounddrill.models.base import Base, engine, init_db
from sounddrill.models.catalog_models import Catalog
from sounddrill.services.ledger import Ledger
from sounddrill.services.session_service import PairDiscriminationSession, SyllableCountSession
from sounddrill.services.speech_service import SilentSpeechPresenter
from sounddrill.services.storage_service import LedgerStore

fake = Faker()


@pytest.fixture
def store(clock) -> Generator[LedgerStore, None, None]:
    """Create a store over fresh tables."""
    Base.metadata.drop_all(bind=engine)
    init_db()
    yield LedgerStore(clock=clock)
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def app(store: LedgerStore, catalog: Catalog, clock) -> SoundDrill:
    """Create an application with injected dependencies."""
    return SoundDrill(
        user_key=fake.user_name(),
        store=store,
        catalog=catalog,
        speech=SilentSpeechPresenter(),
        rng=random.Random(42),
        clock=clock,
    )


def play_round(session: PairDiscriminationSession) -> None:
    session.next()
    session.play_stimulus()
    session.submit(session.target_word)


def test_start(app: SoundDrill) -> None:
    """Test starting the application."""
    app.start()

    assert app.running
    assert app.ledger.total_attempts == 0
    assert app.sync is not None

    ledger = app.ledger
    app.start()  # Should not reload
    assert app.ledger is ledger


def test_start_with_storage_unavailable(catalog: Catalog, clock) -> None:
    """Test that practice starts in memory when storage is down."""
    store = MagicMock(spec=LedgerStore)
    store.load_ledger.side_effect = StorageUnavailable("database is locked")
    app = SoundDrill(user_key="someone", store=store, catalog=catalog, speech=SilentSpeechPresenter(), clock=clock)

    app.start()

    assert app.running
    assert isinstance(app.ledger, Ledger)
    assert app.ledger.total_attempts == 0


def test_load_failure_keeps_stored_progress(app: SoundDrill, store: LedgerStore, clock) -> None:
    """Test that progress made after a failed load is added to the stored ledger."""
    stored = Ledger(clock=clock)
    for _ in range(5):
        stored.record_attempt("sound", "/θ/", True)
    stored.record_session("sound_decomposition")
    store.save_ledger(app.user_key, stored)

    with patch.object(store, "load_ledger", side_effect=StorageUnavailable("database is locked")):
        app.start()
        session = app.start_session("pair_discrimination")
        session.set_difficulty("easy")
        play_round(session)
    assert app.sync.has_pending

    play_round(session)

    assert not app.sync.has_pending
    loaded = store.load_ledger(app.user_key)
    assert loaded.get_record("sound", "/θ/").total == 5
    assert loaded.get_record("pair", "bat-pat").total == 2
    assert len(loaded.session_history) == 1
    assert loaded.total_attempts == app.ledger.total_attempts == 9


def test_start_session(app: SoundDrill) -> None:
    """Test that sessions share the application's ledger."""
    session = app.start_session("pair_discrimination")

    assert isinstance(session, PairDiscriminationSession)
    assert session.ledger is app.ledger
    assert session.sync is app.sync


def test_switching_sessions_finishes_previous(app: SoundDrill) -> None:
    """Test that a session with attempts is recorded when switching modes."""
    session = app.start_session("pair_discrimination")
    play_round(session)

    next_session = app.start_session("syllable_count")

    assert isinstance(next_session, SyllableCountSession)
    assert session.finished is not None
    assert [record.mode for record in app.ledger.session_history] == ["pair_discrimination"]

    app.start_session("sound_decomposition")
    # Sessions without attempts are not recorded
    assert len(app.ledger.session_history) == 1


def test_progress_is_saved(app: SoundDrill, store: LedgerStore) -> None:
    """Test that every answer is persisted."""
    play_round(app.start_session("pair_discrimination"))

    loaded = store.load_ledger(app.user_key)

    assert loaded.total_attempts == 2
    assert loaded.version == app.ledger.version


def test_progress_summary(app: SoundDrill) -> None:
    """Test the overall progress summary."""
    session = app.start_session("pair_discrimination")
    session.set_difficulty("hard")
    play_round(session)

    summary = app.progress_summary()

    assert summary.stats.total_attempts == 2
    assert summary.stats.total_accuracy == 1.0
    assert summary.stats.days_active == 1
    assert not summary.recommendations.has_problem_areas


def test_reset_progress(app: SoundDrill, store: LedgerStore) -> None:
    """Test that a reset clears memory and storage."""
    play_round(app.start_session("pair_discrimination"))

    assert app.reset_progress()

    assert app.session is None
    assert app.ledger.total_attempts == 0
    assert store.load_ledger(app.user_key).total_attempts == 0


def test_close(app: SoundDrill, store: LedgerStore) -> None:
    """Test that closing records the active session."""
    with app:
        play_round(app.start_session("pair_discrimination"))

    assert not app.running
    assert len(store.load_ledger(app.user_key).session_history) == 1


def test_close_with_unsaved_progress(catalog: Catalog, clock, caplog) -> None:
    """Test that closing with a failing store warns instead of raising."""
    store = MagicMock(spec=LedgerStore)
    store.load_ledger.return_value = Ledger(clock=clock)
    store.save_snapshot.return_value = False
    app = SoundDrill(user_key="someone", store=store, catalog=catalog, speech=SilentSpeechPresenter(), clock=clock)

    play_round(app.start_session("pair_discrimination"))
    app.close()

    assert not app.running
    assert app.sync.has_pending
    assert "Closing with unsaved progress" in caplog.text


def test_close_when_not_running(app: SoundDrill) -> None:
    """Test closing an application that never started."""
    app.close()  # Should not raise

    assert not app.running


def test_main_exploration(store: LedgerStore, catalog: Catalog, capsys) -> None:
    """Test the console shell walking through words."""
    answers = ["1", "", "q"]
    with patch("sounddrill.app.load_catalog", return_value=catalog), \
            patch("sounddrill.__main__.setup_logging"), \
            patch("builtins.input", side_effect=answers) as mock_input:
        assert main(["structure_exploration", "--user", "console"]) == 0

    prompts = [call.args[0] for call in mock_input.call_args_list]
    assert prompts[0].startswith("cat: 1) c  2) a  3) t")
    assert prompts[2].startswith("dog: 1) d  2) o  3) g")
    output = capsys.readouterr().out
    assert "Score: 10" in output
    assert "Overall: 0 of 0 correct" in output
    assert len(store.load_ledger("console").session_history) == 1


def test_main_pair_commands(store: LedgerStore, catalog: Catalog, clock, capsys) -> None:
    """Test playing one word on demand and the pair recommendations."""
    stored = Ledger(clock=clock)
    for _ in range(3):
        stored.record_attempt("pair", ("bat", "pat"), False)
    store.save_ledger("pairs", stored)
    speech = SilentSpeechPresenter()

    with patch("sounddrill.app.load_catalog", return_value=catalog), \
            patch("sounddrill.app.create_speech_presenter", return_value=speech), \
            patch("sounddrill.__main__.setup_logging"), \
            patch("builtins.input", side_effect=["p2", "q"]) as mock_input:
        assert main(["pair_discrimination", "--user", "pairs"]) == 0

    played = speech.spoken[-1].text
    assert f"2) {played}" in mock_input.call_args_list[0].args[0]
    assert "Worth practicing: bat / pat" in capsys.readouterr().out


def test_main_without_content(store: LedgerStore, capsys) -> None:
    """Test the console shell with an empty catalog."""
    with patch("sounddrill.app.load_catalog", return_value=Catalog()), \
            patch("sounddrill.__main__.setup_logging"):
        assert main(["syllable_count"]) == 0

    assert "Nothing to practice here yet." in capsys.readouterr().out


if __name__ == "__main__":
    pytest.main([__file__])
