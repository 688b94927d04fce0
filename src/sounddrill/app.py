"""Main application facade."""
import logging
import random
from typing import Optional, Union

from sounddrill.config import settings
from sounddrill.exceptions import StorageUnavailable
from sounddrill.models.base import init_db
from sounddrill.models.catalog_models import Catalog
from sounddrill.models.session_models import SessionMode
from sounddrill.monitoring import start_monitoring
from sounddrill.services.catalog_service import load_catalog
from sounddrill.services.classification_service import ClassificationService, ProgressSummary
from sounddrill.services.feedback_composer import FeedbackComposer
from sounddrill.services.ledger import Clock, Ledger
from sounddrill.services.practice_selector import PracticeSelector
from sounddrill.services.session_service import BaseSessionOrchestrator, create_orchestrator
from sounddrill.services.speech_service import SpeechPresenter, create_speech_presenter
from sounddrill.services.storage_service import LedgerStore, LedgerSync


class SoundDrill:
    """Wires the ledger, its storage and the practice services for one learner."""

    def __init__(
        self,
        user_key: Optional[str] = None,
        store: Optional[LedgerStore] = None,
        catalog: Optional[Catalog] = None,
        speech: Optional[SpeechPresenter] = None,
        rng: Optional[random.Random] = None,
        clock: Optional[Clock] = None,
    ):
        """Initialize the application."""
        self.user_key = user_key or settings.session.default_user
        self.store = store
        self.catalog = catalog
        self.speech = speech
        self.rng = rng or random.Random()
        self.clock = clock
        self.ledger: Optional[Ledger] = None
        self.sync: Optional[LedgerSync] = None
        self.classification: Optional[ClassificationService] = None
        self.selector: Optional[PracticeSelector] = None
        self.composer: Optional[FeedbackComposer] = None
        self.session: Optional[BaseSessionOrchestrator] = None
        self.running = False
        self.logger = logging.getLogger(__name__)

    def start(self) -> None:
        """Load the learner's ledger and set up the services."""
        if self.running:
            return

        if self.store is None:
            init_db()
            self.store = LedgerStore(clock=self.clock)
            self.logger.info("Database initialized")

        load_failed = False
        try:
            self.ledger = self.store.load_ledger(self.user_key)
        except StorageUnavailable as e:
            # Practice goes on in memory, the stored ledger is absorbed before the first save
            self.logger.warning(f"Starting with an empty ledger: {e}")
            self.ledger = Ledger(clock=self.clock)
            load_failed = True

        if self.catalog is None:
            self.catalog = load_catalog()
        if self.speech is None:
            self.speech = create_speech_presenter()

        self.sync = LedgerSync(self.store, self.user_key, reconcile=load_failed)
        self.classification = ClassificationService(self.ledger)
        self.selector = PracticeSelector(rng=self.rng)
        self.composer = FeedbackComposer(rng=self.rng)

        if settings.monitoring.enabled:
            start_monitoring(settings.monitoring.port)
            self.logger.info(f"Metrics served on port {settings.monitoring.port}")

        self.running = True
        self.logger.info(f"Started for {self.user_key} with {self.ledger.total_attempts} recorded attempts")

    def start_session(self, mode: Union[SessionMode, str]) -> BaseSessionOrchestrator:
        """Start a practice session, finishing the previous one."""
        self.start()
        self._finish_session()
        self.session = create_orchestrator(
            mode,
            ledger=self.ledger,
            catalog=self.catalog,
            selector=self.selector,
            composer=self.composer,
            speech=self.speech,
            sync=self.sync,
            classification=self.classification,
            rng=self.rng,
            clock=self.clock,
        )
        self.logger.info(f"Started {self.session.mode.value} session")
        return self.session

    def progress_summary(self) -> ProgressSummary:
        """Overall statistics with recommendations."""
        self.start()
        return self.classification.get_progress_summary()

    def reset_progress(self) -> bool:
        """Clear all recorded progress. Returns whether the reset was saved."""
        self.start()
        self.session = None
        self.ledger.reset()
        return self.sync.flush(self.ledger)

    def _finish_session(self) -> None:
        if self.session is not None and self.session.stats.total_attempts > 0:
            self.session.finish()
        self.session = None

    def close(self) -> None:
        """Finish the active session and save what is pending."""
        if not self.running:
            return
        self._finish_session()
        unsaved = self.sync.has_pending or self.sync.needs_reconcile
        if unsaved and not self.sync.flush(self.ledger):
            self.logger.warning(f"Closing with unsaved progress for {self.user_key}")
        self.running = False
        self.logger.info("Application closed")

    def __enter__(self) -> "SoundDrill":
        self.start()
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()
