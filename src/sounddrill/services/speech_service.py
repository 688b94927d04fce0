"""Speech presentation of practice stimuli."""
import logging
import re
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Deque, Iterable, List, Optional, Union

from gtts import gTTS

from sounddrill import monitoring
from sounddrill.config import settings
from sounddrill.services.difficulty_adapter import SpeechMode

logger = logging.getLogger(__name__)

RENDERED_HISTORY = 50  # recent files kept for the player

# IPA phoneme -> text a synthesizer pronounces as that sound
PHONEME_SOUNDS = {
    # Consonants
    "k": "kuh",
    "c": "kuh",
    "t": "tuh",
    "p": "puh",
    "b": "buh",
    "d": "duh",
    "g": "guh",
    "f": "fuh",
    "v": "vuh",
    "s": "sss",
    "z": "zzz",
    "θ": "th",
    "ð": "th",
    "ʃ": "sh",
    "ʒ": "zh",
    "h": "huh",
    "m": "mmm",
    "n": "nnn",
    "ŋ": "ng",
    "l": "lll",
    "r": "rrr",
    "w": "wuh",
    "j": "yuh",
    # Vowels
    "æ": "at",
    "a": "ah",
    "ɑ": "awe",
    "e": "eh",
    "ɛ": "eh",
    "i": "ee",
    "ɪ": "ih",
    "o": "oh",
    "ɔ": "awe",
    "u": "oo",
    "ʊ": "uh",
    "ʌ": "uh",
    "ɜr": "er",
    "ər": "er",
}

PHONEME_RATE = 0.5


@dataclass(frozen=True)
class SpeechOptions:
    """How to speak one utterance. Rate is relative to a 1.0 baseline."""
    rate: float = 0.7
    pitch: float = 1.0
    volume: float = 1.0
    delay_ms: int = 0


@dataclass(frozen=True)
class SpeechStep:
    """One utterance in a sequence, followed by a pause."""
    text: str
    options: SpeechOptions = field(default_factory=SpeechOptions)
    pause_after_ms: int = 500


def speakable_phoneme(phoneme: str) -> str:
    """Map a phoneme such as "/k/" or "k" to pronounceable text."""
    bare = phoneme.strip().strip("/")
    return PHONEME_SOUNDS.get(bare, bare)


def speech_options_for_mode(mode: Union[SpeechMode, str], base_rate: Optional[float] = None) -> SpeechOptions:
    """Speech options for a speech mode."""
    mode = SpeechMode(mode)
    if base_rate is None:
        base_rate = settings.speech.default_rate

    if mode is SpeechMode.EXAGGERATED:
        return SpeechOptions(rate=0.4, pitch=1.2)
    if mode is SpeechMode.NOISE:
        # Noise is not synthesized, a faster voice stands in for it
        return SpeechOptions(rate=round(base_rate + 0.1, 2))
    return SpeechOptions(rate=base_rate)


class SpeechPresenter(ABC):
    """Plays text to the learner. Calls are fire-and-forget."""

    name: str = "base"

    @abstractmethod
    def present(self, text: str, options: Optional[SpeechOptions] = None) -> None:
        """Speak one utterance."""
        raise NotImplementedError("Subclasses must implement this method")

    def present_sequence(self, steps: Iterable[SpeechStep]) -> None:
        """Speak utterances one after another."""
        for step in steps:
            self.present(step.text, step.options)

    def present_phoneme(self, phoneme: str, options: Optional[SpeechOptions] = None) -> None:
        """Speak a single sound, slower than words by default."""
        options = options or SpeechOptions(rate=PHONEME_RATE)
        self.present(speakable_phoneme(phoneme), options)


class SilentSpeechPresenter(SpeechPresenter):
    """Logs speech requests without producing audio."""

    name = "silent"

    def __init__(self):
        self.spoken: List[SpeechStep] = []

    def present(self, text: str, options: Optional[SpeechOptions] = None) -> None:
        options = options or SpeechOptions()
        monitoring.speech_requests.labels(presenter=self.name).inc()
        logger.debug(f"Speech request: {text!r} at rate {options.rate}")
        self.spoken.append(SpeechStep(text, options, 0))

    def present_sequence(self, steps: Iterable[SpeechStep]) -> None:
        for step in steps:
            self.present(step.text, step.options)
            # Keep the requested pause with the recorded step
            self.spoken[-1] = replace(self.spoken[-1], pause_after_ms=step.pause_after_ms)


class GTTSSpeechPresenter(SpeechPresenter):
    """Renders utterances to mp3 files with Google Text-to-Speech.

    gTTS only knows a normal and a slow voice, so rates below the slow
    threshold use the slow voice; pitch and volume are left to the player.
    """

    name = "gtts"

    def __init__(
        self,
        output_dir: Optional[Path] = None,
        language: Optional[str] = None,
        slow_below_rate: Optional[float] = None,
    ):
        self.output_dir = Path(output_dir or settings.paths.speech_dir)
        self.language = language or settings.speech.language
        self.slow_below_rate = slow_below_rate if slow_below_rate is not None else settings.speech.slow_below_rate
        self.rendered: Deque[Path] = deque(maxlen=RENDERED_HISTORY)

    @staticmethod
    def _sanitize_filename(text: str) -> str:
        """Sanitize text for use in filename."""
        return re.sub(r"[^a-zA-Z0-9]", "_", text.lower())[:64] or "utterance"

    def render(self, text: str, options: Optional[SpeechOptions] = None) -> Optional[Path]:
        """Render an utterance to a file and return its path, None on failure."""
        options = options or SpeechOptions()
        slow = options.rate < self.slow_below_rate
        path = self.output_dir / f"{self._sanitize_filename(text)}{'_slow' if slow else ''}.mp3"
        if path.exists():
            logger.debug(f"Using cached speech file: {path}")
            return path
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            tts = gTTS(text=text, lang=self.language, slow=slow)
            tts.save(str(path))
            logger.info(f"Speech rendered for: {text!r}, file: {path.name}")
            return path
        except Exception as e:
            logger.error(f"Error rendering speech for: {text!r}, error: {e}")
            monitoring.speech_errors.labels(error_type=type(e).__name__).inc()
            return None

    def present(self, text: str, options: Optional[SpeechOptions] = None) -> None:
        monitoring.speech_requests.labels(presenter=self.name).inc()
        path = self.render(text, options)
        if path is not None:
            self.rendered.append(path)


def create_speech_presenter() -> SpeechPresenter:
    """Create the presenter configured in settings."""
    if settings.speech.enabled:
        return GTTSSpeechPresenter()
    return SilentSpeechPresenter()
