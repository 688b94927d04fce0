"""Configuration settings for the practice engine."""
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Define base directory
BASE_DIR = Path(__file__).parent.parent.parent

# Load environment variables from .env file
env_file = ".env.test" if os.getenv("ENV") == "test" else ".env"
load_dotenv(env_file)


# Define data directories from environment variables
DATA_DIR = Path(os.getenv("DATA_DIR", "./data"))
CATALOGS_DIR = DATA_DIR / "catalogs"
MEDIA_DIR = DATA_DIR / "media"
SPEECH_DIR = MEDIA_DIR / "speech"

# Classification policy
PROBLEM_ACCURACY_THRESHOLD = 0.6  # below this an item is a problem
PROBLEM_MIN_ATTEMPTS = 3
MASTERED_ACCURACY_THRESHOLD = 0.8  # at or above this an item is mastered
MASTERED_MIN_ATTEMPTS = 5
ENCOURAGE_BELOW_ACCURACY = 0.5  # attempted items below this get extra encouragement

# Practice selection weights: problem, new, the rest goes to mastered review
PROBLEM_FOCUS_WEIGHT = 0.7
NEW_FOCUS_WEIGHT = 0.2

# Difficulty adapter breakpoints
COLD_START_ATTEMPTS = 3
EXAGGERATED_SPEECH_BELOW = 0.5
NOISE_MIN_ATTEMPTS = 10
BREAK_AFTER_MINUTES = 20
BREAK_BELOW_ACCURACY = 0.4
STREAK_BONUS_STEPS = [(3, 0), (5, 5), (10, 10)]  # (streak below, bonus)
STREAK_BONUS_MAX = 20


def ensure_directories() -> None:
    """Ensure all required directories exist."""
    directories = [
        DATA_DIR,
        CATALOGS_DIR,
        MEDIA_DIR,
        SPEECH_DIR,
    ]

    for directory in directories:
        directory.mkdir(parents=True, exist_ok=True)


@dataclass
class PathSettings:
    """Path configuration settings."""
    base_dir: Path = BASE_DIR
    data_dir: Path = DATA_DIR
    catalogs_dir: Path = CATALOGS_DIR
    media_dir: Path = MEDIA_DIR
    speech_dir: Path = SPEECH_DIR


@dataclass
class DatabaseSettings:
    """Database configuration settings."""
    url: str = os.getenv("DATABASE_URL", "sqlite:///sounddrill.db")
    echo: bool = os.getenv("DATABASE_ECHO", "false").lower() == "true"


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: str = os.getenv("LOG_LEVEL", "INFO")
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = os.getenv("LOG_FILE") or None


@dataclass
class ClassificationSettings:
    """Thresholds for problem and mastered items. Not read from the environment."""
    problem_threshold: float = PROBLEM_ACCURACY_THRESHOLD
    problem_min_attempts: int = PROBLEM_MIN_ATTEMPTS
    mastered_threshold: float = MASTERED_ACCURACY_THRESHOLD
    mastered_min_attempts: int = MASTERED_MIN_ATTEMPTS
    encourage_below: float = ENCOURAGE_BELOW_ACCURACY


@dataclass
class SelectorSettings:
    """Practice selection weights."""
    problem_weight: float = PROBLEM_FOCUS_WEIGHT
    new_weight: float = NEW_FOCUS_WEIGHT


@dataclass
class SpeechSettings:
    """Speech synthesis settings."""
    enabled: bool = os.getenv("SPEECH_ENABLED", "true").lower() == "true"
    language: str = os.getenv("SPEECH_LANGUAGE", "en")
    default_rate: float = float(os.getenv("SPEECH_RATE", "0.7"))
    slow_below_rate: float = 0.5


@dataclass
class SessionSettings:
    """Practice session settings."""
    points_per_correct: int = 10
    apply_streak_bonus: bool = os.getenv("SESSION_STREAK_BONUS", "false").lower() == "true"
    recent_window: int = 5
    reveal_answer_after: int = 2
    default_user: str = os.getenv("SOUNDDRILL_USER", "local")


@dataclass
class MonitoringSettings:
    """Prometheus exporter settings."""
    enabled: bool = os.getenv("MONITORING_ENABLED", "false").lower() == "true"
    port: int = int(os.getenv("MONITORING_PORT", "9090"))


def get_path_settings() -> PathSettings:
    """Get path settings."""
    return PathSettings()


def get_database_settings() -> DatabaseSettings:
    """Get database settings."""
    return DatabaseSettings()


def get_logging_settings() -> LoggingSettings:
    """Get logging settings."""
    return LoggingSettings()


def get_classification_settings() -> ClassificationSettings:
    """Get classification settings."""
    return ClassificationSettings()


def get_selector_settings() -> SelectorSettings:
    """Get selector settings."""
    return SelectorSettings()


def get_speech_settings() -> SpeechSettings:
    """Get speech settings."""
    return SpeechSettings()


def get_session_settings() -> SessionSettings:
    """Get session settings."""
    return SessionSettings()


def get_monitoring_settings() -> MonitoringSettings:
    """Get monitoring settings."""
    return MonitoringSettings()


@dataclass
class Settings:
    """Main settings class that combines all configuration settings."""
    paths: PathSettings = field(default_factory=get_path_settings)
    database: DatabaseSettings = field(default_factory=get_database_settings)
    logging: LoggingSettings = field(default_factory=get_logging_settings)
    classification: ClassificationSettings = field(default_factory=get_classification_settings)
    selector: SelectorSettings = field(default_factory=get_selector_settings)
    speech: SpeechSettings = field(default_factory=get_speech_settings)
    session: SessionSettings = field(default_factory=get_session_settings)
    monitoring: MonitoringSettings = field(default_factory=get_monitoring_settings)

    def validate(self) -> None:
        """Validate settings and raise ValueError if invalid."""
        if not 0.1 <= self.speech.default_rate <= 2.0:
            raise ValueError("SPEECH_RATE must be between 0.1 and 2.0")

        if not self.speech.language:
            raise ValueError("SPEECH_LANGUAGE is required")

        weights = self.selector.problem_weight + self.selector.new_weight
        if self.selector.problem_weight < 0 or self.selector.new_weight < 0 or weights > 1:
            raise ValueError("Selector weights must be non-negative and sum to at most 1")

        if self.classification.problem_threshold > self.classification.mastered_threshold:
            raise ValueError("Problem threshold cannot be greater than mastered threshold")

        if self.session.recent_window < 1:
            raise ValueError("Recent answer window must be positive")

        if not 0 < self.monitoring.port < 65536:
            raise ValueError("MONITORING_PORT must be a valid port number")


# Create global settings instance
settings = Settings()
settings.validate()
