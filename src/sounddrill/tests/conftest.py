"""Test configuration."""
import os
import random
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from dotenv import load_dotenv

# Set test environment before any imports
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SPEECH_ENABLED"] = "false"

# Load test environment variables
test_env_path = Path(__file__).parent.parent.parent.parent / ".env.test"
load_dotenv(test_env_path)

# Import after environment setup
from sounddrill.config import ensure_directories
from sounddrill.models.catalog_models import Catalog, MinimalPair, SyllableWord, WordEntry
from sounddrill.services.ledger import Ledger

START = datetime(2024, 3, 1, 9, 0, tzinfo=UTC)


class FixedClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(autouse=True)
def setup_test_environment():
    """Set up test environment before each test."""
    # Ensure test directories exist
    ensure_directories()

    yield


@pytest.fixture
def clock() -> FixedClock:
    """Create a clock fixed at the start of a session."""
    return FixedClock()


@pytest.fixture
def rng() -> random.Random:
    """Create a seeded random source."""
    return random.Random(1234)


@pytest.fixture
def ledger(clock: FixedClock) -> Ledger:
    """Create an empty ledger on the fixed clock."""
    return Ledger(clock=clock)


@pytest.fixture
def catalog() -> Catalog:
    """Create a small catalog with every kind of content."""
    return Catalog(
        words=(
            WordEntry.from_dict({
                "word": "cat",
                "sounds": [
                    {"letter": "c", "phoneme": "k"},
                    {"letter": "a", "phoneme": "æ"},
                    {"letter": "t", "phoneme": "t"},
                ],
            }),
            WordEntry.from_dict({
                "word": "dog",
                "sounds": [
                    {"letter": "d", "phoneme": "d"},
                    {"letter": "o", "phoneme": "ɑ"},
                    {"letter": "g", "phoneme": "g"},
                ],
            }),
            WordEntry.from_dict({
                "word": "sun",
                "sounds": [
                    {"letter": "s", "phoneme": "s"},
                    {"letter": "u", "phoneme": "ʌ"},
                    {"letter": "n", "phoneme": "n"},
                ],
            }),
        ),
        minimal_pairs=(
            MinimalPair.from_dict({
                "id": "pair_001",
                "pair": ["thirteen", "fourteen"],
                "difficulty_sound": "/θ/ vs /f/",
                "difficulty": "hard",
                "tips": {"thirteen": "Tongue between your teeth"},
            }),
            MinimalPair.from_dict({
                "id": "pair_002",
                "pair": ["bat", "pat"],
                "difficulty_sound": "/b/ vs /p/",
                "difficulty": "easy",
            }),
        ),
        syllable_words=(
            SyllableWord.from_dict({"word": "cat", "syllables": ["cat"], "stress_pattern": [1], "difficulty": "easy"}),
            SyllableWord.from_dict({
                "word": "banana",
                "syllables": ["ba", "na", "na"],
                "stress_pattern": [0, 1, 0],
                "difficulty": "medium",
            }),
        ),
    )
