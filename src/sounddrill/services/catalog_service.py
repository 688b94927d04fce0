"""Loading practice catalogs from JSON files."""
import json
import logging
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple, TypeVar, Union

from sounddrill.config import settings
from sounddrill.exceptions import InvalidArgument
from sounddrill.models.catalog_models import Catalog, MinimalPair, SyllableWord, WordEntry

logger = logging.getLogger(__name__)

WORDS_FILE = "words.json"
MINIMAL_PAIRS_FILE = "minimal_pairs.json"
SYLLABLE_PATTERNS_FILE = "syllable_patterns.json"

T = TypeVar("T")


def _load_entries(path: Path, factory: Callable[[Any], T]) -> Tuple[T, ...]:
    """Load a JSON list of entries, empty when the file is missing."""
    if not path.exists():
        logger.warning(f"Catalog file not found: {path}")
        return ()

    try:
        with open(path, encoding="utf-8") as f:
            raw = json.load(f)
    except json.JSONDecodeError as e:
        raise InvalidArgument(f"Catalog file {path} is not valid JSON: {e}") from e

    if not isinstance(raw, list):
        raise InvalidArgument(f"Catalog file {path} must contain a list of entries")

    entries = tuple(factory(entry) for entry in raw)
    logger.info(f"Loaded {len(entries)} entries from {path.name}")
    return entries


def load_catalog(directory: Optional[Union[str, Path]] = None) -> Catalog:
    """Load words, minimal pairs and syllable patterns from a directory."""
    directory = Path(directory or settings.paths.catalogs_dir)
    catalog = Catalog(
        words=_load_entries(directory / WORDS_FILE, WordEntry.from_dict),
        minimal_pairs=_load_entries(directory / MINIMAL_PAIRS_FILE, MinimalPair.from_dict),
        syllable_words=_load_entries(directory / SYLLABLE_PATTERNS_FILE, SyllableWord.from_dict),
    )
    _check_unique([entry.word for entry in catalog.words], WORDS_FILE)
    _check_unique([pair.key for pair in catalog.minimal_pairs], MINIMAL_PAIRS_FILE)
    _check_unique([word.word for word in catalog.syllable_words], SYLLABLE_PATTERNS_FILE)
    return catalog


def _check_unique(keys: List[str], source: str) -> None:
    seen = set()
    for key in keys:
        if key in seen:
            raise InvalidArgument(f"Duplicate entry {key!r} in {source}")
        seen.add(key)
