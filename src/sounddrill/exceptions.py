"""Errors raised by the practice engine."""


class SoundDrillError(Exception):
    """Base class for engine errors."""


class InvalidArgument(SoundDrillError, ValueError):
    """Unknown item kind, malformed pair key or malformed catalog entry."""


class StorageUnavailable(SoundDrillError):
    """The persistence backend could not be reached."""


class NoContentAvailable(SoundDrillError, LookupError):
    """There is nothing left to practice."""


class LineageConflict(SoundDrillError):
    """The stored ledger has a history the saved snapshot does not include."""
