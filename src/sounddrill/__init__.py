"""Progress tracking and adaptive difficulty for sound discrimination practice."""

__version__ = "0.1.0"
