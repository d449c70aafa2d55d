"""
Exception types raised inside the news cache.

None of these are meant to reach the application: the coordinator and the
persistence adapter catch them and turn them into logged, non-fatal status.
"""


class NewsCacheError(Exception):
    """Base class for news cache errors."""


class FetchError(NewsCacheError):
    """A single source could not be fetched or read."""

    def __init__(self, source: str, message: str):
        super().__init__(f"{source}: {message}")
        self.source = source
        self.message = message


class PersistenceError(NewsCacheError):
    """A blob could not be written or read back."""
