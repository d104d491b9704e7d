"""Errors raised by the scheduling engine and its store."""


class WordcycleError(Exception):
    """Base class for all wordcycle errors."""


class ValidationError(WordcycleError, ValueError):
    """A single update was rejected because its input is malformed."""

    def __init__(self, message: str, vocabulary_id=None):
        super().__init__(message)
        self.vocabulary_id = vocabulary_id


class StoreUnavailable(WordcycleError):
    """The progress store could not complete a read or write."""
