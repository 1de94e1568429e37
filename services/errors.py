"""
Service-layer exceptions.

``DataUnavailableError`` is raised when the database cannot be read.  It is
kept apart from "no rows": an empty list returned by a service is a valid
answer, while this exception means the answer is unknown.
"""


class DataUnavailableError(RuntimeError):
    """Transactions or reference data could not be fetched."""

    def __init__(self, what, original=None):
        self.what = what
        self.original = original
        super().__init__(f'Failed to load {what}')


class FuelValidationError(ValueError):
    """A fuel addition or withdrawal was rejected; the message is user-facing."""


class ReferenceDataError(ValueError):
    """A location, generator or user change was rejected; the message is user-facing."""
