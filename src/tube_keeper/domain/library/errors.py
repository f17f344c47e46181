"""Library exceptions for error handling.

Constructor-time invariant violations raise ValidationError. Everything
else is a failure of one specific operation and is raised to the caller;
the sync orchestrator is the only place that downgrades them to counters.
"""

from typing import Optional


class TubeKeeperError(Exception):
    """Base exception for library operations."""

    pass


class ValidationError(TubeKeeperError, ValueError):
    """Raised when a Fingerprint or Track is constructed from invalid data."""

    pass


class InvalidFingerprintError(ValidationError):
    """Raised when the fingerprinter produces a truncated or garbage signature."""

    pass


class FileAccessError(TubeKeeperError):
    """Raised when a local file is missing or unreadable."""

    def __init__(self, path, message: Optional[str] = None):
        self.path = path
        super().__init__(message or f"File not found or not readable: {path}")


class FingerprintError(TubeKeeperError):
    """Raised when the external fingerprinter fails."""

    pass


class RetrievalError(TubeKeeperError):
    """Raised when a download still fails after the retry budget is spent."""

    def __init__(self, item_id: str, attempts: int, last_error: Exception):
        self.item_id = item_id
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Download of {item_id} failed after {attempts} attempts: {last_error}"
        )


class PersistenceError(TubeKeeperError):
    """Raised when the track database cannot be written."""

    pass


class RepositoryError(TubeKeeperError):
    """Base exception for repository contract violations."""

    pass


class NotFoundError(RepositoryError):
    """Raised when a track id is not in the repository."""

    def __init__(self, external_id: str):
        self.external_id = external_id
        super().__init__(f"Track with id {external_id} not found")


class AlreadyExistsError(RepositoryError):
    """Raised when saving a track whose id is already stored."""

    def __init__(self, external_id: str):
        self.external_id = external_id
        super().__init__(f"Track with id {external_id} already exists")
