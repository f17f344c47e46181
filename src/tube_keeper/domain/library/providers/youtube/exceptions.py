"""YouTube-specific exceptions for error handling.

These describe why a single download attempt failed. The retrievers retry
them and, once the budget is spent, wrap the last one in RetrievalError.
"""


class YouTubeError(Exception):
    """Base exception for YouTube operations."""

    pass


class InvalidYouTubeURLError(YouTubeError):
    """Raised when URL is not a valid YouTube URL."""

    pass


class VideoUnavailableError(YouTubeError):
    """Raised when video is deleted or unavailable."""

    pass


class AgeRestrictedError(YouTubeError):
    """Raised when video requires age verification."""

    pass


class CopyrightBlockedError(YouTubeError):
    """Raised when video is blocked due to copyright."""

    pass


class InsufficientSpaceError(YouTubeError):
    """Raised when disk space is insufficient."""

    pass


class InvalidDownloadError(YouTubeError):
    """Raised when a downloaded file fails size or format validation."""

    def __init__(self, path, message: str):
        self.path = path
        super().__init__(message)
