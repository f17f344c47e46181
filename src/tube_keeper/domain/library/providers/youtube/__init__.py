"""
YouTube provider for tube-keeper.

Lists public playlists and downloads audio (samples and full tracks).
No authentication required.
"""

from .download import (
    check_available_space,
    detect_container,
    download_audio,
    download_sample,
    extract_playlist_id,
    get_playlist_info,
)
from .exceptions import (
    AgeRestrictedError,
    CopyrightBlockedError,
    InsufficientSpaceError,
    InvalidDownloadError,
    InvalidYouTubeURLError,
    VideoUnavailableError,
    YouTubeError,
)
from .retrieval import FileInfo, FullContentRetriever, SampleRetriever

__all__ = [
    # Download adapters
    "check_available_space",
    "detect_container",
    "download_audio",
    "download_sample",
    "extract_playlist_id",
    "get_playlist_info",
    # Retrievers
    "FileInfo",
    "FullContentRetriever",
    "SampleRetriever",
    # Exceptions
    "YouTubeError",
    "InvalidYouTubeURLError",
    "VideoUnavailableError",
    "AgeRestrictedError",
    "CopyrightBlockedError",
    "InsufficientSpaceError",
    "InvalidDownloadError",
]
