"""YouTube download functionality using yt-dlp."""

import os
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qs, urlparse

import yt_dlp
from loguru import logger
from yt_dlp.utils import download_range_func

from ...models import CatalogCollection, CatalogItem
from .exceptions import (
    AgeRestrictedError,
    CopyrightBlockedError,
    InsufficientSpaceError,
    InvalidYouTubeURLError,
    VideoUnavailableError,
    YouTubeError,
)

WATCH_URL = "https://www.youtube.com/watch?v={}"
PLAYLIST_URL = "https://www.youtube.com/playlist?list={}"

# Leading bytes of the audio containers yt-dlp/ffmpeg can produce
_MAGIC_PREFIXES = (
    (b"ID3", "mp3"),
    (b"OggS", "ogg"),
    (b"fLaC", "flac"),
    (b"\x1a\x45\xdf\xa3", "webm"),
)


def extract_playlist_id(value: str) -> str:
    """Accept a playlist id or any URL carrying a list= parameter.

    Args:
        value: Playlist id or YouTube URL

    Returns:
        Playlist id

    Raises:
        InvalidYouTubeURLError: If a URL has no playlist id
    """
    value = value.strip()
    if "://" not in value:
        return value

    query = parse_qs(urlparse(value).query)
    playlist_ids = query.get("list")
    if not playlist_ids or not playlist_ids[0]:
        raise InvalidYouTubeURLError(f"No playlist id in URL: {value}")
    return playlist_ids[0]


def _classify_download_error(e: yt_dlp.utils.DownloadError) -> YouTubeError:
    """Map a yt-dlp DownloadError onto our exception types."""
    error_msg = str(e).lower()
    if "sign in" in error_msg or "age" in error_msg:
        return AgeRestrictedError("Video requires age verification (login not supported)")
    elif "unavailable" in error_msg or "deleted" in error_msg or "private" in error_msg:
        return VideoUnavailableError("Video is unavailable, deleted, or private")
    elif "copyright" in error_msg or "blocked" in error_msg:
        return CopyrightBlockedError("Video blocked due to copyright")
    return YouTubeError(f"Download failed: {e}")


def check_available_space(output_dir: Path, required_mb: int) -> bool:
    """Check if sufficient disk space is available for a download.

    Args:
        output_dir: Directory where audio will be stored
        required_mb: Minimum free space in MB

    Returns:
        True if sufficient space

    Raises:
        InsufficientSpaceError: If disk space is insufficient
    """
    required_bytes = required_mb * 1024 * 1024

    stat = os.statvfs(output_dir)
    available_bytes = stat.f_bavail * stat.f_frsize

    if available_bytes < required_bytes:
        required_gb = required_bytes / (1024**3)
        available_gb = available_bytes / (1024**3)
        raise InsufficientSpaceError(
            f"Insufficient disk space: need {required_gb:.2f}GB, have {available_gb:.2f}GB"
        )

    return True


def detect_container(path: Path) -> Optional[str]:
    """Identify an audio container from its magic bytes.

    Args:
        path: Audio file

    Returns:
        Container name ("mp3", "mp4", "ogg", "flac", "webm", "wav") or None
    """
    with open(path, "rb") as f:
        header = f.read(12)

    for prefix, name in _MAGIC_PREFIXES:
        if header.startswith(prefix):
            return name

    # MPEG audio frame sync without an ID3 tag
    if len(header) >= 2 and header[0] == 0xFF and (header[1] & 0xE0) == 0xE0:
        return "mp3"

    if header[4:8] == b"ftyp":
        return "mp4"

    if header[:4] == b"RIFF" and header[8:12] == b"WAVE":
        return "wav"

    return None


def get_playlist_info(playlist_id: str) -> CatalogCollection:
    """Extract playlist metadata without downloading videos.

    Args:
        playlist_id: YouTube playlist ID

    Returns:
        CatalogCollection with the playlist title and its items in order

    Raises:
        YouTubeError: If playlist cannot be accessed
    """
    try:
        ydl_opts = {
            "quiet": True,
            "no_warnings": True,
            "extract_flat": True,  # Don't download, just extract info
        }

        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            info = ydl.extract_info(PLAYLIST_URL.format(playlist_id), download=False)

            if not info:
                raise YouTubeError("Failed to extract playlist information")

            items = []
            for entry in info.get("entries") or []:
                if entry and entry.get("id"):  # Skip unavailable videos
                    items.append(
                        CatalogItem(
                            item_id=entry["id"],
                            title=entry.get("title") or "Unknown",
                            uploader=entry.get("uploader") or entry.get("channel") or "",
                            duration=float(entry.get("duration") or 0),
                        )
                    )

            return CatalogCollection(
                collection_id=playlist_id,
                title=info.get("title") or playlist_id,
                items=tuple(items),
            )

    except yt_dlp.utils.DownloadError as e:
        raise YouTubeError(f"Failed to access playlist: {e}")


def _find_output(output_dir: Path, stem: str) -> Path:
    downloaded_files = sorted(
        p for p in output_dir.glob(f"{stem}.*") if p.suffix not in (".part", ".ytdl")
    )
    if not downloaded_files:
        raise YouTubeError("Download completed but file not found")
    return downloaded_files[0]


def _run_download(item_id: str, output_dir: Path, stem: str, ydl_opts: dict) -> tuple[Path, dict]:
    """Run yt-dlp for one video and locate the produced file."""
    opts = {
        "format": "bestaudio/best",
        "outtmpl": str(output_dir / f"{stem}.%(ext)s"),
        "quiet": True,
        "no_warnings": True,
        "noplaylist": True,
        **ydl_opts,
    }

    try:
        with yt_dlp.YoutubeDL(opts) as ydl:
            info = ydl.extract_info(WATCH_URL.format(item_id), download=True)
    except yt_dlp.utils.DownloadError as e:
        raise _classify_download_error(e) from e

    if not info:
        raise VideoUnavailableError("Failed to extract video information")

    return _find_output(output_dir, stem), info


def download_sample(
    item_id: str,
    output_dir: Path,
    duration: int = 60,
    start_offset: int = 0,
    audio_format: str = "mp3",
) -> tuple[Path, dict]:
    """Download a short audio excerpt of a video.

    Args:
        item_id: YouTube video ID
        output_dir: Directory for the sample
        duration: Length of the excerpt in seconds
        start_offset: Excerpt start in seconds

    Returns:
        Tuple of (file_path, info_dict)

    Raises:
        YouTubeError: On any download failure
    """
    ydl_opts = {
        "download_ranges": download_range_func(None, [(start_offset, start_offset + duration)]),
        "force_keyframes_at_cuts": True,
        "postprocessors": [
            {"key": "FFmpegExtractAudio", "preferredcodec": audio_format, "preferredquality": "192"}
        ],
    }
    path, info = _run_download(item_id, output_dir, f"{item_id}_sample", ydl_opts)
    logger.debug(f"Sample downloaded: {item_id} -> {path}")
    return path, info


def download_audio(
    item_id: str,
    output_dir: Path,
    stem: str,
    audio_format: str = "mp3",
    quality: str = "192",
) -> tuple[Path, dict]:
    """Download the complete audio of a video.

    Args:
        item_id: YouTube video ID
        output_dir: Directory for the file
        stem: File name without extension
        audio_format: Target codec for ffmpeg
        quality: Target bitrate for ffmpeg

    Returns:
        Tuple of (file_path, info_dict)

    Raises:
        YouTubeError: On any download failure
    """
    ydl_opts = {
        "postprocessors": [
            {
                "key": "FFmpegExtractAudio",
                "preferredcodec": audio_format,
                "preferredquality": str(quality),
            }
        ],
    }
    path, info = _run_download(item_id, output_dir, stem, ydl_opts)
    logger.info(f"Downloaded audio: {info.get('title', item_id)} ({item_id}) -> {path}")
    return path, info
