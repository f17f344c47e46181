"""
Retrievers - download catalog audio to local files with bounded retries.

SampleRetriever fetches a short excerpt used only for fingerprinting.
FullContentRetriever fetches the complete audio into the temp directory,
validates it, then moves it through a staging folder inside the library so
the final rename never crosses filesystems.
"""

import os
import re
import shutil
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from loguru import logger
from mutagen import File as MutagenFile
from mutagen import MutagenError

from ...errors import RetrievalError
from ...models import compute_checksum
from . import download
from .exceptions import InvalidDownloadError

# (item_id, output_dir, **opts) -> (path, info_dict)
DownloadFunc = Callable[..., tuple[Path, dict]]

_STAGING_NAME = re.compile(r"^[0-9a-f]{16}\.")

STAGING_DIR_NAME = ".staging"


@dataclass(frozen=True)
class FileInfo:
    """A validated local audio file produced by a retriever."""

    path: Path
    item_id: str
    size: int  # bytes
    duration: float  # seconds
    quality: float  # kbps


def _remove_file(path: Path) -> bool:
    """Delete a file, treating an absent file as success.

    Returns:
        True if a file was actually removed
    """
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False


class _RetryingRetriever(ABC):
    """Shared retry loop: exponential backoff, exact attempt budget."""

    MIN_FILE_SIZE = 0

    def __init__(
        self,
        download_func: DownloadFunc,
        backoff_base: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._download = download_func
        self.backoff_base = backoff_base
        self._sleep = sleep

    @abstractmethod
    def _attempt(self, item_id: str, **opts) -> FileInfo:
        """Make one download attempt, raising on any failure."""

    def _run_with_retries(self, item_id: str, retries: int, **opts) -> FileInfo:
        """Call _attempt until it succeeds or the budget is spent.

        Raises:
            RetrievalError: After `retries` failed attempts, chained to the last error
        """
        attempts = max(1, retries)
        last_error: Optional[Exception] = None

        for attempt in range(1, attempts + 1):
            try:
                return self._attempt(item_id, **opts)
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Download attempt {attempt}/{attempts} failed for {item_id}: {e}"
                )
                if attempt < attempts:
                    sleep_for = self.backoff_base * (2 ** (attempt - 1))
                    logger.debug(f"Retrying {item_id} in {sleep_for:.1f}s")
                    self._sleep(sleep_for)

        logger.error(f"Giving up on {item_id} after {attempts} attempts")
        raise RetrievalError(item_id, attempts, last_error) from last_error

    def _validate_size(self, path: Path) -> int:
        """Check the file exists and is large enough, deleting it if not."""
        if not path.is_file():
            raise InvalidDownloadError(path, f"Downloaded file missing: {path}")

        size = path.stat().st_size
        if size < self.MIN_FILE_SIZE:
            _remove_file(path)
            raise InvalidDownloadError(
                path, f"Downloaded file too small: {size} bytes (min {self.MIN_FILE_SIZE})"
            )
        return size

    def cleanup(self, path: str | Path) -> None:
        """Remove a downloaded file (no-op when already gone)."""
        if _remove_file(Path(path)):
            logger.debug(f"Removed {path}")


class SampleRetriever(_RetryingRetriever):
    """Downloads fingerprinting samples into the temp directory."""

    MIN_FILE_SIZE = 500_000

    def __init__(
        self,
        temp_dir: str | Path,
        download_func: DownloadFunc = download.download_sample,
        backoff_base: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(download_func, backoff_base, sleep)
        self.temp_dir = Path(temp_dir)

    def sample_path(self, item_id: str) -> Path:
        return self.temp_dir / f"{item_id}_sample.mp3"

    def retrieve(
        self, item_id: str, duration: int = 60, retries: int = 3, start_offset: int = 0
    ) -> FileInfo:
        """Download a sample of `duration` seconds starting at `start_offset`.

        Raises:
            RetrievalError: If every attempt fails
        """
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Downloading sample: {item_id} ({duration}s from {start_offset}s)")
        return self._run_with_retries(
            item_id, retries, duration=duration, start_offset=start_offset
        )

    def _attempt(self, item_id: str, duration: int, start_offset: int) -> FileInfo:
        path, info = self._download(
            item_id, self.temp_dir, duration=duration, start_offset=start_offset
        )
        path = Path(path)
        size = self._validate_size(path)

        total = float(info.get("duration") or 0)
        sample_duration = min(float(duration), total) if total else float(duration)

        return FileInfo(
            path=path,
            item_id=item_id,
            size=size,
            duration=sample_duration,
            quality=float(info.get("abr") or 0),
        )

    def cleanup_all(self) -> int:
        """Remove every sample left in the temp directory.

        Returns:
            Number of files removed
        """
        if not self.temp_dir.is_dir():
            return 0

        removed = sum(1 for path in self.temp_dir.glob("*_sample.*") if _remove_file(path))
        if removed:
            logger.info(f"Cleaned up {removed} sample file(s)")
        return removed


class FullContentRetriever(_RetryingRetriever):
    """Downloads complete audio and moves validated files into the library."""

    MIN_FILE_SIZE = 100_000

    def __init__(
        self,
        library_dir: str | Path,
        temp_dir: str | Path,
        download_func: DownloadFunc = download.download_audio,
        audio_format: str = "mp3",
        min_free_space_mb: int = 200,
        backoff_base: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ):
        super().__init__(download_func, backoff_base, sleep)
        self.library_dir = Path(library_dir)
        self.temp_dir = Path(temp_dir)
        self.audio_format = audio_format
        self.min_free_space_mb = min_free_space_mb

    @property
    def staging_dir(self) -> Path:
        return self.library_dir / STAGING_DIR_NAME

    def retrieve(self, item_id: str, quality: str = "192", retries: int = 3) -> FileInfo:
        """Download the complete audio of `item_id` into the library.

        The file is named after the item checksum.

        Raises:
            InsufficientSpaceError: If the library disk is nearly full
            RetrievalError: If every attempt fails
        """
        self.temp_dir.mkdir(parents=True, exist_ok=True)
        self.library_dir.mkdir(parents=True, exist_ok=True)
        download.check_available_space(self.library_dir, self.min_free_space_mb)

        logger.info(f"Downloading full audio: {item_id}")
        return self._run_with_retries(item_id, retries, quality=quality)

    def _attempt(self, item_id: str, quality: str) -> FileInfo:
        stem = compute_checksum(item_id)
        staged, info = self._download(
            item_id,
            self.temp_dir,
            stem=stem,
            audio_format=self.audio_format,
            quality=quality,
        )
        staged = Path(staged)
        size = self._validate_size(staged)

        container = download.detect_container(staged)
        if container is None:
            _remove_file(staged)
            raise InvalidDownloadError(staged, f"Not a recognised audio container: {staged.name}")

        target = self.library_dir / f"{stem}{staged.suffix}"
        self.staging_dir.mkdir(parents=True, exist_ok=True)
        # shutil.move copies when temp and library are on different devices
        in_library = Path(shutil.move(str(staged), str(self.staging_dir / target.name)))
        os.replace(in_library, target)
        logger.debug(f"Moved {staged.name} into library ({container})")

        duration, bitrate = self._read_audio_info(target)
        return FileInfo(
            path=target,
            item_id=item_id,
            size=size,
            duration=duration or float(info.get("duration") or 0),
            quality=bitrate or float(info.get("abr") or 0),
        )

    def _read_audio_info(self, path: Path) -> tuple[float, float]:
        """Duration (s) and bitrate (kbps) from the file headers, zeros if unreadable."""
        try:
            audio = MutagenFile(path)
        except (MutagenError, OSError) as e:
            logger.warning(f"Could not read audio info for {path}: {e}")
            return 0.0, 0.0

        if audio is None or audio.info is None:
            return 0.0, 0.0

        duration = float(getattr(audio.info, "length", 0) or 0)
        bitrate = float(getattr(audio.info, "bitrate", 0) or 0) / 1000
        return duration, round(bitrate, 1)

    def cleanup_all(self) -> int:
        """Remove files left behind by interrupted downloads.

        Covers checksum-named files in the temp directory and anything in the
        library's staging folder.

        Returns:
            Number of files removed
        """
        removed = 0
        if self.temp_dir.is_dir():
            for path in self.temp_dir.iterdir():
                if path.is_file() and _STAGING_NAME.match(path.name) and _remove_file(path):
                    removed += 1

        if self.staging_dir.is_dir():
            for path in self.staging_dir.iterdir():
                if path.is_file() and _remove_file(path):
                    removed += 1

        if removed:
            logger.info(f"Cleaned up {removed} staging file(s)")
        return removed
