"""
Playlist export functionality for tube-keeper.
Writes each collection as an M3U8 playlist pointing into the library.
"""

import os
import re
from datetime import datetime
from pathlib import Path
from typing import Iterable

from loguru import logger

from ..library.models import Track
from ..library.repository import JsonTrackRepository

_UNSAFE_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def make_relative_path(track_path: Path, base_dir: Path) -> str:
    """
    Convert a track path to a path relative to `base_dir`.

    Args:
        track_path: Absolute path to the track file
        base_dir: Directory the path should be relative to (the playlist's folder)

    Returns:
        Relative path string, or the absolute path when none exists
    """
    try:
        return os.path.relpath(track_path, base_dir)
    except ValueError:
        # Different drive on Windows
        return str(track_path)


def sanitize_filename(name: str) -> str:
    """Make a collection name safe to use as a file name."""
    cleaned = _UNSAFE_CHARS.sub("_", name).strip().strip(".")
    return cleaned or "playlist"


def export_m3u8(
    name: str,
    tracks: Iterable[Track],
    output_path: Path,
    library_root: Path,
    use_relative_paths: bool = True,
) -> int:
    """
    Export tracks to M3U8 format (UTF-8 encoded M3U).

    Args:
        name: Playlist name written to the header
        tracks: Tracks in playlist order
        output_path: Path where M3U8 file should be written
        library_root: Library directory holding the track files
        use_relative_paths: Whether to use paths relative to the playlist file

    Returns:
        Number of tracks exported

    Raises:
        ValueError: If there are no tracks
    """
    tracks = list(tracks)
    if not tracks:
        raise ValueError(f"Playlist '{name}' is empty")

    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w", encoding="utf-8") as f:
        f.write("#EXTM3U\n")
        f.write(f"# Playlist: {name}\n")
        f.write(f"# Exported: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}\n")
        f.write(f"# Tracks: {len(tracks)}\n")
        f.write("\n")

        for track in tracks:
            track_path = library_root / track.filename

            duration = int(track.duration)
            artist = track.artist or "Unknown Artist"
            title = track.title or track.external_id
            f.write(f"#EXTINF:{duration},{artist} - {title}\n")

            if use_relative_paths:
                path_str = make_relative_path(track_path, output_path.parent)
            else:
                path_str = str(track_path)

            f.write(f"{path_str}\n")

    logger.info(f"Exported playlist '{name}' ({len(tracks)} tracks) to {output_path}")
    return len(tracks)


def export_collection(
    name: str,
    tracks: Iterable[Track],
    export_dir: Path,
    library_root: Path,
    use_relative_paths: bool = True,
) -> tuple[Path, int]:
    """
    Export one collection to `<export_dir>/<name>.m3u8`.

    Returns:
        Tuple of (output_path, tracks_exported)

    Raises:
        ValueError: If there are no tracks
    """
    output_path = export_dir / f"{sanitize_filename(name)}.m3u8"
    count = export_m3u8(name, tracks, output_path, library_root, use_relative_paths)
    return output_path, count


def export_all_collections(
    repository: JsonTrackRepository,
    export_dir: Path,
    library_root: Path,
    use_relative_paths: bool = True,
) -> dict[str, tuple[Path, int]]:
    """
    Export every collection known to the repository.

    Failures are logged and the collection is left out of the result.

    Returns:
        Dict mapping collection names to (output_path, tracks_exported)
    """
    results = {}

    for name in repository.collection_names():
        try:
            results[name] = export_collection(
                name,
                repository.find_by_collection(name),
                export_dir,
                library_root,
                use_relative_paths,
            )
        except (ValueError, OSError) as e:
            logger.warning(f"Export failed for collection '{name}': {e}")

    return results
