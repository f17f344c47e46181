"""Playlists domain - M3U8 export of library collections."""

from .exporters import (
    export_all_collections,
    export_collection,
    export_m3u8,
    make_relative_path,
    sanitize_filename,
)

__all__ = [
    "export_all_collections",
    "export_collection",
    "export_m3u8",
    "make_relative_path",
    "sanitize_filename",
]
