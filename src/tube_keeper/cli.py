"""
tube-keeper CLI - Entry point

Syncs YouTube playlists into a deduplicated local audio library and
manages the stored tracks.
"""

import argparse
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from loguru import logger
from rich.table import Table

from tube_keeper.core import (
    Config,
    ensure_directories,
    get_console,
    get_data_dir,
    get_log_file_path,
    load_config,
    log,
    setup_loguru,
)
from tube_keeper.domain.library import (
    Deduplicator,
    FingerprintGenerator,
    JsonTrackRepository,
    NotFoundError,
    TubeKeeperError,
)
from tube_keeper.domain.library.providers.youtube import (
    FullContentRetriever,
    SampleRetriever,
    YouTubeError,
    extract_playlist_id,
)
from tube_keeper.domain.playlists import export_all_collections, export_collection
from tube_keeper.domain.sync import (
    CollectionResult,
    ItemEvent,
    SyncOptions,
    SyncOrchestrator,
    SyncStats,
)

_STATUS_LINES = {
    "downloaded": ("✓ Downloaded", "success"),
    "replaced": ("⬆ Replaced (better quality)", "success"),
    "skipped": ("≡ Duplicate skipped", "info"),
    "exists": ("• Already in library", "info"),
    "error": ("✗ Failed", "error"),
}


@dataclass
class Components:
    """Everything a command needs, built once from the config."""

    config: Config
    repository: JsonTrackRepository
    fingerprinter: FingerprintGenerator
    sample_retriever: SampleRetriever
    full_retriever: FullContentRetriever
    deduplicator: Deduplicator

    @property
    def library_dir(self) -> Path:
        return Path(self.config.library.library_dir)


def build_components(config: Config) -> Components:
    """Construct and wire the library components."""
    library_dir = Path(config.library.library_dir)
    temp_dir = Path(config.library.temp_dir)

    repository = JsonTrackRepository(config.library.data_file)
    repository.initialize()

    return Components(
        config=config,
        repository=repository,
        fingerprinter=FingerprintGenerator(cache_ttl=config.fingerprint.cache_ttl_seconds),
        sample_retriever=SampleRetriever(
            temp_dir, backoff_base=config.retrieval.backoff_base_seconds
        ),
        full_retriever=FullContentRetriever(
            library_dir,
            temp_dir,
            audio_format=config.library.audio_format,
            min_free_space_mb=config.retrieval.min_free_space_mb,
            backoff_base=config.retrieval.backoff_base_seconds,
        ),
        deduplicator=Deduplicator(repository, library_dir, config.dedup.quality_margin),
    )


def format_duration(seconds: float) -> str:
    """Format seconds as H:MM:SS or M:SS."""
    seconds = int(seconds)
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def _print_item_event(event: ItemEvent) -> None:
    label, level = _STATUS_LINES[event.status]
    message = f"  {label}: {event.item.title} ({event.item.item_id})"
    if event.error:
        message += f" - {event.error}"
    log(message, level=level)


def _print_summary(stats: SyncStats) -> None:
    table = Table(title="Sync summary")
    table.add_column("Result")
    table.add_column("Count", justify="right")
    table.add_row("New", str(stats.new))
    table.add_row("Replaced", str(stats.replaced))
    table.add_row("Duplicates skipped", str(stats.skipped))
    table.add_row("Already in library", str(stats.exists))
    table.add_row("Errors", str(stats.errors), style="red" if stats.errors else None)
    get_console().print(table)


def run_sync(components: Components, playlists: list[str]) -> int:
    """Sync the given playlists.

    Returns:
        Exit code (0 when every item synced, 1 otherwise)
    """
    config = components.config

    try:
        collection_ids = [extract_playlist_id(p) for p in playlists]
    except YouTubeError as e:
        log(f"❌ {e}", level="error")
        return 1

    def on_collection(result: CollectionResult) -> None:
        log(f"Finished '{result.name}': {len(result.tracks)} tracks, {result.failures} failed")
        if not config.playlists.auto_export or not result.tracks:
            return
        try:
            output_path, count = export_collection(
                result.name,
                result.tracks,
                config.playlist_export_dir,
                components.library_dir,
                config.playlists.use_relative_paths,
            )
            log(f"✓ Exported {count} tracks to {output_path}", level="success")
        except (ValueError, OSError) as e:
            log(f"⚠ Playlist export failed for '{result.name}': {e}", level="warning")

    orchestrator = SyncOrchestrator(
        repository=components.repository,
        fingerprinter=components.fingerprinter,
        sample_retriever=components.sample_retriever,
        full_retriever=components.full_retriever,
        deduplicator=components.deduplicator,
        options=SyncOptions.from_config(config),
        on_item=_print_item_event,
        on_collection=on_collection,
    )

    log(f"Syncing {len(collection_ids)} playlist(s)...")
    stats = orchestrator.sync(collection_ids)
    _print_summary(stats)

    return 0 if stats.errors == 0 else 1


def run_list(components: Components, collection: Optional[str] = None) -> int:
    """Print library tracks as a table."""
    repository = components.repository
    tracks = repository.find_by_collection(collection) if collection else repository.find_all()

    if not tracks:
        log("No tracks found")
        return 0

    table = Table(title=f"Tracks in '{collection}'" if collection else "Library")
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Title")
    table.add_column("Artist")
    table.add_column("Duration", justify="right")
    table.add_column("kbps", justify="right")
    table.add_column("Collections")

    for track in tracks:
        table.add_row(
            track.external_id,
            track.title,
            track.artist,
            format_duration(track.duration),
            f"{track.quality:g}",
            ", ".join(track.collections),
        )

    get_console().print(table)
    return 0


def run_stats(components: Components) -> int:
    """Print library statistics."""
    repository = components.repository
    tracks = repository.find_all()
    total_duration = sum(track.duration for track in tracks)
    cache = components.fingerprinter.get_cache_stats()

    table = Table(title="Library statistics", show_header=False)
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Tracks", str(len(tracks)))
    table.add_row("Collections", str(len(repository.collection_names())))
    table.add_row("Total duration", format_duration(total_duration))
    table.add_row("Fingerprint cache entries", str(cache.size))
    table.add_row("Fingerprint cache hit rate", f"{cache.hit_rate:.1%}")
    table.add_row("Database", str(repository.data_path))

    get_console().print(table)
    return 0


def run_remove(components: Components, external_id: str) -> int:
    """Remove a track record and its stored file."""
    try:
        track = components.repository.remove(external_id)
    except NotFoundError as e:
        log(f"❌ {e}", level="error")
        return 1

    path = components.library_dir / track.filename
    try:
        path.unlink()
    except FileNotFoundError:
        logger.warning(f"Stored file already missing: {path}")

    log(f"✓ Removed {track.title or external_id} ({external_id})", level="success")
    return 0


def run_export(components: Components, collection: Optional[str] = None) -> int:
    """Write M3U8 playlists for one or every collection."""
    config = components.config
    repository = components.repository

    if collection:
        tracks = repository.find_by_collection(collection)
        try:
            output_path, count = export_collection(
                collection,
                tracks,
                config.playlist_export_dir,
                components.library_dir,
                config.playlists.use_relative_paths,
            )
        except ValueError as e:
            log(f"❌ {e}", level="error")
            return 1
        log(f"✓ Exported {count} tracks to {output_path}", level="success")
        return 0

    results = export_all_collections(
        repository,
        config.playlist_export_dir,
        components.library_dir,
        config.playlists.use_relative_paths,
    )
    for name, (output_path, count) in results.items():
        log(f"✓ {name}: {count} tracks -> {output_path}", level="success")

    if not results:
        log("No collections to export")
    return 0


def run_clean(components: Components) -> int:
    """Remove leftover samples and staging files."""
    removed = components.sample_retriever.cleanup_all()
    removed += components.full_retriever.cleanup_all()
    log(f"✓ Removed {removed} temporary file(s)", level="success")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tube-keeper",
        description="tube-keeper - Deduplicated YouTube playlist audio library",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="Path to config.toml (default: auto-detected)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Log debug output to stderr",
    )

    subparsers = parser.add_subparsers(dest="subcommand", help="Available commands")
    subparsers.required = True

    sync_parser = subparsers.add_parser("sync", help="Sync playlists into the library")
    sync_parser.add_argument("playlists", nargs="+", help="Playlist id or URL")

    list_parser = subparsers.add_parser("list", help="List library tracks")
    list_parser.add_argument("--collection", help="Only tracks in this collection")

    subparsers.add_parser("stats", help="Show library statistics")

    remove_parser = subparsers.add_parser("remove", help="Remove a track and its file")
    remove_parser.add_argument("external_id", help="YouTube video id of the track")

    export_parser = subparsers.add_parser("export", help="Export collections as M3U8")
    export_parser.add_argument("--collection", help="Only export this collection")

    subparsers.add_parser("clean", help="Remove leftover temporary files")

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """Main entry point for the tube-keeper command."""
    args = build_parser().parse_args(argv)

    config = load_config(args.config)
    log_file = (
        Path(config.logging.log_file)
        if config.logging.log_file
        else get_log_file_path(get_data_dir())
    )
    setup_loguru(
        log_file,
        level="DEBUG" if args.verbose else config.logging.level,
        max_file_size_mb=config.logging.max_file_size_mb,
        backup_count=config.logging.backup_count,
        console_output=args.verbose or config.logging.console_output,
    )

    try:
        ensure_directories(config)
        components = build_components(config)

        if args.subcommand == "sync":
            exit_code = run_sync(components, args.playlists)
        elif args.subcommand == "list":
            exit_code = run_list(components, args.collection)
        elif args.subcommand == "stats":
            exit_code = run_stats(components)
        elif args.subcommand == "remove":
            exit_code = run_remove(components, args.external_id)
        elif args.subcommand == "export":
            exit_code = run_export(components, args.collection)
        else:
            exit_code = run_clean(components)
    except KeyboardInterrupt:
        log("Interrupted", level="warning")
        exit_code = 1
    except (TubeKeeperError, OSError) as e:
        logger.exception("Command failed")
        log(f"❌ {e}", level="error")
        exit_code = 1

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
