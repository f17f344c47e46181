"""Tests for the tube-keeper command line."""

from pathlib import Path

import pytest

from tube_keeper.cli import (
    build_components,
    build_parser,
    format_duration,
    run_clean,
    run_export,
    run_list,
    run_remove,
    run_stats,
)
from tube_keeper.core.config import Config
from tube_keeper.domain.library.models import Track, compute_checksum


@pytest.fixture
def config(tmp_path: Path) -> Config:
    config = Config()
    config.library.library_dir = str(tmp_path / "library")
    config.library.data_file = str(tmp_path / "data" / "tracks.json")
    config.library.temp_dir = str(tmp_path / "tmp")
    Path(config.library.library_dir).mkdir()
    return config


def save_track(components, external_id: str, collections=("Mix",)) -> Track:
    checksum = compute_checksum(external_id)
    track = Track(
        external_id=external_id,
        fingerprint=external_id.ljust(120, "f"),
        checksum=checksum,
        filename=f"{checksum}.mp3",
        quality=160.0,
        duration=200.0,
        collections=collections,
        title=f"Song {external_id}",
    )
    (components.library_dir / track.filename).write_bytes(b"audio")
    return components.repository.save(track)


class TestParser:
    """Tests for argument parsing."""

    def test_sync_requires_playlist(self) -> None:
        """sync needs at least one playlist."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["sync"])

    def test_sync_accepts_many(self) -> None:
        """Multiple playlists can be synced at once."""
        args = build_parser().parse_args(["sync", "PL1", "https://youtube.com/playlist?list=PL2"])
        assert args.playlists == ["PL1", "https://youtube.com/playlist?list=PL2"]

    def test_command_required(self) -> None:
        """Running without a command is an argument error."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


class TestCommands:
    """Tests for command handlers."""

    def test_remove_deletes_record_and_file(self, config: Config) -> None:
        """remove drops the record and its stored file."""
        components = build_components(config)
        track = save_track(components, "vid1")

        assert run_remove(components, "vid1") == 0
        assert not components.repository.exists("vid1")
        assert not (components.library_dir / track.filename).exists()

    def test_remove_unknown_id_fails(self, config: Config) -> None:
        """Unknown ids exit with 1."""
        components = build_components(config)
        assert run_remove(components, "nope") == 1

    def test_export_collection(self, config: Config) -> None:
        """export writes an M3U8 for the named collection."""
        components = build_components(config)
        save_track(components, "vid1")

        assert run_export(components, "Mix") == 0
        assert (config.playlist_export_dir / "Mix.m3u8").exists()

    def test_export_empty_collection_fails(self, config: Config) -> None:
        """Exporting a collection with no tracks exits with 1."""
        components = build_components(config)
        assert run_export(components, "Nothing") == 1

    def test_list_and_stats(self, config: Config) -> None:
        """list and stats succeed on a populated library."""
        components = build_components(config)
        save_track(components, "vid1")

        assert run_list(components) == 0
        assert run_list(components, "Mix") == 0
        assert run_stats(components) == 0

    def test_clean_removes_temp_files(self, config: Config) -> None:
        """clean empties leftover samples."""
        components = build_components(config)
        temp_dir = Path(config.library.temp_dir)
        temp_dir.mkdir()
        (temp_dir / "vid_sample.mp3").write_bytes(b"x")

        assert run_clean(components) == 0
        assert not (temp_dir / "vid_sample.mp3").exists()


class TestFormatDuration:
    """Tests for format_duration."""

    def test_minutes(self) -> None:
        assert format_duration(185.9) == "3:05"

    def test_hours(self) -> None:
        assert format_duration(3725) == "1:02:05"
