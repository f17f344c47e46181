"""Tests for the JSON track repository."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from tube_keeper.domain.library.errors import (
    AlreadyExistsError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from tube_keeper.domain.library.models import Track, compute_checksum
from tube_keeper.domain.library.repository import FORMAT_VERSION, JsonTrackRepository


class FakeClock:
    """Returns increasing ISO timestamps."""

    def __init__(self) -> None:
        self.ticks = 0

    def __call__(self) -> str:
        self.ticks += 1
        return f"2026-01-01T00:00:{self.ticks:02d}+00:00"


def make_track(external_id: str = "vid1", fingerprint: str | None = None, **overrides) -> Track:
    checksum = compute_checksum(external_id)
    data = {
        "external_id": external_id,
        "fingerprint": fingerprint or external_id.ljust(120, "x"),
        "checksum": checksum,
        "filename": f"{checksum}.mp3",
        "quality": 160.0,
        "duration": 200.0,
        "collections": ("Mix",),
        "title": f"Title {external_id}",
        "artist": "Artist",
    }
    data.update(overrides)
    return Track(**data)


@pytest.fixture
def data_path(tmp_path: Path) -> Path:
    return tmp_path / "data" / "tracks.json"


@pytest.fixture
def repo(data_path: Path) -> JsonTrackRepository:
    repository = JsonTrackRepository(data_path, clock=FakeClock())
    repository.initialize()
    return repository


def read_document(path: Path) -> dict:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


class TestInitialize:
    """Tests for loading the database."""

    def test_missing_file_creates_empty_database(self, repo: JsonTrackRepository, data_path: Path) -> None:
        """A missing file gives an empty repository and writes the file."""
        assert len(repo) == 0
        document = read_document(data_path)
        assert document["version"] == FORMAT_VERSION
        assert document["tracks"] == {}
        assert "last_modified" in document

    def test_reload_restores_tracks(self, repo: JsonTrackRepository, data_path: Path) -> None:
        """Saved tracks survive a reload."""
        repo.save(make_track("vid1"))
        repo.save(make_track("vid2"))

        reloaded = JsonTrackRepository(data_path)
        reloaded.initialize()

        assert [t.external_id for t in reloaded.find_all()] == ["vid1", "vid2"]
        assert reloaded.find_by_fingerprint(make_track("vid2").fingerprint).external_id == "vid2"

    def test_invalid_records_are_skipped(self, data_path: Path) -> None:
        """Records failing validation are skipped, the rest load."""
        good = make_track("good").to_dict()
        bad = make_track("bad").to_dict()
        bad["duration"] = -1
        data_path.parent.mkdir(parents=True)
        data_path.write_text(
            json.dumps({"version": FORMAT_VERSION, "tracks": {"good": good, "bad": bad}}),
            encoding="utf-8",
        )

        repo = JsonTrackRepository(data_path)
        repo.initialize()

        assert repo.exists("good")
        assert not repo.exists("bad")

    def test_unhashable_collections_are_skipped(self, data_path: Path) -> None:
        """A record with nested collection lists is skipped without aborting the load."""
        bad = make_track("bad").to_dict()
        bad["collections"] = [["Mix"]]
        data_path.parent.mkdir(parents=True)
        data_path.write_text(
            json.dumps(
                {
                    "version": FORMAT_VERSION,
                    "tracks": {"good": make_track("good").to_dict(), "bad": bad},
                }
            ),
            encoding="utf-8",
        )

        repo = JsonTrackRepository(data_path)
        repo.initialize()

        assert repo.exists("good")
        assert not repo.exists("bad")

    def test_mismatched_key_is_skipped(self, data_path: Path) -> None:
        """A record stored under another id's key is skipped."""
        data_path.parent.mkdir(parents=True)
        data_path.write_text(
            json.dumps({"version": FORMAT_VERSION, "tracks": {"other": make_track("vid1").to_dict()}}),
            encoding="utf-8",
        )

        repo = JsonTrackRepository(data_path)
        repo.initialize()

        assert len(repo) == 0

    def test_corrupt_primary_recovers_from_backup(self, repo: JsonTrackRepository, data_path: Path) -> None:
        """Corrupt primary falls back to the backup and repairs the primary."""
        repo.save(make_track("vid1"))
        repo.save(make_track("vid2"))  # backup now holds vid1 only
        backup_path = repo.backup_path
        backup_before = backup_path.read_text(encoding="utf-8")

        data_path.write_text("{ this is not json", encoding="utf-8")

        recovered = JsonTrackRepository(data_path)
        recovered.initialize()

        assert [t.external_id for t in recovered.find_all()] == ["vid1"]
        assert list(read_document(data_path)["tracks"]) == ["vid1"]
        assert backup_path.read_text(encoding="utf-8") == backup_before

    def test_ill_shaped_primary_recovers_from_backup(self, repo: JsonTrackRepository, data_path: Path) -> None:
        """A document without a tracks mapping counts as corrupt."""
        repo.save(make_track("vid1"))
        repo.save(make_track("vid2"))
        data_path.write_text(json.dumps({"tracks": ["vid1"]}), encoding="utf-8")

        recovered = JsonTrackRepository(data_path)
        recovered.initialize()

        assert recovered.exists("vid1")

    def test_corrupt_primary_and_backup_start_empty(self, data_path: Path) -> None:
        """With nothing usable the repository starts empty and keeps the corrupt file aside."""
        data_path.parent.mkdir(parents=True)
        data_path.write_text("garbage", encoding="utf-8")
        Path(str(data_path) + ".backup").write_text("also garbage", encoding="utf-8")

        repo = JsonTrackRepository(data_path)
        repo.initialize()

        assert len(repo) == 0
        assert repo.corrupt_path.read_text(encoding="utf-8") == "garbage"
        assert read_document(data_path)["tracks"] == {}

    def test_corrupt_primary_without_backup_does_not_raise(self, data_path: Path) -> None:
        """initialize never raises for corrupt state."""
        data_path.parent.mkdir(parents=True)
        data_path.write_text("[]", encoding="utf-8")

        repo = JsonTrackRepository(data_path)
        repo.initialize()

        assert len(repo) == 0


class TestSave:
    """Tests for save."""

    def test_save_stamps_added_at(self, repo: JsonTrackRepository) -> None:
        """save stamps added_at and clears updated_at."""
        stored = repo.save(make_track("vid1", updated_at="stale"))
        assert stored.added_at is not None
        assert stored.updated_at is None

    def test_save_is_persisted(self, repo: JsonTrackRepository, data_path: Path) -> None:
        """Saved records are in the file."""
        repo.save(make_track("vid1"))
        document = read_document(data_path)
        assert document["tracks"]["vid1"]["title"] == "Title vid1"

    def test_save_duplicate_id_raises(self, repo: JsonTrackRepository) -> None:
        """Saving an id twice raises and leaves the first record unchanged."""
        first = repo.save(make_track("vid1"))

        with pytest.raises(AlreadyExistsError) as exc_info:
            repo.save(make_track("vid1", title="Other"))

        assert exc_info.value.external_id == "vid1"
        assert repo.find_by_external_id("vid1") == first
        assert len(repo) == 1

    def test_save_creates_backup_of_previous_state(self, repo: JsonTrackRepository) -> None:
        """Each write copies the previous document to the backup."""
        repo.save(make_track("vid1"))
        repo.save(make_track("vid2"))
        assert list(read_document(repo.backup_path)["tracks"]) == ["vid1"]

    def test_failed_write_rolls_back(self, repo: JsonTrackRepository, data_path: Path) -> None:
        """A failed rename leaves memory and disk at the previous state."""
        repo.save(make_track("vid1"))
        on_disk = data_path.read_text(encoding="utf-8")

        with patch(
            "tube_keeper.domain.library.repository.os.replace",
            side_effect=OSError("disk full"),
        ):
            with pytest.raises(PersistenceError):
                repo.save(make_track("vid2"))

        assert not repo.exists("vid2")
        assert repo.find_by_fingerprint(make_track("vid2").fingerprint) is None
        assert len(repo) == 1
        assert data_path.read_text(encoding="utf-8") == on_disk
        assert not repo.temp_path.exists()


class TestUpdate:
    """Tests for update."""

    def test_update_replaces_record(self, repo: JsonTrackRepository) -> None:
        """update stores the new record and keeps added_at."""
        stored = repo.save(make_track("vid1"))
        updated = repo.update("vid1", stored.add_to_collection("Chill"))

        assert updated.collections == ("Mix", "Chill")
        assert updated.added_at == stored.added_at
        assert updated.updated_at is not None
        assert repo.find_by_external_id("vid1") == updated

    def test_update_missing_raises(self, repo: JsonTrackRepository) -> None:
        """Updating an unknown id raises NotFoundError."""
        with pytest.raises(NotFoundError):
            repo.update("nope", make_track("nope"))

    def test_update_id_mismatch_raises(self, repo: JsonTrackRepository) -> None:
        """A record cannot be stored under another id."""
        repo.save(make_track("vid1"))
        with pytest.raises(ValidationError):
            repo.update("vid1", make_track("vid2"))

    def test_update_reindexes_fingerprint(self, repo: JsonTrackRepository) -> None:
        """Changing the fingerprint moves the index entry."""
        stored = repo.save(make_track("vid1"))
        new_fp = "N" * 120
        repo.update("vid1", make_track("vid1", fingerprint=new_fp, added_at=stored.added_at))

        assert repo.find_by_fingerprint(stored.fingerprint) is None
        assert repo.find_by_fingerprint(new_fp).external_id == "vid1"

    def test_failed_update_rolls_back(self, repo: JsonTrackRepository) -> None:
        """A failed write restores the previous record."""
        stored = repo.save(make_track("vid1"))

        with patch(
            "tube_keeper.domain.library.repository.os.replace",
            side_effect=OSError("read-only"),
        ):
            with pytest.raises(PersistenceError):
                repo.update("vid1", stored.with_quality(320.0))

        assert repo.find_by_external_id("vid1").quality == 160.0


class TestRemove:
    """Tests for remove."""

    def test_remove_returns_record(self, repo: JsonTrackRepository) -> None:
        """remove returns the removed track and drops its indexes."""
        stored = repo.save(make_track("vid1"))
        removed = repo.remove("vid1")

        assert removed == stored
        assert "vid1" not in repo
        assert repo.find_by_fingerprint(stored.fingerprint) is None
        assert repo.find_by_checksum(stored.checksum) is None

    def test_remove_missing_raises(self, repo: JsonTrackRepository) -> None:
        """Removing an unknown id raises NotFoundError."""
        with pytest.raises(NotFoundError):
            repo.remove("nope")


class TestQueries:
    """Tests for lookups."""

    def test_lookups_return_none_when_absent(self, repo: JsonTrackRepository) -> None:
        """Not-found lookups return None, never raise."""
        assert repo.find_by_external_id("x") is None
        assert repo.find_by_fingerprint("x") is None
        assert repo.find_by_checksum("x") is None
        assert repo.exists("x") is False

    def test_find_by_checksum(self, repo: JsonTrackRepository) -> None:
        """Tracks can be found by checksum."""
        repo.save(make_track("vid1"))
        assert repo.find_by_checksum(compute_checksum("vid1")).external_id == "vid1"

    def test_find_by_collection(self, repo: JsonTrackRepository) -> None:
        """find_by_collection filters by membership, keeping insertion order."""
        repo.save(make_track("a", collections=("Mix", "Chill")))
        repo.save(make_track("b", collections=("Chill",)))
        repo.save(make_track("c", collections=("Mix",)))

        assert [t.external_id for t in repo.find_by_collection("Chill")] == ["a", "b"]
        assert repo.collection_names() == ["Mix", "Chill"]
