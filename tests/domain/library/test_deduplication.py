"""Tests for fingerprint-based deduplication."""

from pathlib import Path

import pytest

from tube_keeper.domain.library.deduplication import (
    QUALITY_MARGIN,
    CandidateData,
    Deduplicator,
)
from tube_keeper.domain.library.models import Track, compute_checksum
from tube_keeper.domain.library.repository import JsonTrackRepository

FINGERPRINT = "AQADtEmUaEkSRZEGAAAA" * 8


def make_track(external_id: str, quality: float, collections: tuple[str, ...]) -> Track:
    checksum = compute_checksum(external_id)
    return Track(
        external_id=external_id,
        fingerprint=FINGERPRINT,
        checksum=checksum,
        filename=f"{checksum}.mp3",
        quality=quality,
        duration=180.0,
        collections=collections,
    )


@pytest.fixture
def library_dir(tmp_path: Path) -> Path:
    path = tmp_path / "library"
    path.mkdir()
    return path


@pytest.fixture
def repo(tmp_path: Path) -> JsonTrackRepository:
    repository = JsonTrackRepository(tmp_path / "tracks.json")
    repository.initialize()
    return repository


@pytest.fixture
def dedup(repo: JsonTrackRepository, library_dir: Path) -> Deduplicator:
    return Deduplicator(repo, library_dir)


class TestShouldReplace:
    """Tests for the quality threshold."""

    def test_default_margin(self) -> None:
        """The default margin is 10 kbps."""
        assert QUALITY_MARGIN == 10

    def test_threshold_is_strict(self, dedup: Deduplicator) -> None:
        """Exactly existing + margin does not replace; anything above does."""
        existing = make_track("A", 128.0, ("P1",))
        assert not dedup.should_replace(existing, 138.0)
        assert dedup.should_replace(existing, 138.5)

    def test_lower_quality_never_replaces(self, dedup: Deduplicator) -> None:
        """A worse candidate is never an upgrade."""
        assert not dedup.should_replace(make_track("A", 256.0, ()), 128.0)

    def test_custom_margin(self, repo: JsonTrackRepository, library_dir: Path) -> None:
        """The margin is configurable."""
        dedup = Deduplicator(repo, library_dir, margin=0)
        assert dedup.should_replace(make_track("A", 128.0, ()), 129.0)


class TestFindDuplicate:
    """Tests for find_duplicate."""

    def test_exact_match(self, dedup: Deduplicator, repo: JsonTrackRepository) -> None:
        """A stored track with the same fingerprint is found."""
        repo.save(make_track("A", 128.0, ("P1",)))
        assert dedup.find_duplicate(FINGERPRINT).external_id == "A"

    def test_no_match(self, dedup: Deduplicator, repo: JsonTrackRepository) -> None:
        """Different fingerprints never match."""
        repo.save(make_track("A", 128.0, ("P1",)))
        assert dedup.find_duplicate("Z" * 120) is None


class TestHandleDuplicate:
    """Tests for the replace and skip branches."""

    def test_replace_removes_record_and_file(
        self, dedup: Deduplicator, repo: JsonTrackRepository, library_dir: Path
    ) -> None:
        """Quality upgrade: A(128, P1) replaced by B(320, P2)."""
        existing = repo.save(make_track("A", 128.0, ("P1",)))
        stored_file = library_dir / existing.filename
        stored_file.write_bytes(b"audio")

        decision = dedup.handle_duplicate("B", CandidateData(320.0, ("P2",)), existing)

        assert decision.action == "replace"
        assert decision.track == existing
        assert decision.collections == ("P1", "P2")
        assert not repo.exists("A")
        assert not stored_file.exists()

    def test_replace_tolerates_missing_file(
        self, dedup: Deduplicator, repo: JsonTrackRepository
    ) -> None:
        """An already-absent stored file does not fail the replace."""
        existing = repo.save(make_track("A", 128.0, ("P1",)))

        decision = dedup.handle_duplicate("B", CandidateData(320.0, ("P2",)), existing)

        assert decision.action == "replace"
        assert not repo.exists("A")

    def test_skip_merges_memberships(
        self, dedup: Deduplicator, repo: JsonTrackRepository, library_dir: Path
    ) -> None:
        """Within the margin: A(192, P1) keeps its file and gains P2."""
        existing = repo.save(make_track("A", 192.0, ("P1",)))
        stored_file = library_dir / existing.filename
        stored_file.write_bytes(b"audio")

        decision = dedup.handle_duplicate("C", CandidateData(195.0, ("P2",)), existing)

        assert decision.action == "skip"
        assert decision.track.external_id == "A"
        assert decision.collections == ("P1", "P2")
        assert repo.find_by_external_id("A").collections == ("P1", "P2")
        assert not repo.exists("C")
        assert stored_file.exists()

    def test_skip_membership_union_is_deduplicated(
        self, dedup: Deduplicator, repo: JsonTrackRepository
    ) -> None:
        """Shared collections appear once."""
        existing = repo.save(make_track("A", 192.0, ("P1", "P2")))

        decision = dedup.handle_duplicate("C", CandidateData(150.0, ("P2", "P3")), existing)

        assert decision.collections == ("P1", "P2", "P3")
        assert repo.find_by_external_id("A").collections == ("P1", "P2", "P3")

    def test_skip_at_exact_margin(self, dedup: Deduplicator, repo: JsonTrackRepository) -> None:
        """Q' = Q + margin is still a skip."""
        existing = repo.save(make_track("A", 128.0, ("P1",)))

        decision = dedup.handle_duplicate("B", CandidateData(138.0, ("P1",)), existing)

        assert decision.action == "skip"
        assert repo.exists("A")
