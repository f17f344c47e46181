"""
Deduplicator - decides what happens when incoming audio is already in the library.

Identity is the acoustic fingerprint: two catalog items with the same
fingerprint are the same recording. The higher-quality copy wins, but only
when it beats the stored one by more than the quality margin.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Optional

from loguru import logger

from .models import Track, _unique
from .repository import JsonTrackRepository

QUALITY_MARGIN = 10  # kbps


@dataclass(frozen=True)
class CandidateData:
    """What the deduplicator needs to know about an incoming item."""

    quality: float
    collections: tuple[str, ...] = ()


@dataclass(frozen=True)
class DuplicateDecision:
    """Outcome of handle_duplicate.

    For "replace", `track` is the removed record and `collections` the
    memberships the caller must give the new record. For "skip", `track`
    is the updated stored record.
    """

    action: Literal["replace", "skip"]
    track: Track
    collections: tuple[str, ...]


class Deduplicator:
    """Fingerprint-based duplicate detection and quality arbitration."""

    def __init__(
        self,
        repository: JsonTrackRepository,
        library_dir: str | Path,
        margin: float = QUALITY_MARGIN,
    ):
        self.repository = repository
        self.library_dir = Path(library_dir)
        self.margin = margin

    def find_duplicate(self, fingerprint: str) -> Optional[Track]:
        """Return the stored track with exactly this fingerprint, if any."""
        return self.repository.find_by_fingerprint(fingerprint)

    def should_replace(self, existing: Track, candidate_quality: float) -> bool:
        """True when the candidate beats the stored track by more than the margin."""
        return candidate_quality > existing.quality + self.margin

    def handle_duplicate(
        self, candidate_id: str, candidate: CandidateData, existing: Track
    ) -> DuplicateDecision:
        """Apply the replace-or-skip decision for a content duplicate.

        On replace the stored record and its file are removed; the caller is
        responsible for saving the new record under `candidate_id`. On skip
        the candidate's collections are merged into the stored record.

        Raises:
            PersistenceError: If the repository write fails
        """
        collections = _unique([*existing.collections, *candidate.collections])

        if self.should_replace(existing, candidate.quality):
            self.repository.remove(existing.external_id)
            self._delete_file(existing)
            logger.info(
                f"Duplicate quality upgrade: {existing.external_id} "
                f"({existing.quality}kbps) -> {candidate_id} ({candidate.quality}kbps)"
            )
            return DuplicateDecision("replace", existing, collections)

        updated = existing
        if collections != existing.collections:
            updated = self.repository.update(
                existing.external_id, existing.with_collections(collections)
            )
        logger.info(
            f"Duplicate skipped: {candidate_id} ({candidate.quality}kbps) matches "
            f"{existing.external_id} ({existing.quality}kbps)"
        )
        return DuplicateDecision("skip", updated, updated.collections)

    def _delete_file(self, track: Track) -> None:
        path = self.library_dir / track.filename
        try:
            path.unlink()
            logger.debug(f"Deleted replaced file: {path}")
        except FileNotFoundError:
            logger.debug(f"Replaced file already absent: {path}")
