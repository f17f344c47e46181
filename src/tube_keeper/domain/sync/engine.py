"""
Sync orchestration for tube-keeper.

Drives each collection's items through sample download, fingerprinting,
duplicate detection and full download, one item at a time. A failure on
one item is logged, counted and reported; the rest of the collection
still syncs.
"""

from dataclasses import dataclass, field
from typing import Callable, Iterable, Literal, Optional

from loguru import logger

from ..library.deduplication import CandidateData, Deduplicator
from ..library.errors import ValidationError
from ..library.fingerprinting import FingerprintGenerator
from ..library.models import CatalogCollection, CatalogItem, Track, compute_checksum
from ..library.providers.youtube.download import get_playlist_info
from ..library.providers.youtube.retrieval import FileInfo, FullContentRetriever, SampleRetriever
from ..library.repository import JsonTrackRepository
from ...core.config import Config

ItemStatus = Literal["downloaded", "skipped", "replaced", "exists", "error"]


@dataclass(frozen=True)
class SyncOptions:
    """Per-run knobs, usually taken from the config file."""

    fingerprint_length: int = 60
    fingerprint_raw: bool = False
    use_cache: bool = True
    retries: int = 3
    sample_duration: int = 60
    sample_start_offset: int = 0
    audio_quality: str = "192"

    @classmethod
    def from_config(cls, config: Config) -> "SyncOptions":
        return cls(
            fingerprint_length=config.fingerprint.length,
            fingerprint_raw=config.fingerprint.raw,
            use_cache=config.fingerprint.use_cache,
            retries=config.retrieval.retries,
            sample_duration=config.retrieval.sample_duration,
            sample_start_offset=config.retrieval.sample_start_offset,
            audio_quality=config.library.audio_quality,
        )


@dataclass(frozen=True)
class ItemEvent:
    """Progress report for one catalog item."""

    collection: str
    item: CatalogItem
    status: ItemStatus
    track: Optional[Track] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class CollectionResult:
    """Outcome of one collection, with its tracks in catalog order."""

    collection_id: str
    name: str
    tracks: tuple[Track, ...] = ()
    failures: int = 0


@dataclass
class SyncStats:
    """Aggregate counters for a sync run."""

    new: int = 0
    skipped: int = 0
    replaced: int = 0
    exists: int = 0
    errors: int = 0
    collections: list[CollectionResult] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.new + self.skipped + self.replaced + self.exists + self.errors

    def record(self, status: ItemStatus) -> None:
        if status == "downloaded":
            self.new += 1
        elif status == "skipped":
            self.skipped += 1
        elif status == "replaced":
            self.replaced += 1
        elif status == "exists":
            self.exists += 1
        else:
            self.errors += 1


class SyncOrchestrator:
    """Composes the library components into a per-collection sync."""

    def __init__(
        self,
        repository: JsonTrackRepository,
        fingerprinter: FingerprintGenerator,
        sample_retriever: SampleRetriever,
        full_retriever: FullContentRetriever,
        deduplicator: Deduplicator,
        list_collection: Callable[[str], CatalogCollection] = get_playlist_info,
        options: Optional[SyncOptions] = None,
        on_item: Optional[Callable[[ItemEvent], None]] = None,
        on_collection: Optional[Callable[[CollectionResult], None]] = None,
    ):
        self.repository = repository
        self.fingerprinter = fingerprinter
        self.sample_retriever = sample_retriever
        self.full_retriever = full_retriever
        self.deduplicator = deduplicator
        self.list_collection = list_collection
        self.options = options or SyncOptions()
        self.on_item = on_item
        self.on_collection = on_collection

    def sync(self, collection_ids: Iterable[str]) -> SyncStats:
        """Sync every collection in order.

        Temp files are cleaned up afterwards, including when interrupted.

        Returns:
            SyncStats with per-collection results
        """
        stats = SyncStats()
        try:
            for collection_id in collection_ids:
                try:
                    collection = self.list_collection(collection_id)
                except Exception as e:
                    logger.error(f"Failed to list collection {collection_id}: {e}")
                    stats.errors += 1
                    continue

                result = self.sync_collection(collection, stats)
                stats.collections.append(result)
                if self.on_collection:
                    self.on_collection(result)
        finally:
            self._cleanup_temp_files()

        logger.info(
            f"Sync complete: {stats.new} new, {stats.replaced} replaced, "
            f"{stats.skipped} skipped, {stats.exists} existing, {stats.errors} errors"
        )
        return stats

    def sync_collection(
        self, collection: CatalogCollection, stats: Optional[SyncStats] = None
    ) -> CollectionResult:
        """Process every item of one collection sequentially.

        The result lists each stored track once, in first-seen order. A track
        replaced by a later item of the same collection is dropped from it.
        """
        stats = stats if stats is not None else SyncStats()
        name = collection.title
        logger.info(f"Syncing collection '{name}' ({len(collection.items)} items)")

        tracks: dict[str, Track] = {}
        failures = 0

        for item in collection.items:
            try:
                status, track, removed_id = self._process_item(item, name)
                event = ItemEvent(collection=name, item=item, status=status, track=track)
                if removed_id is not None:
                    tracks.pop(removed_id, None)
                tracks[track.external_id] = track
            except Exception as e:
                logger.exception(f"Failed to sync {item.item_id} ({item.title}): {e}")
                failures += 1
                event = ItemEvent(collection=name, item=item, status="error", error=str(e))

            stats.record(event.status)
            if self.on_item:
                self.on_item(event)

        return CollectionResult(
            collection_id=collection.collection_id,
            name=name,
            tracks=tuple(tracks.values()),
            failures=failures,
        )

    def _process_item(
        self, item: CatalogItem, collection: str
    ) -> tuple[ItemStatus, Track, Optional[str]]:
        """Sync one item.

        Returns:
            Tuple of (status, stored track, id of the track it replaced or None)
        """
        existing = self.repository.find_by_external_id(item.item_id)
        if existing is not None:
            updated = existing.add_to_collection(collection)
            if updated is not existing:
                updated = self.repository.update(existing.external_id, updated)
            logger.debug(f"Already in library: {item.item_id}")
            return "exists", updated, None

        opts = self.options
        sample = self.sample_retriever.retrieve(
            item.item_id,
            duration=opts.sample_duration,
            retries=opts.retries,
            start_offset=opts.sample_start_offset,
        )
        try:
            fingerprint = self.fingerprinter.generate(
                sample.path,
                length=opts.fingerprint_length,
                use_cache=opts.use_cache,
                raw=opts.fingerprint_raw,
            )
            candidate = CandidateData(quality=sample.quality, collections=(collection,))
            duplicate = self.deduplicator.find_duplicate(fingerprint.signature)

            if duplicate is None:
                full = self._fetch_full(item.item_id)
                track = self._build_track(item, fingerprint.signature, sample, full, (collection,))
                return "downloaded", self._save_track(track, full), None

            if not self.deduplicator.should_replace(duplicate, candidate.quality):
                decision = self.deduplicator.handle_duplicate(item.item_id, candidate, duplicate)
                return "skipped", decision.track, None

            # The stored copy is only touched once the upgrade is downloaded and valid
            full = self._fetch_full(item.item_id)
            track = self._build_track(item, fingerprint.signature, sample, full, (collection,))
            try:
                decision = self.deduplicator.handle_duplicate(item.item_id, candidate, duplicate)
            except Exception:
                self.full_retriever.cleanup(full.path)
                raise
            stored = self._save_track(track.with_collections(decision.collections), full)
            return "replaced", stored, decision.track.external_id
        finally:
            self.sample_retriever.cleanup(sample.path)

    def _fetch_full(self, item_id: str) -> FileInfo:
        return self.full_retriever.retrieve(
            item_id, quality=self.options.audio_quality, retries=self.options.retries
        )

    def _build_track(
        self,
        item: CatalogItem,
        signature: str,
        sample: FileInfo,
        full: FileInfo,
        collections: tuple[str, ...],
    ) -> Track:
        """Build the record for a downloaded file, removing the file if it is invalid."""
        try:
            return Track(
                external_id=item.item_id,
                fingerprint=signature,
                checksum=compute_checksum(item.item_id),
                filename=full.path.name,
                quality=sample.quality or full.quality,
                duration=full.duration or item.duration,
                collections=collections,
                title=item.title,
                artist=item.uploader,
            )
        except ValidationError:
            self.full_retriever.cleanup(full.path)
            raise

    def _save_track(self, track: Track, full: FileInfo) -> Track:
        try:
            return self.repository.save(track)
        except Exception:
            # Keep the library directory in step with the database
            self.full_retriever.cleanup(full.path)
            raise

    def _cleanup_temp_files(self) -> None:
        for retriever in (self.sample_retriever, self.full_retriever):
            try:
                retriever.cleanup_all()
            except OSError as e:
                logger.warning(f"Temp file cleanup failed: {e}")
