"""
Track Repository - durable store of library tracks.

Stores: external_id → Track, in a single JSON document.

Every mutation is applied in memory, written to disk and only then
considered committed. Writes copy the current file to a .backup sibling,
stage the new document in a .tmp file and rename it over the primary.
The rename is the commit point, so a crash at any step leaves either the
old or the new document on disk.
"""

import json
import os
import shutil
from dataclasses import replace
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from .errors import AlreadyExistsError, NotFoundError, PersistenceError, ValidationError
from .models import Track, utc_now

FORMAT_VERSION = "1.0.0"


class CorruptDatabaseError(Exception):
    """Raised internally when a database document cannot be used."""

    pass


class JsonTrackRepository:
    """
    JSON file-backed track repository with backup recovery.

    Usage:
        repo = JsonTrackRepository(Path("~/.local/share/tube-keeper/tracks.json"))
        repo.initialize()
        repo.save(track)
        repo.find_by_fingerprint(signature)
    """

    def __init__(self, data_path: str | Path, clock: Callable[[], str] = utc_now):
        """
        Args:
            data_path: Path of the primary JSON document
            clock: Returns the ISO timestamp used for added_at/updated_at
        """
        self.data_path = Path(data_path)
        self.backup_path = self.data_path.with_name(self.data_path.name + ".backup")
        self.temp_path = self.data_path.with_name(self.data_path.name + ".tmp")
        self.corrupt_path = self.data_path.with_name(self.data_path.name + ".corrupt")
        self._clock = clock

        self._tracks: dict[str, Track] = {}
        # Derived indexes, rebuilt from _tracks
        self._by_fingerprint: dict[str, str] = {}
        self._by_checksum: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def initialize(self) -> None:
        """Load tracks from disk.

        Never raises for corrupt state: falls back to the backup, then to an
        empty repository, logging what happened.
        """
        logger.info(f"Initializing track repository: {self.data_path}")

        if not self.data_path.exists():
            logger.info("Database file not found, creating new one")
            self._replace_state({})
            self._persist_quietly(backup=False)
            return

        try:
            tracks = self._read_document(self.data_path)
        except CorruptDatabaseError as e:
            logger.error(f"Failed to load database: {e}")
            self._recover_from_backup()
            return

        self._replace_state(tracks)
        logger.info(f"Loaded {len(self._tracks)} tracks from database")

    def _read_document(self, path: Path) -> dict[str, Track]:
        """Read and validate a database document.

        Individual invalid records are skipped and logged; the rest load.

        Raises:
            CorruptDatabaseError: If the file is unreadable or ill-shaped
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise CorruptDatabaseError(f"{path}: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("tracks"), dict):
            raise CorruptDatabaseError(f"{path}: invalid database structure")

        tracks: dict[str, Track] = {}
        for external_id, track_data in data["tracks"].items():
            try:
                track = Track.from_dict(track_data)
            except (ValidationError, TypeError) as e:
                logger.warning(f"Skipped invalid track: {external_id} ({e})")
                continue
            if track.external_id != external_id:
                logger.warning(
                    f"Skipped invalid track: {external_id} (record id is {track.external_id})"
                )
                continue
            tracks[external_id] = track

        return tracks

    def _recover_from_backup(self) -> None:
        """Restore state from the backup file, or start empty."""
        try:
            if not self.backup_path.exists():
                raise CorruptDatabaseError(f"no backup at {self.backup_path}")
            tracks = self._read_document(self.backup_path)
        except CorruptDatabaseError as e:
            logger.error(f"Backup recovery failed: {e}")
            self._quarantine_primary()
            self._replace_state({})
            self._persist_quietly(backup=False)
            logger.warning("Starting with an empty track database")
            return

        self._replace_state(tracks)
        logger.warning(f"Recovered database from backup ({len(self._tracks)} tracks)")

        # Repair the primary without overwriting the good backup with it
        self._persist_quietly(backup=False)

    def _quarantine_primary(self) -> None:
        """Keep an unusable primary file aside for inspection."""
        try:
            os.replace(self.data_path, self.corrupt_path)
            logger.warning(f"Moved corrupt database to {self.corrupt_path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(f"Could not move corrupt database aside: {e}")

    def _persist_quietly(self, backup: bool) -> None:
        try:
            self._persist(backup=backup)
        except PersistenceError as e:
            logger.error(f"Could not write database during initialization: {e}")

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _persist(self, backup: bool = True) -> None:
        """Write the current state with backup + atomic rename.

        Raises:
            PersistenceError: If any step of the write fails
        """
        document = {
            "version": FORMAT_VERSION,
            "last_modified": self._clock(),
            "tracks": {
                external_id: track.to_dict() for external_id, track in self._tracks.items()
            },
        }

        try:
            self.data_path.parent.mkdir(parents=True, exist_ok=True)

            if backup and self.data_path.exists():
                shutil.copy2(self.data_path, self.backup_path)
                logger.debug(f"Created backup: {self.backup_path}")

            with open(self.temp_path, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2, ensure_ascii=False)
                f.flush()
                os.fsync(f.fileno())

            os.replace(self.temp_path, self.data_path)
        except (OSError, TypeError, ValueError) as e:
            try:
                self.temp_path.unlink(missing_ok=True)
            except OSError:
                pass
            raise PersistenceError(f"Failed to persist database: {e}") from e

        logger.debug(f"Database persisted ({len(self._tracks)} tracks)")

    def _commit(self, previous: dict[str, Track]) -> None:
        """Persist the mutated state, restoring `previous` if the write fails."""
        try:
            self._persist()
        except PersistenceError:
            self._replace_state(previous)
            logger.error("Database write failed, in-memory changes rolled back")
            raise
        self._rebuild_indexes()

    def _replace_state(self, tracks: dict[str, Track]) -> None:
        self._tracks = tracks
        self._rebuild_indexes()

    def _rebuild_indexes(self) -> None:
        self._by_fingerprint = {}
        self._by_checksum = {}
        for external_id, track in self._tracks.items():
            self._by_fingerprint.setdefault(track.fingerprint, external_id)
            self._by_checksum.setdefault(track.checksum, external_id)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def save(self, track: Track) -> Track:
        """Add a new track.

        Args:
            track: Track to store; added_at is stamped here

        Returns:
            The stored record

        Raises:
            AlreadyExistsError: If a track with the same id exists
            PersistenceError: If the write fails (state is unchanged)
        """
        if track.external_id in self._tracks:
            raise AlreadyExistsError(track.external_id)

        stored = replace(track, added_at=self._clock(), updated_at=None)

        previous = dict(self._tracks)
        self._tracks[stored.external_id] = stored
        self._commit(previous)

        logger.info(f"Track saved: {stored.title or stored.external_id} ({stored.external_id})")
        return stored

    def update(self, external_id: str, track: Track) -> Track:
        """Replace an existing track record.

        Args:
            external_id: Id of the record to replace
            track: New record; updated_at is stamped here

        Returns:
            The stored record

        Raises:
            NotFoundError: If no track has this id
            PersistenceError: If the write fails (state is unchanged)
        """
        existing = self._tracks.get(external_id)
        if existing is None:
            raise NotFoundError(external_id)
        if track.external_id != external_id:
            raise ValidationError(
                f"Cannot store track {track.external_id} under id {external_id}"
            )

        stored = replace(
            track,
            added_at=track.added_at or existing.added_at,
            updated_at=self._clock(),
        )

        previous = dict(self._tracks)
        self._tracks[external_id] = stored
        self._commit(previous)

        logger.info(f"Track updated: {stored.title or external_id} ({external_id})")
        return stored

    def remove(self, external_id: str) -> Track:
        """Remove a track.

        Returns:
            The removed record

        Raises:
            NotFoundError: If no track has this id
            PersistenceError: If the write fails (state is unchanged)
        """
        existing = self._tracks.get(external_id)
        if existing is None:
            raise NotFoundError(external_id)

        previous = dict(self._tracks)
        del self._tracks[external_id]
        self._commit(previous)

        logger.info(f"Track removed: {existing.title or external_id} ({external_id})")
        return existing

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def exists(self, external_id: str) -> bool:
        return external_id in self._tracks

    def find_by_external_id(self, external_id: str) -> Optional[Track]:
        return self._tracks.get(external_id)

    def find_by_fingerprint(self, fingerprint: str) -> Optional[Track]:
        external_id = self._by_fingerprint.get(fingerprint)
        if external_id is None:
            return None
        logger.debug(f"Found track by fingerprint: {external_id}")
        return self._tracks[external_id]

    def find_by_checksum(self, checksum: str) -> Optional[Track]:
        external_id = self._by_checksum.get(checksum)
        if external_id is None:
            return None
        return self._tracks[external_id]

    def find_all(self) -> list[Track]:
        return list(self._tracks.values())

    def find_by_collection(self, name: str) -> list[Track]:
        return [track for track in self._tracks.values() if name in track.collections]

    def collection_names(self) -> list[str]:
        """All collection names referenced by stored tracks, first-seen order."""
        names: dict[str, None] = {}
        for track in self._tracks.values():
            for name in track.collections:
                names.setdefault(name, None)
        return list(names)

    def __len__(self) -> int:
        return len(self._tracks)

    def __contains__(self, external_id: object) -> bool:
        return external_id in self._tracks
