"""
Music library domain models.

Contains the Track record stored in the library database and the helpers
used to name stored files.
"""

import hashlib
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from .errors import ValidationError

CHECKSUM_LENGTH = 16


def compute_checksum(external_id: str) -> str:
    """Deterministic hash of a catalog item id.

    Used to name the stored audio file so titles never leak into paths.

    Args:
        external_id: Catalog item id (e.g. YouTube video id)

    Returns:
        First 16 hex chars of the SHA-256 digest
    """
    return hashlib.sha256(external_id.encode("utf-8")).hexdigest()[:CHECKSUM_LENGTH]


def utc_now() -> str:
    """Current time as an ISO-8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


def _unique(names: Iterable[str]) -> tuple[str, ...]:
    """De-duplicate collection names keeping first-seen order."""
    return tuple(dict.fromkeys(names))


@dataclass(frozen=True)
class Track:
    """A track in the local library, keyed by its catalog item id.

    Records are immutable. Membership and quality changes build a new
    record which the repository stores in place of the old one.
    """

    external_id: str
    fingerprint: str  # Chromaprint signature
    checksum: str
    filename: str  # Relative to the library directory
    quality: float  # Audio bitrate in kbps
    duration: float  # in seconds
    collections: tuple[str, ...] = ()
    title: str = ""
    artist: str = ""
    added_at: Optional[str] = None
    updated_at: Optional[str] = None

    def __post_init__(self) -> None:
        for name in ("external_id", "fingerprint", "checksum", "filename"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise ValidationError(f"Track {name} cannot be empty")

        if isinstance(self.duration, bool) or not isinstance(self.duration, (int, float)):
            raise ValidationError("Track duration must be a number")
        if self.duration <= 0:
            raise ValidationError("Track duration must be positive")

        if isinstance(self.quality, bool) or not isinstance(self.quality, (int, float)):
            raise ValidationError("Track audio quality must be a number")
        if self.quality < 0:
            raise ValidationError("Track audio quality cannot be negative")

        if isinstance(self.collections, str):
            raise ValidationError("Track collections must be a sequence of names")
        try:
            names = tuple(self.collections)
        except TypeError as e:
            raise ValidationError("Track collections must be a sequence of names") from e
        for name in names:
            if not isinstance(name, str) or not name:
                raise ValidationError(f"Invalid collection name: {name!r}")
        # Normalise to a de-duplicated tuple (frozen, so bypass __setattr__)
        object.__setattr__(self, "collections", _unique(names))

    def with_collections(self, collections: Iterable[str]) -> "Track":
        """Return new track with the given collection memberships."""
        return replace(self, collections=_unique(collections))

    def add_to_collection(self, name: str) -> "Track":
        """Return track with `name` added to its memberships.

        Returns the same record when it is already a member.
        """
        if name in self.collections:
            return self
        return self.with_collections([*self.collections, name])

    def remove_from_collection(self, name: str) -> "Track":
        """Return track without membership in `name`."""
        return self.with_collections(c for c in self.collections if c != name)

    def with_quality(self, quality: float) -> "Track":
        """Return new track with an updated quality metric."""
        return replace(self, quality=quality)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        data = asdict(self)
        data["collections"] = list(self.collections)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Track":
        """Create from dict (JSON parsing).

        Raises:
            ValidationError: If required fields are missing or invalid
        """
        if not isinstance(data, dict):
            raise ValidationError(f"Track record must be an object, got {type(data).__name__}")

        try:
            collections = data.get("collections") or []
            if not isinstance(collections, list):
                raise ValidationError("Track collections must be a list")
            return cls(
                external_id=data["external_id"],
                fingerprint=data["fingerprint"],
                checksum=data["checksum"],
                filename=data["filename"],
                quality=data["quality"],
                duration=data["duration"],
                collections=tuple(collections),
                title=data.get("title") or "",
                artist=data.get("artist") or "",
                added_at=data.get("added_at"),
                updated_at=data.get("updated_at"),
            )
        except KeyError as e:
            raise ValidationError(f"Track record missing field: {e.args[0]}") from e

    def __str__(self) -> str:
        return f'Track({self.external_id}, "{self.title}" by {self.artist})'


@dataclass(frozen=True)
class CatalogItem:
    """An item listed in a remote collection (metadata only, nothing downloaded)."""

    item_id: str
    title: str = "Unknown"
    uploader: str = ""
    duration: float = 0.0


@dataclass(frozen=True)
class CatalogCollection:
    """A remote collection (playlist) and its items in catalog order."""

    collection_id: str
    title: str
    items: tuple[CatalogItem, ...] = ()
