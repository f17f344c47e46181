"""Library domain - deduplicated track storage.

This domain handles:
- Fingerprint and Track data models
- Acoustic fingerprint generation
- Durable JSON track repository
- Fingerprint-based duplicate detection
"""

# Models
from .fingerprint import Fingerprint
from .models import CatalogCollection, CatalogItem, Track, compute_checksum

# Errors
from .errors import (
    AlreadyExistsError,
    FileAccessError,
    FingerprintError,
    InvalidFingerprintError,
    NotFoundError,
    PersistenceError,
    RepositoryError,
    RetrievalError,
    TubeKeeperError,
    ValidationError,
)

# Fingerprinting
from .fingerprinting import CacheStats, FingerprintGenerator

# Storage and deduplication
from .repository import JsonTrackRepository
from .deduplication import QUALITY_MARGIN, CandidateData, Deduplicator, DuplicateDecision

__all__ = [
    # Models
    "Fingerprint",
    "Track",
    "CatalogItem",
    "CatalogCollection",
    "compute_checksum",
    # Errors
    "TubeKeeperError",
    "ValidationError",
    "InvalidFingerprintError",
    "FileAccessError",
    "FingerprintError",
    "RetrievalError",
    "PersistenceError",
    "RepositoryError",
    "NotFoundError",
    "AlreadyExistsError",
    # Fingerprinting
    "CacheStats",
    "FingerprintGenerator",
    # Storage
    "JsonTrackRepository",
    "QUALITY_MARGIN",
    "CandidateData",
    "DuplicateDecision",
    "Deduplicator",
]
