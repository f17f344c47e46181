"""Sync domain - catalog to library synchronization.

This domain handles:
- Walking collections item by item
- Sample fingerprinting and duplicate decisions
- Full downloads of new and upgraded tracks
- Run statistics and per-item progress events
"""

from .engine import (
    CollectionResult,
    ItemEvent,
    SyncOptions,
    SyncOrchestrator,
    SyncStats,
)

__all__ = [
    "CollectionResult",
    "ItemEvent",
    "SyncOptions",
    "SyncOrchestrator",
    "SyncStats",
]
