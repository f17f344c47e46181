"""
Audio Fingerprinting - Compute acoustic fingerprints using Chromaprint.

Acoustic fingerprints identify audio content regardless of upload.
Same song uploaded twice → same fingerprint.

Requires: fpcalc binary or libchromaprint (via pyacoustid) - https://acoustid.org/chromaprint
"""

import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import acoustid
from loguru import logger

from .errors import FileAccessError, FingerprintError, InvalidFingerprintError, ValidationError
from .fingerprint import MIN_SIGNATURE_LENGTH, Fingerprint

DEFAULT_LENGTH = 60  # seconds of audio analysed
CACHE_TTL_SECONDS = 3600

# (path, maxlength) -> (duration, signature)
FingerprintFunc = Callable[[str, int], tuple[float, bytes | str]]


@dataclass(frozen=True)
class CacheStats:
    """Fingerprint cache statistics."""

    size: int
    hits: int
    misses: int
    hit_rate: float


def _chromaprint_fingerprint(path: str, maxlength: int) -> tuple[float, bytes | str]:
    return acoustid.fingerprint_file(path, maxlength=maxlength)


def _decode_raw(signature: str) -> str:
    """Decode a compressed Chromaprint signature into comma-separated integers."""
    try:
        import chromaprint
    except ImportError as e:
        raise FingerprintError("Raw fingerprints require libchromaprint") from e

    values, _algorithm = chromaprint.decode_fingerprint(signature.encode("ascii"))
    return ",".join(str(v) for v in values)


class FingerprintGenerator:
    """Chromaprint fingerprinter with an in-memory TTL cache.

    The cache is keyed by (path, length, raw); a hit skips the external
    fingerprinter entirely.
    """

    def __init__(
        self,
        fingerprint_func: Optional[FingerprintFunc] = None,
        cache_ttl: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            fingerprint_func: External fingerprinter (default: pyacoustid)
            cache_ttl: Seconds a cached fingerprint stays valid
            clock: Monotonic time source
        """
        self._fingerprint_func = fingerprint_func or _chromaprint_fingerprint
        self.cache_ttl = cache_ttl
        self._clock = clock
        self._cache: dict[tuple[str, int, bool], tuple[Fingerprint, float]] = {}
        self._hits = 0
        self._misses = 0

    def generate(
        self,
        file_path: str | Path,
        length: int = DEFAULT_LENGTH,
        use_cache: bool = True,
        raw: bool = False,
    ) -> Fingerprint:
        """
        Compute the acoustic fingerprint of a local audio file.

        Args:
            file_path: Path to audio file
            length: Seconds of audio to analyse
            use_cache: Consult and fill the in-memory cache
            raw: Return raw integer signature instead of the compressed form

        Returns:
            Fingerprint

        Raises:
            FileAccessError: File is missing or unreadable
            FingerprintError: The external fingerprinter failed
            InvalidFingerprintError: Output was too short or had no duration
        """
        path = str(file_path)
        cache_key = (path, length, raw)

        if use_cache:
            cached = self._get_from_cache(cache_key)
            if cached is not None:
                self._hits += 1
                logger.debug(f"Fingerprint cache hit: {path}")
                return cached
            self._misses += 1

        if not os.path.isfile(path) or not os.access(path, os.R_OK):
            logger.error(f"File validation failed: {path}")
            raise FileAccessError(path)

        logger.info(f"Generating fingerprint: {path} (length={length}, raw={raw})")

        try:
            duration, signature = self._fingerprint_func(path, length)
        except Exception as e:
            logger.error(f"Fingerprint generation failed for {path}: {e}")
            raise FingerprintError(f"Fingerprint generation failed: {e}") from e

        if isinstance(signature, bytes):
            signature = signature.decode("ascii", errors="replace")
        if raw and signature:
            signature = _decode_raw(signature)

        if not signature or len(signature) < MIN_SIGNATURE_LENGTH:
            logger.error(
                f"Invalid fingerprint generated for {path}: length {len(signature or '')}"
            )
            raise InvalidFingerprintError("Generated fingerprint is too short")

        try:
            fingerprint = Fingerprint(signature=signature, duration=float(duration or 0))
        except ValidationError as e:
            raise InvalidFingerprintError(str(e)) from e

        if use_cache:
            self._cache[cache_key] = (fingerprint, self._clock())

        logger.info(
            f"Fingerprint generated: {path} (duration={fingerprint.duration}, "
            f"length={len(fingerprint.signature)})"
        )
        return fingerprint

    def _get_from_cache(self, cache_key: tuple[str, int, bool]) -> Optional[Fingerprint]:
        """Return a cached fingerprint unless expired (expired entries are evicted)."""
        entry = self._cache.get(cache_key)
        if entry is None:
            return None

        fingerprint, stored_at = entry
        if self._clock() - stored_at > self.cache_ttl:
            del self._cache[cache_key]
            logger.debug(f"Cache entry expired: {cache_key[0]}")
            return None

        return fingerprint

    def compare_similarity(self, fingerprint1: str, fingerprint2: str) -> float:
        """Character-level similarity of two signatures.

        Matching positions divided by the longer length. This is a rough
        measure; duplicate detection uses exact matches only.
        """
        if not fingerprint1 or not fingerprint2:
            logger.warning("Attempted to compare empty fingerprints")
            return 0.0

        if fingerprint1 == fingerprint2:
            return 1.0

        matches = sum(1 for a, b in zip(fingerprint1, fingerprint2) if a == b)
        return matches / max(len(fingerprint1), len(fingerprint2))

    def clear_cache(self) -> None:
        """Drop all cached fingerprints and reset statistics."""
        size = len(self._cache)
        self._cache.clear()
        self._hits = 0
        self._misses = 0
        logger.info(f"Fingerprint cache cleared ({size} entries removed)")

    def get_cache_stats(self) -> CacheStats:
        total = self._hits + self._misses
        hit_rate = self._hits / total if total else 0.0
        return CacheStats(
            size=len(self._cache),
            hits=self._hits,
            misses=self._misses,
            hit_rate=round(hit_rate, 4),
        )
