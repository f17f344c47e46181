"""
Acoustic fingerprint value object.

Wraps a Chromaprint signature and the analysed duration. Two fingerprints
are the same content when their signatures are identical.
"""

from dataclasses import dataclass, field

from .errors import ValidationError

# Anything shorter is truncated or garbage fpcalc output
MIN_SIGNATURE_LENGTH = 100


@dataclass(frozen=True)
class Fingerprint:
    """Immutable Chromaprint signature plus the duration it was computed over."""

    signature: str
    duration: float = field(compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.signature, str) or not self.signature.strip():
            raise ValidationError("Fingerprint value cannot be empty")
        if len(self.signature) < MIN_SIGNATURE_LENGTH:
            raise ValidationError(
                f"Fingerprint too short: {len(self.signature)} < {MIN_SIGNATURE_LENGTH}"
            )
        if not self.duration or self.duration <= 0:
            raise ValidationError("Duration must be positive")

    def similarity(self, other: "Fingerprint") -> float:
        """Similarity ratio in [0.0, 1.0].

        Binary for now: 1.0 for identical signatures, otherwise 0.0.
        Duplicate detection does not consult this; it looks signatures up
        exactly through the repository index.
        """
        return 1.0 if self == other else 0.0

    def __str__(self) -> str:
        return f"Fingerprint(length={len(self.signature)}, duration={self.duration}s)"
