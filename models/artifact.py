"""
Generated print artifacts.

An artifact is a finished PDF: the interior block or the wrap-around
cover. Artifacts are write-once. Regenerating an order produces new
artifacts with new storage references; nothing is overwritten.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional


PDF_CONTENT_TYPE = "application/pdf"


class ArtifactKind(Enum):
    """Which of the two print files an artifact is."""

    INTERIOR = "interior"
    COVER = "cover"


@dataclass(frozen=True)
class GeneratedArtifact:
    """
    A generated PDF, before or after it has been stored.

    Compositors return artifacts without a reference; the orchestrator
    stores the bytes and attaches the reference with `stored_as`.
    """

    kind: ArtifactKind
    data: bytes = field(repr=False)
    page_count: int
    generated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    reference: Optional[str] = None
    """Document store reference, set once stored."""

    content_type: str = PDF_CONTENT_TYPE

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def is_stored(self) -> bool:
        return self.reference is not None

    def stored_as(self, reference: str) -> "GeneratedArtifact":
        """Copy of this artifact carrying its storage reference."""
        return replace(self, reference=reference)

    def to_dict(self) -> Dict[str, Any]:
        """Metadata only; the bytes stay in the document store."""
        return {
            "kind": self.kind.value,
            "reference": self.reference,
            "page_count": self.page_count,
            "size_bytes": self.size_bytes,
            "generated_at": self.generated_at.isoformat(),
        }
