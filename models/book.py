"""
Book data models.

These models are the pipeline's read-only view of a book assembled in the
editor: title, cover design, and ordered content pages with their images.
The editor owns them; the pipeline never writes them back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional, Tuple


DEFAULT_THEME = "purple-magic"


@dataclass(frozen=True)
class CoverDesign:
    """Optional cover customisation chosen by the customer."""

    title: Optional[str] = None
    """Title override for the front cover (falls back to the book title)."""

    subtitle: Optional[str] = None
    author_line: Optional[str] = None

    hero_image_reference: Optional[str] = None
    """Document store reference of the front cover image."""

    theme: str = DEFAULT_THEME
    """Theme identifier selecting the gradient palette."""

    dedication: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "subtitle": self.subtitle,
            "author_line": self.author_line,
            "hero_image_reference": self.hero_image_reference,
            "theme": self.theme,
            "dedication": self.dedication,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CoverDesign":
        return cls(
            title=data.get("title"),
            subtitle=data.get("subtitle"),
            author_line=data.get("author_line"),
            hero_image_reference=data.get("hero_image_reference"),
            theme=data.get("theme") or DEFAULT_THEME,
            dedication=data.get("dedication"),
        )


@dataclass(frozen=True)
class PageImage:
    """
    One image attached to a content page.

    The editor keeps several variants of each upload; the pipeline prints
    the most processed one that exists.
    """

    original_reference: Optional[str] = None
    cartoon_reference: Optional[str] = None
    baked_reference: Optional[str] = None
    """Cartoon with caption text baked in - preferred when present."""

    @property
    def effective_reference(self) -> Optional[str]:
        return self.baked_reference or self.cartoon_reference or self.original_reference

    def to_dict(self) -> Dict[str, Any]:
        return {
            "original_reference": self.original_reference,
            "cartoon_reference": self.cartoon_reference,
            "baked_reference": self.baked_reference,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PageImage":
        return cls(
            original_reference=data.get("original_reference"),
            cartoon_reference=data.get("cartoon_reference"),
            baked_reference=data.get("baked_reference"),
        )


@dataclass(frozen=True)
class ContentPage:
    """A single story page (one printed spread)."""

    ordinal: int
    """1-based position within the book."""

    title: Optional[str] = None
    """Location / page title printed near the bottom of the image page."""

    caption: Optional[str] = None
    images: Tuple[PageImage, ...] = ()

    @property
    def image_references(self) -> List[str]:
        """Effective references of the page's images, in order, skipping empty ones."""
        return [ref for ref in (img.effective_reference for img in self.images) if ref]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ordinal": self.ordinal,
            "title": self.title,
            "caption": self.caption,
            "images": [img.to_dict() for img in self.images],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContentPage":
        return cls(
            ordinal=int(data.get("ordinal", 0)),
            title=data.get("title"),
            caption=data.get("caption"),
            images=tuple(PageImage.from_dict(i) for i in data.get("images", [])),
        )


@dataclass(frozen=True)
class Book:
    """
    A book as read by the print pipeline.

    Invariant: content_page_count >= 1 (checked by validate_book_content).
    """

    id: str
    title: str
    content_page_count: int
    cover_design: CoverDesign = field(default_factory=CoverDesign)

    @property
    def cover_title(self) -> str:
        return self.cover_design.title or self.title

    @property
    def theme(self) -> str:
        return self.cover_design.theme or DEFAULT_THEME

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content_page_count": self.content_page_count,
            "cover_design": self.cover_design.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Book":
        return cls(
            id=str(data.get("id", "")),
            title=data.get("title", ""),
            content_page_count=int(data.get("content_page_count", 0)),
            cover_design=CoverDesign.from_dict(data.get("cover_design") or {}),
        )
