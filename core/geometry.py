"""
Print geometry for the 8.5" x 8.5" casewrap hardcover.

Pure functions only - no I/O, no drawing. Every compositor receives a
PrintSpecification computed here once per order, so the interior and the
cover always agree on page count and spine width.

All lengths are inches unless the name ends in `_pt` (72 points = 1 inch).

Cover layout, left to right:
    [bleed][wrap][back panel][wrap][spine][wrap][front panel][wrap][bleed]
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

# =============================================================================
# VENDOR PACKAGE CONSTANTS
# =============================================================================

POINTS_PER_INCH = 72.0

TRIM_SIZE_IN = 8.5
BLEED_IN = 0.125
SAFE_MARGIN_IN = 0.25
WRAP_MARGIN_IN = 0.75

MIN_PRINTED_PAGES = 24
MAX_PRINTED_PAGES = 800
TARGET_DPI = 300

# Books with this many content pages or fewer get the longer front/back matter
SHORT_BOOK_MAX_CONTENT_PAGES = 9

# Spine text is only drawn at or above this width
MIN_SPINE_TEXT_WIDTH_IN = 0.5

# 8.5x8.5 full colour, premium, casewrap, 80# coated white, matte
POD_PACKAGE_ID = "0850X0850FCPRECW080CW444MXX"

# (max printed pages, spine width in inches) - casewrap spine table.
# Everything above the last band up to MAX_PRINTED_PAGES gets MAX_SPINE_WIDTH_IN.
SPINE_WIDTH_TABLE: Tuple[Tuple[int, float], ...] = (
    (84, 0.25),
    (140, 0.5),
    (168, 0.625),
)
MAX_SPINE_WIDTH_IN = 0.75


def to_points(inches: float) -> float:
    """Convert inches to PDF points."""
    return inches * POINTS_PER_INCH


# =============================================================================
# PAGE COUNT / SPINE
# =============================================================================

def matter_pages(content_page_count: int) -> int:
    """Front matter page count (back matter mirrors it)."""
    return 4 if content_page_count <= SHORT_BOOK_MAX_CONTENT_PAGES else 2


def printed_page_count(content_page_count: int) -> int:
    """
    Total physical interior pages for a book.

    front matter + 2 pages per content page + back matter, floored at the
    vendor minimum and rounded up to an even number.

    Raises:
        ValueError: content_page_count < 1, or the result exceeds the
            vendor's maximum printable page count
    """
    if content_page_count < 1:
        raise ValueError(f"content page count must be >= 1, got {content_page_count}")

    matter = matter_pages(content_page_count)
    total = matter + 2 * content_page_count + matter
    total = max(MIN_PRINTED_PAGES, total)
    if total % 2:
        total += 1

    if total > MAX_PRINTED_PAGES:
        raise ValueError(
            f"{content_page_count} content pages need {total} printed pages, "
            f"vendor maximum is {MAX_PRINTED_PAGES}"
        )
    return total


def spine_width(printed_pages: int) -> float:
    """
    Spine width in inches for a printed page count.

    Counts below the vendor minimum get the thinnest spine.

    Raises:
        ValueError: printed_pages < 1 or above the vendor maximum
    """
    if printed_pages < 1:
        raise ValueError(f"printed page count must be >= 1, got {printed_pages}")
    if printed_pages > MAX_PRINTED_PAGES:
        raise ValueError(f"printed page count {printed_pages} exceeds vendor maximum {MAX_PRINTED_PAGES}")
    for max_pages, width in SPINE_WIDTH_TABLE:
        if printed_pages <= max_pages:
            return width
    return MAX_SPINE_WIDTH_IN


# =============================================================================
# COVER
# =============================================================================

@dataclass(frozen=True)
class CoverDimensions:
    """Full wrap-around cover size and panel positions (inches)."""

    width: float
    height: float
    trim_size: float
    bleed: float
    wrap_margin: float
    spine_width: float
    back_x: float
    spine_x: float
    front_x: float

    @property
    def content_bottom(self) -> float:
        """Bottom edge of the visible panel area (above bleed + wrap)."""
        return self.bleed + self.wrap_margin

    @property
    def content_height(self) -> float:
        return self.trim_size

    @property
    def spine_has_text(self) -> bool:
        return self.spine_width >= MIN_SPINE_TEXT_WIDTH_IN

    def segments(self) -> List[Tuple[str, float, float]]:
        """
        Horizontal segments as (name, left edge, width), left to right.

        Consecutive segments share edges and the last one ends at `width`.
        """
        b, w, t, s = self.bleed, self.wrap_margin, self.trim_size, self.spine_width
        return [
            ("left_bleed", 0.0, b),
            ("back_wrap", b, w),
            ("back", self.back_x, t),
            ("back_hinge", self.back_x + t, w),
            ("spine", self.spine_x, s),
            ("front_hinge", self.spine_x + s, w),
            ("front", self.front_x, t),
            ("front_wrap", self.front_x + t, w),
            ("right_bleed", self.front_x + t + w, b),
        ]


def cover_dimensions(
    trim_size: float = TRIM_SIZE_IN,
    bleed: float = BLEED_IN,
    wrap_margin: float = WRAP_MARGIN_IN,
    spine: float = 0.25,
) -> CoverDimensions:
    """
    Compute full cover dimensions.

    width  = 2*bleed + 4*wrap + 2*trim + spine
    height = 2*bleed + 2*wrap + trim
    """
    for name, value in (("trim_size", trim_size), ("bleed", bleed),
                        ("wrap_margin", wrap_margin), ("spine", spine)):
        if value < 0:
            raise ValueError(f"{name} must be non-negative, got {value}")

    width = 2 * bleed + 4 * wrap_margin + 2 * trim_size + spine
    height = 2 * bleed + 2 * wrap_margin + trim_size

    back_x = bleed + wrap_margin
    spine_x = back_x + trim_size + wrap_margin
    front_x = spine_x + spine + wrap_margin

    return CoverDimensions(
        width=width,
        height=height,
        trim_size=trim_size,
        bleed=bleed,
        wrap_margin=wrap_margin,
        spine_width=spine,
        back_x=back_x,
        spine_x=spine_x,
        front_x=front_x,
    )


# =============================================================================
# PRINT SPECIFICATION
# =============================================================================

@dataclass(frozen=True)
class PrintSpecification:
    """Everything the compositors need, derived from the content page count."""

    content_page_count: int
    printed_page_count: int
    spine_width: float
    cover: CoverDimensions
    page_size: float = TRIM_SIZE_IN + 2 * BLEED_IN
    safe_margin: float = SAFE_MARGIN_IN

    @property
    def matter_pages(self) -> int:
        return matter_pages(self.content_page_count)

    @property
    def has_filler_pages(self) -> bool:
        return self.content_page_count <= SHORT_BOOK_MAX_CONTENT_PAGES

    @property
    def page_size_pt(self) -> float:
        return to_points(self.page_size)

    def to_dict(self) -> dict:
        return {
            "content_page_count": self.content_page_count,
            "printed_page_count": self.printed_page_count,
            "spine_width_in": self.spine_width,
            "cover_width_in": self.cover.width,
            "cover_height_in": self.cover.height,
            "back_x_in": self.cover.back_x,
            "spine_x_in": self.cover.spine_x,
            "front_x_in": self.cover.front_x,
            "page_size_in": self.page_size,
        }


def print_specification(content_page_count: int) -> PrintSpecification:
    """Derive the print specification for a book."""
    pages = printed_page_count(content_page_count)
    spine = spine_width(pages)
    return PrintSpecification(
        content_page_count=content_page_count,
        printed_page_count=pages,
        spine_width=spine,
        cover=cover_dimensions(TRIM_SIZE_IN, BLEED_IN, WRAP_MARGIN_IN, spine),
    )
