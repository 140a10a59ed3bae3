"""
Raster loading for the compositors.

Images are fetched from the document store by reference and decoded with
Pillow. A reference that cannot be fetched or decoded yields None: the
compositors leave that slot empty and carry on.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Optional

from PIL import Image, UnidentifiedImageError
from reportlab.lib.utils import ImageReader

from core.exceptions import StorageError
from core.geometry import TARGET_DPI, POINTS_PER_INCH

# Everything Pillow raises for unreadable, truncated or oversized input
DECODE_ERRORS = (
    UnidentifiedImageError,
    Image.DecompressionBombError,
    OSError,
    ValueError,
    SyntaxError,
    EOFError,
)


@dataclass(frozen=True)
class LoadedImage:
    """A decoded image ready to be drawn on a reportlab canvas."""

    reference: str
    width_px: int
    height_px: int
    reader: ImageReader

    def effective_dpi(self, drawn_width_pt: float, drawn_height_pt: float) -> float:
        """Resolution the image will print at when drawn at the given size."""
        if drawn_width_pt <= 0 or drawn_height_pt <= 0:
            return 0.0
        dpi_x = self.width_px / (drawn_width_pt / POINTS_PER_INCH)
        dpi_y = self.height_px / (drawn_height_pt / POINTS_PER_INCH)
        return min(dpi_x, dpi_y)


def decode_image(reference: str, data: bytes) -> LoadedImage:
    """
    Decode raw image bytes.

    Raises:
        ValueError: bytes are not a decodable image, or the image is over
            Pillow's decompression-bomb limit
    """
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
        if img.mode not in ("RGB", "L"):
            img = img.convert("RGB")
        reader = ImageReader(img)
    except DECODE_ERRORS as exc:
        raise ValueError(f"Cannot decode image {reference}: {exc}") from exc

    width, height = img.size
    return LoadedImage(reference=reference, width_px=width, height_px=height, reader=reader)


def load_image(store, reference: Optional[str], logger: Optional[logging.Logger] = None) -> Optional[LoadedImage]:
    """
    Fetch and decode an image from the document store.

    Returns None (after logging a warning) if the reference is empty,
    missing from the store, or not a decodable image.
    """
    log = logger or logging.getLogger("storyprint.modules.image_loader")
    if not reference:
        return None

    try:
        data = store.fetch(reference)
    except StorageError as exc:
        log.warning(f"Image {reference} unavailable, leaving slot empty: {exc}")
        return None

    try:
        image = decode_image(reference, data)
    except ValueError as exc:
        log.warning(f"{exc}; leaving slot empty")
        return None

    log.debug(f"Loaded image {reference} ({image.width_px}x{image.height_px})")
    return image


def warn_if_low_resolution(
    image: LoadedImage,
    drawn_width_pt: float,
    drawn_height_pt: float,
    logger: logging.Logger,
) -> float:
    """Log a warning when the drawn image falls under the target DPI. Returns the DPI."""
    dpi = image.effective_dpi(drawn_width_pt, drawn_height_pt)
    if dpi < TARGET_DPI:
        logger.warning(
            f"Image {image.reference} prints at {dpi:.0f} DPI (target {TARGET_DPI}); "
            f"quality may suffer"
        )
    return dpi
