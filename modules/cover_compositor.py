"""
Cover compositor.

Renders the single wrap-around cover page. Horizontal layout comes from
the print specification's CoverDimensions; this module only draws.

    back panel:  dedication (or default quote)
    spine:       rotated title, only when the spine is wide enough
    front panel: hero image, then title / subtitle / author line
"""

from __future__ import annotations

import io
import logging
from typing import Optional

from reportlab.pdfgen import canvas

from core.exceptions import InvalidBookError, GenerationError
from core.geometry import PrintSpecification, to_points
from models.artifact import GeneratedArtifact, ArtifactKind
from models.book import Book
from modules.image_loader import load_image, warn_if_low_resolution
from modules.pdf_analyzer import PDFAnalyzer
from modules.text_layout import wrap_text, truncate_to_width, draw_centered_lines, fit_within
from modules.themes import Theme, get_theme

TITLE_FONT = "Helvetica-Bold"
TEXT_FONT = "Helvetica"

WHITE = (1.0, 1.0, 1.0)
AUTHOR_GRAY = 0.9

GRADIENT_BANDS = 20
BACK_TEXT_SIZE = 16
SPINE_TEXT_SIZE = 10
FRONT_TITLE_SIZE = 36
FRONT_SUBTITLE_SIZE = 18
FRONT_AUTHOR_SIZE = 14

# Horizontal inset for text and the hero image on each panel
PANEL_INSET_PT = 36.0

HERO_BOTTOM = 0.35
HERO_MAX_HEIGHT = 0.6

DEFAULT_BACK_QUOTE = "Every adventure is a story worth keeping."


class CoverCompositor:
    """Renders the wrap-around cover PDF for a book."""

    def __init__(self, store, logger: Optional[logging.Logger] = None):
        self._store = store
        self._logger = logger or logging.getLogger("storyprint.modules.cover_compositor")
        self._analyzer = PDFAnalyzer()

    def compose(self, book: Book, spec: PrintSpecification) -> GeneratedArtifact:
        """
        Render the cover.

        The hero image is fetched from book.cover_design.hero_image_reference;
        if it cannot be loaded the front panel is drawn without it.

        Raises:
            InvalidBookError: book has no title
            GenerationError: the document could not be finalized
        """
        if not book.title or not book.title.strip():
            raise InvalidBookError("Book has no title", book.id)

        dims = spec.cover
        width = to_points(dims.width)
        height = to_points(dims.height)
        theme = get_theme(book.theme)

        self._logger.info(
            f"Composing cover for book {book.id}: {dims.width:.4f}x{dims.height:.4f}in, "
            f"spine {dims.spine_width}in"
        )

        try:
            buffer = io.BytesIO()
            c = canvas.Canvas(buffer, pagesize=(width, height), invariant=1)
            c.setTitle(f"{book.title} - cover")

            self._draw_gradient(c, width, height, theme)
            self._draw_back(c, book, spec)
            if dims.spine_has_text:
                self._draw_spine(c, book, spec, height)
            else:
                self._logger.debug(f"Spine {dims.spine_width}in too narrow for text")
            self._draw_front(c, book, spec)

            c.showPage()
            c.save()
            data = buffer.getvalue()
        except (InvalidBookError, GenerationError):
            raise
        except Exception as exc:
            raise GenerationError(f"Cover could not be finalized: {exc}", kind="cover") from exc

        self._analyzer.verify(data, "cover", 1, dims.width, dims.height)
        self._logger.info(f"Cover composed: {len(data)} bytes")

        return GeneratedArtifact(kind=ArtifactKind.COVER, data=data, page_count=1)

    def _draw_gradient(self, c, width: float, height: float, theme: Theme) -> None:
        """Banded gradient, primary at the top to secondary at the bottom."""
        band = height / GRADIENT_BANDS
        for i in range(GRADIENT_BANDS):
            c.setFillColorRGB(*theme.gradient_color(i / GRADIENT_BANDS))
            # +1pt overlap hides hairline gaps between bands
            c.rect(0, height - (i + 1) * band, width, band + 1, fill=1, stroke=0)

    def _draw_back(self, c, book: Book, spec: PrintSpecification) -> None:
        dims = spec.cover
        x = to_points(dims.back_x)
        y = to_points(dims.content_bottom)
        panel = to_points(dims.trim_size)

        text = (book.cover_design.dedication or "").strip() or DEFAULT_BACK_QUOTE
        lines = wrap_text(text, TEXT_FONT, BACK_TEXT_SIZE, panel - 2 * PANEL_INSET_PT)
        step = BACK_TEXT_SIZE * 1.5
        first = y + panel * 0.5 + (len(lines) - 1) * step / 2

        c.setFillColorRGB(*WHITE)
        drawn = draw_centered_lines(
            c, lines, TEXT_FONT, BACK_TEXT_SIZE, x + panel / 2, min(first, y + panel - PANEL_INSET_PT),
            step, min_baseline=y + PANEL_INSET_PT,
        )
        if drawn < len(lines):
            self._logger.warning(f"Back cover text truncated: {drawn}/{len(lines)} lines fit")

    def _draw_spine(self, c, book: Book, spec: PrintSpecification, height: float) -> None:
        dims = spec.cover
        center_x = to_points(dims.spine_x + dims.spine_width / 2)
        max_length = to_points(dims.trim_size) - 2 * PANEL_INSET_PT
        title = truncate_to_width(book.cover_title.strip(), TITLE_FONT, SPINE_TEXT_SIZE, max_length)
        if not title:
            return

        c.saveState()
        c.translate(center_x, height / 2)
        c.rotate(90)
        c.setFillColorRGB(*WHITE)
        c.setFont(TITLE_FONT, SPINE_TEXT_SIZE)
        # Baseline shifted so the cap height sits centred across the spine
        c.drawCentredString(0, -SPINE_TEXT_SIZE * 0.35, title)
        c.restoreState()

    def _draw_front(self, c, book: Book, spec: PrintSpecification) -> None:
        dims = spec.cover
        x = to_points(dims.front_x)
        y = to_points(dims.content_bottom)
        panel = to_points(dims.trim_size)
        center_x = x + panel / 2
        text_width = panel - 2 * PANEL_INSET_PT
        design = book.cover_design

        hero = load_image(self._store, design.hero_image_reference, self._logger)
        if hero is not None:
            box_height = panel * HERO_MAX_HEIGHT
            w, h = fit_within(hero.width_px, hero.height_px, text_width, box_height)
            if w > 0 and h > 0:
                warn_if_low_resolution(hero, w, h, self._logger)
                box_bottom = y + panel * HERO_BOTTOM
                c.drawImage(hero.reader, center_x - w / 2, box_bottom + (box_height - h) / 2, width=w, height=h)

        # Title, subtitle, author stacked downwards; absent items take no space
        baseline = y + panel * 0.25
        c.setFillColorRGB(*WHITE)
        c.setFont(TITLE_FONT, FRONT_TITLE_SIZE)
        c.drawCentredString(
            center_x, baseline, truncate_to_width(book.cover_title.strip(), TITLE_FONT, FRONT_TITLE_SIZE, text_width)
        )
        baseline -= panel * 0.07

        if design.subtitle and design.subtitle.strip():
            c.setFont(TEXT_FONT, FRONT_SUBTITLE_SIZE)
            c.drawCentredString(
                center_x, baseline,
                truncate_to_width(design.subtitle.strip(), TEXT_FONT, FRONT_SUBTITLE_SIZE, text_width),
            )
            baseline -= panel * 0.08

        if design.author_line and design.author_line.strip():
            c.setFillGray(AUTHOR_GRAY)
            c.setFont(TEXT_FONT, FRONT_AUTHOR_SIZE)
            c.drawCentredString(
                center_x, baseline,
                truncate_to_width(design.author_line.strip(), TEXT_FONT, FRONT_AUTHOR_SIZE, text_width),
            )
