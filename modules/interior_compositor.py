"""
Interior compositor.

Builds the interior block of a book as one PDF, page by page:

    title page
    dedication page
    2 filler pages (short books only)
    one two-page spread per content page
    end page
    blank pages up to the printed page count

The finished document is read back with pypdf and must have exactly the
printed page count from the print specification.
"""

from __future__ import annotations

import io
import logging
from typing import List, Optional, Sequence

from reportlab.pdfgen import canvas

from core.exceptions import InvalidBookError, GenerationError
from core.geometry import PrintSpecification, to_points
from models.artifact import GeneratedArtifact, ArtifactKind
from models.book import Book, ContentPage
from modules.image_loader import LoadedImage, load_image, warn_if_low_resolution
from modules.pdf_analyzer import PDFAnalyzer
from modules.text_layout import wrap_text, truncate_to_width, draw_centered_lines, fit_within
from modules.themes import Theme, get_theme

TITLE_FONT = "Helvetica-Bold"
TEXT_FONT = "Helvetica"

PAGE_BACKGROUND = (0.98, 0.98, 1.0)
SUBTITLE_COLOR = (0.4, 0.4, 0.5)
AUTHOR_COLOR = (0.5, 0.5, 0.6)
DEDICATION_COLOR = (0.4, 0.4, 0.5)
CAPTION_COLOR = (0.2, 0.2, 0.3)

TITLE_SIZE = 48
SUBTITLE_SIZE = 24
AUTHOR_SIZE = 18
DEDICATION_SIZE = 20
PAGE_TITLE_SIZE = 24
CAPTION_SIZE = 18
END_SIZE = 48
LINE_SPACING = 1.5

# Room kept under the spread image for the page title
PAGE_TITLE_BAND_PT = 80.0
IMAGE_LIFT_PT = 20.0

DEFAULT_DEDICATION = "For all the adventurers..."
END_TEXT = "The End"


def validate_book_content(book: Book, pages: Sequence[ContentPage]) -> List[ContentPage]:
    """
    Reject book data that cannot be printed, before any work is done.

    Returns the content pages sorted by ordinal.

    Raises:
        InvalidBookError: no title, no content pages, or ordinals that are
            not exactly 1..content_page_count
    """
    if not book.title or not book.title.strip():
        raise InvalidBookError("Book has no title", book.id)
    if book.content_page_count < 1:
        raise InvalidBookError(
            f"Book must have at least one content page, has {book.content_page_count}", book.id
        )

    ordered = sorted(pages, key=lambda p: p.ordinal)
    ordinals = [p.ordinal for p in ordered]
    expected = list(range(1, book.content_page_count + 1))
    if ordinals != expected:
        raise InvalidBookError(
            f"Content page ordinals {ordinals} do not match the book's "
            f"{book.content_page_count} content pages",
            book.id,
        )
    return ordered


class InteriorCompositor:
    """
    Renders the interior PDF for a book.

    One instance can be shared between threads: all drawing state lives in
    the canvas created per compose() call.
    """

    def __init__(self, store, logger: Optional[logging.Logger] = None):
        """
        Args:
            store: Document store used to fetch page images
            logger: Optional logger (defaults to the module logger)
        """
        self._store = store
        self._logger = logger or logging.getLogger("storyprint.modules.interior_compositor")
        self._analyzer = PDFAnalyzer()

    def compose(
        self,
        book: Book,
        pages: Sequence[ContentPage],
        spec: PrintSpecification,
    ) -> GeneratedArtifact:
        """
        Render the interior.

        Raises:
            InvalidBookError: book data rejected by validate_book_content
            GenerationError: the document could not be finalized
            PageCountMismatchError: the finished PDF has the wrong page count
        """
        ordered = validate_book_content(book, pages)
        if spec.content_page_count != book.content_page_count:
            raise GenerationError(
                f"Print specification is for {spec.content_page_count} content pages, "
                f"book has {book.content_page_count}",
                kind="interior",
            )

        theme = get_theme(book.theme)
        size = spec.page_size_pt
        self._logger.info(
            f"Composing interior for book {book.id}: {book.content_page_count} content pages, "
            f"{spec.printed_page_count} printed pages"
        )

        try:
            buffer = io.BytesIO()
            c = canvas.Canvas(buffer, pagesize=(size, size), invariant=1)
            c.setTitle(book.title)

            emitted = 0
            self._title_page(c, book, theme, spec)
            emitted += 1
            self._dedication_page(c, book, spec)
            emitted += 1

            if spec.has_filler_pages:
                for _ in range(2):
                    self._blank_page(c, spec)
                    emitted += 1

            for page in ordered:
                emitted += self._story_spread(c, page, theme, spec)

            self._end_page(c, theme, spec)
            emitted += 1

            padding = spec.printed_page_count - emitted
            for _ in range(max(0, padding)):
                self._blank_page(c, spec)
                emitted += 1

            c.save()
            data = buffer.getvalue()
        except (InvalidBookError, GenerationError):
            raise
        except Exception as exc:
            raise GenerationError(f"Interior could not be finalized: {exc}", kind="interior") from exc

        if padding > 0:
            self._logger.debug(f"Padded interior with {padding} blank pages")

        self._analyzer.verify(data, "interior", spec.printed_page_count, spec.page_size, spec.page_size)
        self._logger.info(f"Interior composed: {spec.printed_page_count} pages, {len(data)} bytes")

        return GeneratedArtifact(kind=ArtifactKind.INTERIOR, data=data, page_count=spec.printed_page_count)

    # =========================================================================
    # PAGES
    # =========================================================================

    def _begin_page(self, c, spec: PrintSpecification) -> None:
        size = spec.page_size_pt
        c.setFillColorRGB(*PAGE_BACKGROUND)
        c.rect(0, 0, size, size, fill=1, stroke=0)

    def _blank_page(self, c, spec: PrintSpecification) -> None:
        self._begin_page(c, spec)
        c.showPage()

    def _title_page(self, c, book: Book, theme: Theme, spec: PrintSpecification) -> None:
        size = spec.page_size_pt
        safe = to_points(spec.safe_margin)
        text_width = size - 4 * safe
        self._begin_page(c, spec)

        lines = wrap_text(book.title.strip(), TITLE_FONT, TITLE_SIZE, text_width)
        step = TITLE_SIZE * 1.2
        # Last title line sits at 60% height, earlier lines stack upwards
        first = size * 0.6 + (len(lines) - 1) * step
        c.setFillColorRGB(*theme.primary)
        draw_centered_lines(c, lines, TITLE_FONT, TITLE_SIZE, size / 2, first, step)

        design = book.cover_design
        if design.subtitle:
            c.setFillColorRGB(*SUBTITLE_COLOR)
            c.setFont(TEXT_FONT, SUBTITLE_SIZE)
            c.drawCentredString(
                size / 2, size * 0.5, truncate_to_width(design.subtitle, TEXT_FONT, SUBTITLE_SIZE, text_width)
            )
        if design.author_line:
            c.setFillColorRGB(*AUTHOR_COLOR)
            c.setFont(TEXT_FONT, AUTHOR_SIZE)
            c.drawCentredString(
                size / 2, size * 0.35, truncate_to_width(design.author_line, TEXT_FONT, AUTHOR_SIZE, text_width)
            )
        c.showPage()

    def _dedication_page(self, c, book: Book, spec: PrintSpecification) -> None:
        size = spec.page_size_pt
        safe = to_points(spec.safe_margin)
        self._begin_page(c, spec)

        text = (book.cover_design.dedication or "").strip() or DEFAULT_DEDICATION
        lines = wrap_text(text, TEXT_FONT, DEDICATION_SIZE, size - 4 * safe)
        step = DEDICATION_SIZE * LINE_SPACING
        first = size * 0.5 + (len(lines) - 1) * step / 2
        c.setFillColorRGB(*DEDICATION_COLOR)
        draw_centered_lines(c, lines, TEXT_FONT, DEDICATION_SIZE, size / 2, first, step, min_baseline=safe)
        c.showPage()

    def _end_page(self, c, theme: Theme, spec: PrintSpecification) -> None:
        size = spec.page_size_pt
        self._begin_page(c, spec)
        c.setFillColorRGB(*theme.primary)
        c.setFont(TITLE_FONT, END_SIZE)
        c.drawCentredString(size / 2, size * 0.5, END_TEXT)
        c.showPage()

    def _story_spread(self, c, page: ContentPage, theme: Theme, spec: PrintSpecification) -> int:
        """Emit the two pages for one content page. Returns 2."""
        size = spec.page_size_pt
        safe = to_points(spec.safe_margin)
        references = page.image_references
        if len(references) > 2:
            self._logger.debug(f"Content page {page.ordinal} has {len(references)} images, printing 2")

        # Image page
        self._begin_page(c, spec)
        first = load_image(self._store, references[0], self._logger) if references else None
        if first is not None:
            self._draw_image(
                c, first,
                max_width=size - 2 * safe,
                max_height=size - 2 * safe - PAGE_TITLE_BAND_PT,
                center_x=size / 2,
                center_y=size / 2 + IMAGE_LIFT_PT,
            )
        if page.title and page.title.strip():
            c.setFillColorRGB(*theme.primary)
            c.setFont(TITLE_FONT, PAGE_TITLE_SIZE)
            title = truncate_to_width(page.title.strip(), TITLE_FONT, PAGE_TITLE_SIZE, size - 2 * safe)
            c.drawCentredString(size / 2, safe + 20, title)
        c.showPage()

        # Second image or caption
        self._begin_page(c, spec)
        second = load_image(self._store, references[1], self._logger) if len(references) > 1 else None
        if second is not None:
            self._draw_image(
                c, second,
                max_width=size - 2 * safe,
                max_height=size - 2 * safe,
                center_x=size / 2,
                center_y=size / 2,
            )
        elif page.caption and page.caption.strip():
            self._draw_caption(c, page, spec)
        c.showPage()

        return 2

    def _draw_caption(self, c, page: ContentPage, spec: PrintSpecification) -> None:
        size = spec.page_size_pt
        safe = to_points(spec.safe_margin)
        lines = wrap_text(page.caption.strip(), TEXT_FONT, CAPTION_SIZE, size - 4 * safe)
        step = CAPTION_SIZE * LINE_SPACING
        top_limit = size - 2 * safe - CAPTION_SIZE
        first = min(top_limit, size / 2 + (len(lines) - 1) * step / 2)

        c.setFillColorRGB(*CAPTION_COLOR)
        drawn = draw_centered_lines(c, lines, TEXT_FONT, CAPTION_SIZE, size / 2, first, step, min_baseline=2 * safe)
        if drawn < len(lines):
            self._logger.warning(
                f"Caption on content page {page.ordinal} truncated: {drawn}/{len(lines)} lines fit"
            )

    def _draw_image(
        self,
        c,
        image: LoadedImage,
        max_width: float,
        max_height: float,
        center_x: float,
        center_y: float,
    ) -> None:
        width, height = fit_within(image.width_px, image.height_px, max_width, max_height)
        if width <= 0 or height <= 0:
            return
        warn_if_low_resolution(image, width, height, self._logger)
        c.drawImage(image.reader, center_x - width / 2, center_y - height / 2, width=width, height=height)
