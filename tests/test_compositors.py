"""
Tests for the interior and cover compositors.

Documents are rendered for real (reportlab) and read back with pypdf.
"""

import logging

import pytest
from PIL import Image

from conftest import make_book, make_pages, png_bytes
from core.exceptions import GenerationError, InvalidBookError, PageCountMismatchError
from core.geometry import print_specification
from models.artifact import ArtifactKind
from models.book import ContentPage, PageImage
from modules.cover_compositor import DEFAULT_BACK_QUOTE, CoverCompositor
from modules.interior_compositor import (
    DEFAULT_DEDICATION,
    END_TEXT,
    InteriorCompositor,
    validate_book_content,
)
from modules.pdf_analyzer import PDFAnalyzer


# Fixtures

@pytest.fixture
def analyzer():
    return PDFAnalyzer()


@pytest.fixture
def interior(store, logger):
    return InteriorCompositor(store, logger)


@pytest.fixture
def cover(store, logger):
    return CoverCompositor(store, logger)


@pytest.fixture
def image_reference(store):
    return store.store(png_bytes(300, 200), "image/png")


class TestValidateBookContent:

    def test_sorts_pages(self):
        book = make_book(3)
        pages = list(reversed(make_pages(3)))
        assert [p.ordinal for p in validate_book_content(book, pages)] == [1, 2, 3]

    def test_rejects_missing_title(self):
        with pytest.raises(InvalidBookError):
            validate_book_content(make_book(1, title="  "), make_pages(1))

    def test_rejects_zero_content_pages(self):
        with pytest.raises(InvalidBookError):
            validate_book_content(make_book(0), [])

    def test_rejects_gap_in_ordinals(self):
        pages = [ContentPage(ordinal=1), ContentPage(ordinal=3)]
        with pytest.raises(InvalidBookError):
            validate_book_content(make_book(2), pages)

    def test_rejects_duplicate_ordinals(self):
        pages = [ContentPage(ordinal=1), ContentPage(ordinal=1)]
        with pytest.raises(InvalidBookError):
            validate_book_content(make_book(2), pages)

    def test_rejects_page_count_mismatch(self):
        with pytest.raises(InvalidBookError):
            validate_book_content(make_book(4), make_pages(3))


class TestInteriorCompositor:

    @pytest.mark.parametrize("content", [1, 5, 9, 10, 40])
    def test_page_count_matches_specification(self, interior, analyzer, content):
        book = make_book(content)
        spec = print_specification(content)

        artifact = interior.compose(book, make_pages(content), spec)

        assert artifact.kind is ArtifactKind.INTERIOR
        assert artifact.page_count == spec.printed_page_count
        info = analyzer.analyze(artifact.data)
        assert info["pages"] == spec.printed_page_count
        for dims in info["page_dimensions"]:
            assert dims["width_in"] == pytest.approx(8.75, abs=0.01)
            assert dims["height_in"] == pytest.approx(8.75, abs=0.01)

    def test_page_order(self, interior, analyzer, image_reference):
        book = make_book(2, title="Beach Days", dedication="For Sam")
        pages = make_pages(2, image_reference=image_reference, caption="Sandcastles all day")
        spec = print_specification(2)

        texts = analyzer.extract_text(interior.compose(book, pages, spec).data)

        assert "Beach Days" in texts[0]
        assert "For Sam" in texts[1]
        # Short book: two filler pages, then spreads starting at page 5
        assert texts[2].strip() == "" and texts[3].strip() == ""
        assert "Stop 1" in texts[4]
        assert "Sandcastles" in texts[5]
        assert "Stop 2" in texts[6]
        assert END_TEXT in texts[8]
        assert all(not text.strip() for text in texts[9:])

    def test_default_dedication(self, interior, analyzer):
        texts = analyzer.extract_text(interior.compose(make_book(1), make_pages(1), print_specification(1)).data)
        assert DEFAULT_DEDICATION in texts[1]

    def test_regeneration_produces_same_text(self, interior, analyzer, image_reference):
        book = make_book(3)
        pages = make_pages(3, image_reference=image_reference)
        spec = print_specification(3)

        first = interior.compose(book, pages, spec)
        second = interior.compose(book, pages, spec)

        assert analyzer.extract_text(first.data) == analyzer.extract_text(second.data)

    def test_missing_image_leaves_slot_empty(self, interior, analyzer, caplog):
        pages = make_pages(1, image_reference="0" * 32 + ".png")
        with caplog.at_level(logging.WARNING):
            artifact = interior.compose(make_book(1), pages, print_specification(1))
        assert analyzer.analyze(artifact.data)["pages"] == 24
        assert "unavailable" in caplog.text

    def test_oversized_image_leaves_slot_empty(self, interior, analyzer, store, monkeypatch, caplog):
        reference = store.store(png_bytes(100, 100), "image/png")
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
        pages = make_pages(1, image_reference=reference, caption="Still printed")

        with caplog.at_level(logging.WARNING):
            artifact = interior.compose(make_book(1), pages, print_specification(1))

        assert analyzer.analyze(artifact.data)["pages"] == 24
        assert "Still printed" in "".join(analyzer.extract_text(artifact.data))
        assert "Cannot decode" in caplog.text

    def test_second_image_replaces_caption(self, interior, analyzer, store, image_reference):
        second = store.store(png_bytes(), "image/png")
        pages = [ContentPage(
            ordinal=1,
            title="Harbor",
            caption="Caption that should not print",
            images=(PageImage(original_reference=image_reference), PageImage(cartoon_reference=second)),
        )]
        texts = analyzer.extract_text(interior.compose(make_book(1), pages, print_specification(1)).data)
        assert "Caption that should not print" not in "".join(texts)

    def test_long_caption_is_wrapped(self, interior, analyzer):
        caption = "We walked along the shore " * 12
        texts = analyzer.extract_text(
            interior.compose(make_book(1), make_pages(1, caption=caption), print_specification(1)).data
        )
        assert texts[5].count("\n") >= 2

    def test_specification_mismatch(self, interior):
        with pytest.raises(GenerationError):
            interior.compose(make_book(3), make_pages(3), print_specification(4))

    def test_verification_catches_wrong_page_count(self, analyzer, interior):
        artifact = interior.compose(make_book(1), make_pages(1), print_specification(1))
        with pytest.raises(PageCountMismatchError):
            analyzer.verify(artifact.data, "interior", 26, 8.75, 8.75)


class TestCoverCompositor:

    @pytest.mark.parametrize("content", [5, 40, 60, 200])
    def test_single_page_at_cover_size(self, cover, analyzer, content):
        spec = print_specification(content)
        artifact = cover.compose(make_book(content), spec)

        assert artifact.kind is ArtifactKind.COVER
        info = analyzer.analyze(artifact.data)
        assert info["pages"] == 1
        assert info["page_dimensions"][0]["width_in"] == pytest.approx(spec.cover.width, abs=0.01)
        assert info["page_dimensions"][0]["height_in"] == pytest.approx(spec.cover.height, abs=0.01)

    def test_front_and_back_text(self, cover, analyzer, image_reference):
        book = make_book(
            40, title="Mountain Summer", subtitle="A family adventure",
            author_line="by the Doe family", hero_image_reference=image_reference,
        )
        text = analyzer.extract_text(cover.compose(book, print_specification(40)).data)[0]

        assert "Mountain Summer" in text
        assert "A family adventure" in text
        assert "by the Doe family" in text
        assert DEFAULT_BACK_QUOTE in text

    def test_dedication_on_back(self, cover, analyzer):
        book = make_book(5, dedication="For Grandma")
        text = analyzer.extract_text(cover.compose(book, print_specification(5)).data)[0]
        assert "For Grandma" in text
        assert DEFAULT_BACK_QUOTE not in text

    def test_spine_text_only_when_wide_enough(self, cover, analyzer):
        narrow = analyzer.extract_text(cover.compose(make_book(40, title="Spine Test"), print_specification(40)).data)[0]
        wide = analyzer.extract_text(cover.compose(make_book(60, title="Spine Test"), print_specification(60)).data)[0]
        assert narrow.count("Spine Test") == 1
        assert wide.count("Spine Test") == 2

    def test_missing_hero_image(self, cover, analyzer):
        book = make_book(5, hero_image_reference="f" * 32 + ".png")
        artifact = cover.compose(book, print_specification(5))
        assert analyzer.analyze(artifact.data)["pages"] == 1

    def test_rejects_untitled_book(self, cover):
        with pytest.raises(InvalidBookError):
            cover.compose(make_book(5, title=""), print_specification(5))
