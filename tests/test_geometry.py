"""
Unit tests for the print geometry calculator.

Pure functions only: page counts, spine widths and cover layout.
"""

import pytest

from core.geometry import (
    BLEED_IN,
    MAX_PRINTED_PAGES,
    MAX_SPINE_WIDTH_IN,
    MIN_PRINTED_PAGES,
    SPINE_WIDTH_TABLE,
    TRIM_SIZE_IN,
    WRAP_MARGIN_IN,
    cover_dimensions,
    matter_pages,
    print_specification,
    printed_page_count,
    spine_width,
)


class TestPrintedPageCount:
    """Printed page count from content page count."""

    def test_short_book_hits_minimum(self):
        """5 content pages -> 24 printed pages, 4 pages of front and back matter."""
        assert printed_page_count(5) == 24
        assert matter_pages(5) == 4

    def test_forty_content_pages(self):
        assert printed_page_count(40) == 2 + 80 + 2 == 84

    def test_sixty_content_pages(self):
        assert printed_page_count(60) == 2 + 120 + 2 == 124

    @pytest.mark.parametrize("content", [1, 9, 10])
    def test_matter_boundaries(self, content):
        expected_matter = 4 if content <= 9 else 2
        assert matter_pages(content) == expected_matter
        expected = max(MIN_PRINTED_PAGES, 2 * expected_matter + 2 * content)
        assert printed_page_count(content) == expected + expected % 2

    def test_always_even_and_at_least_minimum(self):
        for content in range(1, 399):
            pages = printed_page_count(content)
            assert pages % 2 == 0, content
            assert pages >= MIN_PRINTED_PAGES, content

    def test_covers_every_content_page_twice(self):
        for content in range(1, 399):
            assert printed_page_count(content) >= 2 * matter_pages(content) + 2 * content

    @pytest.mark.parametrize("content", [0, -3])
    def test_rejects_empty_book(self, content):
        with pytest.raises(ValueError):
            printed_page_count(content)

    def test_rejects_books_above_vendor_maximum(self):
        assert printed_page_count(398) == MAX_PRINTED_PAGES
        with pytest.raises(ValueError):
            printed_page_count(399)


class TestSpineWidth:
    """Spine width step function."""

    def test_eighty_four_pages(self):
        assert spine_width(84) == 0.25

    def test_one_twenty_four_pages(self):
        assert spine_width(124) == 0.5

    @pytest.mark.parametrize("pages,width", [
        (24, 0.25), (85, 0.5), (140, 0.5), (141, 0.625), (168, 0.625),
        (169, 0.75), (180, 0.75), (194, 0.75), (222, 0.75), (250, 0.75), (800, 0.75),
    ])
    def test_band_edges(self, pages, width):
        assert spine_width(pages) == width

    def test_widest_spine_above_last_band(self):
        last_edge = SPINE_WIDTH_TABLE[-1][0]
        for pages in range(last_edge + 1, MAX_PRINTED_PAGES + 1):
            assert spine_width(pages) == MAX_SPINE_WIDTH_IN

    def test_monotonically_non_decreasing(self):
        widths = [spine_width(pages) for pages in range(1, MAX_PRINTED_PAGES + 1)]
        assert all(a <= b for a, b in zip(widths, widths[1:]))

    @pytest.mark.parametrize("pages", [0, MAX_PRINTED_PAGES + 2])
    def test_out_of_range(self, pages):
        with pytest.raises(ValueError):
            spine_width(pages)


class TestCoverDimensions:
    """Wrap-around cover layout."""

    def test_width_and_height_formula(self):
        cover = cover_dimensions(spine=0.5)
        assert cover.width == pytest.approx(2 * BLEED_IN + 4 * WRAP_MARGIN_IN + 2 * TRIM_SIZE_IN + 0.5)
        assert cover.height == pytest.approx(2 * BLEED_IN + 2 * WRAP_MARGIN_IN + TRIM_SIZE_IN)

    def test_panel_offsets(self):
        cover = cover_dimensions(spine=0.25)
        assert cover.back_x == pytest.approx(0.875)
        assert cover.spine_x == pytest.approx(0.875 + 8.5 + 0.75)
        assert cover.front_x == pytest.approx(cover.spine_x + 0.25 + 0.75)

    def test_segments_tile_width_for_every_spine_band(self):
        edges = [max_pages for max_pages, _ in SPINE_WIDTH_TABLE]
        pages_to_check = sorted({MIN_PRINTED_PAGES, MAX_PRINTED_PAGES} | set(edges) | {edge + 1 for edge in edges})
        for pages in pages_to_check:
            cover = cover_dimensions(spine=spine_width(pages))
            segments = cover.segments()
            assert len(segments) == 9
            assert segments[0][1] == 0.0
            for (_, left, width), (_, next_left, _) in zip(segments, segments[1:]):
                assert left + width == pytest.approx(next_left)
            _, last_left, last_width = segments[-1]
            assert last_left + last_width == pytest.approx(cover.width)
            assert sum(width for _, _, width in segments) == pytest.approx(cover.width)

    def test_spine_text_threshold(self):
        assert not cover_dimensions(spine=0.25).spine_has_text
        assert cover_dimensions(spine=0.5).spine_has_text

    def test_rejects_negative_inputs(self):
        with pytest.raises(ValueError):
            cover_dimensions(spine=-0.1)


class TestPrintSpecification:
    """Bundled specification used by both compositors."""

    def test_forty_page_book(self):
        spec = print_specification(40)
        assert spec.printed_page_count == 84
        assert spec.spine_width == 0.25
        assert spec.cover.spine_width == spec.spine_width
        assert spec.page_size == pytest.approx(8.75)
        assert spec.page_size_pt == pytest.approx(630.0)
        assert not spec.has_filler_pages

    def test_short_book_has_filler_pages(self):
        assert print_specification(9).has_filler_pages

    def test_to_dict(self):
        data = print_specification(60).to_dict()
        assert data["printed_page_count"] == 124
        assert data["spine_width_in"] == 0.5
