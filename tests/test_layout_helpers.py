"""Unit tests for text layout, image loading and theme helpers."""

import logging
from unittest.mock import MagicMock

import pytest
from PIL import Image
from reportlab.pdfbase.pdfmetrics import stringWidth

from conftest import png_bytes
from modules.image_loader import (
    decode_image,
    load_image,
    warn_if_low_resolution,
)
from modules.text_layout import (
    ELLIPSIS,
    draw_centered_lines,
    fit_within,
    truncate_to_width,
    wrap_text,
)
from modules.themes import THEMES, get_theme


FONT = "Helvetica"


class TestWrapText:

    def test_every_line_fits(self):
        text = "Once upon a time we drove to the sea and built a very tall sandcastle " * 3
        lines = wrap_text(text, FONT, 18, 200)
        assert len(lines) > 1
        assert all(stringWidth(line, FONT, 18) <= 200 for line in lines)
        assert " ".join(lines).split() == text.split()

    def test_explicit_newlines(self):
        assert wrap_text("Day one\nDay two", FONT, 12, 500) == ["Day one", "Day two"]

    def test_long_word_is_broken(self):
        word = "Supercalifragilisticexpialidocious" * 2
        lines = wrap_text(word, FONT, 18, 100)
        assert len(lines) > 1
        assert "".join(lines) == word
        assert all(stringWidth(line, FONT, 18) <= 100 for line in lines)

    def test_empty(self):
        assert wrap_text("", FONT, 12, 100) == []


class TestTruncate:

    def test_short_text_unchanged(self):
        assert truncate_to_width("Hi", FONT, 12, 100) == "Hi"

    def test_long_text_gets_ellipsis(self):
        result = truncate_to_width("A very long book title that will not fit", FONT, 12, 80)
        assert result.endswith(ELLIPSIS)
        assert stringWidth(result, FONT, 12) <= 80


class TestDrawCenteredLines:

    def test_stops_at_min_baseline(self):
        c = MagicMock()
        drawn = draw_centered_lines(c, ["a", "b", "c", "d"], FONT, 12, 100, 50, 20, min_baseline=15)
        assert drawn == 2
        assert c.drawCentredString.call_count == 2


class TestFitWithin:

    def test_landscape_into_square(self):
        assert fit_within(400, 200, 100, 100) == (100, 50)

    def test_upscales_small_images(self):
        assert fit_within(10, 10, 100, 50) == (50, 50)

    def test_degenerate(self):
        assert fit_within(0, 10, 100, 100) == (0.0, 0.0)


class TestImageLoader:

    def test_decode(self):
        image = decode_image("ref.png", png_bytes(64, 32))
        assert (image.width_px, image.height_px) == (64, 32)

    def test_decode_rejects_garbage(self):
        with pytest.raises(ValueError):
            decode_image("ref.png", b"not an image")

    def test_decode_rejects_oversized_image(self, monkeypatch):
        data = png_bytes(100, 100)
        monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 1000)
        with pytest.raises(ValueError, match="Cannot decode"):
            decode_image("ref.png", data)

    def test_load_missing_returns_none(self, store, logger):
        assert load_image(store, "a" * 32 + ".png", logger) is None
        assert load_image(store, None, logger) is None

    def test_load_corrupt_returns_none(self, store, logger):
        reference = store.store(b"garbage", "image/png")
        assert load_image(store, reference, logger) is None

    def test_low_resolution_warning(self, caplog, logger):
        image = decode_image("ref.png", png_bytes(300, 300))
        with caplog.at_level(logging.WARNING):
            dpi = warn_if_low_resolution(image, 72 * 8, 72 * 8, logger)
        assert dpi == pytest.approx(37.5)
        assert "DPI" in caplog.text


class TestThemes:

    def test_unknown_theme_falls_back(self):
        assert get_theme("no-such-theme") is get_theme(None)

    def test_gradient_endpoints(self):
        theme = next(iter(THEMES.values()))
        assert theme.gradient_color(0.0) == pytest.approx(theme.primary)
        assert theme.gradient_color(1.0) == pytest.approx(theme.secondary)
