"""
Text and box layout helpers shared by both compositors.

Widths come from the font's glyph metrics (reportlab's stringWidth), so a
wrapped line is never wider than the box it is drawn into.
"""

from __future__ import annotations

from typing import List, Tuple

from reportlab.pdfbase.pdfmetrics import stringWidth

ELLIPSIS = "..."


def wrap_text(text: str, font: str, size: float, max_width: float) -> List[str]:
    """
    Greedy word wrap.

    Explicit newlines start a new line. A single word wider than max_width
    is broken at character level instead of overflowing.
    """
    if not text:
        return []

    lines: List[str] = []
    for paragraph in text.splitlines():
        words = paragraph.split()
        if not words:
            lines.append("")
            continue

        current: List[str] = []
        for word in words:
            candidate = " ".join(current + [word])
            if stringWidth(candidate, font, size) <= max_width:
                current.append(word)
                continue

            if current:
                lines.append(" ".join(current))
                current = []

            if stringWidth(word, font, size) <= max_width:
                current = [word]
            else:
                pieces = _break_word(word, font, size, max_width)
                lines.extend(pieces[:-1])
                current = [pieces[-1]]

        if current:
            lines.append(" ".join(current))

    return lines


def _break_word(word: str, font: str, size: float, max_width: float) -> List[str]:
    pieces: List[str] = []
    chunk = ""
    for char in word:
        if chunk and stringWidth(chunk + char, font, size) > max_width:
            pieces.append(chunk)
            chunk = char
        else:
            chunk += char
    pieces.append(chunk)
    return pieces


def truncate_to_width(text: str, font: str, size: float, max_width: float) -> str:
    """Shorten text with a trailing ellipsis until it fits max_width."""
    if stringWidth(text, font, size) <= max_width:
        return text
    shortened = text
    while shortened and stringWidth(shortened + ELLIPSIS, font, size) > max_width:
        shortened = shortened[:-1]
    shortened = shortened.rstrip()
    return shortened + ELLIPSIS if shortened else ""


def draw_centered_lines(
    c,
    lines: List[str],
    font: str,
    size: float,
    center_x: float,
    first_baseline: float,
    line_step: float,
    min_baseline: float = 0.0,
) -> int:
    """
    Draw lines centred on center_x, top to bottom.

    Lines whose baseline would fall under min_baseline are not drawn.
    Returns the number of lines drawn.
    """
    c.setFont(font, size)
    y = first_baseline
    drawn = 0
    for line in lines:
        if y < min_baseline:
            break
        c.drawCentredString(center_x, y, line)
        y -= line_step
        drawn += 1
    return drawn


def fit_within(
    width: float, height: float, max_width: float, max_height: float
) -> Tuple[float, float]:
    """
    Scale (width, height) to fit inside the box, preserving aspect ratio.

    Images are scaled up as well as down so they fill the box.
    """
    if width <= 0 or height <= 0:
        return (0.0, 0.0)
    scale = min(max_width / width, max_height / height)
    return (width * scale, height * scale)
