"""Cover/interior colour themes."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple

from models.book import DEFAULT_THEME

RGB = Tuple[float, float, float]


def _rgb(r: int, g: int, b: int) -> RGB:
    return (r / 255.0, g / 255.0, b / 255.0)


@dataclass(frozen=True)
class Theme:
    """Two-colour palette; the cover gradient runs primary -> secondary."""

    name: str
    primary: RGB
    secondary: RGB

    def gradient_color(self, t: float) -> RGB:
        """Linear blend at position t in [0, 1]."""
        t = min(1.0, max(0.0, t))
        return tuple(p + (s - p) * t for p, s in zip(self.primary, self.secondary))  # type: ignore[return-value]


THEMES: Dict[str, Theme] = {
    "purple-magic": Theme("purple-magic", _rgb(139, 92, 246), _rgb(236, 72, 153)),
    "ocean-adventure": Theme("ocean-adventure", _rgb(59, 130, 246), _rgb(6, 182, 212)),
    "sunset-wonder": Theme("sunset-wonder", _rgb(249, 115, 22), _rgb(234, 179, 8)),
    "forest-dreams": Theme("forest-dreams", _rgb(34, 197, 94), _rgb(16, 185, 129)),
}


def get_theme(name: str | None) -> Theme:
    """Look up a theme; unknown or empty names fall back to the default."""
    return THEMES.get(name or DEFAULT_THEME, THEMES[DEFAULT_THEME])
