"""Rendering modules for StoryPrint: layout helpers, image loading, compositors."""

__all__ = [
    "cover_compositor",
    "image_loader",
    "interior_compositor",
    "pdf_analyzer",
    "text_layout",
    "themes",
]
