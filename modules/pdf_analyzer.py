"""Post-generation PDF checks: page count and page size, read back with pypdf."""

from __future__ import annotations

import io
from pathlib import Path
from typing import Dict, Any, Union

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from core.exceptions import GenerationError, PageCountMismatchError

# Page size comparisons allow for float rounding in the PDF mediabox
SIZE_TOLERANCE_IN = 0.01

PdfSource = Union[bytes, str, Path]


class PDFAnalyzer:
    """Extract page count and page dimensions from a finished PDF."""

    def analyze(self, source: PdfSource) -> Dict[str, Any]:
        info: Dict[str, Any] = {"pages": 0, "page_dimensions": []}

        if isinstance(source, (bytes, bytearray)):
            info["size_kb"] = round(len(source) / 1024, 2)
            reader = PdfReader(io.BytesIO(source))
        else:
            path = Path(source)
            info["path"] = str(path)
            info["size_kb"] = round(path.stat().st_size / 1024, 2) if path.exists() else 0
            reader = PdfReader(str(path))

        info["pages"] = len(reader.pages)
        for page in reader.pages:
            width = round(float(page.mediabox.width) / 72, 4)
            height = round(float(page.mediabox.height) / 72, 4)
            info["page_dimensions"].append({"width_in": width, "height_in": height})
        return info

    def verify(
        self,
        data: bytes,
        kind: str,
        expected_pages: int,
        expected_width_in: float,
        expected_height_in: float,
    ) -> Dict[str, Any]:
        """
        Re-read a generated PDF and check it against what was planned.

        Raises:
            PageCountMismatchError: interior page count differs
            GenerationError: unreadable PDF, wrong cover page count, or a
                page of the wrong size
        """
        try:
            info = self.analyze(data)
        except (PdfReadError, ValueError) as exc:
            raise GenerationError(f"Generated {kind} PDF is unreadable: {exc}", kind=kind) from exc

        if info["pages"] != expected_pages:
            if kind == "interior":
                raise PageCountMismatchError(expected_pages, info["pages"])
            raise GenerationError(
                f"Generated {kind} has {info['pages']} pages, expected {expected_pages}",
                kind=kind,
                details={"expected": expected_pages, "actual": info["pages"]},
            )

        for number, dims in enumerate(info["page_dimensions"], start=1):
            if (abs(dims["width_in"] - expected_width_in) > SIZE_TOLERANCE_IN
                    or abs(dims["height_in"] - expected_height_in) > SIZE_TOLERANCE_IN):
                raise GenerationError(
                    f"Page {number} of {kind} is {dims['width_in']}x{dims['height_in']}in, "
                    f"expected {expected_width_in}x{expected_height_in}in",
                    kind=kind,
                )

        return info

    def extract_text(self, data: bytes) -> list:
        """Text of every page, in order (used to compare regenerated documents)."""
        reader = PdfReader(io.BytesIO(data))
        return [page.extract_text() or "" for page in reader.pages]
