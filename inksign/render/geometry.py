from __future__ import annotations

from dataclasses import dataclass

import pymupdf as fitz

from inksign.types import SignatureField


VIEWER_REFERENCE_WIDTH = 800.0


@dataclass(frozen=True)
class PdfPlacement:
    """A field box in PDF space: origin bottom-left, units of the page."""

    x: float
    y: float
    width: float
    height: float
    scale: float

    @property
    def top(self) -> float:
        return self.y + self.height


def viewer_scale(page_width: float, *, reference_width: float = VIEWER_REFERENCE_WIDTH) -> float:
    return float(page_width) / float(reference_width or VIEWER_REFERENCE_WIDTH)


def convert(
    field: SignatureField,
    page_width: float,
    page_height: float,
    *,
    reference_width: float = VIEWER_REFERENCE_WIDTH,
) -> PdfPlacement:
    scale = viewer_scale(page_width, reference_width=reference_width)
    scaled_x = field.x_position * scale
    scaled_y = field.y_position * scale
    scaled_width = field.width * scale
    scaled_height = field.height * scale
    return PdfPlacement(
        x=scaled_x,
        y=float(page_height) - (scaled_y + scaled_height),
        width=scaled_width,
        height=scaled_height,
        scale=scale,
    )


# PyMuPDF page space is y-down from the top-left corner of the page.
def to_page_point(page, x: float, y: float):
    return fitz.Point(x, page.rect.height - y)


def to_page_rect(page, x: float, y: float, width: float, height: float):
    page_height = page.rect.height
    return fitz.Rect(x, page_height - (y + height), x + width, page_height - y)
