from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import pymupdf as fitz
from reportlab.pdfbase import pdfmetrics

from inksign.adapters.fonts import FONT_SLOTS, FontResources
from inksign.types import FieldType, SignatureFont


logger = logging.getLogger(__name__)

MIN_FONT_SIZE = 8.0

# PDF base-14 fonts, always available without embedding.
BUILTIN_SANS = 'helv'
BUILTIN_SANS_BOLD = 'hebo'
BUILTIN_SERIF = 'tiro'

_BUILTIN_METRIC_NAMES = {
    BUILTIN_SANS: 'Helvetica',
    BUILTIN_SANS_BOLD: 'Helvetica-Bold',
    BUILTIN_SERIF: 'Times-Roman',
}

_PAGE_FONT_NAMES = {
    'body': 'InkBody',
    'cursive': 'InkCursive',
    'script': 'InkScript',
}


@dataclass(frozen=True)
class FontChoice:
    source: str
    size_cap: float
    size_ratio: float

    @property
    def is_builtin(self) -> bool:
        return self.source in _BUILTIN_METRIC_NAMES

    def size_for(self, height: float) -> float:
        return max(MIN_FONT_SIZE, min(self.size_cap, float(height) * self.size_ratio))


# Ordered by preference; the first candidate whose font is loaded wins.
SIGNATURE_TIERS: dict[SignatureFont, tuple[FontChoice, ...]] = {
    SignatureFont.signature: (
        FontChoice('body', 16.0, 0.7),
        FontChoice(BUILTIN_SANS, 16.0, 0.7),
    ),
    SignatureFont.signatura: (
        FontChoice('cursive', 18.0, 0.8),
        FontChoice(BUILTIN_SERIF, 20.0, 0.85),
    ),
    SignatureFont.signaturia: (
        FontChoice('script', 22.0, 0.9),
        FontChoice(BUILTIN_SERIF, 24.0, 0.95),
    ),
    SignatureFont.drawn: (
        FontChoice(BUILTIN_SANS_BOLD, 16.0, 0.7),
    ),
}

TEXT_FIELD_FONTS: dict[FieldType, tuple[str, ...]] = {
    FieldType.fullname: ('body', BUILTIN_SERIF),
    FieldType.title: (BUILTIN_SANS_BOLD,),
    FieldType.initials: (BUILTIN_SANS_BOLD,),
}
DEFAULT_TEXT_FONTS: tuple[str, ...] = ('body', BUILTIN_SANS)


def signature_tier(tag: SignatureFont | None) -> tuple[FontChoice, ...]:
    return SIGNATURE_TIERS.get(tag or SignatureFont.signature, SIGNATURE_TIERS[SignatureFont.signature])


def text_field_fonts(field_type: FieldType) -> tuple[str, ...]:
    return TEXT_FIELD_FONTS.get(field_type, DEFAULT_TEXT_FONTS)


@dataclass(frozen=True)
class BoundFont:
    source: str
    page_name: str


class DocumentFonts:
    """Binds process-wide font resources to the pages of one document."""

    def __init__(self, resources: FontResources | None = None):
        self.resources = resources or FontResources()
        self._measure_fonts: dict[str, fitz.Font] = {}

    def available(self, source: str) -> bool:
        if source in _BUILTIN_METRIC_NAMES:
            return True
        return source in FONT_SLOTS and self.resources.get(source) is not None

    def pick(self, candidates: Sequence[FontChoice]) -> FontChoice | None:
        for choice in candidates:
            if self.available(choice.source):
                return choice
        return None

    def bind(self, page, source: str) -> BoundFont | None:
        if source in _BUILTIN_METRIC_NAMES:
            return BoundFont(source=source, page_name=source)
        payload = self.resources.get(source)
        if payload is None:
            return None
        page_name = _PAGE_FONT_NAMES[source]
        try:
            page.insert_font(fontname=page_name, fontbuffer=payload)
        except Exception as exc:
            logger.debug('Failed to register font %s on page %s: %s', source, page.number, exc)
            return None
        return BoundFont(source=source, page_name=page_name)

    def bind_first(self, page, sources: Sequence[str]) -> BoundFont:
        for source in sources:
            bound = self.bind(page, source)
            if bound is not None:
                return bound
        return BoundFont(source=BUILTIN_SANS, page_name=BUILTIN_SANS)

    def _measure_font(self, source: str) -> fitz.Font | None:
        cached = self._measure_fonts.get(source)
        if cached is not None:
            return cached
        payload = self.resources.get(source)
        if payload is None:
            return None
        try:
            font = fitz.Font(fontbuffer=payload)
        except Exception:
            return None
        self._measure_fonts[source] = font
        return font

    def measure(self, text: str, *, source: str, font_size: float) -> float:
        text_value = str(text or '')
        if not text_value:
            return 0.0
        size = max(1.0, float(font_size))

        font = self._measure_font(source) if source in FONT_SLOTS else None
        if font is not None:
            try:
                measured = float(font.text_length(text_value, fontsize=size))
                if measured > 0:
                    return measured
            except Exception:
                pass

        if source in _BUILTIN_METRIC_NAMES:
            try:
                measured = float(fitz.get_text_length(text_value, fontname=source, fontsize=size))
                if measured > 0:
                    return measured
            except Exception:
                pass

        try:
            measured = float(
                pdfmetrics.stringWidth(text_value, _BUILTIN_METRIC_NAMES.get(source, 'Helvetica'), size)
            )
            if measured > 0:
                return measured
        except Exception:
            pass

        width = 0.0
        for char in text_value:
            if char.isspace():
                width += size * 0.45
            elif ord(char) > 127:
                width += size * 0.98
            else:
                width += size * 0.56
        return width

    def fit(self, text: str, *, source: str, font_size: float, max_width: float) -> str:
        """Truncate ``text`` with an ellipsis so it fits ``max_width`` points."""
        text_value = str(text or '')
        if self.measure(text_value, source=source, font_size=font_size) <= max_width:
            return text_value
        while text_value:
            text_value = text_value[:-1]
            candidate = f'{text_value.rstrip()}...'
            if self.measure(candidate, source=source, font_size=font_size) <= max_width:
                return candidate
        return ''
