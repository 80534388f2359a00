from __future__ import annotations

import base64
import binascii
import logging
from typing import Callable
from urllib.parse import unquote_to_bytes

import pymupdf as fitz

from inksign.render.fonts import BUILTIN_SANS_BOLD, MIN_FONT_SIZE, DocumentFonts, signature_tier, text_field_fonts
from inksign.render.geometry import PdfPlacement, to_page_point, to_page_rect
from inksign.types import FieldType, SignatureField, SubmittedValue


logger = logging.getLogger(__name__)

SIGNATURE_COLOR = (0.0, 0.0, 0.8)
TEXT_COLOR = (0.0, 0.0, 0.0)
DRAWN_PLACEHOLDER = '[Drawn Signature]'

# Horizontal bias applied to centered typed signatures, in points.
TYPED_SIGNATURE_LEFT_BIAS = 20.0
TEXT_FIELD_PADDING = 5.0

_IMAGE_MAGICS = {
    'png': b'\x89PNG\r\n\x1a\n',
    'jpeg': b'\xff\xd8\xff',
}


def decode_data_url(value: str) -> tuple[str, bytes]:
    """Split an image data URL into its image kind (``png``/``jpeg``) and raw bytes.

    Anything that is not declared as JPEG is treated as PNG.
    """
    header, sep, payload = str(value or '').partition(',')
    if not sep or not header.lower().startswith('data:'):
        raise ValueError('malformed data URL')

    params = [part.strip().lower() for part in header[5:].split(';')]
    mime = params[0] if params else ''
    kind = 'jpeg' if mime in ('image/jpeg', 'image/jpg') else 'png'

    if 'base64' in params[1:]:
        try:
            data = base64.b64decode(payload.strip())
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f'invalid base64 image payload: {exc}') from exc
    else:
        data = unquote_to_bytes(payload)
    if not data:
        raise ValueError('empty image payload')
    return kind, data


def fit_image(
    box_width: float,
    box_height: float,
    image_width: float,
    image_height: float,
) -> tuple[float, float, float, float]:
    """Return ``(dx, dy, width, height)`` of the image centered in the box, never upscaled."""
    scale = min(box_width / image_width, box_height / image_height, 1.0)
    width = image_width * scale
    height = image_height * scale
    return (box_width - width) / 2.0, (box_height - height) / 2.0, width, height


def text_field_font_size(height: float) -> float:
    return max(MIN_FONT_SIZE, min(12.0, float(height) * 0.6))


def placeholder_font_size(height: float) -> float:
    return max(MIN_FONT_SIZE, min(12.0, float(height) * 0.4))


def _render_image_signature(
    page,
    value: SubmittedValue,
    placement: PdfPlacement,
    fonts: DocumentFonts,
) -> None:
    try:
        kind, data = decode_data_url(value.value)
        if not data.startswith(_IMAGE_MAGICS[kind]):
            raise ValueError(f'image payload is not {kind}')
        pixmap = fitz.Pixmap(data)
        dx, dy, width, height = fit_image(placement.width, placement.height, pixmap.width, pixmap.height)
        rect = to_page_rect(page, placement.x + dx, placement.y + dy, width, height)
        page.insert_image(rect, stream=data, keep_proportion=False, overlay=True)
    except Exception as exc:
        logger.warning('Failed to embed signature image for field %s: %s', value.field_id, exc)
        size = placeholder_font_size(placement.height)
        page.insert_text(
            to_page_point(page, placement.x, placement.y + placement.height * 0.3),
            DRAWN_PLACEHOLDER,
            fontname=BUILTIN_SANS_BOLD,
            fontsize=size,
            color=SIGNATURE_COLOR,
        )


def _render_typed_signature(
    page,
    value: SubmittedValue,
    placement: PdfPlacement,
    fonts: DocumentFonts,
) -> None:
    text = value.value.strip()
    for choice in signature_tier(value.signature_font):
        bound = fonts.bind(page, choice.source)
        if bound is not None:
            break
    else:
        raise RuntimeError(f'no usable font for signature style {value.font!r}')

    size = choice.size_for(placement.height)
    text_width = fonts.measure(text, source=bound.source, font_size=size)
    x = placement.x + (placement.width - text_width) / 2.0 - TYPED_SIGNATURE_LEFT_BIAS
    baseline = placement.y + size * 0.2
    page.insert_text(
        to_page_point(page, x, baseline),
        text,
        fontname=bound.page_name,
        fontsize=size,
        color=SIGNATURE_COLOR,
    )


def _render_signature(
    page,
    field: SignatureField,
    value: SubmittedValue,
    placement: PdfPlacement,
    fonts: DocumentFonts,
) -> None:
    if value.is_image:
        _render_image_signature(page, value, placement, fonts)
    else:
        _render_typed_signature(page, value, placement, fonts)


def _render_text(
    page,
    field: SignatureField,
    value: SubmittedValue,
    placement: PdfPlacement,
    fonts: DocumentFonts,
) -> None:
    size = text_field_font_size(placement.height)
    bound = fonts.bind_first(page, text_field_fonts(field.field_type))
    baseline = max(placement.top - size, placement.y)
    page.insert_text(
        to_page_point(page, placement.x + TEXT_FIELD_PADDING, baseline),
        value.value.strip(),
        fontname=bound.page_name,
        fontsize=size,
        color=TEXT_COLOR,
    )


FieldRenderer = Callable[[object, SignatureField, SubmittedValue, PdfPlacement, DocumentFonts], None]

_RENDERERS: dict[FieldType, FieldRenderer] = {
    FieldType.signature: _render_signature,
}


def renderer_for(field_type: FieldType) -> FieldRenderer:
    return _RENDERERS.get(field_type, _render_text)


def render_field(
    page,
    field: SignatureField,
    value: SubmittedValue | None,
    placement: PdfPlacement,
    fonts: DocumentFonts,
) -> bool:
    """Draw ``value`` into the field box. Returns False when there was nothing to draw."""
    if value is None or value.is_blank:
        return False
    renderer_for(field.field_type)(page, field, value, placement, fonts)
    return True
