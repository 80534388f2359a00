from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

import pymupdf as fitz

from inksign.adapters.fonts import FontResources
from inksign.render.fields import render_field
from inksign.render.fonts import DocumentFonts
from inksign.render.geometry import VIEWER_REFERENCE_WIDTH, convert
from inksign.types import SignatureField, SubmittedValue


logger = logging.getLogger(__name__)


@dataclass
class AssemblyReport:
    rendered: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, list[str]]:
        return {'rendered': list(self.rendered), 'skipped': list(self.skipped), 'failed': list(self.failed)}


def open_pdf(pdf_bytes: bytes):
    if not pdf_bytes:
        raise RuntimeError('PDF payload is empty')
    try:
        doc = fitz.open(stream=pdf_bytes, filetype='pdf')
    except Exception as exc:
        raise RuntimeError(f'Unable to open PDF: {exc}') from exc

    if doc.is_encrypted:
        authenticated = False
        try:
            authenticated = bool(doc.authenticate(''))
        except Exception:
            authenticated = False
        if not authenticated:
            doc.close()
            raise RuntimeError('PDF is encrypted and cannot be opened without a password')
    return doc


def index_values(values: Iterable[SubmittedValue]) -> dict[str, SubmittedValue]:
    # Later submissions for the same field win.
    return {value.field_id: value for value in values}


def assemble_with_report(
    pdf_bytes: bytes,
    fields: list[SignatureField],
    values: list[SubmittedValue],
    *,
    fonts: FontResources | None = None,
    reference_width: float = VIEWER_REFERENCE_WIDTH,
) -> tuple[bytes, AssemblyReport]:
    report = AssemblyReport()
    by_field_id = index_values(values)
    document_fonts = DocumentFonts(fonts)

    doc = open_pdf(pdf_bytes)
    try:
        page_count = doc.page_count
        logger.info('Assembling %s field(s) onto %s page(s)', len(fields), page_count)

        for signature_field in fields:
            value = by_field_id.get(signature_field.id)
            if value is None or value.is_blank:
                report.skipped.append(signature_field.id)
                continue

            page_index = signature_field.page_number - 1
            if page_index < 0 or page_index >= page_count:
                logger.warning(
                    'Field %s references page %s but document has %s page(s); skipped',
                    signature_field.id,
                    signature_field.page_number,
                    page_count,
                )
                report.skipped.append(signature_field.id)
                continue

            try:
                page = doc[page_index]
                placement = convert(
                    signature_field,
                    page.rect.width,
                    page.rect.height,
                    reference_width=reference_width,
                )
                logger.debug(
                    'Field %s (%s) viewer=(%s, %s, %s, %s) pdf=(%.2f, %.2f, %.2f, %.2f) scale=%.4f',
                    signature_field.id,
                    signature_field.field_type.value,
                    signature_field.x_position,
                    signature_field.y_position,
                    signature_field.width,
                    signature_field.height,
                    placement.x,
                    placement.y,
                    placement.width,
                    placement.height,
                    placement.scale,
                )
                if render_field(page, signature_field, value, placement, document_fonts):
                    report.rendered.append(signature_field.id)
                else:
                    report.skipped.append(signature_field.id)
            except Exception:
                logger.exception('Failed to render field %s', signature_field.id)
                report.failed.append(signature_field.id)

        try:
            output = doc.tobytes(garbage=3, deflate=True)
        except Exception as exc:
            raise RuntimeError(f'Unable to save PDF: {exc}') from exc
    finally:
        doc.close()

    logger.info(
        'Assembly finished: rendered=%s skipped=%s failed=%s',
        len(report.rendered),
        len(report.skipped),
        len(report.failed),
    )
    return output, report


def assemble(
    pdf_bytes: bytes,
    fields: list[SignatureField],
    values: list[SubmittedValue],
    *,
    fonts: FontResources | None = None,
    reference_width: float = VIEWER_REFERENCE_WIDTH,
) -> bytes:
    output, _ = assemble_with_report(
        pdf_bytes,
        fields,
        values,
        fonts=fonts,
        reference_width=reference_width,
    )
    return output
