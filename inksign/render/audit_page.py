from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable

import pymupdf as fitz

from inksign.config import Settings, get_settings
from inksign.render.assembler import open_pdf
from inksign.render.fonts import BUILTIN_SANS, BUILTIN_SANS_BOLD, DocumentFonts
from inksign.types import ActivityAction, ActivityRecord, DocumentDescriptor, SubmittedValue, as_utc, utcnow


logger = logging.getLogger(__name__)

PRIMARY_BLUE = (0.18, 0.36, 0.61)
DARK_GRAY = (0.2, 0.2, 0.2)
MEDIUM_GRAY = (0.5, 0.5, 0.5)
LIGHT_GRAY = (0.88, 0.88, 0.88)
DETAIL_GRAY = (0.6, 0.6, 0.6)
SUCCESS_GREEN = (0.2, 0.6, 0.2)
WHITE = (1.0, 1.0, 1.0)

MARGIN = 50.0
HISTORY_TOP = 350.0
ACTIVITY_SPACING = 40.0
SIGNATURE_SPACING = 32.0
SECURITY_SPACING = 20.0
NOTICE_SPACING = 20.0

RECONSTRUCTED_NOTICE = 'Activity history unavailable - reconstructed timeline'
UNAVAILABLE_NOTICE = 'Activity history unavailable'
EMPTY_HISTORY_NOTICE = 'No recorded activity.'

ActivityLoader = Callable[[str], list[ActivityRecord]]


@dataclass(frozen=True)
class ActivityDescription:
    label: str
    color: tuple[float, float, float]
    detail: str | None = None


@dataclass
class ActivityHistory:
    records: list[ActivityRecord] = field(default_factory=list)
    unavailable: bool = False

    @property
    def notice(self) -> str | None:
        if self.unavailable:
            return RECONSTRUCTED_NOTICE if self.records else UNAVAILABLE_NOTICE
        if not self.records:
            return EMPTY_HISTORY_NOTICE
        return None


def format_timestamp(dt: datetime) -> str:
    return as_utc(dt).astimezone(timezone.utc).strftime('%m/%d/%Y, %I:%M %p UTC')


def describe_activity(record: ActivityRecord, document: DocumentDescriptor) -> ActivityDescription:
    details = record.details or {}
    action = record.action

    if action == ActivityAction.created.value:
        detail = None
        if details.get('createdBy'):
            detail = f'Created by {details["createdBy"]}'
        elif details.get('fileName'):
            detail = f'File: {details["fileName"]}'
        return ActivityDescription('Document created', PRIMARY_BLUE, detail)

    if action == ActivityAction.sent.value:
        target = details.get('recipientEmail') or document.recipient_email or 'recipient'
        detail = None
        if details.get('sentBy'):
            detail = f'Sent by {details["sentBy"]}'
        elif details.get('fieldsCount'):
            detail = f'{details["fieldsCount"]} signature field(s)'
        return ActivityDescription(f'Document sent to {target}', (0.2, 0.5, 0.8), detail)

    if action == ActivityAction.viewed.value:
        if details.get('device'):
            detail = f'Viewed using {details["device"]}'
        else:
            detail = f'Viewed by {document.recipient_email or "recipient"}'
        return ActivityDescription('Document viewed by recipient', (0.9, 0.6, 0.1), detail)

    if action == ActivityAction.signed.value:
        detail = None
        if details.get('signatureCount'):
            detail = f'{details["signatureCount"]} signature(s) applied'
        elif details.get('fieldsCount'):
            detail = f'{details["fieldsCount"]} field(s) signed'
        return ActivityDescription('Document signed by recipient', SUCCESS_GREEN, detail)

    if action == ActivityAction.completed.value:
        detail = None
        if details.get('finalStatus'):
            detail = str(details['finalStatus'])
        elif details.get('action') == 'signing_process_completed':
            detail = 'All signatures applied successfully'
        return ActivityDescription('Document signing completed', SUCCESS_GREEN, detail)

    if action == ActivityAction.downloaded.value:
        detail = f'Downloaded by {details["downloadedBy"]}' if details.get('downloadedBy') else None
        return ActivityDescription('Signed PDF downloaded', (0.4, 0.7, 0.4), detail)

    if action == ActivityAction.cancelled.value:
        detail = f'Reason: {details["reason"]}' if details.get('reason') else None
        return ActivityDescription('Document cancelled', (0.8, 0.2, 0.2), detail)

    return ActivityDescription(f'Document {action.lower()}', MEDIUM_GRAY)


def synthetic_activities(
    document: DocumentDescriptor,
    *,
    actor: str,
    signature_count: int = 0,
) -> list[ActivityRecord]:
    """Reconstruct a plausible lifecycle from the document creation time.

    Used only when the stored history cannot be read; the audit page labels
    such a timeline as reconstructed.
    """
    base = document.created_at
    recipient_email = document.recipient_email
    timeline = [
        (
            ActivityAction.created,
            timedelta(0),
            {'fileName': document.file_name or document.name, 'createdBy': actor},
        ),
        (
            ActivityAction.sent,
            timedelta(minutes=5),
            {'recipientEmail': recipient_email, 'sentBy': actor, 'method': 'email'},
        ),
        (
            ActivityAction.viewed,
            timedelta(hours=2),
            {'viewedBy': recipient_email},
        ),
        (
            ActivityAction.signed,
            timedelta(hours=3),
            {'signedBy': document.recipient_name, 'signatureCount': signature_count or None},
        ),
        (
            ActivityAction.completed,
            timedelta(hours=3, seconds=30),
            {'completedBy': actor, 'finalStatus': 'Successfully Signed', 'action': 'signing_process_completed'},
        ),
        (
            ActivityAction.downloaded,
            timedelta(hours=4),
            {'downloadedBy': actor, 'action': 'signed_pdf_downloaded'},
        ),
    ]
    return [
        ActivityRecord(
            action=action,
            created_at=base + offset,
            details={key: value for key, value in details.items() if value is not None},
        )
        for action, offset, details in timeline
    ]


def resolve_activity_history(
    document: DocumentDescriptor,
    loader: ActivityLoader,
    *,
    settings: Settings | None = None,
    signature_count: int = 0,
) -> ActivityHistory:
    settings = settings or get_settings()
    try:
        records = list(loader(document.id))
    except Exception as exc:
        logger.warning('Activity history unavailable for document %s: %s', document.id, exc)
        if not settings.audit_synthetic_history:
            return ActivityHistory(records=[], unavailable=True)
        return ActivityHistory(
            records=synthetic_activities(
                document,
                actor=settings.audit_system_actor,
                signature_count=signature_count,
            ),
            unavailable=True,
        )
    return ActivityHistory(records=records, unavailable=False)


def classify_submission(value: SubmittedValue) -> str:
    return 'Drawn signature' if value.is_image else 'Typed signature'


def estimate_content_height(*, activity_count: int, value_count: int, with_notice: bool) -> float:
    y = HISTORY_TOP + 30.0
    if with_notice:
        y += NOTICE_SPACING
    y += activity_count * ACTIVITY_SPACING + 40.0
    if value_count:
        y += 25.0 + value_count * SIGNATURE_SPACING + 30.0
    y += 25.0 + 4 * SECURITY_SPACING + 40.0
    # footer text plus bottom margin
    return y + 20.0 + 40.0


def _text(page, x: float, y: float, text: str, *, size: float, bold: bool = False, color=DARK_GRAY) -> None:
    page.insert_text(
        fitz.Point(x, y),
        text,
        fontname=BUILTIN_SANS_BOLD if bold else BUILTIN_SANS,
        fontsize=size,
        color=color,
    )


def _draw_header(page, document: DocumentDescriptor, fonts: DocumentFonts, generated_at: datetime) -> None:
    width = page.rect.width
    page.draw_rect(
        fitz.Rect(20, 20, width - 20, 100),
        color=DARK_GRAY,
        fill=PRIMARY_BLUE,
        width=2,
    )
    _text(page, MARGIN, 70, 'AUDIT TRAIL', size=32, bold=True, color=WHITE)

    name_line = fonts.fit(
        f'Document: {document.name}',
        source=BUILTIN_SANS_BOLD,
        font_size=16,
        max_width=width - 2 * MARGIN,
    )
    _text(page, MARGIN, 140, name_line, size=16, bold=True, color=(0, 0, 0))
    _text(page, MARGIN, 170, f'Date: {generated_at:%m/%d/%Y}', size=14, bold=True, color=(0, 0, 0))


def _draw_document_info(page, document: DocumentDescriptor, *, fingerprint: str, fonts: DocumentFonts) -> None:
    width = page.rect.width
    top = 200.0
    page.draw_rect(
        fitz.Rect(MARGIN, top + 10, width - MARGIN, top + 130),
        color=LIGHT_GRAY,
        fill=(0.97, 0.97, 0.97),
        width=1,
    )
    _text(page, MARGIN + 15, top, 'Document Information', size=14, bold=True, color=PRIMARY_BLUE)

    rows = [
        ('Created:', format_timestamp(document.created_at)),
        ('Document ID:', document.id[-8:].upper()),
        ('Status:', str(document.status or 'SIGNED').replace('_', ' ').title()),
        ('By:', document.recipient_name or 'Unknown'),
        ('Fingerprint:', fingerprint),
    ]
    value_width = width - 2 * MARGIN - 115
    for index, (label, value) in enumerate(rows):
        y = top + 45 + index * 18
        _text(page, MARGIN + 15, y, label, size=10, bold=True)
        value = fonts.fit(value, source=BUILTIN_SANS, font_size=10, max_width=value_width)
        _text(page, MARGIN + 100, y, value, size=10)


def _draw_history(page, document: DocumentDescriptor, history: ActivityHistory, fonts: DocumentFonts) -> float:
    text_width = page.rect.width - 2 * MARGIN - 25
    _text(page, MARGIN, HISTORY_TOP, 'Document History', size=16, bold=True, color=PRIMARY_BLUE)
    y = HISTORY_TOP + 30.0

    notice = history.notice
    if notice:
        notice_color = (0.8, 0.2, 0.2) if history.unavailable else MEDIUM_GRAY
        _text(page, MARGIN + 25, y - 10, notice, size=10, bold=history.unavailable, color=notice_color)
        y += NOTICE_SPACING

    records = history.records
    for index, record in enumerate(records):
        anchor = y + index * ACTIVITY_SPACING
        description = describe_activity(record, document)

        page.draw_circle(fitz.Point(MARGIN + 10, anchor - 8), 5, color=description.color, fill=description.color)
        if index < len(records) - 1:
            page.draw_line(
                fitz.Point(MARGIN + 10, anchor + 15),
                fitz.Point(MARGIN + 10, anchor + 30),
                color=LIGHT_GRAY,
                width=2,
            )

        label = fonts.fit(description.label, source=BUILTIN_SANS_BOLD, font_size=11, max_width=text_width)
        _text(page, MARGIN + 25, anchor - 10, label, size=11, bold=True)
        _text(page, MARGIN + 25, anchor + 5, format_timestamp(record.created_at), size=9, color=MEDIUM_GRAY)
        if description.detail:
            detail = fonts.fit(description.detail, source=BUILTIN_SANS, font_size=8, max_width=text_width)
            _text(page, MARGIN + 25, anchor + 18, detail, size=8, color=DETAIL_GRAY)

    return y + len(records) * ACTIVITY_SPACING + 40.0


def _draw_signature_analysis(page, values: list[SubmittedValue], y: float, fonts: DocumentFonts) -> float:
    if not values:
        return y
    text_width = page.rect.width - 2 * MARGIN - 20
    _text(page, MARGIN, y, 'Signature Analysis', size=16, bold=True, color=PRIMARY_BLUE)
    y += 25.0

    for index, value in enumerate(values):
        entry_y = y + index * SIGNATURE_SPACING
        _text(page, MARGIN + 10, entry_y, f'Signature {index + 1}: {classify_submission(value)}', size=11, bold=True)
        if value.is_image:
            lines = ['Type: Hand-drawn signature', 'Format: Digital image (Base64 encoded)']
        else:
            content = fonts.fit(f'Content: "{value.value}"', source=BUILTIN_SANS, font_size=9, max_width=text_width)
            lines = [content]
            if value.font:
                lines.append(f'Font: {value.font}')
        for offset, line in zip((13.0, 23.0), lines):
            _text(page, MARGIN + 20, entry_y + offset, line, size=9, color=MEDIUM_GRAY)

    return y + len(values) * SIGNATURE_SPACING + 30.0


def _draw_security(page, y: float, settings: Settings) -> float:
    width = page.rect.width
    _text(page, MARGIN, y, 'Security & Verification', size=16, bold=True, color=PRIMARY_BLUE)
    y += 25.0

    items = [
        'Document integrity verified',
        f'Timestamp server: {settings.audit_timestamp_authority}',
        'Email notifications sent',
        'Secure PDF generation completed',
    ]
    for index, item in enumerate(items):
        item_y = y + index * SECURITY_SPACING
        page.draw_circle(fitz.Point(MARGIN + 10, item_y - 4), 3, color=SUCCESS_GREEN, fill=SUCCESS_GREEN)
        _text(page, MARGIN + 25, item_y, item, size=10)
        _text(page, width - MARGIN - 60, item_y, 'VERIFIED', size=9, bold=True, color=SUCCESS_GREEN)

    return y + len(items) * SECURITY_SPACING + 40.0


def _draw_footer(page, y: float, *, generated_at: datetime, settings: Settings, fonts: DocumentFonts) -> None:
    width = page.rect.width
    page.draw_line(fitz.Point(MARGIN, y), fitz.Point(width - MARGIN, y), color=LIGHT_GRAY, width=1)
    _text(page, MARGIN, y + 20, f'Powered by {settings.audit_brand_name}', size=10, color=MEDIUM_GRAY)

    generated = f'Generated: {format_timestamp(generated_at)}'
    generated_width = fonts.measure(generated, source=BUILTIN_SANS, font_size=10)
    _text(page, width - MARGIN - generated_width, y + 20, generated, size=10, color=MEDIUM_GRAY)


def _compose(
    pdf_bytes: bytes,
    document: DocumentDescriptor,
    history: ActivityHistory,
    values: list[SubmittedValue],
    *,
    settings: Settings,
    generated_at: datetime,
) -> bytes:
    fonts = DocumentFonts()
    fingerprint = hashlib.sha256(pdf_bytes).hexdigest()[:16]

    doc = open_pdf(pdf_bytes)
    try:
        if doc.page_count < 1:
            raise RuntimeError('PDF has no pages')
        first = doc[0].rect
        required = estimate_content_height(
            activity_count=len(history.records),
            value_count=len(values),
            with_notice=history.notice is not None,
        )
        page_height = max(float(first.height), float(settings.audit_min_page_height), required)
        page = doc.new_page(width=float(first.width), height=page_height)

        _draw_header(page, document, fonts, generated_at)
        _draw_document_info(page, document, fingerprint=fingerprint, fonts=fonts)
        y = _draw_history(page, document, history, fonts)
        y = _draw_signature_analysis(page, values, y, fonts)
        y = _draw_security(page, y, settings)
        _draw_footer(page, y, generated_at=generated_at, settings=settings, fonts=fonts)

        # No garbage collection here: the output must keep every input object.
        return doc.tobytes()
    finally:
        doc.close()


def _page_count(pdf_bytes: bytes) -> int:
    with fitz.open(stream=pdf_bytes, filetype='pdf') as doc:
        return doc.page_count


def append_audit_page(
    pdf_bytes: bytes,
    document: DocumentDescriptor,
    activities: list[ActivityRecord] | ActivityHistory,
    values: list[SubmittedValue],
    *,
    settings: Settings | None = None,
    generated_at: datetime | None = None,
) -> bytes:
    """Append one audit trail page; on any failure return ``pdf_bytes`` unchanged.

    ``activities`` render in the given order. Pass an ``ActivityHistory`` to mark
    the timeline as reconstructed or unavailable.
    """
    settings = settings or get_settings()
    history = activities if isinstance(activities, ActivityHistory) else ActivityHistory(records=list(activities))
    generated_at = generated_at or utcnow()

    try:
        output = _compose(
            pdf_bytes,
            document,
            history,
            list(values),
            settings=settings,
            generated_at=generated_at,
        )
        before = _page_count(pdf_bytes)
        after = _page_count(output)
    except Exception:
        logger.exception('Failed to append audit page for document %s', document.id)
        return pdf_bytes

    if after != before + 1 or len(output) <= len(pdf_bytes):
        logger.warning(
            'Audit page output rejected for document %s: pages %s -> %s, bytes %s -> %s',
            document.id,
            before,
            after,
            len(pdf_bytes),
            len(output),
        )
        return pdf_bytes

    logger.info('Audit page appended for document %s (%s activities)', document.id, len(history.records))
    return output
