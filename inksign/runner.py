from __future__ import annotations

import asyncio
import logging
import traceback
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable

from pydantic import ValidationError

from inksign.adapters.fonts import FontResources, get_font_resources
from inksign.adapters.source_pdf import build_source_adapter
from inksign.config import Settings, get_settings
from inksign.render.assembler import assemble
from inksign.render.audit_page import ActivityLoader, append_audit_page, resolve_activity_history
from inksign.state import mutate_document, require_document
from inksign.storage import append_activity, load_activities, signed_pdf_path, source_pdf_path, write_bytes_atomic
from inksign.types import ActivityAction, DocumentDescriptor, SubmittedValue, utcnow


logger = logging.getLogger(__name__)

SourceLoader = Callable[[str], Awaitable[bytes]]


def coerce_values(values: Iterable[SubmittedValue | dict[str, Any]]) -> list[SubmittedValue]:
    """Validate submitted values, dropping the ones that cannot be used."""
    coerced: list[SubmittedValue] = []
    for item in values or []:
        if isinstance(item, SubmittedValue):
            coerced.append(item)
            continue
        if not isinstance(item, dict):
            logger.warning('Dropping submitted value that is not an object: %r', item)
            continue
        try:
            coerced.append(SubmittedValue.model_validate(item))
        except ValidationError as exc:
            field_id = item.get('fieldId', item.get('field_id'))
            logger.warning('Dropping invalid submitted value for field %s: %s', field_id, exc.errors()[0]['msg'])
    return coerced


async def create_signed_pdf(
    document: DocumentDescriptor,
    values: Iterable[SubmittedValue | dict[str, Any]],
    *,
    settings: Settings | None = None,
    source_loader: SourceLoader | None = None,
    history_loader: ActivityLoader | None = None,
    fonts: FontResources | None = None,
) -> bytes:
    """Fill the document's fields with ``values`` and append the audit trail page.

    Only an unreadable source or an unprocessable PDF raises; missing fonts,
    failing fields and a failing audit page degrade the output instead.
    """
    settings = settings or get_settings()
    submitted = coerce_values(values)

    try:
        load_source = source_loader or build_source_adapter(settings).fetch
        pdf_bytes = await load_source(str(document.source or ''))
        resources = fonts if fonts is not None else await get_font_resources(settings)
        assembled = assemble(
            pdf_bytes,
            document.fields,
            submitted,
            fonts=resources,
            reference_width=settings.viewer_reference_width,
        )
    except Exception as exc:
        raise RuntimeError(f'Failed to create signed PDF: {exc}') from exc

    history = resolve_activity_history(
        document,
        history_loader or load_activities,
        settings=settings,
        signature_count=sum(1 for value in submitted if not value.is_blank),
    )
    return append_audit_page(assembled, document, history, submitted, settings=settings)


async def run_signing_async(document_id: str, values: Iterable[SubmittedValue | dict[str, Any]]) -> Path:
    settings = get_settings()
    document = require_document(document_id)
    submitted = coerce_values(values)
    if not document.source:
        document = document.model_copy(update={'source': str(source_pdf_path(document.id))})

    append_activity(
        document.id,
        ActivityAction.signed,
        signedBy=document.recipient_name,
        fieldsCount=sum(1 for value in submitted if not value.is_blank),
    )

    signed_bytes = await create_signed_pdf(document, submitted, settings=settings)
    output_path = signed_pdf_path(document)
    write_bytes_atomic(output_path, signed_bytes)
    logger.info('Signed PDF written to %s (%s bytes)', output_path, len(signed_bytes))

    def apply(state: DocumentDescriptor) -> None:
        state.status = 'SIGNED'
        state.signed_at = utcnow()
        metadata = dict(state.metadata)
        metadata['signed_pdf_path'] = str(output_path)
        state.metadata = metadata

    mutate_document(document.id, apply)
    append_activity(
        document.id,
        ActivityAction.completed,
        completedBy=settings.audit_system_actor,
        finalStatus='Successfully Signed',
        action='signing_process_completed',
    )
    return output_path


def run_signing(document_id: str, values: Iterable[SubmittedValue | dict[str, Any]]) -> Path:
    try:
        return asyncio.run(run_signing_async(document_id, values))
    except Exception as exc:
        detail = ''.join(traceback.format_exception_only(type(exc), exc)).strip()
        logger.error('Signing failed for document %s: %s', document_id, detail)
        if not isinstance(exc, (FileNotFoundError, ValueError)):
            append_activity(document_id, 'SIGNING_FAILED', error=detail, stack=traceback.format_exc())
        raise
