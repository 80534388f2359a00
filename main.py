from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from inksign.adapters.fonts import get_font_resources
from inksign.config import get_settings
from inksign.render.audit_page import ActivityHistory, append_audit_page, synthetic_activities
from inksign.render.inspect import summarize_pdf
from inksign.runner import coerce_values, run_signing
from inksign.state import load_document, save_document
from inksign.storage import append_activity, load_activities, source_pdf_path, write_bytes_atomic
from inksign.types import ActivityAction, DocumentDescriptor


def _configure_logging(level: str) -> None:
    root = logging.getLogger()
    root.setLevel(str(level or 'INFO').upper())
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter('%(asctime)s | %(levelname)s | %(name)s | %(message)s'))
    root.handlers.clear()
    root.addHandler(handler)


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _load_json_arg(value: str) -> Any:
    token = str(value or '').strip()
    if token.startswith('{') or token.startswith('['):
        return json.loads(token)
    return json.loads(Path(token).expanduser().read_text(encoding='utf-8'))


def _parse_details(items: list[str] | None) -> dict[str, Any]:
    details: dict[str, Any] = {}
    for item in items or []:
        key, sep, raw = str(item).partition('=')
        key = key.strip()
        if not sep or not key:
            raise ValueError(f'detail must be key=value: {item}')
        try:
            details[key] = json.loads(raw)
        except json.JSONDecodeError:
            details[key] = raw
    return details


def _document_snapshot(document: DocumentDescriptor) -> dict:
    return {
        'document_id': document.id,
        'name': document.name,
        'status': document.status,
        'field_count': len(document.fields),
        'source': document.source,
        'created_at': document.created_at.isoformat(),
        'signed_at': document.signed_at.isoformat() if document.signed_at else None,
        'metadata': document.metadata,
    }


def cmd_register(args: argparse.Namespace) -> int:
    settings = get_settings()
    pdf_path = Path(args.pdf).expanduser().resolve()
    if not pdf_path.exists() or not pdf_path.is_file():
        _print_json({'status': 'error', 'message': f'PDF not found: {pdf_path}'})
        return 2
    file_size = int(pdf_path.stat().st_size)
    if file_size <= 0 or file_size > int(settings.max_pdf_bytes):
        _print_json({'status': 'error', 'message': f'PDF size not accepted: {file_size} bytes'})
        return 2

    try:
        payload = _load_json_arg(args.document)
        if not isinstance(payload, dict):
            raise ValueError('document JSON must be an object')
        payload.setdefault('fileName', pdf_path.name)
        payload.setdefault('name', pdf_path.name)
        document = DocumentDescriptor.model_validate(payload)
        stored_pdf = source_pdf_path(document.id)
    except (OSError, ValueError) as exc:
        _print_json({'status': 'error', 'message': f'Invalid document description: {exc}'})
        return 2

    write_bytes_atomic(stored_pdf, pdf_path.read_bytes())
    document.source = str(stored_pdf)
    save_document(document)

    append_activity(document.id, ActivityAction.created, fileName=document.file_name, fileSize=file_size)
    if args.sent:
        append_activity(
            document.id,
            ActivityAction.sent,
            recipientEmail=document.recipient_email,
            fieldsCount=len(document.fields),
        )

    _print_json(_document_snapshot(document))
    return 0


def cmd_sign(args: argparse.Namespace) -> int:
    document = load_document(args.document_id)
    if document is None:
        _print_json({'status': 'error', 'message': f'Document not found: {args.document_id}'})
        return 2

    try:
        values = coerce_values(_load_json_arg(args.values))
    except (OSError, ValueError) as exc:
        _print_json({'status': 'error', 'message': f'Invalid submitted values: {exc}'})
        return 2

    try:
        output_path = run_signing(document.id, values)
    except RuntimeError as exc:
        _print_json({'status': 'error', 'message': str(exc)})
        return 2

    _print_json({'status': 'signed', 'document_id': document.id, 'signed_pdf_path': str(output_path)})
    return 0


def cmd_activity(args: argparse.Namespace) -> int:
    if load_document(args.document_id) is None:
        _print_json({'status': 'error', 'message': f'Document not found: {args.document_id}'})
        return 2
    try:
        details = _parse_details(args.detail)
    except ValueError as exc:
        _print_json({'status': 'error', 'message': str(exc)})
        return 2

    record = append_activity(args.document_id, args.action, **details)
    _print_json(record.model_dump(mode='json'))
    return 0


def cmd_history(args: argparse.Namespace) -> int:
    if load_document(args.document_id) is None:
        _print_json({'status': 'error', 'message': f'Document not found: {args.document_id}'})
        return 2
    try:
        records = load_activities(args.document_id)
    except ValueError as exc:
        _print_json({'status': 'error', 'message': str(exc)})
        return 2

    _print_json({'document_id': args.document_id, 'activities': [item.model_dump(mode='json') for item in records]})
    return 0


def cmd_fonts(args: argparse.Namespace) -> int:
    resources = asyncio.run(get_font_resources())
    _print_json({'fonts': resources.summary()})
    return 0


def cmd_inspect(args: argparse.Namespace) -> int:
    pdf_path = Path(args.pdf).expanduser()
    if not pdf_path.exists():
        _print_json({'status': 'error', 'message': f'PDF not found: {pdf_path}'})
        return 2
    try:
        summary = summarize_pdf(pdf_path.read_bytes())
    except Exception as exc:
        _print_json({'status': 'error', 'message': f'Unreadable PDF: {exc}'})
        return 2
    _print_json({'pdf': str(pdf_path), **summary})
    return 0


def cmd_audit(args: argparse.Namespace) -> int:
    settings = get_settings()
    pdf_path = Path(args.pdf).expanduser()
    if not pdf_path.exists():
        _print_json({'status': 'error', 'message': f'PDF not found: {pdf_path}'})
        return 2

    try:
        document = DocumentDescriptor.model_validate(_load_json_arg(args.document))
        values = coerce_values(_load_json_arg(args.values)) if args.values else []
    except (OSError, ValueError) as exc:
        _print_json({'status': 'error', 'message': f'Invalid input: {exc}'})
        return 2

    if args.synthetic_history:
        history = ActivityHistory(
            records=synthetic_activities(document, actor=settings.audit_system_actor, signature_count=len(values)),
            unavailable=True,
        )
    elif load_document(document.id) is not None:
        try:
            history = ActivityHistory(records=load_activities(document.id))
        except ValueError as exc:
            _print_json({'status': 'error', 'message': str(exc)})
            return 2
    else:
        history = ActivityHistory()

    source = pdf_path.read_bytes()
    output = append_audit_page(source, document, history, values, settings=settings)
    out_path = Path(args.out).expanduser()
    write_bytes_atomic(out_path, output)

    _print_json(
        {
            'out': str(out_path),
            'audit_page_added': output is not source,
            'activities': len(history.records),
            **summarize_pdf(output),
        }
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='InkSign signed-PDF pipeline CLI')
    sub = parser.add_subparsers(dest='command', required=True)

    register = sub.add_parser('register', help='Store a source PDF and its document description')
    register.add_argument('--pdf', required=True, help='Path to source PDF')
    register.add_argument('--document', required=True, help='Document JSON (inline or file path)')
    register.add_argument('--sent', action='store_true', help='Also record the document as sent')
    register.set_defaults(func=cmd_register)

    sign = sub.add_parser('sign', help='Apply submitted values and write the signed PDF')
    sign.add_argument('--document-id', required=True, help='Document ID')
    sign.add_argument('--values', required=True, help='Submitted values JSON list (inline or file path)')
    sign.set_defaults(func=cmd_sign)

    activity = sub.add_parser('activity', help='Record a document activity')
    activity.add_argument('--document-id', required=True, help='Document ID')
    activity.add_argument('--action', required=True, help='Activity action, e.g. VIEWED')
    activity.add_argument('--detail', action='append', help='Detail as key=value (repeatable)')
    activity.set_defaults(func=cmd_activity)

    history = sub.add_parser('history', help='List recorded activities')
    history.add_argument('--document-id', required=True, help='Document ID')
    history.set_defaults(func=cmd_history)

    fonts = sub.add_parser('fonts', help='Resolve signature fonts and report availability')
    fonts.set_defaults(func=cmd_fonts)

    inspect_cmd = sub.add_parser('inspect', help='Summarize a PDF')
    inspect_cmd.add_argument('--pdf', required=True, help='Path to PDF file')
    inspect_cmd.set_defaults(func=cmd_inspect)

    audit = sub.add_parser('audit', help='Append only the audit trail page to a PDF')
    audit.add_argument('--pdf', required=True, help='Input PDF')
    audit.add_argument('--document', required=True, help='Document JSON (inline or file path)')
    audit.add_argument('--out', required=True, help='Output PDF path')
    audit.add_argument('--values', required=False, help='Submitted values JSON list')
    audit.add_argument('--synthetic-history', action='store_true', help='Use a reconstructed timeline')
    audit.set_defaults(func=cmd_audit)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(get_settings().log_level)
    return int(args.func(args))


if __name__ == '__main__':
    raise SystemExit(main())
