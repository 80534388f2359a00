from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from .config import get_settings
from .types import ActivityAction, ActivityRecord, DocumentDescriptor, utcnow


_DOCUMENT_ID_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_-]{0,127}$')
_UNSAFE_FILENAME_CHARS = re.compile(r'[^A-Za-z0-9._-]+')


def documents_root() -> Path:
    root = get_settings().data_dir / 'documents'
    root.mkdir(parents=True, exist_ok=True)
    return root


def _safe_document_id(document_id: str) -> str:
    token = str(document_id or '').strip()
    if not token:
        raise ValueError('document_id is required')
    if not _DOCUMENT_ID_PATTERN.match(token):
        raise ValueError(f'invalid document_id: {document_id}')
    return token


def document_dir(document_id: str) -> Path:
    path = documents_root() / _safe_document_id(document_id)
    path.mkdir(parents=True, exist_ok=True)
    return path


def descriptor_path(document_id: str) -> Path:
    return document_dir(document_id) / 'document.json'


def source_pdf_path(document_id: str) -> Path:
    return document_dir(document_id) / 'source.pdf'


def activities_path(document_id: str) -> Path:
    return document_dir(document_id) / 'activities.jsonl'


def signed_pdf_filename(document: DocumentDescriptor) -> str:
    stem = Path(str(document.name or '').strip() or 'document').stem
    stem = _UNSAFE_FILENAME_CHARS.sub('_', stem).strip('_') or 'document'
    return f'signed_{stem}_{document.id}.pdf'


def signed_pdf_path(document: DocumentDescriptor) -> Path:
    return document_dir(document.id) / signed_pdf_filename(document)


def write_json_atomic(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + '.tmp')
    tmp.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding='utf-8')
    tmp.replace(path)


def write_bytes_atomic(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + '.tmp')
    tmp.write_bytes(content)
    tmp.replace(path)


def read_json(path: Path) -> dict[str, Any]:
    return json.loads(path.read_text(encoding='utf-8'))


def append_activity(document_id: str, action: ActivityAction | str, /, **details: Any) -> ActivityRecord:
    record = ActivityRecord(action=action, created_at=utcnow(), details=details)
    path = activities_path(document_id)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open('a', encoding='utf-8') as f:
        f.write(json.dumps(record.model_dump(mode='json'), ensure_ascii=False) + '\n')
    return record


def load_activities(document_id: str) -> list[ActivityRecord]:
    """Read the activity log of a document, oldest first.

    A missing log means no recorded activity. A corrupt line raises, so callers
    can tell an unavailable history from an empty one.
    """
    path = activities_path(document_id)
    if not path.exists():
        return []

    records: list[ActivityRecord] = []
    with path.open('r', encoding='utf-8') as f:
        for line_no, raw in enumerate(f, start=1):
            line = raw.strip()
            if not line:
                continue
            try:
                records.append(ActivityRecord.model_validate(json.loads(line)))
            except Exception as exc:
                raise ValueError(f'corrupt activity record at {path}:{line_no}: {exc}') from exc

    records.sort(key=lambda item: item.created_at)
    return records
