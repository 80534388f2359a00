from __future__ import annotations

import threading
from typing import Callable

from .storage import descriptor_path, read_json, write_json_atomic
from .types import DocumentDescriptor


_STATE_LOCK = threading.RLock()


def save_document(document: DocumentDescriptor) -> DocumentDescriptor:
    with _STATE_LOCK:
        write_json_atomic(descriptor_path(document.id), document.model_dump(mode='json'))
    return document


def load_document(document_id: str) -> DocumentDescriptor | None:
    try:
        path = descriptor_path(document_id)
    except ValueError:
        return None
    if not path.exists():
        return None
    with _STATE_LOCK:
        payload = read_json(path)
    return DocumentDescriptor.model_validate(payload)


def require_document(document_id: str) -> DocumentDescriptor:
    document = load_document(document_id)
    if document is None:
        raise FileNotFoundError(f'Document not found: {document_id}')
    return document


def mutate_document(document_id: str, fn: Callable[[DocumentDescriptor], None]) -> DocumentDescriptor:
    with _STATE_LOCK:
        existing = require_document(document_id)
        fn(existing)
        write_json_atomic(descriptor_path(document_id), existing.model_dump(mode='json'))
    return existing
