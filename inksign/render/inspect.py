from __future__ import annotations

import hashlib
from io import BytesIO
from typing import Any

from pypdf import PdfReader


def summarize_pdf(pdf_bytes: bytes) -> dict[str, Any]:
    reader = PdfReader(BytesIO(pdf_bytes))
    pages: list[dict[str, float]] = []
    for page in reader.pages:
        box = page.mediabox
        pages.append({'width': round(float(box.width), 2), 'height': round(float(box.height), 2)})

    return {
        'page_count': len(reader.pages),
        'pages': pages,
        'encrypted': bool(reader.is_encrypted),
        'bytes': len(pdf_bytes),
        'sha256': hashlib.sha256(pdf_bytes).hexdigest(),
    }
