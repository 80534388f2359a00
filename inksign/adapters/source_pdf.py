from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import httpx

from inksign.config import Settings, get_settings


logger = logging.getLogger(__name__)


@dataclass
class SourcePdfConfig:
    timeout_seconds: int
    max_bytes: int
    transport: httpx.AsyncBaseTransport | None = None


def is_remote_source(source: str) -> bool:
    lowered = str(source or '').strip().lower()
    return lowered.startswith('http://') or lowered.startswith('https://')


class SourcePdfAdapter:
    def __init__(self, cfg: SourcePdfConfig):
        self.cfg = cfg

    async def fetch(self, source: str | Path) -> bytes:
        token = str(source or '').strip()
        if not token:
            raise RuntimeError('Document has no source PDF')

        if is_remote_source(token):
            content = await self._fetch_remote(token)
        else:
            content = self._read_local(Path(token))

        if not content:
            raise RuntimeError(f'Source PDF is empty: {token}')
        if len(content) > self.cfg.max_bytes:
            raise RuntimeError(f'Source PDF exceeds {self.cfg.max_bytes} bytes: {token}')
        logger.info('Source PDF loaded from %s (%s bytes)', token, len(content))
        return content

    async def _fetch_remote(self, url: str) -> bytes:
        try:
            async with httpx.AsyncClient(
                timeout=self.cfg.timeout_seconds,
                follow_redirects=True,
                transport=self.cfg.transport,
            ) as client:
                resp = await client.get(url)
                resp.raise_for_status()
                return resp.content
        except httpx.HTTPError as exc:
            raise RuntimeError(f'Source PDF download failed for {url}: {exc}') from exc

    def _read_local(self, path: Path) -> bytes:
        if not path.exists() or not path.is_file():
            raise RuntimeError(f'Source PDF not found: {path}')
        try:
            return path.read_bytes()
        except OSError as exc:
            raise RuntimeError(f'Source PDF unreadable: {path}: {exc}') from exc


def build_source_adapter(settings: Settings | None = None) -> SourcePdfAdapter:
    settings = settings or get_settings()
    return SourcePdfAdapter(
        SourcePdfConfig(
            timeout_seconds=settings.source_fetch_timeout_seconds,
            max_bytes=settings.max_pdf_bytes,
        )
    )
