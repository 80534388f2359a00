from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from io import BytesIO
from pathlib import Path

import httpx
import pymupdf as fitz
from fontTools.ttLib import TTFont

from inksign.config import Settings, get_settings


logger = logging.getLogger(__name__)

FONT_SLOTS = ('body', 'cursive', 'script')

_SFNT_MAGICS = (b'\x00\x01\x00\x00', b'OTTO', b'true', b'ttcf')
_WOFF_MAGICS = (b'wOFF', b'wOF2')


@dataclass
class FontFetchConfig:
    candidates: dict[str, list[str]]
    timeout_seconds: float
    enabled: bool = True
    cache_dir: Path | None = None
    transport: httpx.AsyncBaseTransport | None = None


@dataclass(frozen=True)
class FontResources:
    """Embeddable font binaries resolved once per process.

    A slot is ``None`` when every candidate source failed; renderers then fall
    back to the PDF built-in fonts.
    """

    body: bytes | None = None
    cursive: bytes | None = None
    script: bytes | None = None

    def get(self, slot: str) -> bytes | None:
        if slot not in FONT_SLOTS:
            return None
        return getattr(self, slot)

    def summary(self) -> dict[str, int | None]:
        summary: dict[str, int | None] = {}
        for slot in FONT_SLOTS:
            data = self.get(slot)
            summary[slot] = len(data) if data else None
        return summary


def convert_web_font(data: bytes) -> bytes | None:
    """Return an sfnt (TrueType/OpenType) binary PyMuPDF can embed, or None."""
    payload = bytes(data or b'')
    if len(payload) < 4:
        return None

    magic = payload[:4]
    if magic in _WOFF_MAGICS:
        try:
            font = TTFont(BytesIO(payload))
            font.flavor = None
            converted = BytesIO()
            font.save(converted)
            payload = converted.getvalue()
        except Exception as exc:
            logger.warning('Failed to convert web font (%s): %s', magic.decode('latin-1'), exc)
            return None
    elif magic not in _SFNT_MAGICS:
        return None

    try:
        fitz.Font(fontbuffer=payload)
    except Exception as exc:
        logger.warning('Font binary rejected by PDF engine: %s', exc)
        return None
    return payload


class FontResourceLoader:
    def __init__(self, cfg: FontFetchConfig):
        self.cfg = cfg

    async def load(self) -> FontResources:
        if not self.cfg.enabled:
            logger.info('Remote fonts disabled; typed content uses built-in PDF fonts.')
            return FontResources()

        resolved: dict[str, bytes | None] = {}
        timeout = max(0.5, float(self.cfg.timeout_seconds))
        async with httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            transport=self.cfg.transport,
        ) as client:
            for slot in FONT_SLOTS:
                resolved[slot] = await self._load_slot(client, slot, self.cfg.candidates.get(slot) or [])

        resources = FontResources(**resolved)
        for slot, size in resources.summary().items():
            if size is None:
                logger.warning('Font slot %s unavailable; built-in fallback will be used.', slot)
            else:
                logger.info('Font slot %s resolved (%s bytes).', slot, size)
        return resources

    async def _load_slot(self, client: httpx.AsyncClient, slot: str, urls: list[str]) -> bytes | None:
        for url in urls:
            cached = self._read_cache(url)
            if cached is not None:
                return cached

            try:
                response = await client.get(url)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                logger.warning('Font fetch failed for %s from %s: %s', slot, url, exc)
                continue

            font = convert_web_font(response.content)
            if font is None:
                logger.warning('Font payload for %s from %s is not a usable font.', slot, url)
                continue

            self._write_cache(url, font)
            return font
        return None

    def _cache_path(self, url: str) -> Path | None:
        if self.cfg.cache_dir is None:
            return None
        digest = hashlib.sha256(url.encode('utf-8')).hexdigest()[:32]
        return Path(self.cfg.cache_dir) / f'{digest}.ttf'

    def _read_cache(self, url: str) -> bytes | None:
        path = self._cache_path(url)
        if path is None or not path.exists():
            return None
        try:
            return convert_web_font(path.read_bytes())
        except OSError as exc:
            logger.debug('Font cache read failed for %s: %s', path, exc)
            return None

    def _write_cache(self, url: str, font: bytes) -> None:
        path = self._cache_path(url)
        if path is None:
            return
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(path.suffix + '.tmp')
            tmp.write_bytes(font)
            tmp.replace(path)
        except OSError as exc:
            logger.debug('Font cache write failed for %s: %s', path, exc)


def build_font_loader(settings: Settings | None = None) -> FontResourceLoader:
    settings = settings or get_settings()
    return FontResourceLoader(
        FontFetchConfig(
            candidates=settings.font_candidate_urls(),
            timeout_seconds=settings.font_fetch_timeout_seconds,
            enabled=settings.enable_remote_fonts,
            cache_dir=settings.font_cache_dir,
        )
    )


_FONTS_CACHE: FontResources | None = None


async def get_font_resources(settings: Settings | None = None) -> FontResources:
    global _FONTS_CACHE
    if _FONTS_CACHE is not None:
        return _FONTS_CACHE
    _FONTS_CACHE = await build_font_loader(settings).load()
    return _FONTS_CACHE


def reset_font_cache() -> None:
    global _FONTS_CACHE
    _FONTS_CACHE = None
