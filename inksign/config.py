from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file='.env',
        env_file_encoding='utf-8',
        case_sensitive=False,
        extra='ignore',
    )

    data_dir: Path = Field(default=Path('./data'))
    log_level: str = 'INFO'

    # Frontend PDF viewer renders every page at this fixed width (px)
    viewer_reference_width: float = 800.0

    # Remote fonts for typed signatures and text fields
    enable_remote_fonts: bool = True
    # Comma-separated candidate URLs, tried in order
    font_body_urls: str = (
        'https://fonts.gstatic.com/s/roboto/v30/KFOmCnqEu92Fr1Mu4mxKKTU1Kg.woff2,'
        'https://fonts.gstatic.com/s/roboto/v30/KFOmCnqEu92Fr1Mu4mxK.woff2'
    )
    font_cursive_urls: str = (
        'https://fonts.gstatic.com/s/satisfy/v17/rP2Hp2yn6lkG50LoOZSCHBeHFl0.woff2,'
        'https://fonts.gstatic.com/s/dancingscript/v25/If2cXTr6YS-zF4S-kcSWSVi_sxjsohD9F50Ruu7BMSo3Sup8.woff2'
    )
    font_script_urls: str = (
        'https://fonts.gstatic.com/s/greatvibes/v16/RWmMoKWR9v4ksMfaWd_JN-XCg6UKDXlq.woff2,'
        'https://fonts.gstatic.com/s/allura/v13/9jAnDAe7B1mYvnNRRgT4HQis.woff2'
    )
    font_fetch_timeout_seconds: float = 5.0
    font_cache_dir: Path | None = None

    # Source PDF retrieval
    source_fetch_timeout_seconds: int = 60
    max_pdf_bytes: int = 50 * 1024 * 1024

    # Audit trail page
    audit_min_page_height: float = 800.0
    audit_brand_name: str = 'InkSign'
    audit_timestamp_authority: str = 'InkSign Internal'
    audit_system_actor: str = 'System'
    # Replace an unavailable activity history with a reconstructed timeline
    audit_synthetic_history: bool = True

    def font_candidate_urls(self) -> dict[str, list[str]]:
        raw_by_slot = {
            'body': self.font_body_urls,
            'cursive': self.font_cursive_urls,
            'script': self.font_script_urls,
        }
        candidates: dict[str, list[str]] = {}
        for slot, raw in raw_by_slot.items():
            urls: list[str] = []
            for item in str(raw or '').split(','):
                normalized = item.strip()
                if not normalized:
                    continue
                urls.append(normalized)
            candidates[slot] = urls
        return candidates


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
