from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive timestamps are taken to be UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _scalar_text(value: Any) -> Any:
    if isinstance(value, (int, float)):
        return str(value)
    return value


class FieldType(str, Enum):
    signature = 'SIGNATURE'
    fullname = 'FULLNAME'
    initials = 'INITIALS'
    title = 'TITLE'
    date = 'DATE'
    email = 'EMAIL'
    text = 'TEXT'
    unknown = 'UNKNOWN'

    @classmethod
    def parse(cls, value: Any) -> FieldType:
        if isinstance(value, cls):
            return value
        token = str(value or '').strip().upper()
        try:
            return cls(token)
        except ValueError:
            return cls.unknown


class SignatureFont(str, Enum):
    signature = 'signature'
    signatura = 'signatura'
    signaturia = 'signaturia'
    drawn = 'drawn'

    @classmethod
    def parse(cls, value: Any) -> SignatureFont | None:
        token = str(value or '').strip().lower()
        if not token:
            return None
        try:
            return cls(token)
        except ValueError:
            return None


class ActivityAction(str, Enum):
    created = 'CREATED'
    sent = 'SENT'
    viewed = 'VIEWED'
    signed = 'SIGNED'
    completed = 'COMPLETED'
    downloaded = 'DOWNLOADED'
    cancelled = 'CANCELLED'


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class SignatureField(_CamelModel):
    id: str
    field_type: FieldType = Field(
        default=FieldType.unknown,
        validation_alias=AliasChoices('field_type', 'fieldType'),
    )
    page_number: int = Field(validation_alias=AliasChoices('page_number', 'pageNumber'))
    x_position: float = Field(validation_alias=AliasChoices('x_position', 'xPosition'))
    y_position: float = Field(validation_alias=AliasChoices('y_position', 'yPosition'))
    width: float
    height: float

    @field_validator('field_type', mode='before')
    @classmethod
    def _coerce_field_type(cls, value: Any) -> FieldType:
        return FieldType.parse(value)


class SubmittedValue(_CamelModel):
    field_id: str = Field(validation_alias=AliasChoices('field_id', 'fieldId'))
    value: str = ''
    font: str | None = None

    @field_validator('value', mode='before')
    @classmethod
    def _coerce_value(cls, value: Any) -> Any:
        if value is None:
            return ''
        return _scalar_text(value)

    @field_validator('font', mode='before')
    @classmethod
    def _coerce_font(cls, value: Any) -> str | None:
        value = _scalar_text(value)
        return value if isinstance(value, str) else None

    @property
    def is_blank(self) -> bool:
        return not str(self.value or '').strip()

    @property
    def is_image(self) -> bool:
        return str(self.value or '').startswith('data:image/')

    @property
    def signature_font(self) -> SignatureFont | None:
        return SignatureFont.parse(self.font)


class ActivityRecord(_CamelModel):
    action: str
    created_at: datetime = Field(
        default_factory=utcnow,
        validation_alias=AliasChoices('created_at', 'createdAt'),
    )
    details: dict[str, Any] = Field(default_factory=dict)

    @field_validator('action', mode='before')
    @classmethod
    def _normalize_action(cls, value: Any) -> str:
        if isinstance(value, ActivityAction):
            return value.value
        return str(value or '').strip().upper() or 'UNKNOWN'

    @field_validator('created_at', mode='after')
    @classmethod
    def _created_at_utc(cls, value: datetime) -> datetime:
        return as_utc(value)

    @field_validator('details', mode='before')
    @classmethod
    def _coerce_details(cls, value: Any) -> dict[str, Any]:
        if isinstance(value, dict):
            return value
        return {}


class Recipient(_CamelModel):
    name: str | None = None
    email: str | None = None


class DocumentDescriptor(_CamelModel):
    id: str
    name: str
    file_name: str | None = Field(default=None, validation_alias=AliasChoices('file_name', 'fileName'))
    status: str = 'SIGNED'
    created_at: datetime = Field(
        default_factory=utcnow,
        validation_alias=AliasChoices('created_at', 'createdAt'),
    )
    signed_at: datetime | None = Field(default=None, validation_alias=AliasChoices('signed_at', 'signedAt'))
    recipient: Recipient | None = None
    fields: list[SignatureField] = Field(default_factory=list)
    # Storage identifier of the source PDF: local path or http(s) URL
    source: str | None = Field(
        default=None,
        validation_alias=AliasChoices('source', 'source_url', 'sourceUrl', 'filePath'),
    )
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator('created_at', 'signed_at', mode='after')
    @classmethod
    def _timestamps_utc(cls, value: datetime | None) -> datetime | None:
        return as_utc(value) if value is not None else None

    @property
    def recipient_name(self) -> str | None:
        if self.recipient is None:
            return None
        return str(self.recipient.name or '').strip() or None

    @property
    def recipient_email(self) -> str | None:
        if self.recipient is None:
            return None
        return str(self.recipient.email or '').strip() or None
