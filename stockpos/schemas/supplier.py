import re
from datetime import datetime

from pydantic import BaseModel, EmailStr, Field, field_validator

RFC_PATTERN = re.compile(r"^[A-ZÑ&]{3,4}[0-9]{6}[A-Z0-9]{3}$")


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    cleaned = value.strip()
    return cleaned or None


class SupplierIn(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    contact: str | None = Field(default=None, max_length=100)
    phone: str | None = Field(default=None, max_length=30)
    email: EmailStr | None = None
    address: str | None = Field(default=None, max_length=255)
    rfc: str | None = Field(default=None, max_length=13)
    products_supplied: str | None = None
    notes: str | None = None
    active: bool = True

    @field_validator("email", mode="before")
    @classmethod
    def blank_email_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("Supplier name is required")
        return cleaned

    @field_validator("contact", "phone", "address", "products_supplied", "notes")
    @classmethod
    def strip_optional(cls, value: str | None) -> str | None:
        return _clean(value)

    @field_validator("rfc")
    @classmethod
    def validate_rfc(cls, value: str | None) -> str | None:
        cleaned = _clean(value)
        if cleaned is None:
            return None
        cleaned = cleaned.upper()
        if not RFC_PATTERN.match(cleaned):
            raise ValueError("Invalid RFC format")
        return cleaned


class SupplierOut(BaseModel):
    id: int
    name: str
    contact: str | None = None
    phone: str | None = None
    email: str | None = None
    address: str | None = None
    rfc: str | None = None
    products_supplied: str | None = None
    notes: str | None = None
    active: bool
    created_at: datetime
    updated_at: datetime | None = None


class SupplierStatsOut(BaseModel):
    total: int
    active: int
    inactive: int
    with_entries: int
