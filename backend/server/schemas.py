"""
Request bodies for the relay endpoints.

Every field is optional at the schema level: missing fields are reported by
the gateway with the service's own error messages, not by pydantic.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _digits_as_text(value: Any) -> Any:
    # JSON clients sometimes send the phone as a number
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class SendRequest(BaseModel):
    phone: str | None = None
    message: str | None = None

    @field_validator("phone", mode="before")
    @classmethod
    def phone_as_text(cls, value: Any) -> Any:
        return _digits_as_text(value)


class SendPdfRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    phone: str | None = None
    message: str | None = None
    pdf_base64: str | None = Field(default=None, alias="pdfBase64")
    filename: str | None = None

    @field_validator("phone", mode="before")
    @classmethod
    def phone_as_text(cls, value: Any) -> Any:
        return _digits_as_text(value)
