from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from pydantic import ValidationError as SchemaError

from .errors import ValidationError


class CertificateCreate(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    template_id: str = Field(min_length=1)
    first_name: str = Field(min_length=1, max_length=200)
    last_name: str = Field(min_length=1, max_length=200)
    recipient_email: EmailStr
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    issue_date: date | None = None
    expires_at: date | None = None
    message: str | None = Field(default=None, max_length=500)
    from_name: str | None = Field(default=None, max_length=100)
    idempotency_key: str | None = Field(default=None, min_length=1, max_length=255)
    metadata: dict[str, Any] | None = None

    @model_validator(mode="after")
    def check_dates(self):
        if self.issue_date and self.expires_at and self.expires_at < self.issue_date:
            raise ValueError("expires_at must not be earlier than issue_date")
        return self


def _format_error(err: dict) -> str:
    loc = ".".join(str(part) for part in err.get("loc", ()) if part != "__root__")
    msg = err.get("msg", "invalid value")
    return f"{loc}: {msg}" if loc else msg


def parse_certificate_request(payload: Any) -> CertificateCreate:
    """Validate an incoming creation payload, raising ValidationError with one message per problem."""
    if not isinstance(payload, dict):
        raise ValidationError(["request body must be a JSON object"])
    try:
        return CertificateCreate.model_validate(payload)
    except SchemaError as exc:
        raise ValidationError([_format_error(err) for err in exc.errors()]) from exc
