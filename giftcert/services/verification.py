from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from ..models import STATUS_ISSUED
from ..shared.time import today_utc
from .store import get_certificate_by_code


@dataclass(frozen=True)
class VerificationResult:
    valid: bool
    certificate_id: str
    holder: str
    amount: Decimal
    issue_date: date
    expires_at: date
    status: str
    expired: bool

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "certificate": {
                "id": self.certificate_id,
                "holder": self.holder,
                "amount": float(self.amount),
                "issue_date": self.issue_date.isoformat(),
                "expires_at": self.expires_at.isoformat(),
                "status": self.status,
                "expired": self.expired,
            },
        }


def verify_certificate(code: str, today: date | None = None) -> VerificationResult | None:
    """Read-only validity check. Expiry is computed here and never written back."""
    cert = get_certificate_by_code(code)
    if cert is None:
        return None
    today = today or today_utc()
    expired = today > cert.expires_at
    return VerificationResult(
        valid=cert.status == STATUS_ISSUED and not expired,
        certificate_id=cert.id,
        holder=cert.holder,
        amount=cert.amount,
        issue_date=cert.issue_date,
        expires_at=cert.expires_at,
        status=cert.status,
        expired=expired,
    )
