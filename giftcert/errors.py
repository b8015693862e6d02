from __future__ import annotations

from typing import Sequence


class IssuanceError(Exception):
    """Base error surfaced to API callers as ``{"error": kind, "detail": ...}``."""

    kind = "issuance_error"
    status_code = 500
    public_detail: str | None = None

    def __init__(self, detail: str = "", *, details: Sequence[str] | None = None):
        super().__init__(detail)
        self.detail = detail
        self.details = list(details or [])

    def to_dict(self) -> dict:
        payload = {
            "error": self.kind,
            "detail": self.public_detail or self.detail,
        }
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(IssuanceError):
    kind = "validation_error"
    status_code = 422

    def __init__(self, messages: Sequence[str]):
        super().__init__("Request validation failed", details=messages)

    @property
    def messages(self) -> list[str]:
        return self.details


class TemplateNotFoundError(IssuanceError):
    kind = "template_not_found"
    status_code = 422

    def __init__(self, template_id: str):
        super().__init__(f"Template not found: {template_id}")
        self.template_id = template_id


class RenderError(IssuanceError):
    kind = "render_error"
    status_code = 500
    public_detail = "Certificate PDF could not be generated."


class PersistenceError(IssuanceError):
    kind = "persistence_error"
    status_code = 500
    public_detail = "Certificate storage failed."


class DispatchError(Exception):
    """Side-effect failure. Never propagated to the request that issued the certificate."""


class MailError(DispatchError):
    pass


class SheetError(DispatchError):
    pass


class InvalidStatusTransition(ValueError):
    pass
