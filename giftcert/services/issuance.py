from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Callable

from flask import current_app

from ..errors import PersistenceError, TemplateNotFoundError
from ..models import STATUS_ISSUED, Certificate
from ..schemas import parse_certificate_request
from ..settings import IssuanceSettings
from ..shared.codes import generate_certificate_code
from ..shared.storage import remove_file
from ..shared.time import today_utc
from .renderer import CertificateData, render_certificate_pdf
from .store import (
    DuplicateCertificateError,
    get_certificate_by_idempotency_key,
    get_template_by_id,
    insert_certificate,
)

Renderer = Callable[..., str]
DispatchScheduler = Callable[[str], None]


@dataclass(frozen=True)
class IssuanceResult:
    certificate_id: str
    certificate_code: str
    status: str
    created: bool

    def to_response(self, settings: IssuanceSettings) -> dict:
        payload = {
            "certificate_id": self.certificate_id,
            "pdf_url": settings.pdf_url(self.certificate_id),
            "verification_url": settings.verification_url(self.certificate_code),
            "status": self.status,
        }
        if not self.created:
            payload["message"] = "Certificate already issued for this idempotency key"
        return payload


def _replay(existing: Certificate) -> IssuanceResult:
    return IssuanceResult(
        certificate_id=existing.id,
        certificate_code=existing.certificate_code,
        status=existing.status,
        created=False,
    )


class CertificateIssuer:
    """Runs one certificate-creation request from payload to response.

    validate -> idempotency lookup -> template lookup -> code/dates -> render
    -> insert -> schedule dispatch. Render happens before the insert, and any
    failure after the PDF is written deletes it again.
    """

    def __init__(
        self,
        settings: IssuanceSettings,
        *,
        schedule_dispatch: DispatchScheduler | None = None,
        renderer: Renderer = render_certificate_pdf,
        code_factory: Callable[[], str] = generate_certificate_code,
        today: Callable = today_utc,
    ):
        self.settings = settings
        self.schedule_dispatch = schedule_dispatch
        self.renderer = renderer
        self.code_factory = code_factory
        self.today = today

    def issue(self, payload: Any) -> IssuanceResult:
        request = parse_certificate_request(payload)
        idempotency_key = request.idempotency_key or str(uuid.uuid4())

        existing = get_certificate_by_idempotency_key(idempotency_key)
        if existing:
            current_app.logger.info(
                "[CERT-REPLAY] key=%s certificate=%s status=%s",
                idempotency_key,
                existing.id,
                existing.status,
            )
            return _replay(existing)

        template = get_template_by_id(request.template_id)
        if not template:
            current_app.logger.info(
                "[CERT-ISSUE] rejected template=%s reason=not_found",
                request.template_id,
            )
            raise TemplateNotFoundError(request.template_id)

        certificate_id = str(uuid.uuid4())
        issue_date = request.issue_date or self.today()
        expires_at = request.expires_at or issue_date + timedelta(
            days=self.settings.expiry_days
        )
        data = CertificateData(
            certificate_id=certificate_id,
            first_name=request.first_name,
            last_name=request.last_name,
            amount=request.amount,
            issue_date=issue_date,
            expires_at=expires_at,
            certificate_code=self.code_factory(),
            message=request.message,
            from_name=request.from_name,
        )

        pdf_path = self.renderer(
            template,
            data,
            self.settings.certificates_dir,
            templates_dir=self.settings.templates_dir,
            currency_label=self.settings.currency_label,
        )

        cert = Certificate(
            id=certificate_id,
            template_id=template.id,
            first_name=data.first_name,
            last_name=data.last_name,
            recipient_email=str(request.recipient_email),
            amount=data.amount,
            issue_date=issue_date,
            expires_at=expires_at,
            message=data.message,
            from_name=data.from_name,
            certificate_code=data.certificate_code,
            pdf_path=pdf_path,
            status=STATUS_ISSUED,
            idempotency_key=idempotency_key,
            meta=request.metadata or {},
        )
        try:
            insert_certificate(cert)
        except DuplicateCertificateError as exc:
            remove_file(pdf_path)
            winner = get_certificate_by_idempotency_key(idempotency_key)
            if winner:
                current_app.logger.info(
                    "[CERT-REPLAY] key=%s certificate=%s concurrent insert lost",
                    idempotency_key,
                    winner.id,
                )
                return _replay(winner)
            current_app.logger.error(
                "[CERT-PERSIST-FAIL] certificate=%s error=%s", certificate_id, exc
            )
            raise PersistenceError(f"Unique constraint violated: {exc}") from exc
        except Exception:
            remove_file(pdf_path)
            current_app.logger.exception(
                "[CERT-PERSIST-FAIL] certificate=%s", certificate_id
            )
            raise

        result = IssuanceResult(
            certificate_id=certificate_id,
            certificate_code=data.certificate_code,
            status=STATUS_ISSUED,
            created=True,
        )
        current_app.logger.info(
            "[CERT-ISSUE] certificate=%s code=%s template=%s email=%s",
            certificate_id,
            data.certificate_code,
            template.id,
            cert.recipient_email,
        )
        if self.schedule_dispatch is not None:
            self.schedule_dispatch(certificate_id)
        return result
