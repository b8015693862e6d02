from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from flask import current_app, render_template
from sqlalchemy.exc import SQLAlchemyError

from .. import emailer, sheets
from ..app import db
from ..errors import DispatchError
from ..models import EMAIL_FAILED, EMAIL_SENT, STATUS_ISSUED, Certificate, EmailLog
from ..settings import IssuanceSettings
from ..shared.time import fmt_date, fmt_dt, now_utc
from .renderer import format_amount

EMAIL_CHANNEL = "email"
SPREADSHEET_CHANNEL = "spreadsheet"


@dataclass(frozen=True)
class DispatchOutcome:
    channel: str
    ok: bool
    detail: str = ""


class Dispatcher(Protocol):
    channel: str

    def dispatch(self, certificate: Certificate) -> DispatchOutcome: ...


def attachment_name(certificate: Certificate) -> str:
    return f"certificate-{certificate.certificate_code}.pdf"


class EmailDispatcher:
    """Mails the rendered PDF to the recipient and records the attempt."""

    channel = EMAIL_CHANNEL

    def __init__(self, settings: IssuanceSettings):
        self.settings = settings

    def compose(self, cert: Certificate) -> tuple[str, str, str]:
        amount = format_amount(cert.amount, self.settings.currency_label)
        context = {
            "cert": cert,
            "amount": amount,
            "issue_date": fmt_date(cert.issue_date),
            "expires_at": fmt_date(cert.expires_at),
            "verification_url": self.settings.verification_url(cert.certificate_code),
            "sender_name": self.settings.mail.from_name or "Gift Certificates",
        }
        subject = f"Your gift certificate for {amount}"
        body = render_template("email/certificate.txt", **context)
        html = render_template("email/certificate.html", **context)
        return subject, body, html

    def dispatch(self, certificate: Certificate) -> DispatchOutcome:
        cert_id = certificate.id
        to = certificate.recipient_email
        try:
            subject, body, html = self.compose(certificate)
            emailer.send(
                self.settings.mail,
                to,
                subject,
                body,
                html,
                attachment_path=certificate.pdf_path,
                attachment_name=attachment_name(certificate),
            )
        except (DispatchError, OSError, ValueError) as e:
            current_app.logger.info(
                "[MAIL-FAIL] certificate=%s to=%s error=\"%s\"", cert_id, to, e
            )
            self._record_failure(cert_id, to, str(e))
            return DispatchOutcome(self.channel, False, str(e))

        try:
            db.session.add(
                EmailLog(certificate_id=cert_id, recipient_email=to, status=EMAIL_SENT)
            )
            if certificate.status == STATUS_ISSUED:
                certificate.mark_sent(now_utc())
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception(
                "[MAIL-LOG-FAIL] certificate=%s status=sent", cert_id
            )
            return DispatchOutcome(self.channel, True, "sent; status not recorded")
        current_app.logger.info("[MAIL-SENT] certificate=%s to=%s", cert_id, to)
        return DispatchOutcome(self.channel, True, "sent")

    def _record_failure(self, cert_id: str, to: str, error: str) -> None:
        db.session.rollback()
        try:
            db.session.add(
                EmailLog(
                    certificate_id=cert_id,
                    recipient_email=to,
                    status=EMAIL_FAILED,
                    error_message=error,
                )
            )
            db.session.commit()
        except SQLAlchemyError:
            db.session.rollback()
            current_app.logger.exception(
                "[MAIL-LOG-FAIL] certificate=%s status=failed", cert_id
            )


def sheet_row(cert: Certificate, settings: IssuanceSettings) -> list:
    return [
        fmt_dt(cert.created_at or now_utc()),
        cert.id,
        cert.first_name,
        cert.last_name,
        cert.recipient_email,
        str(cert.amount),
        cert.issue_date.isoformat(),
        cert.expires_at.isoformat(),
        cert.certificate_code,
        cert.message or "",
        cert.from_name or "",
        STATUS_ISSUED,
        settings.verification_url(cert.certificate_code),
    ]


class SpreadsheetDispatcher:
    """Appends one row per certificate. Failures are only logged."""

    channel = SPREADSHEET_CHANNEL

    def __init__(self, settings: IssuanceSettings, client=None):
        self.settings = settings
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = sheets.build_sheet_client(self.settings.sheets)
        return self._client

    def dispatch(self, certificate: Certificate) -> DispatchOutcome:
        client = self.client
        if client is None:
            current_app.logger.info(
                "[SHEET-SKIP] certificate=%s reason=not_configured", certificate.id
            )
            return DispatchOutcome(self.channel, False, "not configured")
        try:
            client.ensure_headers()
            client.append_row(sheet_row(certificate, self.settings))
        except (DispatchError, OSError, ValueError) as e:
            current_app.logger.warning(
                "[SHEET-FAIL] certificate=%s error=\"%s\"", certificate.id, e
            )
            return DispatchOutcome(self.channel, False, str(e))
        current_app.logger.info(
            "[SHEET-APPEND] certificate=%s code=%s",
            certificate.id,
            certificate.certificate_code,
        )
        return DispatchOutcome(self.channel, True, "appended")


DISPATCHERS = {
    EMAIL_CHANNEL: EmailDispatcher,
    SPREADSHEET_CHANNEL: SpreadsheetDispatcher,
}


def build_dispatcher(channel: str, settings: IssuanceSettings) -> Dispatcher:
    try:
        factory = DISPATCHERS[channel]
    except KeyError:
        raise ValueError(f"Unknown dispatch channel: {channel}") from None
    return factory(settings)
