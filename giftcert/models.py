from __future__ import annotations

from datetime import datetime

from sqlalchemy.orm import validates

from .app import db
from .errors import InvalidStatusTransition

STATUS_ISSUED = "issued"
STATUS_SENT = "sent"
STATUS_FAILED = "failed"
STATUS_EXPIRED = "expired"
CERTIFICATE_STATUSES = (STATUS_ISSUED, STATUS_SENT, STATUS_FAILED, STATUS_EXPIRED)

# one-way; expiry is computed on read, never stored as a transition
_ALLOWED_TRANSITIONS = {
    STATUS_ISSUED: {STATUS_SENT, STATUS_FAILED},
}

EMAIL_SENT = "sent"
EMAIL_DELIVERED = "delivered"
EMAIL_FAILED = "failed"
EMAIL_BOUNCED = "bounced"
EMAIL_LOG_STATUSES = (EMAIL_SENT, EMAIL_DELIVERED, EMAIL_FAILED, EMAIL_BOUNCED)


class Template(db.Model):
    __tablename__ = "templates"

    id = db.Column(db.String(36), primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    filename = db.Column(db.String(255), nullable=False)
    file_path = db.Column(db.String(512), nullable=False)
    field_mapping = db.Column(db.JSON)
    created_at = db.Column(db.DateTime, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime, server_default=db.func.now(), onupdate=db.func.now()
    )

    certificates = db.relationship("Certificate", back_populates="template")

    def summary(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "filename": self.filename,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class Certificate(db.Model):
    __tablename__ = "certificates"

    id = db.Column(db.String(36), primary_key=True)
    template_id = db.Column(
        db.String(36), db.ForeignKey("templates.id"), nullable=False
    )
    first_name = db.Column(db.String(200))
    last_name = db.Column(db.String(200))
    recipient_email = db.Column(db.String(320), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    issue_date = db.Column(db.Date, nullable=False)
    expires_at = db.Column(db.Date, nullable=False)
    message = db.Column(db.String(500))
    from_name = db.Column(db.String(100))
    certificate_code = db.Column(db.String(64), nullable=False)
    pdf_path = db.Column(db.String(512))
    status = db.Column(db.String(16), nullable=False, default=STATUS_ISSUED)
    idempotency_key = db.Column(db.String(255), nullable=False)
    meta = db.Column("metadata", db.JSON)
    created_at = db.Column(db.DateTime, server_default=db.func.now(), index=True)
    sent_at = db.Column(db.DateTime)
    __table_args__ = (
        db.UniqueConstraint("certificate_code", name="uix_certificates_code"),
        db.UniqueConstraint(
            "idempotency_key", name="uix_certificates_idempotency_key"
        ),
    )

    template = db.relationship("Template", back_populates="certificates")
    email_logs = db.relationship(
        "EmailLog", back_populates="certificate", order_by="EmailLog.id"
    )

    @validates("status")
    def check_status(self, key, value):
        if value not in CERTIFICATE_STATUSES:
            raise ValueError(f"Unknown certificate status: {value!r}")
        return value

    @property
    def holder(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)

    def transition_to(self, status: str) -> None:
        current = self.status or STATUS_ISSUED
        if status not in _ALLOWED_TRANSITIONS.get(current, set()):
            raise InvalidStatusTransition(f"{current} -> {status}")
        self.status = status

    def mark_sent(self, when: datetime) -> None:
        self.transition_to(STATUS_SENT)
        self.sent_at = when


class EmailLog(db.Model):
    __tablename__ = "email_logs"

    id = db.Column(db.Integer, primary_key=True)
    certificate_id = db.Column(
        db.String(36), db.ForeignKey("certificates.id"), nullable=False, index=True
    )
    recipient_email = db.Column(db.String(320), nullable=False)
    status = db.Column(db.String(16), nullable=False)
    error_message = db.Column(db.Text)
    created_at = db.Column(db.DateTime, server_default=db.func.now())

    certificate = db.relationship("Certificate", back_populates="email_logs")

    @validates("status")
    def check_status(self, key, value):
        if value not in EMAIL_LOG_STATUSES:
            raise ValueError(f"Unknown email log status: {value!r}")
        return value

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "certificate_id": self.certificate_id,
            "recipient_email": self.recipient_email,
            "status": self.status,
            "error_message": self.error_message,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
