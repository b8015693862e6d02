from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from ..app import db, get_settings
from ..models import Certificate
from ..services.issuance import CertificateIssuer
from ..services.verification import verify_certificate
from ..shared.auth import api_key_required, error_response
from ..tasks import enqueue_dispatch

bp = Blueprint("certificates", __name__, url_prefix="/api/v1")


def certificate_payload(cert: Certificate) -> dict:
    settings = get_settings()
    return {
        "certificate_id": cert.id,
        "template_id": cert.template_id,
        "first_name": cert.first_name,
        "last_name": cert.last_name,
        "recipient_email": cert.recipient_email,
        "amount": float(cert.amount),
        "issue_date": cert.issue_date.isoformat(),
        "expires_at": cert.expires_at.isoformat(),
        "message": cert.message,
        "from_name": cert.from_name,
        "certificate_code": cert.certificate_code,
        "status": cert.status,
        "metadata": cert.meta or {},
        "pdf_url": settings.pdf_url(cert.id),
        "verification_url": settings.verification_url(cert.certificate_code),
        "created_at": cert.created_at.isoformat() if cert.created_at else None,
        "sent_at": cert.sent_at.isoformat() if cert.sent_at else None,
    }


@bp.post("/certificates")
@api_key_required
def create_certificate():
    payload = request.get_json(silent=True)
    settings = get_settings()
    issuer = CertificateIssuer(settings, schedule_dispatch=enqueue_dispatch)
    result = issuer.issue(payload)
    return jsonify(result.to_response(settings)), 201 if result.created else 200


@bp.get("/certificates/<certificate_id>")
@api_key_required
def get_certificate(certificate_id: str):
    cert = db.session.get(Certificate, certificate_id)
    if not cert:
        return error_response("not_found", "Certificate not found", 404)
    return jsonify(certificate_payload(cert))


@bp.get("/verify/<code>")
def verify(code: str):
    result = verify_certificate(code)
    if result is None:
        current_app.logger.info("[CERT-VERIFY] code=%s result=not_found", code)
        return error_response("not_found", "Certificate not found", 404, valid=False)
    current_app.logger.info(
        "[CERT-VERIFY] code=%s valid=%s expired=%s", code, result.valid, result.expired
    )
    return jsonify(result.to_dict())
