from __future__ import annotations

import csv
import io
import math

from flask import Blueprint, Response, current_app, jsonify, request
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError

from .. import emailer, sheets
from ..app import db, get_settings
from ..models import STATUS_SENT, Certificate, EmailLog, Template
from ..shared.auth import admin_required

bp = Blueprint("admin", __name__, url_prefix="/admin")

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


def _positive_int(name: str, default: int) -> int:
    value = request.args.get(name, type=int)
    if value is None or value < 1:
        return default
    return value


@bp.get("/api/stats")
@admin_required
def stats():
    total_amount = db.session.query(func.coalesce(func.sum(Certificate.amount), 0)).scalar()
    return jsonify(
        {
            "total_certificates": db.session.query(Certificate).count(),
            "sent_certificates": db.session.query(Certificate)
            .filter(Certificate.status == STATUS_SENT)
            .count(),
            "total_templates": db.session.query(Template).count(),
            "total_amount": float(total_amount or 0),
        }
    )


@bp.get("/api/certificates")
@admin_required
def list_certificates():
    page = _positive_int("page", 1)
    limit = min(_positive_int("limit", DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE)
    total = db.session.query(Certificate).count()
    rows = (
        db.session.query(Certificate)
        .order_by(Certificate.created_at.desc(), Certificate.id)
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return jsonify(
        {
            "certificates": [
                {
                    "id": c.id,
                    "first_name": c.first_name,
                    "last_name": c.last_name,
                    "recipient_email": c.recipient_email,
                    "amount": float(c.amount),
                    "certificate_code": c.certificate_code,
                    "status": c.status,
                    "created_at": c.created_at.isoformat() if c.created_at else None,
                    "sent_at": c.sent_at.isoformat() if c.sent_at else None,
                }
                for c in rows
            ],
            "pagination": {
                "page": page,
                "limit": limit,
                "total": total,
                "pages": math.ceil(total / limit) if total else 0,
            },
        }
    )


@bp.get("/api/templates")
@admin_required
def list_templates():
    templates = db.session.query(Template).order_by(Template.created_at.desc()).all()
    return jsonify({"templates": [t.summary() for t in templates]})


@bp.get("/api/health-check")
@admin_required
def health_check():
    settings = get_settings()
    results = {"database": False, "email": False, "google_sheets": False}
    try:
        db.session.execute(text("SELECT 1"))
        results["database"] = True
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.warning("[HEALTH] database error=%s", e)
    results["email"] = emailer.check_connection(settings.mail)
    results["google_sheets"] = sheets.check_connection(settings.sheets)
    return jsonify(results)


@bp.get("/api/email-logs")
@admin_required
def email_logs():
    query = db.session.query(EmailLog)
    certificate_id = request.args.get("certificate_id")
    if certificate_id:
        query = query.filter(EmailLog.certificate_id == certificate_id)
    logs = query.order_by(EmailLog.id.desc()).limit(MAX_PAGE_SIZE).all()
    return jsonify({"email_logs": [log.to_dict() for log in logs], "count": len(logs)})


@bp.get("/certificates/export.csv")
@admin_required
def export_csv():
    settings = get_settings()
    rows = (
        db.session.query(Certificate)
        .order_by(Certificate.created_at.desc(), Certificate.id)
        .all()
    )

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(
        [
            "CertificateId",
            "CertificateCode",
            "TemplateId",
            "FirstName",
            "LastName",
            "RecipientEmail",
            "Amount",
            "IssueDate",
            "ExpiresAt",
            "Status",
            "CreatedAt",
            "SentAt",
            "PdfUrl",
            "VerificationUrl",
        ]
    )
    for cert in rows:
        writer.writerow(
            [
                cert.id,
                cert.certificate_code,
                cert.template_id,
                cert.first_name or "",
                cert.last_name or "",
                cert.recipient_email,
                f"{cert.amount:.2f}",
                cert.issue_date.isoformat(),
                cert.expires_at.isoformat(),
                cert.status,
                cert.created_at.isoformat() if cert.created_at else "",
                cert.sent_at.isoformat() if cert.sent_at else "",
                settings.pdf_url(cert.id),
                settings.verification_url(cert.certificate_code),
            ]
        )

    csv_data = output.getvalue()
    output.close()
    return Response(
        csv_data,
        mimetype="text/csv",
        headers={"Content-Disposition": "attachment; filename=certificates.csv"},
    )
