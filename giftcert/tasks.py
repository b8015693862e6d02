"""Background delivery of certificates through Celery.

The request that issues a certificate only enqueues work here; it never
waits for mail or the spreadsheet.
"""

from __future__ import annotations

import logging

from celery import Celery, Task, shared_task
from flask import Flask, current_app
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger("giftcert.tasks")


def celery_init_app(app: Flask) -> Celery:
    class FlaskTask(Task):
        def __call__(self, *args, **kwargs):
            with app.app_context():
                return self.run(*args, **kwargs)

    celery_app = Celery(app.name, task_cls=FlaskTask)
    celery_app.config_from_object(app.config["CELERY"])
    celery_app.set_default()
    app.extensions["celery"] = celery_app
    return celery_app


@shared_task(name="giftcert.dispatch_certificate", ignore_result=True)
def dispatch_certificate(certificate_id: str, channel: str) -> dict:
    from .app import db, get_settings
    from .models import Certificate
    from .services.dispatch import build_dispatcher

    cert = db.session.get(Certificate, certificate_id)
    if cert is None:
        logger.warning(
            "[DISPATCH-SKIP] certificate=%s channel=%s reason=missing",
            certificate_id,
            channel,
        )
        return {"ok": False, "detail": "certificate not found"}
    outcome = build_dispatcher(channel, get_settings()).dispatch(cert)
    logger.info(
        "[DISPATCH] certificate=%s channel=%s ok=%s detail=%s",
        certificate_id,
        channel,
        outcome.ok,
        outcome.detail,
    )
    return {"ok": outcome.ok, "detail": outcome.detail}


def _record_enqueue_failure(certificate_id: str, error: str) -> None:
    from .app import db
    from .models import EMAIL_FAILED, Certificate, EmailLog

    try:
        cert = db.session.get(Certificate, certificate_id)
        if cert is None:
            return
        db.session.add(
            EmailLog(
                certificate_id=certificate_id,
                recipient_email=cert.recipient_email,
                status=EMAIL_FAILED,
                error_message=f"enqueue failed: {error}",
            )
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("[MAIL-LOG-FAIL] certificate=%s status=failed", certificate_id)


def enqueue_dispatch(certificate_id: str, channels=None) -> None:
    """Schedule every configured channel. Submission errors are logged, never raised."""
    from .app import get_settings

    if channels is None:
        channels = get_settings().dispatch_channels
    for channel in channels:
        try:
            dispatch_certificate.delay(certificate_id, channel)
        except Exception as e:  # broker errors come from several client libraries
            current_app.logger.error(
                "[DISPATCH-ENQUEUE-FAIL] certificate=%s channel=%s error=%s",
                certificate_id,
                channel,
                e,
            )
            if channel == "email":
                _record_enqueue_failure(certificate_id, str(e))
