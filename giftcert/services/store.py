"""Storage collaborator used by the issuance pipeline.

The unique constraints on ``certificates.idempotency_key`` and
``certificates.certificate_code`` are the authority for duplicate detection;
callers must not rely on a read-then-write check alone.
"""

from __future__ import annotations

from functools import wraps

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..app import db
from ..errors import PersistenceError
from ..models import Certificate, Template


class DuplicateCertificateError(Exception):
    """An insert hit a unique constraint."""


def _storage_read(fn):
    """Surface database failures on lookups as PersistenceError."""

    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceError(f"{fn.__name__} failed: {exc}") from exc

    return wrapper


@_storage_read
def get_template_by_id(template_id: str) -> Template | None:
    return db.session.get(Template, template_id)


@_storage_read
def get_certificate_by_idempotency_key(key: str) -> Certificate | None:
    return (
        db.session.query(Certificate)
        .filter(Certificate.idempotency_key == key)
        .one_or_none()
    )


@_storage_read
def get_certificate_by_code(code: str) -> Certificate | None:
    return (
        db.session.query(Certificate)
        .filter(Certificate.certificate_code == code)
        .one_or_none()
    )


def insert_certificate(cert: Certificate) -> Certificate:
    """Insert and commit in one step.

    Raises DuplicateCertificateError on a unique violation and
    PersistenceError on any other storage failure. The session is rolled back
    in both cases.
    """
    db.session.add(cert)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise DuplicateCertificateError(str(exc.orig or exc)) from exc
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise PersistenceError(f"Certificate insert failed: {exc}") from exc
    return cert
