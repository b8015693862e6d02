import os
from datetime import date

import pytest

from giftcert.app import db, get_settings
from giftcert.errors import PersistenceError, RenderError, TemplateNotFoundError, ValidationError
from giftcert.models import STATUS_ISSUED, Certificate
from giftcert.services import issuance
from giftcert.services.issuance import CertificateIssuer

from conftest import certificate_payload


@pytest.fixture
def scheduled():
    return []


@pytest.fixture
def issuer(app, scheduled):
    return CertificateIssuer(get_settings(), schedule_dispatch=scheduled.append)


def _pdfs(data_root):
    cert_dir = data_root / "certificates"
    if not cert_dir.exists():
        return []
    return sorted(os.listdir(cert_dir))


def test_issue_creates_row_file_and_schedules_dispatch(issuer, template, scheduled, data_root):
    result = issuer.issue(certificate_payload())

    assert result.created is True
    assert result.status == STATUS_ISSUED
    assert scheduled == [result.certificate_id]
    assert _pdfs(data_root) == [f"{result.certificate_id}.pdf"]

    cert = db.session.get(Certificate, result.certificate_id)
    assert cert.status == STATUS_ISSUED
    assert cert.certificate_code == result.certificate_code
    assert cert.pdf_path == str(data_root / "certificates" / f"{cert.id}.pdf")
    assert cert.idempotency_key
    assert cert.meta == {}


def test_dates_default_from_today(app, template, scheduled):
    issuer = CertificateIssuer(get_settings(), today=lambda: date(2024, 1, 1))
    result = issuer.issue(certificate_payload())
    cert = db.session.get(Certificate, result.certificate_id)
    assert cert.issue_date == date(2024, 1, 1)
    assert cert.expires_at == date(2024, 12, 31)


def test_explicit_dates_and_metadata_are_kept(issuer, template):
    result = issuer.issue(
        certificate_payload(
            issue_date="2024-02-01",
            expires_at="2024-03-01",
            metadata={"order_id": "A-17"},
            message="Enjoy",
            from_name="Bob",
        )
    )
    cert = db.session.get(Certificate, result.certificate_id)
    assert cert.expires_at == date(2024, 3, 1)
    assert cert.meta == {"order_id": "A-17"}
    assert cert.message == "Enjoy"
    assert cert.from_name == "Bob"


def test_replay_returns_original_without_rendering_again(issuer, template, scheduled, data_root):
    payload = certificate_payload(idempotency_key="order-1")
    first = issuer.issue(payload)
    second = issuer.issue(certificate_payload(idempotency_key="order-1", amount=999))

    assert second.created is False
    assert second.certificate_id == first.certificate_id
    assert second.certificate_code == first.certificate_code
    assert scheduled == [first.certificate_id]
    assert _pdfs(data_root) == [f"{first.certificate_id}.pdf"]
    assert db.session.query(Certificate).count() == 1
    assert float(db.session.get(Certificate, first.certificate_id).amount) == 500


def test_replay_reports_current_status(issuer, template):
    first = issuer.issue(certificate_payload(idempotency_key="order-2"))
    cert = db.session.get(Certificate, first.certificate_id)
    cert.transition_to("failed")
    db.session.commit()

    again = issuer.issue(certificate_payload(idempotency_key="order-2"))
    assert again.status == "failed"


def test_missing_template_writes_nothing(issuer, app, scheduled, data_root):
    with pytest.raises(TemplateNotFoundError):
        issuer.issue(certificate_payload(template_id="missing"))
    assert _pdfs(data_root) == []
    assert db.session.query(Certificate).count() == 0
    assert scheduled == []


def test_invalid_payload_has_no_side_effects(issuer, template, scheduled, data_root):
    with pytest.raises(ValidationError):
        issuer.issue(certificate_payload(amount=-1))
    assert _pdfs(data_root) == []
    assert db.session.query(Certificate).count() == 0
    assert scheduled == []


def test_render_failure_leaves_no_row(app, template, scheduled):
    def broken_renderer(*args, **kwargs):
        raise RenderError("boom")

    issuer = CertificateIssuer(
        get_settings(), schedule_dispatch=scheduled.append, renderer=broken_renderer
    )
    with pytest.raises(RenderError):
        issuer.issue(certificate_payload())
    assert db.session.query(Certificate).count() == 0
    assert scheduled == []


def test_lost_race_on_same_key_returns_winner(issuer, template, scheduled, data_root, monkeypatch):
    """Two requests with one key: the loser hits the unique constraint and re-fetches."""
    winner = issuer.issue(certificate_payload(idempotency_key="race"))

    # No real concurrency here: a stale first lookup puts the second request
    # past the read check, so the unique constraint on idempotency_key is
    # what has to reject the insert.
    real_lookup = issuance.get_certificate_by_idempotency_key
    calls = []

    def stale_first_lookup(key):
        calls.append(key)
        if len(calls) == 1:
            return None
        return real_lookup(key)

    monkeypatch.setattr(issuance, "get_certificate_by_idempotency_key", stale_first_lookup)
    loser = issuer.issue(certificate_payload(idempotency_key="race"))

    assert loser.created is False
    assert loser.certificate_id == winner.certificate_id
    assert len(calls) == 2
    assert db.session.query(Certificate).count() == 1
    assert _pdfs(data_root) == [f"{winner.certificate_id}.pdf"]
    assert scheduled == [winner.certificate_id]


def test_code_collision_is_persistence_error(app, template, scheduled, data_root):
    issuer = CertificateIssuer(
        get_settings(),
        schedule_dispatch=scheduled.append,
        code_factory=lambda: "CERT-1700000000000-SAME00",
    )
    first = issuer.issue(certificate_payload(idempotency_key="a"))
    with pytest.raises(PersistenceError):
        issuer.issue(certificate_payload(idempotency_key="b"))

    assert db.session.query(Certificate).count() == 1
    assert _pdfs(data_root) == [f"{first.certificate_id}.pdf"]


def test_storage_failure_removes_rendered_file(issuer, template, scheduled, data_root, monkeypatch):
    def failing_insert(cert):
        raise PersistenceError("database unavailable")

    monkeypatch.setattr(issuance, "insert_certificate", failing_insert)
    with pytest.raises(PersistenceError):
        issuer.issue(certificate_payload())
    assert _pdfs(data_root) == []
    assert scheduled == []
