from datetime import date, timedelta

from giftcert.app import db, get_settings
from giftcert.models import STATUS_ISSUED, Certificate
from giftcert.services.issuance import CertificateIssuer
from giftcert.services.verification import verify_certificate
from giftcert.shared.time import today_utc

from conftest import certificate_payload


def _issue(**overrides):
    result = CertificateIssuer(get_settings()).issue(certificate_payload(**overrides))
    return db.session.get(Certificate, result.certificate_id)


def test_valid_until_expiry_day_inclusive(app, template):
    cert = _issue(issue_date="2024-01-01", expires_at="2024-06-30")
    on_day = verify_certificate(cert.certificate_code, today=date(2024, 6, 30))
    assert on_day.valid is True
    assert on_day.expired is False

    after = verify_certificate(cert.certificate_code, today=date(2024, 7, 1))
    assert after.valid is False
    assert after.expired is True


def test_expired_yesterday_is_not_persisted(app, template):
    yesterday = today_utc() - timedelta(days=1)
    cert = _issue(
        issue_date=(yesterday - timedelta(days=30)).isoformat(),
        expires_at=yesterday.isoformat(),
    )
    result = verify_certificate(cert.certificate_code)
    assert result.valid is False
    assert result.expired is True
    assert result.status == STATUS_ISSUED

    db.session.expire_all()
    assert db.session.get(Certificate, cert.id).status == STATUS_ISSUED


def test_non_issued_status_is_not_valid(app, template):
    cert = _issue()
    cert.mark_sent(cert.created_at)
    db.session.commit()
    result = verify_certificate(cert.certificate_code)
    assert result.expired is False
    assert result.valid is False
    assert result.status == "sent"


def test_unknown_code(app):
    assert verify_certificate("CERT-0000000000000-NOPE00") is None


def test_result_shape(app, template):
    cert = _issue(amount="250.50")
    body = verify_certificate(cert.certificate_code).to_dict()
    assert body["valid"] is True
    assert body["certificate"] == {
        "id": cert.id,
        "holder": "Ann Lee",
        "amount": 250.5,
        "issue_date": cert.issue_date.isoformat(),
        "expires_at": cert.expires_at.isoformat(),
        "status": "issued",
        "expired": False,
    }


def test_verify_endpoint_is_public(client, template):
    cert = _issue()
    resp = client.get(f"/api/v1/verify/{cert.certificate_code}")
    assert resp.status_code == 200
    assert resp.get_json()["certificate"]["holder"] == "Ann Lee"

    resp = client.get("/api/v1/verify/CERT-0000000000000-NOPE00")
    assert resp.status_code == 404
    body = resp.get_json()
    assert body["valid"] is False
    assert body["error"] == "not_found"
