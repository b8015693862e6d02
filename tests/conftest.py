import os
import pathlib
import sys

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from giftcert.app import create_app, db
from giftcert.models import Template
from giftcert.sample_template import draw_sample_template

API_KEY = "test-api-key"
ADMIN_AUTH = ("admin", "admin-pass")

FULL_MAPPING = {
    "first_name": {"x": 150, "y": 300, "fontSize": 24, "color": "#000000"},
    "last_name": {"x": 300, "y": 300, "fontSize": 24, "color": "#000000"},
    "amount": {"x": 250, "y": 360, "fontSize": 20, "color": "#ff0000"},
    "issue_date": {"x": 150, "y": 420, "fontSize": 14, "color": "#666666"},
    "expires_at": {"x": 150, "y": 450, "fontSize": 12, "color": "#666666"},
    "certificate_code": {"x": 50, "y": 790, "fontSize": 10, "color": "#999999"},
    "message": {"x": 100, "y": 500, "fontSize": 14, "color": "#333333", "maxWidth": 400},
    "from_name": {"x": 250, "y": 600, "fontSize": 16, "color": "#000000"},
}


def pytest_collection_modifyitems(config, items):
    for item in items:
        if "slow" in item.keywords or "quarantine" in item.keywords:
            continue
        item.add_marker("full")
        if "no_smoke" in item.keywords:
            continue
        item.add_marker("smoke")


@pytest.fixture
def data_root(tmp_path):
    return tmp_path


@pytest.fixture
def app(data_root):
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    application = create_app(
        {
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "CERTIFICATES_DIR": str(data_root / "certificates"),
            "TEMPLATES_DIR": str(data_root / "templates"),
            "BASE_URL": "http://certs.test",
            "API_KEY": API_KEY,
            "ADMIN_USER": ADMIN_AUTH[0],
            "ADMIN_PASS": ADMIN_AUTH[1],
            "CERTIFICATE_EXPIRY_DAYS": 365,
            "CURRENCY_LABEL": "RUB",
            "DISPATCH_CHANNELS": "email,spreadsheet",
            "SMTP_HOST": None,
            "SMTP_PORT": None,
            "SMTP_FROM_DEFAULT": None,
            "SHEETS_SPREADSHEET_ID": None,
            "SHEETS_CSV_PATH": str(data_root / "sheet" / "certificates.csv"),
            "CELERY": {
                "broker_url": "memory://",
                "task_ignore_result": True,
                "task_always_eager": True,
            },
        }
    )
    with application.app_context():
        db.create_all()
        yield application
        db.session.remove()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def api_headers():
    return {"Authorization": f"Bearer {API_KEY}"}


@pytest.fixture
def template_pdf(data_root):
    return draw_sample_template(str(data_root / "templates" / "sample.pdf"))


def make_template(template_id="t1", mapping=None, file_path="sample.pdf"):
    template = Template(
        id=template_id,
        name=f"Template {template_id}",
        filename="sample.pdf",
        file_path=file_path,
        field_mapping=FULL_MAPPING if mapping is None else mapping,
    )
    db.session.add(template)
    db.session.commit()
    return template


@pytest.fixture
def template(app, template_pdf):
    return make_template()


@pytest.fixture
def outbox(monkeypatch):
    """Capture outgoing mail instead of talking to SMTP."""
    sent = []

    def fake_send(mail, recipient, subject, body, html=None, attachment_path=None, attachment_name=None):
        sent.append(
            {
                "to": recipient,
                "subject": subject,
                "body": body,
                "html": html,
                "attachment_path": attachment_path,
                "attachment_name": attachment_name,
            }
        )

    monkeypatch.setattr("giftcert.emailer.send", fake_send)
    return sent


def certificate_payload(template_id="t1", **overrides):
    payload = {
        "template_id": template_id,
        "first_name": "Ann",
        "last_name": "Lee",
        "recipient_email": "a@x.com",
        "amount": 500,
    }
    payload.update(overrides)
    return payload
