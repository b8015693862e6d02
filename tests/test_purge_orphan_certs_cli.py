import os
import time

from giftcert.app import db
from giftcert.models import Certificate, Template
from manage import create_test_template, purge_orphan_certs

from conftest import certificate_payload


def _setup_files(client, api_headers, data_root):
    resp = client.post("/api/v1/certificates", json=certificate_payload(), headers=api_headers)
    cert_id = resp.get_json()["certificate_id"]
    cert_dir = data_root / "certificates"
    kept_path = cert_dir / f"{cert_id}.pdf"
    orphan_path = cert_dir / "orphan.pdf"
    orphan_path.write_bytes(b"x")
    an_hour_ago = time.time() - 3600
    os.utime(orphan_path, (an_hour_ago, an_hour_ago))
    return kept_path, orphan_path


def test_purge_orphan_certs_cli(app, client, api_headers, template, outbox, data_root):
    app.cli.add_command(purge_orphan_certs)
    kept, orphan = _setup_files(client, api_headers, data_root)
    runner = app.test_cli_runner()
    res = runner.invoke(args=["purge_orphan_certs", "--dry-run"])
    assert "orphan.pdf" in res.output
    assert "scanned=2 deleted=0 kept=1 skipped=0" in res.output
    assert orphan.exists()
    res = runner.invoke(args=["purge_orphan_certs"])
    assert res.exit_code == 0
    assert not orphan.exists()
    assert kept.exists()


def test_purge_skips_recent_orphans(app, data_root):
    app.cli.add_command(purge_orphan_certs)
    cert_dir = data_root / "certificates"
    cert_dir.mkdir(parents=True, exist_ok=True)
    fresh = cert_dir / "in-flight.pdf"
    fresh.write_bytes(b"x")
    runner = app.test_cli_runner()

    res = runner.invoke(args=["purge_orphan_certs"])
    assert "scanned=1 deleted=0 kept=0 skipped=1" in res.output
    assert fresh.exists()

    res = runner.invoke(args=["purge_orphan_certs", "--min-age", "0"])
    assert "deleted=1" in res.output
    assert not fresh.exists()


def test_purge_without_directory(app):
    app.cli.add_command(purge_orphan_certs)
    res = app.test_cli_runner().invoke(args=["purge_orphan_certs"])
    assert "Certificate directory missing" in res.output


def test_create_test_template_cli(app, client, api_headers, outbox, data_root):
    app.cli.add_command(create_test_template)
    res = app.test_cli_runner().invoke(args=["create_test_template", "--name", "Demo"])
    assert res.exit_code == 0, res.output
    template = db.session.query(Template).one()
    assert template.name == "Demo"
    assert (data_root / "templates" / template.file_path).exists()
    assert set(template.field_mapping) >= {"first_name", "amount", "message"}

    resp = client.post(
        "/api/v1/certificates",
        json=certificate_payload(template_id=template.id),
        headers=api_headers,
    )
    assert resp.status_code == 201
    assert db.session.query(Certificate).count() == 1
