from giftcert.app import create_app, db
import os
import time
import uuid

from flask_migrate import Migrate
from flask.cli import FlaskGroup
import click
from flask import current_app
from reportlab.lib.pagesizes import A4

from giftcert.app import get_settings
from giftcert.models import Certificate, Template
from giftcert.sample_template import draw_sample_template
from giftcert.shared.field_mapping import default_field_mapping
from giftcert.shared.storage import ensure_dir


migrate = Migrate()


def create_giftcert_app():
    app = create_app()
    migrate.init_app(app, db)
    return app


cli = FlaskGroup(create_app=create_giftcert_app)


@cli.command("create_test_template")
@click.option("--name", default="Test template", show_default=True)
@click.option(
    "--output",
    "output",
    default=None,
    help="Where to write the PDF (defaults to the templates directory)",
)
def create_test_template(name: str, output: str | None):
    """Draw a sample A4 template and register it with the default layout."""
    settings = get_settings()
    template_id = str(uuid.uuid4())
    if output:
        path = os.path.abspath(output)
        file_path = path
    else:
        ensure_dir(settings.templates_dir)
        file_path = f"{template_id}-test-template.pdf"
        path = os.path.join(settings.templates_dir, file_path)
    draw_sample_template(path)
    width, height = A4
    db.session.add(
        Template(
            id=template_id,
            name=name,
            filename=os.path.basename(path),
            file_path=file_path,
            field_mapping=default_field_mapping(width, height).to_json(),
        )
    )
    db.session.commit()
    current_app.logger.info("[TEMPLATE-SAMPLE] template=%s path=%s", template_id, path)
    click.echo(f"template_id={template_id}")
    click.echo(path)


@cli.command("purge_orphan_certs")
@click.option(
    "--dry-run", is_flag=True, help="List orphaned certificate PDFs without deleting"
)
@click.option(
    "--min-age",
    type=click.IntRange(min=0),
    default=300,
    show_default=True,
    help="Skip files modified within this many seconds",
)
def purge_orphan_certs(dry_run: bool, min_age: int):
    cert_root = get_settings().certificates_dir
    if not os.path.isdir(cert_root):
        click.echo("Certificate directory missing", err=True)
        return
    if (
        not dry_run
        and current_app.config.get("ENV") == "production"
        and os.getenv("ALLOW_CERT_PURGE") != "1"
    ):
        click.echo(
            "Refusing to delete in production without ALLOW_CERT_PURGE=1", err=True
        )
        return

    # a fresh PDF may belong to an issuance whose row is not committed yet
    cutoff = time.time() - min_age
    total = deleted = kept = skipped = errors = 0
    samples: list[str] = []
    for name in sorted(os.listdir(cert_root)):
        full_path = os.path.join(cert_root, name)
        if not name.lower().endswith(".pdf") or not os.path.isfile(full_path):
            continue
        total += 1
        certificate_id = name[: -len(".pdf")]
        exists = (
            db.session.query(Certificate.id)
            .filter(
                (Certificate.id == certificate_id) | (Certificate.pdf_path == full_path)
            )
            .first()
        )
        if exists:
            kept += 1
            continue
        if os.path.getmtime(full_path) > cutoff:
            skipped += 1
            continue
        if len(samples) < 5:
            samples.append(full_path)
        if dry_run:
            continue
        try:
            os.remove(full_path)
            deleted += 1
        except OSError:
            errors += 1
            current_app.logger.exception("[CERT-PURGE] failed to remove %s", full_path)
    summary = (
        f"scanned={total} deleted={deleted} kept={kept} "
        f"skipped={skipped} errors={errors}"
    )
    for path in samples:
        click.echo(path)
    click.echo(summary)
    current_app.logger.info("[CERT-PURGE] %s", summary)


if __name__ == "__main__":
    cli()
