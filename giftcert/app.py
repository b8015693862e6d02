import logging
import os
from typing import Any, Mapping

from flask import Flask, jsonify, send_from_directory
from flask_sqlalchemy import SQLAlchemy
from werkzeug.exceptions import HTTPException

db = SQLAlchemy()

from .errors import IssuanceError
from .settings import IssuanceSettings


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def create_app(config: Mapping[str, Any] | None = None):
    app = Flask(__name__, template_folder="templates", static_folder=None)
    app.secret_key = os.getenv("SECRET_KEY", "dev")

    DB_USER = os.getenv("DB_USER", "giftcert")
    DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
    DB_HOST = os.getenv("DB_HOST", "db")
    DB_NAME = os.getenv("DB_NAME", "giftcert")
    DATABASE_URL = os.getenv(
        "DATABASE_URL",
        f"postgresql+psycopg2://{DB_USER}:{DB_PASSWORD}@{DB_HOST}/{DB_NAME}",
    )

    app.config["SQLALCHEMY_DATABASE_URI"] = DATABASE_URL
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["MAX_CONTENT_LENGTH"] = 10 * 1024 * 1024

    data_root = os.getenv("DATA_ROOT", "/srv/giftcert")
    app.config["DATA_ROOT"] = data_root
    app.config["CERTIFICATES_DIR"] = os.getenv(
        "CERTIFICATES_DIR", os.path.join(data_root, "certificates")
    )
    app.config["TEMPLATES_DIR"] = os.getenv(
        "TEMPLATES_DIR", os.path.join(data_root, "templates")
    )
    app.config["BASE_URL"] = os.getenv("BASE_URL", "http://localhost:5000")
    app.config["CERTIFICATE_EXPIRY_DAYS"] = int(
        os.getenv("CERTIFICATE_EXPIRY_DAYS", "365")
    )
    app.config["CURRENCY_LABEL"] = os.getenv("CURRENCY_LABEL", "RUB")
    app.config["DISPATCH_CHANNELS"] = os.getenv(
        "DISPATCH_CHANNELS", "email,spreadsheet"
    )

    app.config["API_KEY"] = os.getenv("API_KEY")
    app.config["ADMIN_USER"] = os.getenv("ADMIN_USER", "admin")
    app.config["ADMIN_PASS"] = os.getenv("ADMIN_PASS")

    app.config["SMTP_HOST"] = os.getenv("SMTP_HOST")
    app.config["SMTP_PORT"] = os.getenv("SMTP_PORT")
    app.config["SMTP_USER"] = os.getenv("SMTP_USER")
    app.config["SMTP_PASS"] = os.getenv("SMTP_PASS")
    app.config["SMTP_FROM_DEFAULT"] = os.getenv("SMTP_FROM_DEFAULT")
    app.config["SMTP_FROM_NAME"] = os.getenv("SMTP_FROM_NAME", "Gift Certificates")

    app.config["SHEETS_SPREADSHEET_ID"] = os.getenv("SHEETS_SPREADSHEET_ID")
    app.config["SHEETS_SHEET_NAME"] = os.getenv("SHEETS_SHEET_NAME", "Certificates")
    app.config["SHEETS_CREDENTIALS_FILE"] = os.getenv("SHEETS_CREDENTIALS_FILE")
    app.config["SHEETS_CLIENT_EMAIL"] = os.getenv("SHEETS_CLIENT_EMAIL")
    app.config["SHEETS_PRIVATE_KEY"] = os.getenv("SHEETS_PRIVATE_KEY")
    app.config["SHEETS_CSV_PATH"] = os.getenv("SHEETS_CSV_PATH")

    app.config["CELERY"] = {
        "broker_url": os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0"),
        "task_ignore_result": True,
        "task_always_eager": _env_flag("CELERY_TASK_ALWAYS_EAGER"),
    }

    if config:
        app.config.update(config)

    app.logger.setLevel(logging.INFO)

    db.init_app(app)

    settings = IssuanceSettings.from_config(app.config)
    app.extensions["issuance_settings"] = settings

    from .tasks import celery_init_app

    celery_init_app(app)

    @app.errorhandler(IssuanceError)
    def handle_issuance_error(exc: IssuanceError):
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        if isinstance(exc, HTTPException):
            return exc
        app.logger.exception("[APP-ERROR] unhandled %s", type(exc).__name__)
        return (
            jsonify({"error": "internal_error", "detail": "Internal server error."}),
            500,
        )

    @app.get("/health")
    def health():  # pragma: no cover - simple healthcheck
        return "OK", 200

    @app.get("/static/certificates/<path:filename>")
    def certificate_file(filename: str):
        return send_from_directory(settings.certificates_dir, filename)

    from .routes.certificates import bp as certificates_bp
    from .routes.templates import bp as templates_bp
    from .routes.admin import bp as admin_bp

    app.register_blueprint(certificates_bp)
    app.register_blueprint(templates_bp)
    app.register_blueprint(admin_bp)

    return app


def get_settings() -> IssuanceSettings:
    from flask import current_app

    return current_app.extensions["issuance_settings"]
