from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping


@dataclass(frozen=True)
class MailSettings:
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    from_addr: str | None = None
    from_name: str = ""

    @property
    def configured(self) -> bool:
        return bool(self.host and self.port and self.from_addr)


@dataclass(frozen=True)
class SheetSettings:
    spreadsheet_id: str | None = None
    sheet_name: str = "Certificates"
    credentials_file: str | None = None
    client_email: str | None = None
    private_key: str | None = None
    csv_path: str | None = None


@dataclass(frozen=True)
class IssuanceSettings:
    """Runtime configuration handed to the pipeline and the dispatchers."""

    base_url: str
    certificates_dir: str
    templates_dir: str
    expiry_days: int = 365
    currency_label: str = "RUB"
    dispatch_channels: tuple[str, ...] = ("email", "spreadsheet")
    mail: MailSettings = MailSettings()
    sheets: SheetSettings = SheetSettings()

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "IssuanceSettings":
        port = config.get("SMTP_PORT")
        try:
            port_int = int(port) if port else None
        except (TypeError, ValueError):
            port_int = None
        channels = config.get("DISPATCH_CHANNELS") or ""
        if isinstance(channels, str):
            channels = [part.strip() for part in channels.split(",")]
        return cls(
            base_url=(config.get("BASE_URL") or "").rstrip("/"),
            certificates_dir=config["CERTIFICATES_DIR"],
            templates_dir=config["TEMPLATES_DIR"],
            expiry_days=int(config.get("CERTIFICATE_EXPIRY_DAYS") or 365),
            currency_label=config.get("CURRENCY_LABEL") or "",
            dispatch_channels=tuple(c for c in channels if c),
            mail=MailSettings(
                host=config.get("SMTP_HOST"),
                port=port_int,
                user=config.get("SMTP_USER"),
                password=config.get("SMTP_PASS"),
                from_addr=config.get("SMTP_FROM_DEFAULT"),
                from_name=config.get("SMTP_FROM_NAME") or "",
            ),
            sheets=SheetSettings(
                spreadsheet_id=config.get("SHEETS_SPREADSHEET_ID"),
                sheet_name=config.get("SHEETS_SHEET_NAME") or "Certificates",
                credentials_file=config.get("SHEETS_CREDENTIALS_FILE"),
                client_email=config.get("SHEETS_CLIENT_EMAIL"),
                private_key=config.get("SHEETS_PRIVATE_KEY"),
                csv_path=config.get("SHEETS_CSV_PATH"),
            ),
        )

    def pdf_url(self, certificate_id: str) -> str:
        return f"{self.base_url}/static/certificates/{certificate_id}.pdf"

    def verification_url(self, certificate_code: str) -> str:
        return f"{self.base_url}/api/v1/verify/{certificate_code}"
