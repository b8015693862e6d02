"""Spreadsheet log of issued certificates.

Two backends share the ``ensure_headers`` / ``append_row`` interface: the
Google Sheets v4 REST API (service-account auth through google-auth) and a
local CSV file for deployments without a spreadsheet.
"""

from __future__ import annotations

import csv
import logging
import os
from typing import Sequence

import requests
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import AuthorizedSession
from google.oauth2 import service_account

from .errors import SheetError
from .settings import SheetSettings
from .shared.storage import ensure_dir

logger = logging.getLogger("giftcert.sheets")

SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
TOKEN_URI = "https://oauth2.googleapis.com/token"
API_ROOT = "https://sheets.googleapis.com/v4/spreadsheets"

HEADERS = [
    "Created",
    "Certificate ID",
    "First name",
    "Last name",
    "Email",
    "Amount",
    "Issue date",
    "Valid until",
    "Certificate code",
    "Message",
    "From",
    "Status",
    "Verification URL",
]
LAST_COLUMN = "M"


def _credentials(settings: SheetSettings):
    if settings.credentials_file:
        return service_account.Credentials.from_service_account_file(
            settings.credentials_file, scopes=SCOPES
        )
    info = {
        "type": "service_account",
        "client_email": settings.client_email,
        # env files usually carry the key with literal \n sequences
        "private_key": (settings.private_key or "").replace("\\n", "\n"),
        "token_uri": TOKEN_URI,
    }
    return service_account.Credentials.from_service_account_info(info, scopes=SCOPES)


class GoogleSheetsClient:
    def __init__(self, settings: SheetSettings, session=None):
        self.spreadsheet_id = settings.spreadsheet_id
        self.sheet_name = settings.sheet_name
        self._settings = settings
        self._session = session

    @property
    def session(self):
        if self._session is None:
            self._session = AuthorizedSession(_credentials(self._settings))
        return self._session

    def _request(self, method: str, path: str = "", **kwargs) -> dict:
        url = f"{API_ROOT}/{self.spreadsheet_id}{path}"
        try:
            resp = self.session.request(method, url, timeout=20, **kwargs)
        except (requests.RequestException, GoogleAuthError, ValueError) as exc:
            raise SheetError(f"Sheets request failed: {exc}") from exc
        if resp.status_code >= 400:
            raise SheetError(f"Sheets error {resp.status_code}: {resp.text}")
        return resp.json() if resp.content else {}

    def _range(self, cells: str) -> str:
        # A1 notation: quote the sheet title, doubling embedded quotes
        title = self.sheet_name.replace("'", "''")
        return f"'{title}'!{cells}"

    def ensure_headers(self) -> None:
        meta = self._request("GET", params={"fields": "sheets.properties"})
        titles = {
            s.get("properties", {}).get("title"): s.get("properties", {}).get("sheetId")
            for s in meta.get("sheets", [])
        }
        if self.sheet_name not in titles:
            created = self._request(
                "POST",
                ":batchUpdate",
                json={"requests": [{"addSheet": {"properties": {"title": self.sheet_name}}}]},
            )
            reply = (created.get("replies") or [{}])[0]
            titles[self.sheet_name] = (
                reply.get("addSheet", {}).get("properties", {}).get("sheetId")
            )
            logger.info("[SHEET-CREATE] sheet=%s", self.sheet_name)

        header_range = self._range(f"A1:{LAST_COLUMN}1")
        current = self._request("GET", f"/values/{header_range}")
        if current.get("values"):
            return

        self._request(
            "PUT",
            f"/values/{header_range}",
            params={"valueInputOption": "RAW"},
            json={"values": [HEADERS]},
        )
        sheet_id = titles.get(self.sheet_name)
        if sheet_id is not None:
            self._request(
                "POST",
                ":batchUpdate",
                json={
                    "requests": [
                        {
                            "repeatCell": {
                                "range": {"sheetId": sheet_id, "startRowIndex": 0, "endRowIndex": 1},
                                "cell": {"userEnteredFormat": {"textFormat": {"bold": True}}},
                                "fields": "userEnteredFormat.textFormat.bold",
                            }
                        }
                    ]
                },
            )
        logger.info("[SHEET-HEADERS] sheet=%s", self.sheet_name)

    def append_row(self, values: Sequence) -> None:
        self._request(
            "POST",
            f"/values/{self._range(f'A:{LAST_COLUMN}')}:append",
            params={"valueInputOption": "RAW", "insertDataOption": "INSERT_ROWS"},
            json={"values": [list(values)]},
        )

    def check(self) -> bool:
        self._request("GET", params={"fields": "spreadsheetId"})
        return True


class CsvSheetClient:
    def __init__(self, path: str):
        self.path = path

    def ensure_headers(self) -> None:
        if os.path.exists(self.path) and os.path.getsize(self.path) > 0:
            return
        ensure_dir(os.path.dirname(self.path) or ".")
        try:
            with open(self.path, "w", newline="", encoding="utf-8") as fh:
                csv.writer(fh).writerow(HEADERS)
        except OSError as exc:
            raise SheetError(f"Cannot write {self.path}: {exc}") from exc

    def append_row(self, values: Sequence) -> None:
        try:
            with open(self.path, "a", newline="", encoding="utf-8") as fh:
                csv.writer(fh).writerow(["" if v is None else v for v in values])
        except OSError as exc:
            raise SheetError(f"Cannot append to {self.path}: {exc}") from exc

    def check(self) -> bool:
        directory = os.path.dirname(self.path) or "."
        return os.path.isdir(directory) and os.access(directory, os.W_OK)


def build_sheet_client(settings: SheetSettings):
    """Pick the configured backend, or None when the spreadsheet log is off."""
    if settings.spreadsheet_id:
        if settings.credentials_file or (settings.client_email and settings.private_key):
            return GoogleSheetsClient(settings)
        logger.warning(
            "[SHEET-CONFIG] spreadsheet=%s has no service-account credentials",
            settings.spreadsheet_id,
        )
        return None
    if settings.csv_path:
        return CsvSheetClient(settings.csv_path)
    return None


def check_connection(settings: SheetSettings) -> bool:
    client = build_sheet_client(settings)
    if client is None:
        return False
    try:
        return client.check()
    except (SheetError, OSError, ValueError) as exc:
        logger.warning("[SHEET-CHECK] error=%s", exc)
        return False
