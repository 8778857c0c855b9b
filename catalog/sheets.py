"""
Thin client for the Google Sheets v4 values API.

Reads go through the REST endpoint with an API key. Appends go through the
discovery client with refreshable OAuth credentials.
"""

from __future__ import annotations

import logging
import time
from typing import Optional
from urllib.parse import quote

import google.auth.transport.requests
import requests
from google.auth.exceptions import GoogleAuthError, RefreshError
from google.oauth2.credentials import Credentials
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from catalog.config import (
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_REFRESH_TOKEN,
    GOOGLE_TOKEN_URI,
    SHEETS_ACCESS_TOKEN,
    SHEETS_API_BASE,
    SHEETS_API_KEY,
    SHEETS_SCOPES,
    SHEETS_TIMEOUT,
    SPREADSHEET_ID,
)

logger = logging.getLogger(__name__)

_NO_CACHE_HEADERS = {
    "Accept": "application/json",
    "Cache-Control": "no-cache, no-store",
    "Pragma": "no-cache",
}


class SheetsError(RuntimeError):
    """Transport or payload failure talking to the tabular source."""


def _values_url(spreadsheet_id: str, sheet_name: str) -> str:
    return f"{SHEETS_API_BASE}/{quote(spreadsheet_id)}/values/{quote(sheet_name)}"


def fetch_values(
    sheet_name: str,
    spreadsheet_id: Optional[str] = None,
    api_key: Optional[str] = None,
) -> list[list[str]]:
    """
    Return every row of *sheet_name*, header included.

    A timestamp query parameter defeats intermediate caches so a redeploy
    never serves yesterday's catalog.
    """
    sid = spreadsheet_id or SPREADSHEET_ID
    key = api_key or SHEETS_API_KEY
    if not sid:
        raise SheetsError("No spreadsheet configured (CATALOG_SPREADSHEET_ID)")

    params = {"t": int(time.time() * 1000)}
    if key:
        params["key"] = key

    try:
        resp = requests.get(
            _values_url(sid, sheet_name),
            params=params,
            headers=_NO_CACHE_HEADERS,
            timeout=SHEETS_TIMEOUT,
        )
        resp.raise_for_status()
        payload = resp.json()
    except (requests.RequestException, ValueError) as exc:
        raise SheetsError(f"Failed to fetch sheet {sheet_name!r}: {exc}") from exc

    if not isinstance(payload, dict):
        raise SheetsError(f"Unexpected payload for sheet {sheet_name!r}")
    values = payload.get("values") or []
    return [[("" if cell is None else str(cell)) for cell in row] for row in values if isinstance(row, list)]


# --------------------------------------------------------------------------- #
# Appends (OAuth)
# --------------------------------------------------------------------------- #
_CREDENTIALS: Optional[Credentials] = None


def sheets_credentials() -> Credentials:
    """
    OAuth credentials for writes, built once per process.

    With a refresh token and client configured the access token is renewed
    whenever it has expired, so appends keep working past the first hour.
    """
    global _CREDENTIALS
    if _CREDENTIALS is None:
        if not (SHEETS_ACCESS_TOKEN or GOOGLE_REFRESH_TOKEN):
            raise SheetsError(
                "Sheet appends need CATALOG_SHEETS_ACCESS_TOKEN or CATALOG_GOOGLE_REFRESH_TOKEN"
            )
        _CREDENTIALS = Credentials(
            token=SHEETS_ACCESS_TOKEN or None,
            refresh_token=GOOGLE_REFRESH_TOKEN or None,
            client_id=GOOGLE_CLIENT_ID or None,
            client_secret=GOOGLE_CLIENT_SECRET or None,
            token_uri=GOOGLE_TOKEN_URI,
            scopes=SHEETS_SCOPES,
        )
    creds = _CREDENTIALS
    if not creds.valid and creds.refresh_token:
        logger.info("Sheets token missing or expired, attempting refresh...")
        try:
            creds.refresh(google.auth.transport.requests.Request())
        except RefreshError as exc:
            raise SheetsError(f"Token refresh failed: {exc}") from exc
        logger.info("Sheets token refreshed.")
    return creds


def sheets_service(credentials: Optional[Credentials] = None):
    """Discovery client for the values API; one per call since httplib2 is not thread-safe."""
    return build("sheets", "v4", credentials=credentials or sheets_credentials(), cache_discovery=False)


def append_row(
    sheet_name: str,
    row: list,
    spreadsheet_id: Optional[str] = None,
    service=None,
) -> None:
    """Append one row to *sheet_name* as if typed by a user."""
    sid = spreadsheet_id or SPREADSHEET_ID
    if not sid:
        raise SheetsError("No spreadsheet configured (CATALOG_SPREADSHEET_ID)")

    try:
        service = service or sheets_service()
        service.spreadsheets().values().append(
            spreadsheetId=sid,
            range=sheet_name,
            valueInputOption="USER_ENTERED",
            body={"values": [row]},
        ).execute()
    except (HttpError, GoogleAuthError, OSError) as exc:
        raise SheetsError(f"Failed to append to sheet {sheet_name!r}: {exc}") from exc
    logger.info("Appended row to sheet %s", sheet_name)
