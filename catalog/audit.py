"""
Audit sink for login / logout events.

``record`` is the only call sites use. It never raises and never blocks on
the network: the sheet append happens on a background worker and any
failure ends as a single warning in the log.
"""

from __future__ import annotations

import datetime as dt
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Optional

from catalog.config import LOG_SHEET
from catalog.sheets import SheetsError, append_row, fetch_values

logger = logging.getLogger(__name__)

STATUS_SUCCESS = "Success"
STATUS_FAILED = "Failed"
STATUS_ERROR = "Error"
STATUS_LOGOUT = "Logout"

UNKNOWN_IP = "Unknown"


@dataclass(frozen=True)
class AuditEntry:
    timestamp: str
    email: str
    status: str
    message: str = ""
    ip_address: str = UNKNOWN_IP

    @classmethod
    def now(cls, email: str, status: str, message: str = "", ip_address: Optional[str] = None) -> "AuditEntry":
        return cls(
            timestamp=dt.datetime.now(dt.timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            email=email or "",
            status=status,
            message=message or "",
            ip_address=ip_address or UNKNOWN_IP,
        )

    def as_row(self) -> list[str]:
        return [self.timestamp, self.email, self.status, self.message, self.ip_address]


def client_ip(headers, remote_addr: Optional[str] = None) -> str:
    """First hop of ``X-Forwarded-For``, then ``X-Real-IP``, then the socket peer."""
    forwarded = headers.get("X-Forwarded-For") if headers else None
    if forwarded:
        return forwarded.split(",")[0].strip() or UNKNOWN_IP
    real_ip = headers.get("X-Real-IP") if headers else None
    return real_ip or remote_addr or UNKNOWN_IP


class AuditSink:
    """Base sink; subclasses implement ``emit``."""

    def emit(self, entry: AuditEntry) -> None:
        raise NotImplementedError

    def record(self, email: str, status: str, message: str = "", ip_address: Optional[str] = None) -> None:
        entry = AuditEntry.now(email, status, message, ip_address)
        try:
            self.emit(entry)
        except Exception as exc:
            logger.warning("Audit record for %s dropped: %s", entry.email, exc)


class SheetsAuditSink(AuditSink):
    """Appends audit rows to the ``log`` tab."""

    def __init__(self, sheet_name: str = LOG_SHEET, workers: int = 1):
        self.sheet_name = sheet_name
        self._pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="audit")

    def write(self, entry: AuditEntry) -> None:
        """Synchronous append; raises ``SheetsError``."""
        append_row(self.sheet_name, entry.as_row())

    def _write_quietly(self, entry: AuditEntry) -> None:
        try:
            self.write(entry)
        except SheetsError as exc:
            logger.warning("Failed to log to sheet %s: %s", self.sheet_name, exc)

    def emit(self, entry: AuditEntry) -> None:
        self._pool.submit(self._write_quietly, entry)

    def read(self) -> list[dict]:
        """Return the log tab as records, newest first."""
        rows = fetch_values(self.sheet_name)
        keys = ("timestamp", "email", "status", "message", "ipAddress")
        records = []
        for row in rows[1:]:
            if not row:
                continue
            padded = list(row) + [""] * (len(keys) - len(row))
            records.append(dict(zip(keys, padded)))
        records.reverse()
        return records
