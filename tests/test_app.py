"""
Tests for sign-in, the audit sink and the Flask API.
"""

import pytest
from google.auth.exceptions import RefreshError
from google.oauth2.credentials import Credentials

from catalog import sheets
from catalog.audit import (
    STATUS_ERROR,
    STATUS_FAILED,
    STATUS_LOGOUT,
    STATUS_SUCCESS,
    AuditEntry,
    AuditSink,
    SheetsAuditSink,
    client_ip,
)
from catalog.auth import MemorySessionStore, SessionContext, check_credentials, login, logout
from catalog.config import RENDER_TOKEN, RENDER_TOKEN_HEADER
from catalog.pdf_renderer import RenderError
from catalog.products import FetchResult, Product
from catalog.sheets import SheetsError

LOGIN_ROWS = [
    ["Email", "Password", "Role"],
    ["user@example.com", "secret", ""],
    ["boss@example.com", "hunter2", "SUPREME"],
]


class RecordingSink(AuditSink):
    def __init__(self):
        self.entries = []

    def emit(self, entry):
        self.entries.append(entry)

    write = emit

    def read(self):
        return [{"email": e.email, "status": e.status} for e in self.entries]

    def statuses(self):
        return [e.status for e in self.entries]


class ExplodingSink(AuditSink):
    def emit(self, entry):
        raise RuntimeError("sheet unavailable")


# --------------------------------------------------------------------------- #
# Credentials & session
# --------------------------------------------------------------------------- #

class TestAuth:
    def test_valid_user(self):
        r = check_credentials("user@example.com", "secret", LOGIN_ROWS)
        assert r.authenticated
        assert not r.is_admin

    def test_admin_marker(self):
        r = check_credentials("boss@example.com", "hunter2", LOGIN_ROWS)
        assert r.authenticated
        assert r.is_admin

    def test_wrong_password(self):
        r = check_credentials("user@example.com", "nope", LOGIN_ROWS)
        assert not r.authenticated
        assert r.message == "Invalid credentials"

    def test_header_only_sheet(self):
        r = check_credentials("user@example.com", "secret", LOGIN_ROWS[:1])
        assert r.message == "No user data available"

    def test_login_sets_session_and_audits(self):
        store, sink = MemorySessionStore(), RecordingSink()
        result = login(" user@example.com ", "secret", store, sink, "1.2.3.4",
                       rows_loader=lambda: LOGIN_ROWS)
        assert result.authenticated
        ctx = store.get()
        assert ctx.email == "user@example.com"
        assert ctx.authenticated
        assert sink.statuses() == [STATUS_SUCCESS]
        assert sink.entries[0].ip_address == "1.2.3.4"

    def test_failed_login_audited(self):
        store, sink = MemorySessionStore(), RecordingSink()
        result = login("user@example.com", "bad", store, sink, rows_loader=lambda: LOGIN_ROWS)
        assert not result.authenticated
        assert store.get() is None
        assert sink.statuses() == [STATUS_FAILED]

    def test_transport_error_audited_and_raised(self):
        def broken():
            raise SheetsError("down")

        sink = RecordingSink()
        with pytest.raises(SheetsError):
            login("user@example.com", "secret", MemorySessionStore(), sink, rows_loader=broken)
        assert sink.statuses() == [STATUS_ERROR]

    def test_logout(self):
        store, sink = MemorySessionStore(), RecordingSink()
        store.set(SessionContext("user@example.com", True, "now"))
        logout(store, sink)
        assert store.get() is None
        assert sink.statuses() == [STATUS_LOGOUT]

    def test_logout_without_session_not_audited(self):
        sink = RecordingSink()
        logout(MemorySessionStore(), sink)
        assert sink.entries == []

    def test_session_context_round_trip(self):
        ctx = SessionContext("a@b.c", True, "t", is_admin=True)
        assert SessionContext.from_dict(ctx.to_dict()) == ctx
        assert SessionContext.from_dict(None) is None


# --------------------------------------------------------------------------- #
# Audit sink
# --------------------------------------------------------------------------- #

class TestAudit:
    def test_record_never_raises(self):
        ExplodingSink().record("a@b.c", STATUS_SUCCESS, "ok")

    def test_entry_row_shape(self):
        entry = AuditEntry.now("a@b.c", STATUS_FAILED, "bad password", None)
        row = entry.as_row()
        assert row[1:] == ["a@b.c", STATUS_FAILED, "bad password", "Unknown"]
        assert row[0].endswith("Z")

    def test_client_ip(self):
        assert client_ip({"X-Forwarded-For": "1.2.3.4, 10.0.0.1"}) == "1.2.3.4"
        assert client_ip({"X-Real-IP": "9.9.9.9"}) == "9.9.9.9"
        assert client_ip({}, "127.0.0.1") == "127.0.0.1"
        assert client_ip({}) == "Unknown"

    def test_sheets_sink_swallows_append_failure(self, monkeypatch):
        def boom(sheet_name, row):
            raise SheetsError("no token")

        monkeypatch.setattr("catalog.audit.append_row", boom)
        sink = SheetsAuditSink()
        sink.record("a@b.c", STATUS_SUCCESS)
        sink._pool.shutdown(wait=True)

    def test_sheets_sink_read_newest_first(self, monkeypatch):
        rows = [
            ["Timestamp", "Email", "Status", "Message", "IP"],
            ["t1", "a@b.c", "Success", "ok", "1.1.1.1"],
            ["t2", "b@c.d", "Failed"],
        ]
        monkeypatch.setattr("catalog.audit.fetch_values", lambda sheet_name: rows)
        records = SheetsAuditSink().read()
        assert [r["timestamp"] for r in records] == ["t2", "t1"]
        assert records[0]["ipAddress"] == ""


# --------------------------------------------------------------------------- #
# Sheets appends
# --------------------------------------------------------------------------- #

class FakeSheetsService:
    """Stands in for ``build("sheets", "v4")``: spreadsheets().values().append().execute()."""

    def __init__(self, error=None):
        self.error = error
        self.appended = []

    def spreadsheets(self):
        return self

    def values(self):
        return self

    def append(self, **kwargs):
        self.appended.append(kwargs)
        return self

    def execute(self):
        if self.error is not None:
            raise self.error
        return {"updates": {"updatedRows": 1}}


class TestSheetsAppend:
    @pytest.fixture(autouse=True)
    def oauth_env(self, monkeypatch):
        monkeypatch.setattr(sheets, "_CREDENTIALS", None)
        monkeypatch.setattr(sheets, "SHEETS_ACCESS_TOKEN", "access")
        monkeypatch.setattr(sheets, "GOOGLE_REFRESH_TOKEN", "refresh")
        monkeypatch.setattr(sheets, "GOOGLE_CLIENT_ID", "client-id")
        monkeypatch.setattr(sheets, "GOOGLE_CLIENT_SECRET", "client-secret")

    def test_append_uses_values_append(self):
        service = FakeSheetsService()
        sheets.append_row("log", ["t", "a@b.c", "Success"], spreadsheet_id="sheet-1", service=service)
        assert service.appended == [{
            "spreadsheetId": "sheet-1",
            "range": "log",
            "valueInputOption": "USER_ENTERED",
            "body": {"values": [["t", "a@b.c", "Success"]]},
        }]

    def test_auth_failure_becomes_sheets_error(self):
        service = FakeSheetsService(error=RefreshError("invalid_grant"))
        with pytest.raises(SheetsError):
            sheets.append_row("log", ["x"], spreadsheet_id="sheet-1", service=service)

    def test_missing_spreadsheet(self, monkeypatch):
        monkeypatch.setattr(sheets, "SPREADSHEET_ID", "")
        with pytest.raises(SheetsError):
            sheets.append_row("log", ["x"], service=FakeSheetsService())

    def test_credentials_carry_refresh_token(self):
        creds = sheets.sheets_credentials()
        assert creds.token == "access"
        assert creds.refresh_token == "refresh"
        assert creds.client_id == "client-id"
        assert creds.token_uri == "https://oauth2.googleapis.com/token"
        assert sheets.sheets_credentials() is creds

    def test_missing_access_token_is_refreshed(self, monkeypatch):
        monkeypatch.setattr(sheets, "SHEETS_ACCESS_TOKEN", "")
        refreshed = []

        def fake_refresh(self, request):
            refreshed.append(request)
            self.token = "renewed"

        monkeypatch.setattr(Credentials, "refresh", fake_refresh)
        creds = sheets.sheets_credentials()
        assert creds.token == "renewed"
        assert len(refreshed) == 1

    def test_failed_refresh_raises_sheets_error(self, monkeypatch):
        monkeypatch.setattr(sheets, "SHEETS_ACCESS_TOKEN", "")

        def failing_refresh(self, request):
            raise RefreshError("invalid_grant")

        monkeypatch.setattr(Credentials, "refresh", failing_refresh)
        with pytest.raises(SheetsError):
            sheets.sheets_credentials()

    def test_no_credentials_configured(self, monkeypatch):
        monkeypatch.setattr(sheets, "SHEETS_ACCESS_TOKEN", "")
        monkeypatch.setattr(sheets, "GOOGLE_REFRESH_TOKEN", "")
        with pytest.raises(SheetsError):
            sheets.sheets_credentials()


# --------------------------------------------------------------------------- #
# Flask API
# --------------------------------------------------------------------------- #

def _products(n):
    return [Product(product_name=f"Gift {i}", product_category="Hampers", occasion="Diwali",
                    rate=str(100 * (i + 1)), ranking=float(i)) for i in range(n)]


class TestFlaskAPI:
    @pytest.fixture
    def sink(self):
        return RecordingSink()

    @pytest.fixture
    def client(self, monkeypatch, sink):
        import app as catalog_app

        monkeypatch.setattr(catalog_app, "fetch_products", lambda: FetchResult(products=_products(40)))
        monkeypatch.setattr(catalog_app, "preload", lambda products: None)
        monkeypatch.setattr(catalog_app, "audit_sink", sink)
        monkeypatch.setattr("catalog.auth.fetch_values", lambda sheet_name: LOGIN_ROWS)
        catalog_app.app.config["TESTING"] = True
        with catalog_app.app.test_client() as c:
            yield c

    def _login(self, client, email="user@example.com", password="secret"):
        return client.post("/api/login", json={"email": email, "password": password})

    def test_products_api(self, client):
        resp = client.get("/api/products")
        assert resp.status_code == 200
        data = resp.get_json()
        assert len(data) == 40
        assert data[0]["productName"] == "Gift 0"
        assert "no-store" in resp.headers["Cache-Control"]

    def test_products_api_failure_is_empty_array(self, client, monkeypatch):
        import app as catalog_app

        monkeypatch.setattr(catalog_app, "fetch_products", lambda: FetchResult(error="boom"))
        resp = client.get("/api/products")
        assert resp.status_code == 200
        assert resp.get_json() == []

    def test_catalog_api_filters_and_discounts(self, client):
        resp = client.post("/api/catalog", json={
            "priceRange": [500, 1500],
            "sortType": "price",
            "discount": 20,
        })
        assert resp.status_code == 200
        data = resp.get_json()
        rates = [p["rate"] for p in data["products"]]
        assert rates == [str(r) for r in range(500, 1600, 100)]
        assert data["products"][0]["discountedPrice"] == "₹400"
        assert data["sortLabel"] == "Price: Low to High"
        assert data["totalMatches"] == 11
        assert not data["truncated"]

    def test_catalog_api_caps_results(self, client):
        data = client.post("/api/catalog", json={"priceRange": [0, 5000]}).get_json()
        assert len(data["products"]) == 30
        assert data["totalMatches"] == 40
        assert data["truncated"]
        assert data["products"][0]["productName"] == "Gift 39"

    def test_homepage_requires_login(self, client):
        resp = client.get("/")
        assert resp.status_code == 302
        assert "/login" in resp.headers["Location"]

    def test_login_page(self, client):
        resp = client.get("/login")
        assert resp.status_code == 200
        assert b"Sign in" in resp.data

    def test_form_login_invalid(self, client, sink):
        resp = client.post("/login", data={"email": "user@example.com", "password": "bad"})
        assert resp.status_code == 401
        assert b"Invalid credentials" in resp.data
        assert sink.statuses() == [STATUS_FAILED]

    def test_login_then_homepage(self, client, sink):
        resp = self._login(client)
        assert resp.status_code == 200
        assert resp.get_json() == {"authenticated": True, "isAdmin": False}
        assert sink.statuses() == [STATUS_SUCCESS]

        page = client.get("/?clientName=Acme&occasions=Diwali")
        assert page.status_code == 200
        assert b"Product Catalog" in page.data
        assert b'id="occasion-filter"' in page.data
        assert b"Acme" in page.data
        assert "₹".encode() in page.data

    def test_login_invalid_api(self, client):
        resp = self._login(client, password="wrong")
        assert resp.status_code == 401
        assert resp.get_json()["authenticated"] is False

    def test_login_sheet_unavailable(self, client, monkeypatch, sink):
        def boom(sheet_name):
            raise SheetsError("down")

        monkeypatch.setattr("catalog.auth.fetch_values", boom)
        resp = self._login(client)
        assert resp.status_code == 502
        assert sink.statuses() == [STATUS_ERROR]

    def test_logout(self, client, sink):
        self._login(client)
        resp = client.post("/api/logout")
        assert resp.status_code == 200
        assert sink.statuses() == [STATUS_SUCCESS, STATUS_LOGOUT]
        assert client.get("/").status_code == 302

    def test_print_requires_token(self, client):
        assert client.get("/print").status_code == 403

    def test_print_rejects_non_ascii_token(self, client):
        resp = client.get("/print", headers={RENDER_TOKEN_HEADER: "caf\u00e9"})
        assert resp.status_code == 403

    def test_print_with_token(self, client):
        resp = client.get("/print?discount=10", headers={RENDER_TOKEN_HEADER: RENDER_TOKEN})
        assert resp.status_code == 200
        assert b"product-card" in resp.data
        assert b"Discount Applied: 10%" in resp.data

    def test_log_api_missing_fields(self, client):
        resp = client.post("/api/log", json={"email": "a@b.c"})
        assert resp.status_code == 400

    def test_log_api_writes(self, client, sink):
        resp = client.post("/api/log", json={"email": "a@b.c", "status": "Success", "message": "hi"},
                           headers={"X-Forwarded-For": "5.6.7.8"})
        assert resp.status_code == 200
        assert sink.entries[0].ip_address == "5.6.7.8"

    def test_logs_api_admin_only(self, client):
        self._login(client)
        assert client.get("/api/logs").status_code == 403

    def test_logs_api_admin(self, client):
        self._login(client, "boss@example.com", "hunter2")
        resp = client.get("/api/logs")
        assert resp.status_code == 200
        assert resp.get_json()["logs"][0]["email"] == "boss@example.com"

    def test_generate_pdf_requires_login(self, client):
        assert client.post("/api/generate-pdf", json={}).status_code == 401

    def test_generate_pdf(self, client, monkeypatch):
        import app as catalog_app

        seen = {}

        def fake_generate(req, strategy=None):
            seen.update(req=req, strategy=strategy)
            return b"%PDF-1.4 fake"

        monkeypatch.setattr(catalog_app, "generate_catalog_document", fake_generate)
        self._login(client)
        resp = client.post("/api/generate-pdf", json={"clientName": "Acme", "strategy": "composer",
                                                      "discount": 5})
        assert resp.status_code == 200
        assert resp.mimetype == "application/pdf"
        assert resp.data == b"%PDF-1.4 fake"
        assert "Acme_Catalog_" in resp.headers["Content-Disposition"]
        assert seen["strategy"] == "composer"
        assert seen["req"].discount == 5

    def test_generate_pdf_unknown_strategy(self, client):
        self._login(client)
        resp = client.post("/api/generate-pdf", json={"strategy": "pdfkit"})
        assert resp.status_code == 400

    def test_generate_pdf_render_failure(self, client, monkeypatch):
        import app as catalog_app

        def failing(req, strategy=None):
            raise RenderError("chromium crashed")

        monkeypatch.setattr(catalog_app, "generate_catalog_document", failing)
        self._login(client)
        resp = client.post("/api/generate-pdf", json={"strategy": "browser"})
        assert resp.status_code == 502
