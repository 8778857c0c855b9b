"""
Product Catalog – sheet-backed catalog viewer

A Flask application that:
  • authenticates users against the sheet's login tab
  • filters, sorts and caps the product list server-side
  • exports the filtered view as a PDF (reportlab or headless Chromium)
"""

from __future__ import annotations

import datetime as dt
import functools
import hmac
import io
import logging

from dotenv import load_dotenv
from flask import (
    Flask,
    jsonify,
    redirect,
    render_template,
    request,
    send_file,
    url_for,
)

# Load local .env before importing modules that read env vars at import time.
load_dotenv()

from catalog.audit import AuditEntry, SheetsAuditSink, client_ip
from catalog.auth import FlaskSessionStore, login, logout
from catalog.config import (
    LOGO_URL,
    MAX_DISCOUNT,
    PLACEHOLDER_IMAGE,
    PRICE_CHIPS,
    RENDER_TOKEN,
    RENDER_TOKEN_HEADER,
    SECRET_KEY,
)
from catalog.export import STRATEGIES, CatalogRequest, export_filename, generate_catalog_document
from catalog.filters import build_view
from catalog.images import preload
from catalog.pdf_renderer import RenderError
from catalog.pricing import discounted_price, format_price
from catalog.products import facets, fetch_products
from catalog.sheets import SheetsError

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config["SECRET_KEY"] = SECRET_KEY
app.config["RENDER_TOKEN"] = RENDER_TOKEN

session_store = FlaskSessionStore()
audit_sink = SheetsAuditSink()

NO_CACHE = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}


@app.template_filter("inr")
def _inr(value):
    return format_price(value)


@app.template_filter("discounted")
def _discounted(rate, discount):
    return discounted_price(rate, discount)


def _ip() -> str:
    return client_ip(request.headers, request.remote_addr)


def login_required(view):
    @functools.wraps(view)
    def wrapper(*args, **kwargs):
        ctx = session_store.get()
        if ctx is None or not ctx.authenticated:
            if request.path.startswith("/api/"):
                return jsonify({"error": "Authentication required"}), 401
            return redirect(url_for("login_page"))
        return view(*args, **kwargs)
    return wrapper


def _catalog_context(req: CatalogRequest, print_mode: bool) -> dict:
    result = fetch_products()
    preload(result.products)
    view = build_view(result.products, req.criteria, req.sort)
    return {
        "view": view,
        "facets": facets(result.products),
        "load_error": result.error,
        "req": req,
        "print_mode": print_mode,
        "price_chips": PRICE_CHIPS,
        "max_discount": MAX_DISCOUNT,
        "placeholder": PLACEHOLDER_IMAGE,
        "user": session_store.get(),
        "logo_url": LOGO_URL,
        "today": dt.date.today(),
        "strategies": STRATEGIES,
    }


# --------------------------------------------------------------------------- #
# Pages
# --------------------------------------------------------------------------- #
@app.route("/")
@login_required
def index():
    req = CatalogRequest.from_mapping(request.args)
    return render_template("catalog.html", **_catalog_context(req, print_mode=False))


@app.route("/print")
def print_view():
    """Catalog view for the headless browser; guarded by the render token."""
    token = request.headers.get(RENDER_TOKEN_HEADER, "")
    ctx = session_store.get()
    if not hmac.compare_digest(token.encode(), app.config["RENDER_TOKEN"].encode()) and not (ctx and ctx.authenticated):
        return jsonify({"error": "Forbidden"}), 403
    req = CatalogRequest.from_mapping(request.args)
    return render_template("catalog.html", **_catalog_context(req, print_mode=True))


@app.route("/login", methods=["GET", "POST"])
def login_page():
    if request.method == "GET":
        if session_store.get():
            return redirect(url_for("index"))
        return render_template("login.html", error=None, email="")

    email = request.form.get("email", "")
    try:
        result = login(email, request.form.get("password", ""), session_store, audit_sink, _ip())
    except SheetsError:
        logger.exception("Login error")
        return render_template(
            "login.html", error="An error occurred during login. Please try again.", email=email,
        ), 502
    if not result.authenticated:
        return render_template("login.html", error="Invalid credentials", email=email), 401
    return redirect(url_for("index"))


@app.route("/logout")
def logout_page():
    logout(session_store, audit_sink, _ip())
    return redirect(url_for("login_page"))


# --------------------------------------------------------------------------- #
# API: Products & Filtering
# --------------------------------------------------------------------------- #
@app.route("/api/products")
def api_products():
    """Full normalised product list; always a JSON array, never cached."""
    result = fetch_products()
    return jsonify([p.to_dict() for p in result.products]), 200, NO_CACHE


@app.route("/api/catalog", methods=["POST"])
def api_catalog():
    """
    Run the filter engine on the current product list.
    JSON: { "priceRange": [0, 5000], "categories": [...], "themes": [...],
            "occasions": [...], "productNames": [...], "customTypes": [...],
            "sortType": "rank"|"price", "sortOrder": "asc"|"desc", "discount": 0 }
    """
    try:
        body = request.get_json(force=True, silent=True) or {}
        req = CatalogRequest.from_mapping(body)
        result = fetch_products()
        view = build_view(result.products, req.criteria, req.sort)

        products = []
        for p in view.products:
            item = p.to_dict()
            item["displayPrice"] = format_price(p.rate)
            if req.discount > 0:
                item["discountedPrice"] = format_price(discounted_price(p.rate, req.discount))
            products.append(item)

        return jsonify({
            "products": products,
            "facets": facets(result.products),
            "totalMatches": view.total_matches,
            "truncated": view.truncated,
            "discount": req.discount,
            "sortLabel": req.sort.label,
            "error": result.error,
        }), 200, NO_CACHE
    except Exception as exc:
        logger.exception("Catalog API error")
        return jsonify({"error": str(exc)}), 500


# --------------------------------------------------------------------------- #
# API: Session
# --------------------------------------------------------------------------- #
@app.route("/api/login", methods=["POST"])
def api_login():
    """JSON: { "email": "...", "password": "..." }"""
    body = request.get_json(force=True, silent=True) or {}
    try:
        result = login(body.get("email", ""), body.get("password", ""), session_store, audit_sink, _ip())
    except SheetsError:
        logger.exception("Login API error")
        return jsonify({"error": "An error occurred during login. Please try again."}), 502
    if not result.authenticated:
        return jsonify({"authenticated": False, "error": "Invalid credentials"}), 401
    return jsonify({"authenticated": True, "isAdmin": result.is_admin})


@app.route("/api/logout", methods=["POST"])
def api_logout():
    logout(session_store, audit_sink, _ip())
    return jsonify({"ok": True})


# --------------------------------------------------------------------------- #
# API: Audit log
# --------------------------------------------------------------------------- #
@app.route("/api/log", methods=["POST"])
def api_log():
    """
    Append one row to the log tab.
    JSON: { "email": "...", "status": "...", "message": "..." }
    """
    body = request.get_json(force=True, silent=True) or {}
    if not body.get("email") or not body.get("status"):
        return jsonify({"error": "Missing required fields"}), 400
    try:
        entry = AuditEntry.now(body["email"], body["status"], body.get("message", ""), _ip())
        audit_sink.write(entry)
        return jsonify({"success": True})
    except Exception:
        logger.exception("Log API error")
        return jsonify({"error": "Failed to log to Google Sheets"}), 500


@app.route("/api/logs")
@login_required
def api_logs():
    """Read the log tab (admins only)."""
    ctx = session_store.get()
    if not ctx.is_admin:
        return jsonify({"error": "Admin access required"}), 403
    try:
        return jsonify({"logs": audit_sink.read()}), 200, NO_CACHE
    except Exception as exc:
        logger.exception("Logs API error")
        return jsonify({"error": str(exc)}), 500


# --------------------------------------------------------------------------- #
# API: PDF export
# --------------------------------------------------------------------------- #
@app.route("/api/generate-pdf", methods=["POST"])
@login_required
def api_generate_pdf():
    """
    Export the filtered catalog.
    JSON: same filter fields as /api/catalog plus "clientName" and an
    optional "strategy" ("composer" | "browser").
    """
    body = request.get_json(force=True, silent=True) or {}
    strategy = body.get("strategy")
    if strategy is not None and strategy not in STRATEGIES:
        return jsonify({"error": f"Unknown strategy {strategy!r}"}), 400
    try:
        req = CatalogRequest.from_mapping(body)
        pdf = generate_catalog_document(req, strategy)
    except RenderError:
        logger.exception("PDF render failed")
        return jsonify({"error": "Failed to generate PDF"}), 502
    except Exception:
        logger.exception("PDF generation error")
        return jsonify({"error": "Failed to generate PDF"}), 500

    return send_file(
        io.BytesIO(pdf),
        mimetype="application/pdf",
        as_attachment=True,
        download_name=export_filename(req.client_name),
        max_age=0,
    )


if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=5000, threaded=True)
