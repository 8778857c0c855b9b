"""
Configuration constants for the product catalog.
Deployment-specific values are read from the environment at import time.
"""

import os
import secrets

# --------------------------------------------------------------------------- #
# Tabular source (Google Sheets)
# --------------------------------------------------------------------------- #
SHEETS_API_BASE = "https://sheets.googleapis.com/v4/spreadsheets"
SPREADSHEET_ID = os.environ.get("CATALOG_SPREADSHEET_ID", "")
SHEETS_API_KEY = os.environ.get("CATALOG_SHEETS_API_KEY", "")
SHEETS_ACCESS_TOKEN = os.environ.get("CATALOG_SHEETS_ACCESS_TOKEN", "")
# OAuth client used to refresh the access token for appends
GOOGLE_CLIENT_ID = os.environ.get("CATALOG_GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET = os.environ.get("CATALOG_GOOGLE_CLIENT_SECRET", "")
GOOGLE_REFRESH_TOKEN = os.environ.get("CATALOG_GOOGLE_REFRESH_TOKEN", "")
GOOGLE_TOKEN_URI = "https://oauth2.googleapis.com/token"
SHEETS_SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]
SHEETS_TIMEOUT = 10  # seconds

PRODUCT_SHEET = "STANDARD"
LOGIN_SHEET = "login"
LOG_SHEET = "log"

# Column positions in the product tab (0-based, header row skipped)
PRODUCT_COLUMNS = {
    "occasion":        1,
    "custom_type":     2,
    "industry":        2,
    "theme":           3,
    "sub_category":    4,
    "product_name":    5,
    "image":           6,
    "description":     7,
    "rate":            8,
    "budget":          9,
    "all_filter":      10,
    "product_category": 11,
    "ranking":         13,
}
MIN_PRODUCT_ROW_WIDTH = 9

# Login tab: email, password, role marker
ADMIN_MARKER = "SUPREME"

# --------------------------------------------------------------------------- #
# Filtering
# --------------------------------------------------------------------------- #
MAX_RESULTS = 30
DEFAULT_PRICE_RANGE = (0.0, 5000.0)
MAX_DISCOUNT = 30

PRICE_CHIPS = [
    ("All Prices", 0, 5000),
    ("Under ₹250", 0, 250),
    ("₹250 - ₹500", 250, 500),
    ("₹500 - ₹1500", 500, 1500),
    ("₹1500 - ₹3000", 1500, 3000),
    ("₹3000 - ₹5000", 3000, 5000),
]

# --------------------------------------------------------------------------- #
# Images
# --------------------------------------------------------------------------- #
PLACEHOLDER_IMAGE = "/static/placeholder.svg?height=300&width=300"
DIRECT_IMAGE_TEMPLATE = "https://lh3.googleusercontent.com/d/{file_id}=s600"
DIRECT_IMAGE_HOSTS = ("googleusercontent.com", "googleapis.com")
LOGO_URL = os.environ.get(
    "CATALOG_LOGO_URL",
    "https://lh3.googleusercontent.com/d/1pMIJ-KTCUVcIAinU7A88PUG550hBGia-",
)

IMAGE_TIMEOUT = 5  # seconds, per image
IMAGE_CACHE_MINUTES = 30
PRELOAD_ENABLED = os.environ.get("CATALOG_PRELOAD", "1") == "1"
PRELOAD_WORKERS = 4

# --------------------------------------------------------------------------- #
# Client-side (composed) PDF
# --------------------------------------------------------------------------- #
PAGE_WIDTH_MM = 210
PAGE_HEIGHT_MM = 297
PAGE_MARGIN_MM = 24
CARD_HEIGHT_MM = 120
CARD_PADDING_MM = 10
DESCRIPTION_MAX_LINES = 6
CURRENCY_GLYPH = "₹"
PDF_CURRENCY_PREFIX = "Rs."
TAX_NOTE = "+ GST"

# --------------------------------------------------------------------------- #
# Server-side (browser) PDF
# --------------------------------------------------------------------------- #
PDF_STRATEGY = os.environ.get("CATALOG_PDF_STRATEGY", "browser")
BASE_URL = os.environ.get("CATALOG_BASE_URL", "http://localhost:5000")
RENDER_TOKEN = os.environ.get("CATALOG_RENDER_TOKEN") or secrets.token_hex(16)
RENDER_TOKEN_HEADER = "X-Render-Token"
RENDER_TIMEOUT_MS = int(os.environ.get("CATALOG_RENDER_TIMEOUT_MS", "60000"))
FILTER_SETTLE_MS = 1000

VIEWPORT = {"width": 1240, "height": 1754}
DEVICE_SCALE_FACTOR = 2

RECOMPRESS_MAX_WIDTH = 600
RECOMPRESS_MAX_HEIGHT = 600
RECOMPRESS_QUALITY = 0.75
RECOMPRESS_MIN_BYTES = 200 * 1024
PDF_SIZE_BUDGET = 10 * 1024 * 1024

CLIENT_NAME_SELECTOR = 'input[placeholder="Enter Client Name"]'
PRINT_MARGIN = "24mm"
PRODUCT_TITLE_MIN_HEIGHT = "72px"

SECRET_KEY = os.environ.get("CATALOG_SECRET_KEY") or secrets.token_hex(16)
