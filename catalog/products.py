"""
Product store adapter.

Reads the product tab of the tabular source and turns raw rows into
immutable ``Product`` records. Raw rows never leave this module.
"""

from __future__ import annotations

import html
import logging
from dataclasses import dataclass, field
from typing import Optional

from bs4 import BeautifulSoup

from catalog.config import MIN_PRODUCT_ROW_WIDTH, PRODUCT_COLUMNS, PRODUCT_SHEET
from catalog.images import resolve_image
from catalog.pricing import parse_price, parse_ranking
from catalog.sheets import SheetsError, fetch_values

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Product:
    product_name: str = ""
    product_category: str = ""
    theme: str = ""
    occasion: str = ""
    custom_type: str = ""
    sub_category: str = ""
    industry: str = ""
    rate: str = "0"
    budget: str = "0"
    all_filter: str = ""
    description: str = ""      # plain text, may contain newlines
    image: str = ""            # already resolved
    ranking: float = 0.0       # ordering only, never shown

    @property
    def price(self) -> float:
        return parse_price(self.rate)

    @property
    def description_html(self) -> str:
        """Escaped description with newlines turned into ``<br>``."""
        return html.escape(self.description).replace("\n", "<br>")

    @property
    def description_text(self) -> str:
        """Description reduced to a single run of plain text."""
        return html_to_text(self.description)

    def to_dict(self) -> dict:
        """JSON shape served by ``/api/products``."""
        return {
            "productName": self.product_name,
            "productCategory": self.product_category,
            "theme": self.theme,
            "occasion": self.occasion,
            "customType": self.custom_type,
            "subCategory": self.sub_category,
            "industry": self.industry,
            "rate": self.rate,
            "budget": self.budget,
            "allFilter": self.all_filter,
            "description": self.description_html,
            "image": self.image,
            "ranking": self.ranking,
        }


@dataclass
class FetchResult:
    products: list[Product] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def html_to_text(markup: str) -> str:
    """Strip tags and collapse whitespace, treating ``<br>`` as a space."""
    if not markup:
        return ""
    text = BeautifulSoup(markup, "html.parser").get_text(" ")
    return " ".join(text.split())


def _cell(row: list, column: str) -> str:
    idx = PRODUCT_COLUMNS[column]
    if idx >= len(row) or row[idx] is None:
        return ""
    return str(row[idx]).strip()


def parse_row(row) -> Optional[Product]:
    """Validate one sheet row; rows narrower than the minimum are skipped."""
    if not isinstance(row, (list, tuple)) or len(row) < MIN_PRODUCT_ROW_WIDTH:
        return None
    row = list(row)
    return Product(
        product_name=_cell(row, "product_name"),
        product_category=_cell(row, "product_category"),
        theme=_cell(row, "theme"),
        occasion=_cell(row, "occasion"),
        custom_type=_cell(row, "custom_type"),
        sub_category=_cell(row, "sub_category"),
        industry=_cell(row, "industry"),
        rate=_cell(row, "rate") or "0",
        budget=_cell(row, "budget") or "0",
        all_filter=_cell(row, "all_filter"),
        description=_cell(row, "description"),
        image=resolve_image(_cell(row, "image")),
        ranking=parse_ranking(_cell(row, "ranking")),
    )


def parse_rows(rows: list) -> list[Product]:
    """Convert a full sheet (header row first) into products, in sheet order."""
    products: list[Product] = []
    skipped = 0
    for row in rows[1:]:
        product = parse_row(row)
        if product is None:
            skipped += 1
            continue
        products.append(product)
    if skipped:
        logger.info("Skipped %d short product rows", skipped)
    return products


def fetch_products(sheet_name: str = PRODUCT_SHEET) -> FetchResult:
    """
    Fetch the product list.

    Never raises: a transport or payload failure yields an empty list and
    an error message for the caller to surface.
    """
    try:
        rows = fetch_values(sheet_name)
    except SheetsError as exc:
        logger.warning("Product fetch failed: %s", exc)
        return FetchResult(products=[], error="Failed to load products. Please try again.")

    if len(rows) <= 1:
        return FetchResult(products=[])
    return FetchResult(products=parse_rows(rows))


def facets(products: list[Product]) -> dict[str, list[str]]:
    """Distinct non-empty values per filterable field, in first-seen order."""
    def unique(attr: str) -> list[str]:
        return list(dict.fromkeys(getattr(p, attr) for p in products if getattr(p, attr)))

    return {
        "categories": unique("product_category"),
        "themes": unique("theme"),
        "occasions": unique("occasion"),
        "productNames": unique("product_name"),
        "customTypes": unique("custom_type"),
    }
