"""
Catalog export: one entry point, two ways of producing the PDF.

``composer`` draws the document in-process with reportlab from the
already-filtered product list. ``browser`` prints the live ``/print`` page
with headless Chromium, which re-applies the same filters server-side.
"""

from __future__ import annotations

import datetime as dt
import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from werkzeug.utils import secure_filename

from catalog.config import BASE_URL, PDF_STRATEGY, RENDER_TOKEN, RENDER_TOKEN_HEADER
from catalog.filters import FilterCriteria, SortSpec, apply_filters, parse_discount
from catalog.pdf_composer import compose
from catalog.pdf_renderer import print_url, render_catalog_pdf
from catalog.products import Product, fetch_products

logger = logging.getLogger(__name__)

STRATEGY_COMPOSER = "composer"
STRATEGY_BROWSER = "browser"
STRATEGIES = (STRATEGY_COMPOSER, STRATEGY_BROWSER)


@dataclass(frozen=True)
class CatalogRequest:
    criteria: FilterCriteria = field(default_factory=FilterCriteria)
    sort: SortSpec = field(default_factory=SortSpec)
    client_name: str = ""
    discount: int = 0

    @classmethod
    def from_mapping(cls, data) -> "CatalogRequest":
        data = data if hasattr(data, "get") else {}
        name = data.get("clientName") or ""
        return cls(
            criteria=FilterCriteria.from_mapping(data),
            sort=SortSpec.from_mapping(data),
            client_name=" ".join(str(name).split()),
            discount=parse_discount(data),
        )


def export_filename(client_name: str, now: Optional[dt.datetime] = None) -> str:
    """``<client>_Catalog_<epoch ms>.pdf`` with the client part made filesystem-safe."""
    now = now or dt.datetime.now(dt.timezone.utc)
    stem = secure_filename(client_name or "") or "Product"
    stem = re.sub(r"_+", "_", stem)
    return f"{stem}_Catalog_{int(now.timestamp() * 1000)}.pdf"


def compose_document(request: CatalogRequest, products: Optional[Sequence[Product]] = None) -> bytes:
    """In-process strategy: filter the product list and draw it with reportlab."""
    if products is None:
        products = fetch_products().products
    view = apply_filters(products, request.criteria, request.sort)
    return compose(
        view,
        client_name=request.client_name,
        categories=request.criteria.categories,
        themes=request.criteria.themes,
        occasions=request.criteria.occasions,
        price_range=request.criteria.price_range,
        discount=request.discount,
    )


def render_document(
    request: CatalogRequest,
    base_url: str = BASE_URL,
    render_token: str = RENDER_TOKEN,
    renderer: Callable = render_catalog_pdf,
) -> bytes:
    """
    Browser strategy: print the live page into a private temp file.

    The file is removed once its bytes have been read back, success or not.
    """
    url = print_url(base_url, request.criteria, request.sort, request.discount)
    fd, path = tempfile.mkstemp(prefix="catalog_", suffix=".pdf")
    os.close(fd)
    try:
        renderer(
            url,
            output_path=path,
            client_name=request.client_name or None,
            headers={RENDER_TOKEN_HEADER: render_token},
        )
        with open(path, "rb") as fh:
            return fh.read()
    finally:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass


def generate_catalog_document(
    request: CatalogRequest,
    strategy: Optional[str] = None,
    products: Optional[Sequence[Product]] = None,
) -> bytes:
    """Produce the catalog PDF with the chosen (or configured) strategy."""
    strategy = (strategy or PDF_STRATEGY).lower()
    if strategy not in STRATEGIES:
        raise ValueError(f"Unknown PDF strategy {strategy!r}; expected one of {STRATEGIES}")

    if strategy == STRATEGY_COMPOSER:
        pdf = compose_document(request, products)
    else:
        pdf = render_document(request)
    logger.info("Generated catalog PDF via %s (%d bytes)", strategy, len(pdf))
    return pdf
