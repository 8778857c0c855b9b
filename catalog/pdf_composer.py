"""
Vector PDF composer.

Draws the catalog directly with reportlab: one cover page, then product
cards two to a page on A4 portrait. All images are downloaded and
rasterised up front, so the document is complete when ``compose`` returns.
Layout values are in millimetres measured from the top-left corner.
"""

from __future__ import annotations

import datetime as dt
import io
import logging
from typing import Callable, Iterable, Optional, Sequence

from reportlab.lib.colors import Color
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from catalog.config import (
    CARD_HEIGHT_MM,
    CARD_PADDING_MM,
    DESCRIPTION_MAX_LINES,
    LOGO_URL,
    PAGE_HEIGHT_MM,
    PAGE_MARGIN_MM,
    PAGE_WIDTH_MM,
    PDF_CURRENCY_PREFIX,
    TAX_NOTE,
)
from catalog.images import load_rasters
from catalog.pricing import clamp_discount, discounted_price, format_pdf_price, parse_price
from catalog.products import Product

logger = logging.getLogger(__name__)

FONT = "Helvetica"
FONT_BOLD = "Helvetica-Bold"

BACKGROUND = Color(245 / 255, 247 / 255, 250 / 255)
PRIMARY = Color(59 / 255, 130 / 255, 246 / 255)
MUTED = Color(100 / 255, 100 / 255, 100 / 255)
BODY = Color(80 / 255, 80 / 255, 80 / 255)
BORDER = Color(230 / 255, 230 / 255, 230 / 255)
SHADOW = Color(240 / 255, 240 / 255, 240 / 255)
PRICE_FILL = Color(255 / 255, 251 / 255, 235 / 255)
PRICE_TEXT = Color(146 / 255, 64 / 255, 14 / 255)
PLACEHOLDER_FILL = Color(238 / 255, 240 / 255, 243 / 255)
BLACK = Color(0, 0, 0)
WHITE = Color(1, 1, 1)

LOGO_W_MM, LOGO_H_MM = 60, 40
IMAGE_H_MM = 60
PRICE_BOX_W_MM, PRICE_BOX_H_MM = 60, 15
DESCRIPTION_LEADING_MM = 4
SUMMARY_LEADING_MM = 6
SEPARATOR = ", "

RasterLoader = Callable[[Iterable[str]], dict]


class _Page:
    """Top-left millimetre coordinates over a reportlab canvas."""

    def __init__(self, c: canvas.Canvas):
        self.c = c

    @staticmethod
    def y(top_mm: float) -> float:
        return (PAGE_HEIGHT_MM - top_mm) * mm

    def text(self, x_mm: float, top_mm: float, value: str, font: str, size: float, color: Color):
        self.c.setFont(font, size)
        self.c.setFillColor(color)
        self.c.drawString(x_mm * mm, self.y(top_mm), value)

    def box(self, x_mm, top_mm, w_mm, h_mm, radius_mm, fill: Color, stroke: Optional[Color] = None):
        self.c.setFillColor(fill)
        if stroke is not None:
            self.c.setStrokeColor(stroke)
        self.c.roundRect(
            x_mm * mm, self.y(top_mm + h_mm), w_mm * mm, h_mm * mm, radius_mm * mm,
            stroke=1 if stroke is not None else 0, fill=1,
        )

    def image(self, data: bytes, x_mm, top_mm, w_mm, h_mm):
        self.c.drawImage(
            ImageReader(io.BytesIO(data)),
            x_mm * mm, self.y(top_mm + h_mm), width=w_mm * mm, height=h_mm * mm,
            preserveAspectRatio=True, anchor="c",
        )


def _single_line(value: str) -> str:
    return " ".join(str(value or "").split())


def _fmt_bound(value: float) -> str:
    value = float(value)
    return str(int(value)) if value.is_integer() else f"{value:g}"


def wrap_text(text: str, width_mm: float, font: str = FONT, size: float = 9,
              max_lines: Optional[int] = None) -> list[str]:
    """Word-wrap *text* to *width_mm*; extra lines are dropped without an ellipsis."""
    lines = simpleSplit(text, font, size, width_mm * mm) if text else []
    return lines[:max_lines] if max_lines is not None else lines


def cover_lines(client_name: str, categories: Sequence[str], themes: Sequence[str],
                occasions: Sequence[str], price_range, discount: int) -> list[str]:
    """Filter summary printed on the cover page, in order."""
    lines = [f"Client: {_single_line(client_name) or 'N/A'}"]
    if categories:
        lines.append(f"Categories: {SEPARATOR.join(categories)}")
    if themes:
        lines.append(f"Themes: {SEPARATOR.join(themes)}")
    if occasions:
        lines.append(f"Occasions: {SEPARATOR.join(occasions)}")
    lo, hi = price_range
    lines.append(
        f"Price Range: {PDF_CURRENCY_PREFIX}{_fmt_bound(lo)} - {PDF_CURRENCY_PREFIX}{_fmt_bound(hi)}"
    )
    if discount > 0:
        lines.append(f"Discount Applied: {discount}%")
    return lines


def price_parts(rate, discount: int) -> tuple[Optional[str], str]:
    """Return (struck-through original or None, headline price text)."""
    if discount > 0:
        return format_pdf_price(parse_price(rate)), (
            f"{format_pdf_price(discounted_price(rate, discount))} ({discount}% off)"
        )
    return None, format_pdf_price(parse_price(rate))


# --------------------------------------------------------------------------- #
# Drawing
# --------------------------------------------------------------------------- #
def _draw_cover(page: _Page, logo: Optional[bytes], generated_on: dt.date, summary: list[str]):
    margin = PAGE_MARGIN_MM
    content_w = PAGE_WIDTH_MM - 2 * margin

    page.c.setFillColor(BACKGROUND)
    page.c.rect(0, 0, PAGE_WIDTH_MM * mm, PAGE_HEIGHT_MM * mm, stroke=0, fill=1)

    if logo:
        page.image(logo, margin, margin, LOGO_W_MM, LOGO_H_MM)

    page.text(margin, margin + 60, "Product Catalog", FONT_BOLD, 28, PRIMARY)
    page.text(margin, margin + 75, f"Date: {generated_on.strftime('%d/%m/%Y')}", FONT, 12, MUTED)

    top = margin + 90
    for entry in summary:
        for line in wrap_text(entry, content_w, FONT, 12):
            page.text(margin, top, line, FONT, 12, BLACK)
            top += SUMMARY_LEADING_MM
        top += 15 - SUMMARY_LEADING_MM


def _draw_price_box(page: _Page, product: Product, card_x, card_top, card_w, discount: int):
    struck, headline = price_parts(product.rate, discount)
    headline_w = stringWidth(headline, FONT_BOLD, 12) / mm
    struck_w = stringWidth(struck, FONT_BOLD, 9) / mm if struck else 0
    gap = 3 if struck else 0
    box_w = max(PRICE_BOX_W_MM, headline_w + struck_w + gap + 8)
    box_x = card_x + card_w / 2 - box_w / 2
    box_top = card_top + CARD_HEIGHT_MM - CARD_PADDING_MM - PRICE_BOX_H_MM

    page.box(box_x, box_top, box_w, PRICE_BOX_H_MM, 2, PRICE_FILL)

    x = box_x + (box_w - (headline_w + struck_w + gap)) / 2
    baseline = box_top + 8
    if struck:
        page.text(x, baseline, struck, FONT_BOLD, 9, MUTED)
        strike_y = page.y(baseline) + 9 * 0.3
        page.c.setStrokeColor(MUTED)
        page.c.setLineWidth(0.6)
        page.c.line(x * mm, strike_y, (x + struck_w) * mm, strike_y)
        x += struck_w + gap
    page.text(x, baseline, headline, FONT_BOLD, 12, PRICE_TEXT)

    page.c.setFont(FONT_BOLD, 8)
    page.c.drawCentredString((box_x + box_w / 2) * mm, page.y(box_top + 13), TAX_NOTE)


def _draw_card(page: _Page, product: Product, x, top, width, discount: int, raster: Optional[bytes]):
    pad = CARD_PADDING_MM

    page.box(x + 2, top + 2, width, CARD_HEIGHT_MM, 3, SHADOW)
    page.c.setLineWidth(0.5)
    page.box(x, top, width, CARD_HEIGHT_MM, 3, WHITE, stroke=BORDER)

    title = wrap_text(_single_line(product.product_name) or "N/A", width - 2 * pad, FONT_BOLD, 14, 1)
    page.text(x + pad, top + pad + 5, title[0] if title else "N/A", FONT_BOLD, 14, BLACK)

    meta = (f"Category: {product.product_category or 'N/A'} • "
            f"Theme: {product.theme or 'N/A'}")
    page.text(x + pad, top + pad + 15, meta, FONT, 10, MUTED)

    page.text(x + pad, top + pad + 25, "Description:", FONT_BOLD, 10, MUTED)
    description = product.description_text or "No description available"
    line_top = top + pad + 35
    for line in wrap_text(description, width / 2 - pad * 2, FONT, 9, DESCRIPTION_MAX_LINES):
        page.text(x + pad, line_top, line, FONT, 9, BODY)
        line_top += DESCRIPTION_LEADING_MM

    img_x, img_top = x + width / 2 + pad, top + pad + 15
    img_w = width / 2 - pad * 3
    drawn = False
    if raster:
        try:
            page.image(raster, img_x, img_top, img_w, IMAGE_H_MM)
            drawn = True
        except (OSError, ValueError) as exc:
            logger.warning("Could not embed image for %s: %s", product.product_name, exc)
    if not drawn:
        page.box(img_x, img_top, img_w, IMAGE_H_MM, 2, PLACEHOLDER_FILL)
        page.c.setFont(FONT, 9)
        page.c.setFillColor(MUTED)
        page.c.drawCentredString((img_x + img_w / 2) * mm, page.y(img_top + IMAGE_H_MM / 2), "Image unavailable")

    _draw_price_box(page, product, x, top, width, discount)


def compose(
    products: Sequence[Product],
    client_name: str = "",
    categories: Sequence[str] = (),
    themes: Sequence[str] = (),
    occasions: Sequence[str] = (),
    price_range=(0, 5000),
    discount: int = 0,
    generated_on: Optional[dt.date] = None,
    raster_loader: RasterLoader = load_rasters,
) -> bytes:
    """
    Build the catalog PDF and return its bytes.

    A product whose image cannot be loaded within the timeout gets a
    placeholder box; one bad image never fails the document.
    """
    generated_on = generated_on or dt.date.today()
    discount = clamp_discount(discount)
    rasters = raster_loader([LOGO_URL] + [p.image for p in products])

    buf = io.BytesIO()
    c = canvas.Canvas(buf, pagesize=(PAGE_WIDTH_MM * mm, PAGE_HEIGHT_MM * mm))
    c.setTitle("Product Catalog")
    c.setAuthor(_single_line(client_name) or "Product Catalog")
    page = _Page(c)

    _draw_cover(
        page, rasters.get(LOGO_URL), generated_on,
        cover_lines(client_name, categories, themes, occasions, price_range, discount),
    )

    margin = PAGE_MARGIN_MM
    width = PAGE_WIDTH_MM - 2 * margin
    slots = (margin, PAGE_HEIGHT_MM / 2 + 10)
    for start in range(0, len(products), 2):
        c.showPage()
        for product, top in zip(products[start:start + 2], slots):
            _draw_card(page, product, margin, top, width, discount, rasters.get(product.image))

    c.save()
    logger.info("Composed catalog PDF with %d products", len(products))
    return buf.getvalue()
