"""
Rendering invariants checked by the verification script.

Each check runs a small query inside the loaded page and returns a bool.
"""

from __future__ import annotations

from catalog.config import CURRENCY_GLYPH, PRODUCT_TITLE_MIN_HEIGHT

OCCASION_FILTER_SELECTOR = "#occasion-filter"
PRICE_SELECTOR = ".product-price"
TITLE_SELECTOR = ".product-title"


def has_occasion_filter(page) -> bool:
    return bool(page.evaluate("(sel) => !!document.querySelector(sel)", OCCASION_FILTER_SELECTOR))


def renders_currency_glyph(page, glyph: str = CURRENCY_GLYPH) -> bool:
    return bool(page.evaluate(
        "([sel, glyph]) => Array.from(document.querySelectorAll(sel))"
        ".some((el) => (el.textContent || '').includes(glyph))",
        [PRICE_SELECTOR, glyph],
    ))


def title_min_height(page) -> str:
    return page.evaluate(
        "(sel) => { const el = document.querySelector(sel);"
        " return el ? window.getComputedStyle(el).minHeight : ''; }",
        TITLE_SELECTOR,
    ) or ""


def check_invariants(page) -> dict[str, bool]:
    return {
        "occasion_filter_present": has_occasion_filter(page),
        "currency_glyph_rendered": renders_currency_glyph(page),
        "title_min_height_ok": title_min_height(page) == PRODUCT_TITLE_MIN_HEIGHT,
    }
