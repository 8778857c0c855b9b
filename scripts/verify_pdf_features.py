"""Smoke-check the print view of a running catalog server and save a PDF and screenshot.

Requires the server to share ``CATALOG_RENDER_TOKEN`` with this script (both
read it from ``.env``). Exits non-zero when any rendering check fails.
"""

from __future__ import annotations

import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

from playwright.sync_api import sync_playwright

from catalog.config import BASE_URL, CLIENT_NAME_SELECTOR, FILTER_SETTLE_MS, RENDER_TIMEOUT_MS, RENDER_TOKEN_HEADER, VIEWPORT
from catalog.pdf_renderer import BROWSER_ARGS, PRINT_CSS, RenderError, print_url, scope_headers
from catalog.verification import OCCASION_FILTER_SELECTOR, check_invariants

OUTPUT_DIR = Path("verification")
PDF_OUTPUT = OUTPUT_DIR / "catalog.pdf"
SCREENSHOT_OUTPUT = OUTPUT_DIR / "catalog.png"
CLIENT_NAME = "Verification Client"

logger = logging.getLogger(__name__)


def select_first_occasion(page) -> str | None:
    """Pick the first occasion option and resubmit the filter form."""
    value = page.evaluate(
        "(sel) => { const opt = document.querySelector(sel + ' option'); return opt ? opt.value : null; }",
        OCCASION_FILTER_SELECTOR,
    )
    if value is None:
        logger.warning("No occasions available to select")
        return None
    page.select_option(OCCASION_FILTER_SELECTOR, value)
    with page.expect_navigation(wait_until="networkidle"):
        page.evaluate("() => document.getElementById('filter-form').submit()")
    return value


def run(base_url: str, token: str) -> dict[str, bool]:
    OUTPUT_DIR.mkdir(exist_ok=True)
    url = print_url(base_url)

    with sync_playwright() as p:
        browser = p.chromium.launch(headless=True, args=BROWSER_ARGS)
        try:
            context = browser.new_context(viewport=VIEWPORT)
            scope_headers(context, url, {RENDER_TOKEN_HEADER: token})
            page = context.new_page()
            page.set_default_timeout(RENDER_TIMEOUT_MS)
            response = page.goto(url, wait_until="networkidle")
            if response is None or not response.ok:
                raise RenderError(f"{url} answered {response.status if response else 'no response'}")

            occasion = select_first_occasion(page)
            logger.info("Selected occasion: %s", occasion)
            page.fill(CLIENT_NAME_SELECTOR, CLIENT_NAME)
            page.wait_for_timeout(FILTER_SETTLE_MS)

            results = check_invariants(page)

            page.add_style_tag(content=PRINT_CSS)
            page.pdf(path=str(PDF_OUTPUT), format="A4", print_background=True)
            page.screenshot(path=str(SCREENSHOT_OUTPUT), full_page=True)
        finally:
            browser.close()
    return results


def main() -> None:
    logging.basicConfig(level=logging.INFO)
    token = os.environ.get("CATALOG_RENDER_TOKEN")
    if not token:
        sys.exit("CATALOG_RENDER_TOKEN must be set for the server and this script")

    results = run(os.environ.get("CATALOG_BASE_URL", BASE_URL), token)
    for name, ok in results.items():
        print(f"{'PASS' if ok else 'FAIL'}  {name}")
    print(f"Wrote {PDF_OUTPUT} and {SCREENSHOT_OUTPUT}")
    if not all(results.values()):
        sys.exit(1)


if __name__ == "__main__":
    main()
