"""
Headless-browser PDF renderer.

Loads the live ``/print`` page in Chromium via Playwright, types the client
name into the page like a user would, shrinks oversized images in place,
applies print CSS and captures the page with Chromium's print-to-PDF.

Unlike the composer there is no per-item fallback: any navigation or
evaluation failure fails the whole render with ``RenderError``. The
browser is always closed before returning.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlencode, urlsplit

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import sync_playwright

from catalog.config import (
    CLIENT_NAME_SELECTOR,
    DEVICE_SCALE_FACTOR,
    FILTER_SETTLE_MS,
    PDF_SIZE_BUDGET,
    PRINT_MARGIN,
    PRODUCT_TITLE_MIN_HEIGHT,
    RECOMPRESS_MAX_HEIGHT,
    RECOMPRESS_MAX_WIDTH,
    RECOMPRESS_MIN_BYTES,
    RECOMPRESS_QUALITY,
    RENDER_TIMEOUT_MS,
    VIEWPORT,
)

logger = logging.getLogger(__name__)

BROWSER_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]

FONT_CSS = """
@import url('https://fonts.googleapis.com/css2?family=Noto+Sans:wght@400;700&display=swap');
body { font-family: 'Noto Sans', sans-serif; }
"""

PRINT_CSS = f"""
@page {{ size: A4 portrait; margin: {PRINT_MARGIN}; }}
body {{ width: 100%; height: 100%; margin: 0; padding: 0; }}
.no-print {{ display: none !important; }}
.intro-section {{ page-break-after: always; break-after: page; }}
.product-card {{
  break-inside: avoid;
  page-break-inside: avoid;
  height: auto;
  min-height: 400px;
  margin-bottom: 24px;
  border: 1px solid #e0e0e0;
  padding-bottom: 70px;
  position: relative;
}}
.product-price {{
  position: absolute !important;
  bottom: 15px !important;
  left: 15px !important;
  right: 15px !important;
}}
.product-title {{ min-height: {PRODUCT_TITLE_MIN_HEIGHT}; }}
"""

# Resolves once every qualifying <img> has been swapped for a JPEG data URL.
RECOMPRESS_JS = """
async ({maxWidth, maxHeight, quality, minBytes}) => {
  const sizeOf = (src) => {
    const entry = performance.getEntriesByName(src)[0];
    return entry ? (entry.encodedBodySize || entry.transferSize || 0) : 0;
  };
  let compressed = 0, skipped = 0;
  for (const img of Array.from(document.querySelectorAll("img"))) {
    if (!img.complete) {
      try { await img.decode(); } catch (e) { skipped++; continue; }
    }
    let width = img.naturalWidth, height = img.naturalHeight;
    if (!width || !height) { skipped++; continue; }
    const oversized = width > maxWidth || height > maxHeight || sizeOf(img.currentSrc || img.src) > minBytes;
    if (!oversized) continue;
    if (width > maxWidth) { height = height * maxWidth / width; width = maxWidth; }
    if (height > maxHeight) { width = width * maxHeight / height; height = maxHeight; }
    const canvas = document.createElement("canvas");
    canvas.width = Math.round(width);
    canvas.height = Math.round(height);
    canvas.getContext("2d").drawImage(img, 0, 0, canvas.width, canvas.height);
    let dataUrl;
    try {
      dataUrl = canvas.toDataURL("image/jpeg", quality);
    } catch (e) {
      // cross-origin image without CORS headers
      skipped++;
      continue;
    }
    img.removeAttribute("srcset");
    img.src = dataUrl;
    try { await img.decode(); } catch (e) {}
    compressed++;
  }
  return {compressed, skipped};
}
"""


class RenderError(RuntimeError):
    """The headless browser could not produce the document."""


def print_url(base_url: str, criteria=None, sort=None, discount: int = 0) -> str:
    """URL of the print view with the filter state encoded in the query."""
    pairs: list[tuple[str, str]] = []
    if criteria is not None:
        pairs.extend(criteria.to_query())
    if sort is not None:
        pairs.extend([("sortType", sort.mode), ("sortOrder", sort.order)])
    if discount:
        pairs.append(("discount", str(discount)))
    query = urlencode(pairs)
    return f"{base_url.rstrip('/')}/print" + (f"?{query}" if query else "")


def recompress_images(page) -> dict:
    """Downscale and re-encode every oversized image on *page*."""
    stats = page.evaluate(RECOMPRESS_JS, {
        "maxWidth": RECOMPRESS_MAX_WIDTH,
        "maxHeight": RECOMPRESS_MAX_HEIGHT,
        "quality": RECOMPRESS_QUALITY,
        "minBytes": RECOMPRESS_MIN_BYTES,
    })
    logger.info("Recompressed %s images (%s skipped)",
                stats.get("compressed", 0), stats.get("skipped", 0))
    return stats


def scope_headers(context, url: str, headers: dict) -> None:
    """Attach *headers* only to requests for the catalog's own origin."""
    parts = urlsplit(url)
    origin = f"{parts.scheme}://{parts.netloc}"

    def _continue(route, request):
        route.continue_(headers={**request.headers, **headers})

    context.route(f"{origin}/**", _continue)


def render_page(
    page,
    url: str,
    client_name: Optional[str] = None,
    output_path: Optional[str] = None,
    timeout_ms: int = RENDER_TIMEOUT_MS,
) -> bytes:
    """Drive an already-open *page* through load, input, shrink and print."""
    page.set_default_timeout(timeout_ms)
    response = page.goto(url, wait_until="networkidle", timeout=timeout_ms)
    if response is None or not response.ok:
        status = response.status if response is not None else "no response"
        raise RenderError(f"Catalog page {url} failed to load ({status})")
    page.add_style_tag(content=FONT_CSS)

    if client_name:
        # fill() dispatches a real input event; the value is never spliced into script.
        page.fill(CLIENT_NAME_SELECTOR, client_name)
        page.wait_for_timeout(FILTER_SETTLE_MS)

    recompress_images(page)
    page.add_style_tag(content=PRINT_CSS)

    return page.pdf(
        path=output_path,
        format="A4",
        print_background=True,
        display_header_footer=False,
        prefer_css_page_size=True,
        margin={side: PRINT_MARGIN for side in ("top", "right", "bottom", "left")},
    )


def render_catalog_pdf(
    url: str,
    output_path: Optional[str] = None,
    client_name: Optional[str] = None,
    headers: Optional[dict] = None,
    timeout_ms: int = RENDER_TIMEOUT_MS,
) -> bytes:
    """
    Launch a fresh headless Chromium, render *url* to PDF and close it.

    When *output_path* is given the PDF is also written there.
    """
    try:
        with sync_playwright() as p:
            browser = p.chromium.launch(headless=True, args=BROWSER_ARGS)
            try:
                context = browser.new_context(
                    viewport=VIEWPORT,
                    device_scale_factor=DEVICE_SCALE_FACTOR,
                )
                if headers:
                    scope_headers(context, url, headers)
                page = context.new_page()
                pdf = render_page(page, url, client_name, output_path, timeout_ms)
            finally:
                browser.close()
    except PlaywrightError as exc:
        raise RenderError(f"Failed to render {url}: {exc}") from exc

    logger.info("Rendered %s to PDF (%d bytes)", url, len(pdf))
    if len(pdf) > PDF_SIZE_BUDGET:
        logger.warning("Rendered PDF exceeds size budget: %d > %d bytes", len(pdf), PDF_SIZE_BUDGET)
    return pdf
