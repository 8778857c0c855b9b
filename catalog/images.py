"""
Image link resolution, download cache and rasterisation.

Sheet image cells usually hold Google Drive share links. They are turned
into direct ``lh3.googleusercontent.com`` links, downloaded once into a
short-lived in-process cache and re-encoded as JPEG for PDF embedding.
"""

from __future__ import annotations

import datetime as dt
import io
import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Optional

import requests
from PIL import Image

from catalog.config import (
    DIRECT_IMAGE_HOSTS,
    DIRECT_IMAGE_TEMPLATE,
    IMAGE_CACHE_MINUTES,
    IMAGE_TIMEOUT,
    PLACEHOLDER_IMAGE,
    PRELOAD_ENABLED,
    PRELOAD_WORKERS,
)

logger = logging.getLogger(__name__)

# Tried in order; the first capture wins.
DRIVE_PATTERNS = (
    re.compile(r"(?:/d/|id=)([a-zA-Z0-9_-]+)"),
    re.compile(r"/file/d/([a-zA-Z0-9_-]+)"),
    re.compile(r"drive\.google\.com.*[?&]id=([a-zA-Z0-9_-]+)"),
)

_CACHE: dict = {}
_CACHE_TTL = dt.timedelta(minutes=IMAGE_CACHE_MINUTES)
_CHUNK = 64 * 1024

_PRELOAD_POOL = ThreadPoolExecutor(max_workers=PRELOAD_WORKERS, thread_name_prefix="preload")


def resolve_image(url) -> str:
    """
    Map any value to a fetchable image URL.

    Drive share links become direct links, direct Google-hosted links pass
    through and everything else becomes the placeholder. Never raises.
    """
    if not isinstance(url, str) or not url.strip():
        return PLACEHOLDER_IMAGE
    clean = url.strip()

    for pattern in DRIVE_PATTERNS:
        match = pattern.search(clean)
        if match and match.group(1):
            return DIRECT_IMAGE_TEMPLATE.format(file_id=match.group(1))

    if clean.startswith("http") and any(host in clean for host in DIRECT_IMAGE_HOSTS):
        return clean

    return PLACEHOLDER_IMAGE


# --------------------------------------------------------------------------- #
# Cache
# --------------------------------------------------------------------------- #
def _is_fresh(key: str) -> bool:
    if key not in _CACHE:
        return False
    ts, _ = _CACHE[key]
    return (dt.datetime.now() - ts) < _CACHE_TTL


def _put(key: str, value):
    _CACHE[key] = (dt.datetime.now(), value)


def _get(key: str):
    return _CACHE[key][1] if key in _CACHE else None


def clear_cache():
    _CACHE.clear()


def _is_remote(url) -> bool:
    return isinstance(url, str) and url.startswith(("http://", "https://"))


def _download(url: str, timeout: float) -> bytes:
    """Download *url*, giving up once *timeout* seconds have elapsed in total."""
    deadline = time.monotonic() + timeout
    # Connect and each socket read get half the budget; the deadline caps the sum.
    half = timeout / 2
    with requests.get(url, stream=True, timeout=(half, half)) as resp:
        resp.raise_for_status()
        buf = io.BytesIO()
        chunks = resp.iter_content(_CHUNK)
        while True:
            if time.monotonic() >= deadline:
                raise TimeoutError(f"Image load timed out: {url}")
            chunk = next(chunks, None)
            if chunk is None:
                break
            buf.write(chunk)
    return buf.getvalue()


def fetch_image_bytes(url: str, timeout: float = IMAGE_TIMEOUT) -> Optional[bytes]:
    """Return the raw bytes for *url* (cached), or None if it cannot be loaded."""
    if not _is_remote(url):
        return None
    if _is_fresh(url):
        return _get(url)
    try:
        data = _download(url, timeout)
    except (requests.RequestException, TimeoutError, OSError) as exc:
        logger.warning("Failed to load image %s: %s", url, exc)
        return None
    _put(url, data)
    return data


def to_jpeg(data: bytes, quality: int = 85) -> bytes:
    """Re-encode any Pillow-readable image as a baseline RGB JPEG."""
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        if img.mode in ("RGBA", "LA", "P"):
            img = img.convert("RGBA")
            background = Image.new("RGB", img.size, (255, 255, 255))
            background.paste(img, mask=img.getchannel("A"))
            img = background
        elif img.mode != "RGB":
            img = img.convert("RGB")
        out = io.BytesIO()
        img.save(out, format="JPEG", quality=quality)
    return out.getvalue()


def load_raster(url: str, timeout: float = IMAGE_TIMEOUT) -> Optional[bytes]:
    """Download and rasterise one image; None means "use the placeholder"."""
    data = fetch_image_bytes(url, timeout=timeout)
    if data is None:
        return None
    try:
        return to_jpeg(data)
    except (OSError, ValueError, Image.DecompressionBombError) as exc:
        logger.warning("Could not rasterise image %s: %s", url, exc)
        return None


def load_rasters(urls: Iterable[str], timeout: float = IMAGE_TIMEOUT) -> dict[str, Optional[bytes]]:
    """Rasterise several images concurrently; returns only after all settle."""
    unique = list(dict.fromkeys(u for u in urls if u))
    if not unique:
        return {}
    with ThreadPoolExecutor(max_workers=PRELOAD_WORKERS) as pool:
        results = pool.map(lambda u: load_raster(u, timeout), unique)
        return dict(zip(unique, results))


def preload(products, enabled: bool = PRELOAD_ENABLED) -> None:
    """
    Warm the image cache for *products* in the background.

    Purely an optimisation: failures are logged by ``fetch_image_bytes`` and
    never reach the caller, and nothing here blocks.
    """
    if not enabled:
        return
    for url in dict.fromkeys(p.image for p in products):
        if _is_remote(url) and not _is_fresh(url):
            _PRELOAD_POOL.submit(fetch_image_bytes, url)
