#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# Playwright-based locator and extractor for webtoons.com episodes.

from __future__ import annotations

import base64
import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple, Union
from urllib.parse import urljoin, urlparse

from playwright.async_api import APIRequestContext, Error as PlaywrightError, Page
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from .config import Settings
from .errors import FetchFailure

LOG = logging.getLogger("webtoon_dl.scraper")

# ===== Catalog selectors =====
SEARCH_BUTTON_SELECTOR = ".btn_search._btnSearch"
SEARCH_INPUT_SELECTOR = ".input_search._txtKeyword"
RESULT_LIST_SELECTOR = ".card_lst"
FIRST_RESULT_LINK_SELECTOR = ".card_lst li a"

# ===== Viewer selectors =====
EPISODE_IMAGE_SELECTOR = "#_imageList img._images"
EPISODE_IMAGE_ATTRIBUTE = "data-url"

TITLE_NO_RE = re.compile(r"title_no=(\d+)")
IMG_EXT_RE = re.compile(r"\.(jpg|jpeg|png|webp|avif|gif)(?:\?|$)", re.I)
DATA_URI_RE = re.compile(r"^data:([^;,]+);base64,(.*)$", re.S)

ProgressCallback = Callable[[float], None]


@dataclass(frozen=True)
class EpisodeReference:
    genre: str
    slug: str
    title_no: str
    episode: int

    def is_complete(self) -> bool:
        return bool(self.genre and self.slug and self.title_no and self.episode > 0)


def sanitize_filename(s: str) -> str:
    return re.sub(r'[\\/*?:"<>|]+', "_", s).strip() or "File"


def infer_ext(url: str, content_type: str) -> str:
    m = IMG_EXT_RE.search(url or "")
    if m:
        ext = m.group(1).lower()
    else:
        m2 = re.search(r"(jpeg|jpg|png|webp|avif|gif)", (content_type or ""), re.I)
        ext = m2.group(1).lower() if m2 else "jpg"
    return "jpg" if ext == "jpeg" else ext


def _mime_from_ext(ext: str) -> str:
    return "image/jpeg" if ext in ("jpg", "jpeg") else f"image/{ext}"


def to_data_uri(data: bytes, content_type: str = "", url: str = "") -> str:
    mime = (content_type or "").split(";")[0].strip().lower()
    if not mime.startswith("image/"):
        mime = _mime_from_ext(infer_ext(url, content_type))
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


def decode_data_uri(uri: str) -> Tuple[bytes, str]:
    """Return the payload bytes and a file extension for a base64 data URI."""
    m = DATA_URI_RE.match(uri or "")
    if not m:
        raise ValueError("Not a base64 data URI.")
    mime = m.group(1).lower()
    ext = mime.split("/", 1)[1] if "/" in mime else "bin"
    return base64.b64decode(m.group(2)), ("jpg" if ext == "jpeg" else ext)


def parse_series_url(
    url: str, episode: int, base_url: str = "https://www.webtoons.com/en/"
) -> Optional[EpisodeReference]:
    """Split a series link into its episode reference, or None when a part is missing.

    The link path is read relative to the catalog base path, e.g.
    ``/en/<genre>/<slug>/list?title_no=<id>``.
    """
    if not url:
        return None
    title_match = TITLE_NO_RE.search(url)
    title_no = title_match.group(1) if title_match else ""
    prefix = urlparse(base_url).path.rstrip("/") + "/"
    path = urlparse(url).path
    genre = slug = ""
    if path.startswith(prefix):
        parts = [seg for seg in path[len(prefix):].split("/") if seg]
        if len(parts) >= 2:
            genre, slug = parts[0], parts[1]
    ref = EpisodeReference(genre=genre, slug=slug, title_no=title_no, episode=episode)
    if not ref.is_complete():
        return None
    return ref


def build_episode_url(ref: EpisodeReference, base_url: str) -> str:
    base = base_url if base_url.endswith("/") else base_url + "/"
    return urljoin(
        base,
        f"{ref.genre}/{ref.slug}/episode-{ref.episode}/viewer"
        f"?title_no={ref.title_no}&episode_no={ref.episode}",
    )


async def locate_episode(
    page: Page, title: str, episode: int, settings: Settings
) -> Optional[EpisodeReference]:
    await page.goto(settings.base_url, wait_until="domcontentloaded", timeout=settings.page_timeout_ms)
    try:
        await page.click(SEARCH_BUTTON_SELECTOR, timeout=settings.search_timeout_ms)
        await page.wait_for_selector(
            SEARCH_INPUT_SELECTOR, state="visible", timeout=settings.search_timeout_ms
        )
        await page.fill(SEARCH_INPUT_SELECTOR, title)
        await page.keyboard.press("Enter")
        await page.wait_for_selector(RESULT_LIST_SELECTOR, timeout=settings.search_timeout_ms)
    except PlaywrightTimeoutError as exc:
        LOG.info("Search for %r timed out: %s", title, exc)
        return None

    series_url = await page.evaluate(
        "(sel) => { const link = document.querySelector(sel); return link ? link.href : null; }",
        FIRST_RESULT_LINK_SELECTOR,
    )
    if not series_url:
        LOG.info("No search result for %r.", title)
        return None

    ref = parse_series_url(series_url, episode, settings.base_url)
    if ref is None:
        LOG.warning("Could not parse series link %s.", series_url)
        return None
    LOG.info("Series link for %r: %s", title, series_url)
    return ref


async def extract_image_urls(page: Page, episode_url: str, settings: Settings) -> List[str]:
    await page.goto(episode_url, wait_until="domcontentloaded", timeout=settings.page_timeout_ms)
    values = await page.eval_on_selector_all(
        EPISODE_IMAGE_SELECTOR,
        f"imgs => imgs.map(img => img.getAttribute('{EPISODE_IMAGE_ATTRIBUTE}'))",
    )
    marker = settings.image_marker
    urls = [u for u in (values or []) if u and marker in u]
    LOG.info("Number of images: %d", len(urls))
    return urls


def image_headers(settings: Settings) -> dict:
    return {
        "User-Agent": settings.user_agent,
        "Referer": settings.referer,
        "Accept": "image/avif,image/webp,image/apng,image/*,*/*;q=0.8",
    }


async def fetch_images(
    http: APIRequestContext,
    urls: List[str],
    settings: Settings,
    on_progress: Optional[ProgressCallback] = None,
    encode: bool = False,
) -> List[Union[bytes, str]]:
    """Download every URL in order; the first failure aborts the whole batch.

    With ``encode`` the payloads come back as base64 data URIs instead of raw
    bytes. ``on_progress`` receives 0-50 after each image.
    """
    headers = image_headers(settings)
    total = len(urls)
    out: List[Union[bytes, str]] = []
    for idx, url in enumerate(urls, start=1):
        try:
            resp = await http.get(url, headers=headers, timeout=settings.image_timeout_ms)
        except PlaywrightError as exc:
            raise FetchFailure(f"Error downloading image {idx}: {exc}") from exc
        if not resp.ok:
            raise FetchFailure(f"Error downloading image {idx}: HTTP {resp.status}")
        data = await resp.body()
        if encode:
            out.append(to_data_uri(data, resp.headers.get("content-type", ""), url))
        else:
            out.append(data)
        progress = (idx / total) * 50
        if on_progress is not None:
            on_progress(progress)
        LOG.debug("Downloaded image number: %d Progress: %.0f", idx, progress)
    return out


__all__ = [
    "EpisodeReference",
    "build_episode_url",
    "decode_data_uri",
    "extract_image_urls",
    "fetch_images",
    "locate_episode",
    "parse_series_url",
    "sanitize_filename",
    "to_data_uri",
]
