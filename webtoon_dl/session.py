# -*- coding: utf-8 -*-
from __future__ import annotations

import contextlib
import logging
from typing import Iterator, Optional

from playwright.async_api import (
    APIRequestContext,
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)

from .config import Settings
from .errors import Busy

LOG = logging.getLogger("webtoon_dl.session")


class BrowserSession:
    """One headless Chromium with a single tab, owned by one request."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._pw: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._ctx: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._closed = False

    @property
    def page(self) -> Page:
        if self._page is None:
            raise RuntimeError("Browser session is not started.")
        return self._page

    @property
    def http(self) -> APIRequestContext:
        if self._ctx is None:
            raise RuntimeError("Browser session is not started.")
        return self._ctx.request

    async def start(self) -> "BrowserSession":
        self._pw = await async_playwright().start()
        self._browser = await self._pw.chromium.launch(
            headless=self.settings.headless, args=["--no-sandbox"]
        )
        self._ctx = await self._browser.new_context(user_agent=self.settings.user_agent)
        self._page = await self._ctx.new_page()
        LOG.info("Opened the browser!")
        return self

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            if self._ctx is not None:
                await self._ctx.close()
            if self._browser is not None:
                await self._browser.close()
        finally:
            if self._pw is not None:
                await self._pw.stop()
            self._page = self._ctx = self._browser = self._pw = None
        LOG.info("Closed the browser!")

    async def __aenter__(self) -> "BrowserSession":
        return await self.start()

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


class ConcurrencyGate:
    """Counts running pipelines and turns away requests above the ceiling.

    Requests are never queued. The event loop is single threaded, so plain
    integer updates are enough.
    """

    def __init__(self, ceiling: int = 1):
        self.ceiling = max(1, ceiling)
        self.active = 0

    def acquire(self) -> None:
        if self.active >= self.ceiling:
            LOG.warning("Rejecting request: %d/%d pipelines running.", self.active, self.ceiling)
            raise Busy("Server is busy, please try again later")
        self.active += 1

    def release(self) -> None:
        if self.active > 0:
            self.active -= 1

    @contextlib.contextmanager
    def slot(self) -> Iterator[None]:
        self.acquire()
        try:
            yield
        finally:
            self.release()
