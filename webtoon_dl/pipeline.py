#!/usr/bin/env python3
# -*- coding: utf-8 -*-
from __future__ import annotations

import asyncio
import logging
import pathlib
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, List, Optional

from .config import FORMATS, Settings
from .errors import InternalError, InvalidRequest, NotFound, PipelineError
from .packager import build_pdf, cleanup_pdf, episode_filename, validate_pdf
from .progress import ProgressTracker
from .scraper import (
    build_episode_url,
    extract_image_urls,
    fetch_images,
    locate_episode,
    sanitize_filename,
)
from .session import BrowserSession, ConcurrencyGate

LOG = logging.getLogger("webtoon_dl.pipeline")

JOB_ID_RE = re.compile(r"[A-Za-z0-9_-]{1,64}")


def new_job_id() -> str:
    return uuid.uuid4().hex


@dataclass
class EpisodeRequest:
    title: str
    episode: int
    format: str = "pdf"
    job_id: str = field(default_factory=new_job_id)

    @classmethod
    def build(
        cls,
        title: Any,
        episode: Any,
        format: Optional[str] = None,
        job_id: Optional[str] = None,
        default_format: str = "pdf",
    ) -> "EpisodeRequest":
        if not isinstance(title, str) or not title.strip() or episode in (None, ""):
            raise InvalidRequest("Please provide manga name and episode number")
        if isinstance(episode, bool):
            raise InvalidRequest("Episode number must be a positive integer")
        try:
            number = int(episode)
        except (TypeError, ValueError, OverflowError):
            raise InvalidRequest("Episode number must be a positive integer") from None
        if number <= 0 or (isinstance(episode, float) and not episode.is_integer()):
            raise InvalidRequest("Episode number must be a positive integer")
        fmt = (format or default_format).strip().lower()
        if fmt not in FORMATS:
            raise InvalidRequest(f"Unknown format {format!r}; use one of {', '.join(FORMATS)}")
        job = (job_id or "").strip()
        if job and not JOB_ID_RE.fullmatch(job):
            raise InvalidRequest("Job id may only use letters, digits, '-' and '_' (at most 64)")
        return cls(title=title.strip(), episode=number, format=fmt, job_id=job or new_job_id())


@dataclass
class EpisodeResult:
    job_id: str
    title: str
    episode: int
    format: str
    filename: str
    pdf_path: Optional[pathlib.Path] = None
    images: List[str] = field(default_factory=list)
    pages: int = 0
    size_bytes: int = 0


SessionFactory = Callable[[Settings], BrowserSession]


class EpisodeCoordinator:
    """Runs locate -> extract -> fetch -> package for one request at a time per slot.

    Each accepted request gets its own browser session, which is closed on
    every exit path before the gate slot is given back.
    """

    def __init__(
        self,
        settings: Settings,
        tracker: Optional[ProgressTracker] = None,
        session_factory: Optional[SessionFactory] = None,
    ):
        self.settings = settings
        self.tracker = tracker or ProgressTracker()
        self.gate = ConcurrencyGate(settings.max_concurrency)
        self.session_factory = session_factory or BrowserSession

    async def run(self, request: EpisodeRequest) -> EpisodeResult:
        job_id = request.job_id
        running = self.tracker.get(job_id)
        if running is not None and not running.done:
            raise InvalidRequest(f"Job {job_id} is already running")
        with self.gate.slot():
            self.tracker.start(job_id)
            session: Optional[BrowserSession] = None
            failed = True
            try:
                session = self.session_factory(self.settings)
                await session.start()
                result = await self._run_pipeline(session, request)
                failed = False
                LOG.info("Everything is done! (%s ep %d, job %s)", request.title, request.episode, job_id)
                return result
            except PipelineError as exc:
                LOG.warning("Job %s aborted: %s", job_id, exc.message)
                raise
            except Exception as exc:
                LOG.exception("Job %s failed", job_id)
                raise InternalError(f"Something went wrong: {exc}") from exc
            finally:
                if session is not None:
                    await session.close()
                self.tracker.finish(job_id, failed=failed)

    async def _run_pipeline(self, session: BrowserSession, request: EpisodeRequest) -> EpisodeResult:
        settings = self.settings
        job_id = request.job_id
        page = session.page

        ref = await locate_episode(page, request.title, request.episode, settings)
        if ref is None:
            raise NotFound("Couldn't find the episode URL")
        episode_url = build_episode_url(ref, settings.base_url)
        LOG.info("Episode URL: %s", episode_url)

        image_urls = await extract_image_urls(page, episode_url, settings)
        if not image_urls:
            raise NotFound("No images found in the episode")

        def on_fetch(value: float) -> None:
            self.tracker.update(job_id, value)

        filename = episode_filename(request.title, request.episode)
        if request.format == "images":
            images = await fetch_images(session.http, image_urls, settings, on_fetch, encode=True)
            self.tracker.update(job_id, 50)
            return EpisodeResult(
                job_id=job_id,
                title=request.title,
                episode=request.episode,
                format=request.format,
                filename=filename,
                images=images,
                pages=len(images),
            )

        buffers = await fetch_images(session.http, image_urls, settings, on_fetch)

        def on_page(done: int, total: int) -> None:
            self.tracker.update(job_id, 50 + (done / total) * 50)

        # Client job ids only label progress; the file name gets its own id.
        pdf_path = settings.output_dir / f"{new_job_id()}_{sanitize_filename(filename)}"
        try:
            await asyncio.to_thread(build_pdf, buffers, pdf_path, settings.max_page_width, on_page)
        except Exception:
            cleanup_pdf(pdf_path)
            raise

        valid, pages, size = validate_pdf(pdf_path, expected_pages=len(buffers))
        if not valid:
            cleanup_pdf(pdf_path)
            raise InternalError(f"PDF validation failed (pages={pages}, size={size}).")
        return EpisodeResult(
            job_id=job_id,
            title=request.title,
            episode=request.episode,
            format=request.format,
            filename=filename,
            pdf_path=pdf_path,
            pages=pages,
            size_bytes=size,
        )

    @staticmethod
    def cleanup(result: EpisodeResult) -> None:
        if result.pdf_path is not None:
            cleanup_pdf(result.pdf_path)
