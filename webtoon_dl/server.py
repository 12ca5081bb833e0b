#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""HTTP front end.

``POST /download`` runs one episode through the pipeline and answers with the
PDF (or the images as data URIs). ``GET /progress`` streams the progress of a
request as server-sent events; pass the same ``jobId`` used for the download,
or omit it to follow the most recently started request.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, AsyncGenerator, Dict, Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, Field
from sse_starlette.sse import EventSourceResponse
from starlette.background import BackgroundTask

from .config import Settings, load_settings, setup_logging
from .errors import PipelineError
from .pipeline import EpisodeCoordinator, EpisodeRequest, SessionFactory
from .progress import ProgressTracker

LOG = logging.getLogger("webtoon_dl.server")


class DownloadBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    manga_name: Optional[str] = Field(default=None, alias="mangaName")
    episode_num: Optional[Any] = Field(default=None, alias="episodeNum")
    format: Optional[str] = None
    job_id: Optional[str] = Field(default=None, alias="jobId")


def _error(message: str, status_code: int) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def progress_events(
    tracker: ProgressTracker,
    job_id: Optional[str],
    interval: float,
    request: Optional[Request] = None,
) -> AsyncGenerator[Dict[str, str], None]:
    """Poll the tracker and yield one SSE message per interval until the job is done."""
    while True:
        if request is not None and await request.is_disconnected():
            LOG.debug("Progress client for %s disconnected.", job_id or "current job")
            return
        state = tracker.get(job_id) if job_id else tracker.current()
        if state is None:
            event = {"jobId": job_id, "progress": 0, "done": False, "failed": False}
        else:
            event = state.as_event()
        yield {"data": json.dumps(event)}
        if event["done"]:
            return
        await asyncio.sleep(interval)


def add_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(PipelineError)
    async def pipeline_error_handler(request: Request, exc: PipelineError):
        return _error(exc.message, exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        LOG.debug("Rejected body: %s", exc.errors())
        return _error("Please provide manga name and episode number", status.HTTP_400_BAD_REQUEST)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        LOG.exception("Unhandled exception: %s", exc)
        return _error(f"Something went wrong: {exc}", status.HTTP_500_INTERNAL_SERVER_ERROR)


def create_app(
    settings: Optional[Settings] = None,
    session_factory: Optional[SessionFactory] = None,
) -> FastAPI:
    settings = settings or load_settings()
    tracker = ProgressTracker()
    coordinator = EpisodeCoordinator(settings, tracker, session_factory)

    app = FastAPI(title="webtoon-dl", description="Download webtoon episodes as PDF", version="1.0.0")
    app.state.settings = settings
    app.state.coordinator = coordinator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "X-Job-Id"],
    )
    add_exception_handlers(app)

    @app.get("/health")
    async def health():
        return {"status": "ok", "active": coordinator.gate.active}

    @app.post("/download")
    async def download(body: DownloadBody):
        episode_request = EpisodeRequest.build(
            body.manga_name,
            body.episode_num,
            format=body.format,
            job_id=body.job_id,
            default_format=settings.default_format,
        )
        result = await coordinator.run(episode_request)
        headers = {"X-Job-Id": result.job_id}
        if result.format == "images":
            return JSONResponse(content={"jobId": result.job_id, "images": result.images}, headers=headers)
        return FileResponse(
            result.pdf_path,
            media_type="application/pdf",
            filename=result.filename,
            headers=headers,
            background=BackgroundTask(coordinator.cleanup, result),
        )

    @app.get("/progress")
    async def progress(request: Request, jobId: Optional[str] = None):
        return EventSourceResponse(
            progress_events(tracker, jobId, settings.progress_interval, request)
        )

    if settings.static_dir.is_dir():
        app.mount("/", StaticFiles(directory=str(settings.static_dir), html=True), name="static")

    return app


def main() -> None:
    settings = load_settings()
    setup_logging(settings)
    LOG.info("Server running on http://localhost:%d", settings.port)
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_level="info")


if __name__ == "__main__":
    main()
