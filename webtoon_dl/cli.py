#!/usr/bin/env python3
# -*- coding: utf-8 -*-
from __future__ import annotations

import argparse
import asyncio
import dataclasses
import pathlib
import shutil
import sys
from typing import List, Optional

from tqdm import tqdm

from .config import FORMATS, load_settings, setup_logging
from .errors import PipelineError
from .pipeline import EpisodeCoordinator, EpisodeRequest, EpisodeResult
from .scraper import decode_data_uri, sanitize_filename

POLL_SECONDS = 0.25


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="webtoon-dl", description="Download one webtoon episode as a PDF or as images."
    )
    parser.add_argument("title", help="Title to search for")
    parser.add_argument("episode", type=int, help="Episode number")
    parser.add_argument("--format", choices=FORMATS, default=None, help="pdf (default) or images")
    parser.add_argument("--out", type=pathlib.Path, default=pathlib.Path("."), help="Output folder")
    parser.add_argument("--headful", action="store_true", help="Show the browser window")
    return parser


def save_images(result: EpisodeResult, out_dir: pathlib.Path) -> List[pathlib.Path]:
    folder = out_dir / sanitize_filename(pathlib.Path(result.filename).stem)
    folder.mkdir(parents=True, exist_ok=True)
    paths: List[pathlib.Path] = []
    for i, uri in enumerate(result.images, start=1):
        data, ext = decode_data_uri(uri)
        path = folder / f"{i:03d}.{ext}"
        path.write_bytes(data)
        paths.append(path)
    return paths


def save_pdf(result: EpisodeResult, out_dir: pathlib.Path) -> pathlib.Path:
    out_dir.mkdir(parents=True, exist_ok=True)
    target = out_dir / sanitize_filename(result.filename)
    shutil.move(str(result.pdf_path), str(target))
    return target


async def run_with_progress(coordinator: EpisodeCoordinator, request: EpisodeRequest) -> EpisodeResult:
    task = asyncio.create_task(coordinator.run(request))
    with tqdm(total=100, ncols=80, desc=f"Ep {request.episode}", unit="%") as pbar:
        while not task.done():
            state = coordinator.tracker.get(request.job_id)
            if state is not None:
                pbar.n = round(state.progress)
                pbar.refresh()
            await asyncio.sleep(POLL_SECONDS)
        result = task.result()
        state = coordinator.tracker.get(request.job_id)
        if state is not None:
            pbar.n = round(state.progress)
            pbar.refresh()
    return result


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    if args.headful:
        settings = dataclasses.replace(settings, headless=False)
    setup_logging(settings)

    coordinator = EpisodeCoordinator(settings)
    try:
        request = EpisodeRequest.build(
            args.title, args.episode, format=args.format, default_format=settings.default_format
        )
        result = asyncio.run(run_with_progress(coordinator, request))
    except PipelineError as exc:
        print(f"Error: {exc.message}", file=sys.stderr)
        return 1

    if result.format == "images":
        paths = save_images(result, args.out)
        print(f"Saved {len(paths)} images in {paths[0].parent}")
    else:
        target = save_pdf(result, args.out)
        print(f"PDF ready: {target} ({result.pages} pages, {result.size_bytes} bytes)")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
