#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""Turn downloaded episode images into a PDF, one page per image.

Pages are sized to the image itself (one pixel per PDF point); images wider
than the maximum page width are scaled down proportionally.
"""

from __future__ import annotations

import io
import logging
import pathlib
import re
from typing import Callable, List, Optional, Sequence, Tuple

import img2pdf
import pikepdf
from PIL import Image

LOG = logging.getLogger("webtoon_dl.packager")

MAX_PAGE_WIDTH = 800
JPEG_QUALITY = 95

PageCallback = Callable[[int, int], None]

WHITESPACE_RE = re.compile(r"\s+")


def episode_filename(title: str, episode: int) -> str:
    return f"{WHITESPACE_RE.sub('_', title.strip())}_Ep{episode}.pdf"


def scaled_size(width: int, height: int, max_width: int = MAX_PAGE_WIDTH) -> Tuple[int, int]:
    if width > max_width:
        scale = max_width / width
        return max_width, int(height * scale + 0.5)
    return width, height


def fit_width_layout(max_width: int = MAX_PAGE_WIDTH):
    """img2pdf layout function: page exactly the size of the (scaled) image."""

    def layout_fun(imgwidthpx, imgheightpx, ndpi):
        width, height = scaled_size(imgwidthpx, imgheightpx, max_width)
        return float(width), float(height), float(width), float(height)

    return layout_fun


def normalize_image(data: bytes) -> Tuple[bytes, int, int]:
    """Re-encode any supported image as RGB JPEG; return bytes and pixel size."""
    with Image.open(io.BytesIO(data)) as im:
        width, height = im.size
        rgb = im.convert("RGB")
    buf = io.BytesIO()
    rgb.save(buf, "JPEG", quality=JPEG_QUALITY, optimize=True, dpi=(72, 72))
    return buf.getvalue(), width, height


def build_pdf(
    buffers: Sequence[bytes],
    out_pdf: pathlib.Path,
    max_width: int = MAX_PAGE_WIDTH,
    on_page: Optional[PageCallback] = None,
) -> pathlib.Path:
    if not buffers:
        raise RuntimeError("No images available for PDF.")
    out_pdf.parent.mkdir(parents=True, exist_ok=True)
    total = len(buffers)
    pages: List[bytes] = []
    for idx, data in enumerate(buffers, start=1):
        jpeg, width, height = normalize_image(data)
        pages.append(jpeg)
        final_w, final_h = scaled_size(width, height, max_width)
        LOG.debug("Added image number: %d (%dx%d -> %dx%d)", idx, width, height, final_w, final_h)
        if on_page is not None:
            on_page(idx, total)
    with open(out_pdf, "wb") as f:
        f.write(img2pdf.convert(pages, layout_fun=fit_width_layout(max_width)))
    LOG.info("Finished the PDF and saved it at: %s", out_pdf)
    return out_pdf


def pdf_page_count(pdf_path: pathlib.Path) -> int:
    try:
        with pikepdf.open(pdf_path) as pdf:
            return len(pdf.pages)
    except (pikepdf.PdfError, OSError) as exc:
        LOG.warning("Could not read %s: %s", pdf_path, exc)
        return 0


def validate_pdf(pdf_path: pathlib.Path, expected_pages: Optional[int] = None) -> Tuple[bool, int, int]:
    try:
        size = pdf_path.stat().st_size
    except OSError:
        return False, 0, 0
    pages = pdf_page_count(pdf_path)
    if pages <= 0:
        return False, pages, size
    if expected_pages is not None and pages != expected_pages:
        return False, pages, size
    return True, pages, size


def cleanup_pdf(pdf_path: pathlib.Path) -> None:
    try:
        pdf_path.unlink(missing_ok=True)
    except OSError as exc:
        LOG.warning("Failed to delete PDF %s: %s", pdf_path, exc)
        return
    LOG.info("Deleted the PDF file from the server: %s", pdf_path)


__all__ = [
    "build_pdf",
    "cleanup_pdf",
    "episode_filename",
    "fit_width_layout",
    "normalize_image",
    "pdf_page_count",
    "scaled_size",
    "validate_pdf",
]
