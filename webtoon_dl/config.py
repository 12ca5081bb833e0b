#!/usr/bin/env python3
# -*- coding: utf-8 -*-
from __future__ import annotations

import logging
import os
import pathlib
from dataclasses import dataclass
from logging.handlers import RotatingFileHandler
from typing import Optional

from dotenv import load_dotenv

BASE_DIR = pathlib.Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124 Safari/537.36"
)
FORMATS = ("pdf", "images")

LOG_FILENAME = "webtoon_dl.log"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
LOG_MAX_BYTES = 2 * 1024 * 1024
LOG_BACKUPS = 5


@dataclass
class Settings:
    base_url: str = "https://www.webtoons.com/en/"
    referer: str = "https://www.webtoons.com/"
    user_agent: str = DEFAULT_USER_AGENT
    headless: bool = True
    max_concurrency: int = 1
    output_dir: pathlib.Path = BASE_DIR / "episodes_pdf"
    static_dir: pathlib.Path = BASE_DIR / "static"
    log_dir: pathlib.Path = BASE_DIR / "logs"
    default_format: str = "pdf"
    progress_interval: float = 0.5
    search_timeout_ms: int = 5_000
    page_timeout_ms: int = 30_000
    image_timeout_ms: int = 90_000
    max_page_width: int = 800
    image_marker: str = "webtoon"
    host: str = "0.0.0.0"
    port: int = 3000


def load_env() -> None:
    if ENV_PATH.exists():
        load_dotenv(ENV_PATH)
    else:
        load_dotenv()


def _resolve_dir(env_key: str, default: pathlib.Path) -> pathlib.Path:
    candidate = os.getenv(env_key, "").strip()
    if candidate:
        path = pathlib.Path(candidate).expanduser()
        if not path.is_absolute():
            path = BASE_DIR / path
        return path
    return default


def _env_int(env_key: str, default: int) -> int:
    raw = os.getenv(env_key, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        logging.getLogger("webtoon_dl").warning(
            "Ignoring invalid %s=%r; using %s.", env_key, raw, default
        )
        return default


def _env_str(env_key: str, default: str) -> str:
    return os.getenv(env_key, "").strip() or default


def load_settings() -> Settings:
    load_env()
    defaults = Settings()
    fmt = _env_str("DEFAULT_FORMAT", defaults.default_format).lower()
    if fmt not in FORMATS:
        fmt = defaults.default_format
    return Settings(
        base_url=_env_str("WEBTOON_BASE_URL", defaults.base_url),
        referer=_env_str("WEBTOON_REFERER", defaults.referer),
        user_agent=_env_str("USER_AGENT", defaults.user_agent),
        headless=os.getenv("HEADLESS", "true").lower() != "false",
        max_concurrency=max(1, _env_int("MAX_CONCURRENCY", defaults.max_concurrency)),
        output_dir=_resolve_dir("OUTPUT_DIR", defaults.output_dir),
        static_dir=_resolve_dir("STATIC_DIR", defaults.static_dir),
        log_dir=_resolve_dir("LOG_DIR", defaults.log_dir),
        default_format=fmt,
        progress_interval=max(50, _env_int("PROGRESS_INTERVAL_MS", 500)) / 1000.0,
        search_timeout_ms=_env_int("SEARCH_TIMEOUT_MS", defaults.search_timeout_ms),
        page_timeout_ms=_env_int("PAGE_TIMEOUT_MS", defaults.page_timeout_ms),
        image_timeout_ms=_env_int("IMAGE_TIMEOUT_MS", defaults.image_timeout_ms),
        max_page_width=_env_int("MAX_PAGE_WIDTH", defaults.max_page_width),
        image_marker=_env_str("IMAGE_MARKER", defaults.image_marker),
        host=_env_str("HOST", defaults.host),
        port=_env_int("PORT", defaults.port),
    )


def setup_logging(settings: Optional[Settings] = None) -> pathlib.Path:
    """Console output at INFO; the webtoon_dl loggers also go to a rotating DEBUG file."""
    settings = settings or Settings()
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    log_path = settings.log_dir / LOG_FILENAME
    fmt = logging.Formatter(LOG_FORMAT)

    root = logging.getLogger()
    root.setLevel(logging.INFO)
    if not any(type(h) is logging.StreamHandler for h in root.handlers):
        console = logging.StreamHandler()
        console.setLevel(logging.INFO)
        console.setFormatter(fmt)
        root.addHandler(console)
    for noisy in ("telegram", "httpx", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    package_log = logging.getLogger("webtoon_dl")
    package_log.setLevel(logging.DEBUG)
    if not any(
        isinstance(h, RotatingFileHandler) and h.baseFilename == str(log_path)
        for h in package_log.handlers
    ):
        file_handler = RotatingFileHandler(
            log_path, maxBytes=LOG_MAX_BYTES, backupCount=LOG_BACKUPS, encoding="utf-8"
        )
        file_handler.setFormatter(fmt)
        package_log.addHandler(file_handler)
    return log_path
