"""Shared fixtures for the pipeline, server and front-end tests."""

import pathlib

import pytest

from tests.fakes import FakeSite
from webtoon_dl.config import Settings


@pytest.fixture
def settings(tmp_path: pathlib.Path) -> Settings:
    return Settings(
        output_dir=tmp_path / "out",
        static_dir=tmp_path / "static",
        log_dir=tmp_path / "logs",
        progress_interval=0.01,
    )


@pytest.fixture
def site() -> FakeSite:
    return FakeSite()
