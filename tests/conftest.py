"""Shared test fixtures for the pagewright test suite."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from pagewright.config import Settings
from pagewright.data import FunneledData


def _write_file(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


@pytest.fixture()
def write_file() -> Callable[[Path, str], Path]:
    """Write a text file, creating parent directories."""
    return _write_file


@pytest.fixture()
def sample_items() -> list[dict[str, Any]]:
    """Seven posts, enough for three pages of three."""
    return [
        {"slug": f"post-{n}", "title": f"Post {n}", "year": 2020 + n % 2, "tags": ["a", "b"]}
        for n in range(1, 8)
    ]


@pytest.fixture()
def site_root(tmp_path: Path) -> Path:
    """An empty site source tree with a views directory."""
    root = tmp_path / "site"
    (root / "views").mkdir(parents=True)
    return root.resolve()


@pytest.fixture()
def settings(site_root: Path) -> Settings:
    """Settings pointing at the tmp site, validation on, production naming."""
    return Settings(
        site={"src": str(site_root), "output": str(site_root.parent / "public")},
        build={"dev": False, "chunk_size": 2},
    )


@pytest.fixture()
def funneled(sample_items: list[dict[str, Any]]) -> FunneledData:
    return FunneledData(
        raw=sample_items,
        meta={"title": "Test site"},
        pagination={"every": 3},
        indexes=["slug"],
    )


@pytest.fixture()
def data_file(site_root: Path, funneled: FunneledData) -> Path:
    """The funneled data written to the site's data file."""
    return _write_file(
        site_root / "pagewright.data.json",
        json.dumps(funneled.model_dump(exclude={"partials"})),
    )
