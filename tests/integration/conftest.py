"""Integration test fixtures.

Provides a small site on disk (views, a partial, one stylesheet and the data
file from tests/conftest.py) and a SiteBuilder wired with the default
collaborators. Builds run in one-shot mode unless a test switches
``state.watch`` on.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from pagewright.builder import SiteBuilder
from pagewright.data import load_data_file
from pagewright.state import BuildState, create_state

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from pagewright.config import Settings

STYLESHEET = "body { margin: 0 }\n"

LAYOUT_HEAD = '<html><head><link rel="stylesheet" href="/assets/app.css"></head><body>'
LAYOUT_FOOT = "</body></html>"

INDEX_VIEW = (
    LAYOUT_HEAD
    + '{% include "header" %}<ul>{% for item in page.items %}<li>{{ item.title }}</li>{% endfor %}'
    + "</ul><p>page {{ page.no }} of {{ page.count }}</p>"
    + LAYOUT_FOOT
)
ABOUT_VIEW = LAYOUT_HEAD + '{% include "header" %}<p>About {{ meta.title }}</p>' + LAYOUT_FOOT
POST_VIEW = (
    LAYOUT_HEAD
    + '{% include "header" %}<article>{{ data.title }} at {{ url_path.full }}</article>'
    + LAYOUT_FOOT
)
HEADER_PARTIAL = "<header>{{ meta.title }}</header>"


@pytest.fixture()
def site(
    site_root: Path,
    data_file: Path,
    write_file: Callable[[Path, str], Path],
) -> Path:
    """Write the test site and return its source root."""
    views = site_root / "views"
    write_file(views / "index.html", INDEX_VIEW)
    write_file(views / "about.html", ABOUT_VIEW)
    write_file(views / "posts" / "-[slug].html", POST_VIEW)
    write_file(views / "partials" / "header.html", HEADER_PARTIAL)
    write_file(site_root / "assets" / "app.css", STYLESHEET)
    return site_root


@pytest.fixture()
def state(settings: Settings, site: Path) -> BuildState:
    return create_state(settings, load_data_file(settings.site.data_path))


@pytest.fixture()
def builder(state: BuildState) -> SiteBuilder:
    return SiteBuilder(state)


@pytest.fixture()
def output(state: BuildState) -> Path:
    return state.output_dir
