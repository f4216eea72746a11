"""HTML post-processing: linked asset discovery and reference rewriting.

Parsing uses BeautifulSoup with the stdlib ``html.parser`` backend. Only
``<link href>`` and ``<script src>`` references to local CSS/JS files are
treated as assets; everything else passes through untouched.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import urlsplit

import structlog
from bs4 import BeautifulSoup

log = structlog.get_logger()

ASSET_EXTENSIONS = frozenset({".css", ".js", ".mjs"})
_ASSET_SELECTORS = (("link[rel][href]", "href"), ("script[src]", "src"))


@dataclass(frozen=True)
class LinkedAsset:
    reference: str  # Attribute value as written in the view
    source_path: Path
    attr: str  # "href" or "src"

    @property
    def ext(self) -> str:
        return self.source_path.suffix


@dataclass
class LinkScan:
    assets: list[LinkedAsset]
    missing: list[str]


def _is_external(reference: str) -> bool:
    parts = urlsplit(reference)
    return bool(parts.scheme or parts.netloc) or reference.startswith("#")


def find_linked_assets(html: str, source_root: Path) -> LinkScan:
    """Collect the local CSS/JS files referenced by ``html``.

    References resolve against the site source root, with or without a
    leading slash. References to files that do not exist are reported as
    missing; each distinct reference appears once.
    """
    soup = BeautifulSoup(html, "html.parser")
    assets: list[LinkedAsset] = []
    missing: list[str] = []
    seen: set[str] = set()

    for selector, attr in _ASSET_SELECTORS:
        for el in soup.select(selector):
            reference = el.get(attr)
            if not isinstance(reference, str) or not reference or reference in seen:
                continue
            seen.add(reference)
            if _is_external(reference):
                continue

            relative = urlsplit(reference).path.lstrip("/")
            source_path = source_root / relative
            if source_path.suffix not in ASSET_EXTENSIONS:
                log.debug("asset_type_skipped", reference=reference)
                continue
            if not source_path.is_file():
                missing.append(reference)
                continue
            assets.append(LinkedAsset(reference=reference, source_path=source_path, attr=attr))

    return LinkScan(assets=assets, missing=missing)


def rewrite_asset_links(html: str, replacements: dict[str, str]) -> str:
    """Replace asset references (original value -> new value) in ``html``."""
    if not replacements:
        return html

    soup = BeautifulSoup(html, "html.parser")
    for selector, attr in _ASSET_SELECTORS:
        for el in soup.select(selector):
            reference = el.get(attr)
            if isinstance(reference, str) and reference in replacements:
                el[attr] = replacements[reference]
    return str(soup)


async def transform_style_tags(
    html: str,
    transform: Callable[[str, int], Awaitable[str]],
) -> str:
    """Run every inline ``<style>`` body through ``transform(css, start_line)``.

    ``start_line`` is the 0-based line of the style body within ``html``, so
    errors can point at the right line of the page.
    """
    soup = BeautifulSoup(html, "html.parser")
    styles = [el for el in soup.find_all("style") if el.string]
    if not styles:
        return html

    for el in styles:
        css = el.string
        offset = html.find(css)
        start_line = html.count("\n", 0, offset) if offset != -1 else 0
        el.string = await transform(css, start_line)
    return str(soup)


def code_snippet(
    code: str,
    line: int,
    column: int = 0,
    range_: int = 5,
    start_index: int = 0,
) -> str:
    """Numbered source lines around ``line`` (1-based), marking the failing one.

    ``start_index`` shifts the displayed numbers when ``code`` is an excerpt
    of a larger file.
    """
    lines = code.splitlines()
    lower = max(line - range_ - 1, 0)
    upper = min(line + range_, len(lines))
    width = len(str(upper + start_index))

    out: list[str] = []
    for lineno in range(lower + 1, upper + 1):
        text = lines[lineno - 1]
        shown = lineno + start_index
        if lineno == line:
            out.append(f"> {shown:>{width}} | {text}")
            if column > 0:
                out.append(f"  {' ' * width} | {' ' * (column - 1)}^")
        else:
            out.append(f"  {shown:>{width}} | {text}")
    return "\n".join(out)
