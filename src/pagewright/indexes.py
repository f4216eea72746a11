"""Search index (``indexes.json``) generation.

For every data item and every configured index key, the item's value for
that key becomes an index entry pointing back at the item and, when a
result URL pattern is configured, at the page rendered for it.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import structlog

from pagewright.cache import content_checksum
from pagewright.errors import BuildError
from pagewright.pagination import PageCursor
from pagewright.paths import write_text
from pagewright.route import access_property, parse_route, resolve_route_value

if TYPE_CHECKING:
    from pagewright.config import SearchSettings
    from pagewright.data import FunneledData
    from pagewright.pagination import PaginationResult
    from pagewright.state import BuildState

log = structlog.get_logger()

INDEX_FILE_NAME = "indexes.json"


def _join_url(page_entry: str, placed: str) -> str:
    return f"{page_entry.rstrip('/')}/{placed.lstrip('/')}"


def build_search_index(
    settings: SearchSettings,
    funneled: FunneledData,
    pagination: PaginationResult,
) -> dict[str, dict[str, Any]]:
    """Map each indexed value to ``{index, value, url}``.

    Values longer than ``index_key_max_size`` and items without the key are
    skipped. A later item with the same value replaces the earlier one.
    """
    if not funneled.indexes:
        return {}

    pattern = parse_route(settings.result_url) if settings.result_url else None
    cursor = PageCursor.for_result(funneled.pagination_config, pagination)
    items = funneled.items

    index: dict[str, dict[str, Any]] = {}
    for i, item in enumerate(items):
        page_entry = cursor.advance(i)

        for key in funneled.indexes:
            try:
                value = str(access_property(item, key))
            except BuildError:
                log.debug("search_index_key_skipped", key=key, item=i)
                continue
            if len(value) > settings.index_key_max_size:
                continue

            entry: dict[str, Any] = {"index": key, "value": item}
            if pattern is not None and not pattern.is_static:
                try:
                    placed = pattern.place(resolve_route_value(pattern, item, items))
                    entry["url"] = _join_url(page_entry, placed)
                except BuildError:
                    log.debug("search_index_url_skipped", key=key, item=i)
            index[value] = entry

    return index


async def write_search_index(
    state: BuildState,
    pagination: PaginationResult,
    *,
    force: bool = False,
) -> bool:
    """Write ``indexes.json`` once per session, or again when ``force`` is set.

    Returns True when the file was written.
    """
    output_path = state.output_dir / INDEX_FILE_NAME
    if state.cache.get(output_path) is not None and not force:
        return False

    index = build_search_index(state.settings.build.search, state.funneled, pagination)
    if not index:
        return False

    text = json.dumps(index, ensure_ascii=False, default=str)
    await write_text(output_path, text)
    state.cache.upsert(output_path, {"checksum": content_checksum(text)})
    log.info("search_index_written", path=str(output_path), entries=len(index), size=len(text))
    return True
