"""Unit tests for search index generation."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from pagewright.config import SearchSettings
from pagewright.data import FunneledData
from pagewright.indexes import INDEX_FILE_NAME, build_search_index, write_search_index
from pagewright.pagination import paginate
from pagewright.state import create_state

if TYPE_CHECKING:
    from pagewright.config import Settings


def _index(funneled: FunneledData, **search: Any) -> dict[str, dict[str, Any]]:
    pagination = paginate(funneled.pagination_config, funneled.items)
    return build_search_index(SearchSettings(**search), funneled, pagination)


class TestBuildSearchIndex:
    def test_no_indexes_configured(self, funneled: FunneledData) -> None:
        funneled.indexes = []
        assert _index(funneled) == {}

    def test_entries_keyed_by_value(self, funneled: FunneledData) -> None:
        index = _index(funneled)
        assert len(index) == 7
        assert index["post-1"]["index"] == "slug"
        assert index["post-1"]["value"]["title"] == "Post 1"
        assert "url" not in index["post-1"]

    def test_url_follows_page_of_item(self, funneled: FunneledData) -> None:
        index = _index(funneled, result_url="-[slug].html")
        assert index["post-1"]["url"] == "/post-1.html"
        assert index["post-4"]["url"] == "/2/post-4.html"
        assert index["post-7"]["url"] == "/3/post-7.html"

    def test_long_values_skipped(self, funneled: FunneledData) -> None:
        funneled.indexes = ["title"]
        assert _index(funneled, index_key_max_size=5) == {}

    def test_missing_key_skipped(self, funneled: FunneledData) -> None:
        funneled.indexes = ["slug", "author.name"]
        assert set(_index(funneled)) == {f"post-{n}" for n in range(1, 8)}

    def test_static_result_url_gives_no_url(self, funneled: FunneledData) -> None:
        index = _index(funneled, result_url="search.html")
        assert "url" not in index["post-1"]


class TestWriteSearchIndex:
    async def test_written_once_unless_forced(self, settings: Settings, funneled: FunneledData) -> None:
        state = create_state(settings, funneled)
        pagination = paginate(funneled.pagination_config, funneled.items)
        path = state.output_dir / INDEX_FILE_NAME

        assert await write_search_index(state, pagination) is True
        assert set(json.loads(path.read_text(encoding="utf-8"))) == {
            f"post-{n}" for n in range(1, 8)
        }
        assert await write_search_index(state, pagination) is False
        assert await write_search_index(state, pagination, force=True) is True
