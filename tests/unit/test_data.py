"""Unit tests for site data file loading."""

from __future__ import annotations

import json
from typing import TYPE_CHECKING

import pytest

from pagewright.data import FunneledData, load_data_file
from pagewright.errors import BuildError, ErrorCode

if TYPE_CHECKING:
    from pathlib import Path


class TestLoadDataFile:
    def test_missing_file_is_empty_dataset(self, tmp_path: Path) -> None:
        data = load_data_file(tmp_path / "absent.json")
        assert data.items == []
        assert data.partials == {}

    def test_json_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "data.json"
        path.write_text(
            json.dumps({"raw": [{"slug": "a"}], "pagination": {"every": 1}, "indexes": ["slug"]}),
            encoding="utf-8",
        )
        data = load_data_file(path)
        assert data.items == [{"slug": "a"}]
        assert data.pagination.every == 1
        assert data.indexes == ["slug"]

    def test_top_level_list_is_raw(self, tmp_path: Path) -> None:
        path = tmp_path / "data.json"
        path.write_text(json.dumps([{"slug": "a"}, {"slug": "b"}]), encoding="utf-8")
        assert len(load_data_file(path).items) == 2

    def test_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "data.yaml"
        path.write_text("raw:\n  - slug: a\nmeta:\n  title: Site\n", encoding="utf-8")
        data = load_data_file(path)
        assert data.items == [{"slug": "a"}]
        assert data.meta == {"title": "Site"}

    @pytest.mark.parametrize("text", ["{not json", '{"raw": 5}'])
    def test_invalid_file_raises(self, tmp_path: Path, text: str) -> None:
        path = tmp_path / "data.json"
        path.write_text(text, encoding="utf-8")
        with pytest.raises(BuildError) as exc_info:
            load_data_file(path)
        assert exc_info.value.code == ErrorCode.INVALID_DATA_FILE


class TestFunneledData:
    def test_single_mapping_is_one_item(self) -> None:
        assert FunneledData(raw={"title": "x"}).items == [{"title": "x"}]

    def test_top_level_pages_feed_pagination(self) -> None:
        data = FunneledData(pages=[[1, 2], [3]], pagination={"every": 2})
        assert data.pagination_config.pages == [[1, 2], [3]]
        assert data.pagination_config.every == 2

    def test_explicit_pagination_pages_win(self) -> None:
        data = FunneledData(pages=[[9]], pagination={"pages": [[1]]})
        assert data.pagination_config.pages == [[1]]
