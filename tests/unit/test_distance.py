"""Unit tests for the relative path resolver."""

from __future__ import annotations

import pytest

from pagewright.distance import path_distance
from pagewright.errors import BuildError, ErrorCode


class TestPathDistance:
    def test_two_levels_up(self) -> None:
        result = path_distance("/out/a/b/page.html", "/out/assets/app.css")
        assert result.distance == "../../assets/app.css"
        assert result.root == "out/"
        assert result.trail == "../../"
        assert result.target_only == "assets/app.css"

    def test_same_directory(self) -> None:
        assert path_distance("/out/index.html", "/out/app.css").distance == "app.css"

    def test_shared_subdirectory(self) -> None:
        result = path_distance("/out/docs/guide/page.html", "/out/docs/style.css")
        assert result.distance == "../style.css"

    def test_segments_after_divergence_are_not_shared(self) -> None:
        # "x" sits at the same depth on both sides but after the paths diverge.
        result = path_distance("/out/a/x/page.html", "/out/b/x/app.css")
        assert result.distance == "../../b/x/app.css"

    def test_same_asset_from_different_depths(self) -> None:
        asset = "/out/assets/app.css"
        shallow = path_distance("/out/index.html", asset).distance
        deep = path_distance("/out/2/posts/hello.html", asset).distance
        assert shallow == "assets/app.css"
        assert deep == "../../assets/app.css"

    def test_no_shared_root_raises(self) -> None:
        with pytest.raises(BuildError) as exc_info:
            path_distance("/site/page.html", "/assets/app.css")
        assert exc_info.value.code == ErrorCode.PATHS_NOT_SAME_ROOT
        assert exc_info.value.is_route_error is False
