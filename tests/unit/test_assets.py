"""Unit tests for linked asset processing."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import pytest

from pagewright.assets import AssetPipeline
from pagewright.errors import BuildError, ErrorCode
from pagewright.html import LinkedAsset
from pagewright.protocols import TransformResult
from pagewright.state import create_state

if TYPE_CHECKING:
    from pathlib import Path

    from pagewright.config import Settings


class CountingTransformer:
    """Upper-cases code and counts calls per source path."""

    def __init__(self) -> None:
        self.calls: dict[str, int] = {}

    async def transform(self, source_path: Path, source_text: str, dev: bool) -> TransformResult:
        self.calls[source_path.name] = self.calls.get(source_path.name, 0) + 1
        await asyncio.sleep(0)
        return TransformResult(code=source_text.upper(), content_hash=None if dev else "abc")


class PositionedError(Exception):
    def __init__(self, message: str, line: int, column: int) -> None:
        super().__init__(message)
        self.line = line
        self.column = column


class FailingTransformer:
    async def transform(self, source_path: Path, source_text: str, dev: bool) -> TransformResult:
        raise PositionedError("Unknown word", line=2, column=3)


@pytest.fixture()
def asset_file(site_root: Path) -> Path:
    path = site_root / "assets" / "app.css"
    path.parent.mkdir()
    path.write_text("body{}\na{}\n", encoding="utf-8")
    return path


def _linked(path: Path) -> LinkedAsset:
    return LinkedAsset(reference="/assets/app.css", source_path=path, attr="href")


class TestResolve:
    async def test_processed_once_for_concurrent_pages(
        self, settings: Settings, asset_file: Path
    ) -> None:
        transformer = CountingTransformer()
        state = create_state(settings, transformer=transformer)
        pipeline = AssetPipeline(state)
        out = state.output_dir

        records = await asyncio.gather(
            pipeline.resolve(out / "index.html", _linked(asset_file)),
            pipeline.resolve(out / "2" / "posts" / "a.html", _linked(asset_file)),
        )
        await pipeline.drain()

        assert transformer.calls == {"app.css": 1}
        assert records[0] is records[1]
        assert records[0].output_path == str(out / "assets" / "app.abc.css")
        assert (out / "assets" / "app.abc.css").read_text(encoding="utf-8") == "BODY{}\nA{}\n"
        assert state.cache.pages_referencing(asset_file) == {
            str(out / "index.html"),
            str(out / "2" / "posts" / "a.html"),
        }

    async def test_relative_link_per_page(self, settings: Settings, asset_file: Path) -> None:
        state = create_state(settings, transformer=CountingTransformer())
        pipeline = AssetPipeline(state)
        out = state.output_dir

        asset = await pipeline.resolve(out / "index.html", _linked(asset_file))
        assert pipeline.relative_link(out / "index.html", asset) == "assets/app.abc.css"
        assert pipeline.relative_link(out / "2" / "posts" / "a.html", asset) == (
            "../../assets/app.abc.css"
        )
        await pipeline.drain()

    async def test_dev_mode_keeps_plain_name(self, settings: Settings, asset_file: Path) -> None:
        settings.build.dev = True
        state = create_state(settings, transformer=CountingTransformer())
        pipeline = AssetPipeline(state)

        asset = await pipeline.resolve(state.output_dir / "index.html", _linked(asset_file))
        await pipeline.drain()
        assert asset.output_path == str(state.output_dir / "assets" / "app.css")

    async def test_transform_error_carries_snippet(self, settings: Settings, asset_file: Path) -> None:
        state = create_state(settings, transformer=FailingTransformer())
        pipeline = AssetPipeline(state)

        with pytest.raises(BuildError) as exc_info:
            await pipeline.resolve(state.output_dir / "index.html", _linked(asset_file))
        error = exc_info.value
        assert error.code == ErrorCode.TRANSFORM_FAILED
        assert error.line == 2
        assert "> 2 | a{}" in error.snippet


class TestReprocess:
    async def test_unknown_asset_ignored(self, settings: Settings, asset_file: Path) -> None:
        transformer = CountingTransformer()
        pipeline = AssetPipeline(create_state(settings, transformer=transformer))
        assert await pipeline.reprocess(asset_file) == set()
        assert transformer.calls == {}

    async def test_known_asset_reprocessed(self, settings: Settings, asset_file: Path) -> None:
        transformer = CountingTransformer()
        state = create_state(settings, transformer=transformer)
        pipeline = AssetPipeline(state)
        page = state.output_dir / "index.html"
        await pipeline.resolve(page, _linked(asset_file))

        asset_file.write_text("p{}", encoding="utf-8")
        pages = await pipeline.reprocess(asset_file)
        await pipeline.drain()

        assert pages == {str(page)}
        assert transformer.calls == {"app.css": 2}
        assert state.cache.get_asset(asset_file).processed_code == "P{}"
