"""Linked asset processing.

Every asset is transformed at most once per session no matter how many pages
link it. Concurrent first references to the same asset share one in-flight
task (keyed by the asset's un-hashed output path); later references hit the
content cache. Each page then gets its own relative link to the asset.

Asset file writes are fire-and-forget relative to the page that triggered
them: a page may be written before the asset file lands. ``drain`` awaits
the outstanding writes at the end of a build.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

import structlog

from pagewright.distance import path_distance
from pagewright.errors import BuildError, ErrorCode
from pagewright.html import code_snippet
from pagewright.models.cache import AssetRecord
from pagewright.paths import hashed_name, read_text, split_path_cwd, write_text

if TYPE_CHECKING:
    from pathlib import Path

    from pagewright.html import LinkedAsset
    from pagewright.state import BuildState

log = structlog.get_logger()


class AssetPipeline:
    def __init__(self, state: BuildState) -> None:
        self._state = state
        self._inflight: dict[str, asyncio.Task[AssetRecord]] = {}
        self._writes: set[asyncio.Task[None]] = set()
        self._write_errors: list[BaseException] = []

    def output_target(self, source_path: Path) -> Path:
        """Un-hashed output location: the asset's place under the source root."""
        relative = source_path.relative_to(self._state.source_root)
        return self._state.output_dir / relative

    async def resolve(self, page_output_path: Path, linked: LinkedAsset) -> AssetRecord:
        """Processed record for ``linked``, linked to the page in the cache."""
        cache = self._state.cache
        asset = cache.get_asset(linked.source_path)
        if asset is None:
            target = str(self.output_target(linked.source_path))
            task = self._inflight.get(target)
            if task is None:
                task = asyncio.create_task(self._process(linked.source_path))
                self._inflight[target] = task
                task.add_done_callback(lambda _t, key=target: self._inflight.pop(key, None))
            asset = await task

        cache.link_page_to_asset(page_output_path, asset)
        return asset

    def relative_link(self, page_output_path: Path, asset: AssetRecord) -> str:
        return path_distance(page_output_path, asset.output_path).distance

    async def reprocess(self, source_path: Path) -> set[str]:
        """Re-transform an asset already known to the cache.

        Returns the output pages linking it; unknown assets are ignored since
        no page references them yet.
        """
        if self._state.cache.get_asset(source_path) is None:
            return set()
        await self._process(source_path)
        return self._state.cache.pages_referencing(source_path)

    async def drain(self) -> None:
        """Wait for outstanding asset writes; raise the first failure."""
        if self._writes:
            await asyncio.gather(*list(self._writes), return_exceptions=True)
        if self._write_errors:
            error = self._write_errors[0]
            self._write_errors.clear()
            raise error

    async def _process(self, source_path: Path) -> AssetRecord:
        state = self._state
        relative = split_path_cwd(state.source_root, source_path)
        source_text = await read_text(source_path)

        if state.transformer is None:
            raise RuntimeError("BuildState.transformer is not initialized")
        try:
            result = await state.transformer.transform(source_path, source_text, state.dev)
        except BuildError:
            raise
        except Exception as exc:
            # Collaborators report positions the way postcss does: .line / .column
            line = getattr(exc, "line", None)
            column = getattr(exc, "column", None)
            raise BuildError(
                code=ErrorCode.TRANSFORM_FAILED,
                message=f"Failed to process asset {relative}: {exc}",
                suggestion="Fix the asset source at the marked line.",
                recoverable=True,
                source=str(source_path),
                line=line if isinstance(line, int) else None,
                column=column if isinstance(column, int) else None,
                snippet=code_snippet(source_text, line, column or 0)
                if isinstance(line, int)
                else "",
            ) from exc

        output_path = hashed_name(self.output_target(source_path), result.content_hash)
        asset = state.cache.register_asset(
            AssetRecord(
                source_path=str(source_path),
                output_path=str(output_path),
                processed_code=result.code,
                content_hash=result.content_hash,
            )
        )
        self._schedule_write(output_path, result.code)
        log.info("asset_processed", asset=relative, output=str(output_path))
        return asset

    def _schedule_write(self, output_path: Path, code: str) -> None:
        task = asyncio.create_task(write_text(output_path, code))
        self._writes.add(task)
        task.add_done_callback(self._write_done)

    def _write_done(self, task: asyncio.Task[None]) -> None:
        self._writes.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self._write_errors.append(exc)
            log.error("asset_write_failed", exc_info=exc)
