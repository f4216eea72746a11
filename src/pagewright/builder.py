"""Build driver: decides what to render and runs the page pipeline.

A full build scans the views directory, keeps the views the content cache
says must be rendered, and renders three independent batches:

- single views: one output per view (static names and pinned fields)
- loop views: one output per data item (``-[slug].html``)
- index views: ``index.html`` at the views root, once per page when the
  data is paginated

Outputs go through the page pipeline in chunks of ``build.chunk_size``:
render → validate (once per view content) → link assets → rewrite links →
inline CSS → write.

Incremental rebuilds (``rebuild``) map one watcher event to the smallest
set of views that must be rendered again.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Iterable
from contextlib import suppress
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Literal, TypeVar

import structlog

from pagewright.assets import AssetPipeline
from pagewright.cache import read_and_classify
from pagewright.data import load_data_file
from pagewright.errors import BuildError, ErrorCode
from pagewright.html import (
    ASSET_EXTENSIONS,
    code_snippet,
    find_linked_assets,
    rewrite_asset_links,
    transform_style_tags,
)
from pagewright.indexes import write_search_index
from pagewright.models.cache import RenderedOutput
from pagewright.pagination import (
    Page,
    PageCursor,
    PaginationResult,
    format_page_entry,
    paginate,
)
from pagewright.paths import list_files, page_output_path, remove_tree, url_path, write_text
from pagewright.route import (
    DEFAULT_PAGE_NUMBER,
    INDEX_PAGE,
    RoutePattern,
    parse_route,
    pinned_item,
    resolve_route_value,
)

if TYPE_CHECKING:
    from pagewright.state import BuildState

log = structlog.get_logger()

VIEW_EXTENSIONS = frozenset({".html", ".htm"})

ViewKind = Literal["single", "loop", "index"]
WatchEvent = Literal["created", "modified", "deleted", "moved"]

T = TypeVar("T")


@dataclass(frozen=True)
class ViewJob:
    path: Path
    relative: Path  # relative to the views directory
    route: RoutePattern
    kind: ViewKind

    @property
    def view_dir(self) -> str:
        return self.relative.parent.as_posix()


@dataclass
class RenderTarget:
    job: ViewJob
    output_path: Path
    page: Page
    data: Any


@dataclass(frozen=True)
class PageLocals:
    """The ``page`` template local.

    An object, not a dict: Jinja looks attributes up before keys, so
    ``page.items`` on a dict would be ``dict.items``.
    """

    no: int
    url: str
    count: int
    items: list[Any]


@dataclass
class BuildReport:
    views: int = 0
    pages: int = 0
    skipped_routes: list[str] = field(default_factory=list)
    seconds: float = 0.0

    def merge(self, other: BuildReport) -> None:
        self.views += other.views
        self.pages += other.pages
        self.skipped_routes.extend(other.skipped_routes)


async def _gather_settled(aws: Iterable[Awaitable[T]]) -> list[T]:
    """Like ``asyncio.gather``, but a failure is raised only once every sibling settled.

    File writes run in worker threads and cannot be cancelled; waiting for
    them keeps the output tree quiet before a failed build removes it.
    """
    results = await asyncio.gather(*aws, return_exceptions=True)
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return list(results)


def _chunks(items: list[T], size: int) -> Iterable[list[T]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class SiteBuilder:
    """Runs full and incremental builds for one build session."""

    def __init__(self, state: BuildState) -> None:
        self._state = state
        self.assets = AssetPipeline(state)
        self.pagination = self._paginate()
        self._rescan_requested = False

    def _paginate(self) -> PaginationResult:
        funneled = self._state.funneled
        return paginate(funneled.pagination_config, funneled.items)

    def _request_rescan(self) -> None:
        self._rescan_requested = True

    # ------------------------------------------------------------------
    # Full build
    # ------------------------------------------------------------------

    async def build(self, *, bypass: bool = True, data_changed: bool = False) -> BuildReport:
        """Render every view the cache lets through (all of them with ``bypass``).

        In one-shot mode any failure deletes the output tree before the error
        propagates; in watch mode the previous output is left in place.
        """
        state = self._state
        started = time.perf_counter()
        self._rescan_requested = False
        log.info("build_started", views=str(state.views_dir), bypass=bypass, dev=state.dev)

        try:
            views = await asyncio.to_thread(list_files, state.views_dir)
            jobs, skipped = await self._schedule(views, bypass=bypass)
            report = await self._render_jobs(jobs)
            report.skipped_routes.extend(skipped)
            await write_search_index(state, self.pagination, force=data_changed)
            await self.assets.drain()
        except Exception:
            if not state.watch:
                with suppress(Exception):
                    await self.assets.drain()
                removed = await remove_tree(state.output_dir)
                log.info("output_cleaned", path=str(state.output_dir), removed=removed)
            raise

        if self._rescan_requested:
            log.info("views_changed_during_scan")
        report.seconds = round(time.perf_counter() - started, 3)
        log.info(
            "build_complete",
            views=report.views,
            pages=report.pages,
            skipped_routes=len(report.skipped_routes),
            seconds=report.seconds,
        )
        return report

    async def _schedule(
        self, views: list[Path], *, bypass: bool
    ) -> tuple[list[ViewJob], list[str]]:
        """Classify the scanned views and parse the routes of those to render."""
        state = self._state
        candidates = [p for p in views if p.suffix in VIEW_EXTENSIONS]
        classifications = await _gather_settled(
            read_and_classify(state.cache, p, bypass=bypass, rewatch=self._request_rescan)
            for p in candidates
        )

        jobs: list[ViewJob] = []
        skipped: list[str] = []
        for path, classification in zip(candidates, classifications, strict=True):
            if classification is None or not classification.include:
                continue
            job = self._job_for(path)
            if job is None:
                skipped.append(str(path))
            else:
                jobs.append(job)
        return jobs, skipped

    def _job_for(self, path: Path) -> ViewJob | None:
        relative = path.relative_to(self._state.views_dir)
        try:
            route = parse_route(path.name)
        except BuildError as exc:
            log.warning(
                "route_skipped", view=relative.as_posix(), code=exc.code, message=exc.message
            )
            return None

        kind: ViewKind = "single"
        if route.has_loop:
            kind = "loop"
        elif self.pagination.paginate and route.is_static and relative.as_posix() == INDEX_PAGE:
            kind = "index"
        return ViewJob(path=path, relative=relative, route=route, kind=kind)

    async def _render_jobs(self, jobs: list[ViewJob]) -> BuildReport:
        batches: dict[ViewKind, list[ViewJob]] = {"single": [], "loop": [], "index": []}
        for job in jobs:
            batches[job.kind].append(job)

        reports = await _gather_settled(
            self._run_batch(kind, batch) for kind, batch in batches.items() if batch
        )
        total = BuildReport()
        for report in reports:
            total.merge(report)
        return total

    async def _run_batch(self, kind: ViewKind, jobs: list[ViewJob]) -> BuildReport:
        report = BuildReport()
        targets: list[RenderTarget] = []
        for job in jobs:
            try:
                targets.extend(self._targets_for(job))
            except BuildError as exc:
                if not exc.is_route_error:
                    raise
                log.warning(
                    "route_skipped",
                    view=job.relative.as_posix(),
                    code=exc.code,
                    message=exc.message,
                )
                report.skipped_routes.append(str(job.path))
                continue
            report.views += 1

        seen: set[Path] = set()
        for target in targets:
            if target.output_path in seen:
                log.warning(
                    "output_path_collision",
                    output=str(target.output_path),
                    view=target.job.relative.as_posix(),
                )
            seen.add(target.output_path)

        for chunk in _chunks(targets, self._state.settings.build.chunk_size):
            htmls = await _gather_settled(self._render(target) for target in chunk)
            await _gather_settled(
                self._finalize(target, html) for target, html in zip(chunk, htmls, strict=True)
            )
            report.pages += len(chunk)

        log.debug("batch_complete", kind=kind, views=report.views, pages=report.pages)
        return report

    # ------------------------------------------------------------------
    # Output targets
    # ------------------------------------------------------------------

    def _output_path(self, job: ViewJob, page_url: str, value: str) -> Path:
        return page_output_path(
            self._state.output_dir, page_url, job.view_dir, job.route.place(value)
        )

    def _targets_for(self, job: ViewJob) -> list[RenderTarget]:
        if job.kind == "loop":
            return self._loop_targets(job)
        if job.kind == "index":
            return self._index_targets(job)
        return self._single_targets(job)

    def _single_targets(self, job: ViewJob) -> list[RenderTarget]:
        funneled = self._state.funneled
        route = job.route
        if route.page > self.pagination.count:
            log.warning(
                "page_out_of_range",
                view=job.relative.as_posix(),
                page=route.page,
                pages=self.pagination.count,
            )
            return []

        page = self.pagination.meta_pages[route.page - 1]
        value = resolve_route_value(route, funneled.raw, funneled.items)
        pinned = pinned_item(route, funneled.items)
        data = pinned if pinned is not None else funneled.raw
        return [RenderTarget(job, self._output_path(job, page.url, value), page, data)]

    def _loop_targets(self, job: ViewJob) -> list[RenderTarget]:
        route = job.route
        flat = self.pagination.flat_pages
        targets: list[RenderTarget] = []

        if route.page != DEFAULT_PAGE_NUMBER:
            # Explicit page: loop over that page's items only.
            page = Page(no=route.page, url=format_page_entry(route.page))
            for item in self.pagination.chunk_for(route.page):
                value = resolve_route_value(route, item, flat)
                output_path = self._output_path(job, page.url, value)
                targets.append(RenderTarget(job, output_path, page, item))
            return targets

        cursor = PageCursor.for_result(self._state.funneled.pagination_config, self.pagination)
        for i, item in enumerate(flat):
            page_url = cursor.advance(i)
            page = Page(no=cursor.current_page, url=page_url)
            value = resolve_route_value(route, item, flat)
            targets.append(RenderTarget(job, self._output_path(job, page_url, value), page, item))
        return targets

    def _index_targets(self, job: ViewJob) -> list[RenderTarget]:
        data = self._state.funneled.raw
        return [
            RenderTarget(job, self._output_path(job, page.url, ""), page, data)
            for page in self.pagination.meta_pages
        ]

    # ------------------------------------------------------------------
    # Page pipeline
    # ------------------------------------------------------------------

    def _locals(self, target: RenderTarget) -> dict[str, Any]:
        state = self._state
        full = url_path(state.output_dir, target.output_path)
        return {
            "data": target.data,
            "meta": state.funneled.meta,
            "pages": list(self.pagination.meta_pages),
            "page": PageLocals(
                no=target.page.no,
                url=target.page.url,
                count=self.pagination.count,
                items=self.pagination.chunk_for(target.page.no),
            ),
            "url_path": {"full": full, "dir": full.rsplit("/", 1)[0] or "/"},
            "year": datetime.now(UTC).year,
        }

    async def _render(self, target: RenderTarget) -> str:
        renderer = self._state.renderer
        if renderer is None:
            raise RuntimeError("BuildState.renderer is not initialized")
        return await renderer.render(target.job.path, self._locals(target))

    async def _validate(self, job: ViewJob, html: str) -> None:
        validator = self._state.validator
        if validator is None or not self._state.settings.build.validate_html:
            return
        record = self._state.cache.upsert(job.path, {"validated": True})
        messages = await validator.validate(html)
        if not messages:
            return

        record.validated = False
        for msg in messages:
            log.error(
                "html_validation_error",
                view=job.relative.as_posix(),
                line=msg.line,
                column=msg.column,
                rule=msg.rule_id,
                message=msg.message,
                snippet=code_snippet(html, msg.line, msg.column),
            )
        first = messages[0]
        raise BuildError(
            code=ErrorCode.VALIDATION_FAILED,
            message=f"HTML validation failed for {job.relative.as_posix()}: {first.message}",
            suggestion="Fix the markup the view generates at the reported lines.",
            recoverable=True,
            source=str(job.path),
            line=first.line,
            column=first.column,
            snippet=code_snippet(html, first.line, first.column),
        )

    async def _transform_inline_css(self, job: ViewJob, css: str, start_line: int) -> str:
        transformer = self._state.transformer
        if transformer is None:
            return css
        try:
            result = await transformer.transform(job.path, css, self._state.dev)
        except BuildError:
            raise
        except Exception as exc:
            line = getattr(exc, "line", None)
            raise BuildError(
                code=ErrorCode.TRANSFORM_FAILED,
                message=f"Failed to process <style> in {job.relative.as_posix()}: {exc}",
                suggestion="Fix the inline CSS at the marked line.",
                recoverable=True,
                source=str(job.path),
                line=line + start_line if isinstance(line, int) else None,
                snippet=code_snippet(css, line, start_index=start_line)
                if isinstance(line, int)
                else "",
            ) from exc
        return result.code

    async def _finalize(self, target: RenderTarget, html: str) -> None:
        state = self._state
        job = target.job
        out = target.output_path

        record = state.cache.get(job.path)
        if record is not None and not record.validated:
            await self._validate(job, html)

        scan = find_linked_assets(html, state.source_root)
        for reference in scan.missing:
            if state.cache.mark_missing(reference):
                log.warning("asset_not_found", reference=reference, view=job.relative.as_posix())

        records = await _gather_settled(self.assets.resolve(out, linked) for linked in scan.assets)
        replacements = {
            linked.reference: self.assets.relative_link(out, asset)
            for linked, asset in zip(scan.assets, records, strict=True)
        }
        html = rewrite_asset_links(html, replacements)
        html = await transform_style_tags(
            html, lambda css, start: self._transform_inline_css(job, css, start)
        )

        await write_text(out, html)

        view_record = state.cache.add(job.path)
        view_record.outputs[str(out)] = RenderedOutput(
            output_path=str(out),
            url=url_path(state.output_dir, out),
            page=target.page.no,
            size=len(html.encode("utf-8")),
        )
        state.cache.upsert(out, {"view": str(job.path)})
        log.debug("page_written", output=str(out), view=job.relative.as_posix())

    # ------------------------------------------------------------------
    # Incremental rebuilds
    # ------------------------------------------------------------------

    def reload_data(self) -> None:
        """Re-read the data file, keeping the partials registered so far."""
        state = self._state
        funneled = load_data_file(state.settings.site.data_path)
        partials = state.cache.partials
        for name, path in funneled.partials.items():
            partials.setdefault(name, path)
        funneled.partials = partials
        state.funneled = funneled
        self.pagination = self._paginate()

    async def rebuild(
        self,
        path: Path,
        event: WatchEvent,
        *,
        is_directory: bool = False,
        src_path: Path | None = None,
    ) -> BuildReport | None:
        """Apply one watcher event. Failures are logged, never raised.

        For a move, ``path`` is the destination and ``src_path`` the old
        location, whose outputs are removed before the rescan.
        """
        state = self._state
        log.info(
            "change_detected",
            path=str(path),
            change=event,
            directory=is_directory,
            moved_from=str(src_path) if src_path is not None else None,
        )
        try:
            if path == state.settings.site.data_path:
                self.reload_data()
                return await self.build(bypass=True, data_changed=True)

            if is_directory or event in ("deleted", "moved"):
                if src_path is not None:
                    await self._remove_outputs_of(src_path)
                await self._remove_outputs_of(path)
                return await self.build(bypass=True)

            if path.suffix in VIEW_EXTENSIONS and path.is_relative_to(state.views_dir):
                return await self._rebuild_view(path)

            if path.suffix in ASSET_EXTENSIONS:
                return await self._rebuild_asset(path)

            log.debug("change_ignored", path=str(path))
            return None
        except BuildError as exc:
            log.error(
                "rebuild_failed",
                code=exc.code,
                message=exc.message,
                source=exc.source,
                line=exc.line,
                snippet=exc.snippet or None,
            )
            return None
        except Exception:
            log.error("rebuild_unexpected_error", path=str(path), exc_info=True)
            return None

    async def _remove_outputs_of(self, path: Path) -> None:
        """Delete the pages rendered from ``path`` or any view below it."""
        for record in self._state.cache.records_under(path):
            for output in list(record.outputs):
                with suppress(FileNotFoundError):
                    await asyncio.to_thread(Path(output).unlink)
                log.debug("output_removed", output=output, source=str(path))
            record.outputs.clear()

    async def _rebuild_view(self, path: Path) -> BuildReport | None:
        classification = await read_and_classify(
            self._state.cache, path, rewatch=self._request_rescan
        )
        if classification is None:
            return await self.build(bypass=True)

        if classification.is_partial:
            if not classification.changed:
                return None
            # Any view may include the partial.
            return await self.build(bypass=True)

        if not classification.include:
            log.debug("view_unchanged", view=str(path))
            return None

        job = self._job_for(path)
        if job is None:
            return BuildReport(skipped_routes=[str(path)])
        return await self._render_and_drain([job])

    async def _rebuild_asset(self, path: Path) -> BuildReport | None:
        pages = await self.assets.reprocess(path)
        if not pages:
            return None

        views: set[str] = set()
        for page in pages:
            record = self._state.cache.get(page)
            if record is not None and record.view is not None:
                views.add(record.view)

        jobs = [
            job
            for view in sorted(views)
            if Path(view).is_file() and (job := self._job_for(Path(view))) is not None
        ]
        return await self._render_and_drain(jobs)

    async def _render_and_drain(self, jobs: list[ViewJob]) -> BuildReport:
        started = time.perf_counter()
        report = await self._render_jobs(jobs)
        await self.assets.drain()
        report.seconds = round(time.perf_counter() - started, 3)
        log.info("rebuild_complete", views=report.views, pages=report.pages, seconds=report.seconds)
        return report
