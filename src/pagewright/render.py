"""Jinja2 template renderer.

Views are loaded from the views directory by their relative path; partials
are also reachable by their registered name, so ``{% include "header" %}``
finds ``views/partials/header.html`` or ``views/__header.html``.
"""

from __future__ import annotations

import traceback
from contextlib import suppress
from pathlib import Path
from typing import Any

import structlog
from jinja2 import (
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    FunctionLoader,
    TemplateSyntaxError,
    select_autoescape,
)

from pagewright.errors import BuildError, ErrorCode
from pagewright.html import code_snippet

log = structlog.get_logger()


def _template_position(exc: BaseException, filenames: set[str]) -> tuple[str, int] | None:
    """Innermost traceback frame that belongs to one of the given templates.

    Jinja rewrites tracebacks so that template frames carry the template's
    file name and source line.
    """
    position = None
    for frame in traceback.extract_tb(exc.__traceback__):
        if frame.filename in filenames and frame.lineno:
            position = (frame.filename, frame.lineno)
    return position


class JinjaRenderer:
    """TemplateRenderer backed by a shared jinja2 Environment."""

    def __init__(self, views_dir: Path, partials: dict[str, str]) -> None:
        self._views_dir = views_dir
        # Shared with the content cache, which fills it while classifying views.
        self._partials = partials
        self.env = Environment(
            loader=ChoiceLoader(
                [
                    FileSystemLoader(str(views_dir)),
                    FunctionLoader(self._load_partial),
                ]
            ),
            autoescape=select_autoescape(["html", "htm"]),
            enable_async=True,
        )

    def _load_partial(self, name: str) -> tuple[str, str, Any] | None:
        path = self._partials.get(name)
        if path is None:
            return None
        partial = Path(path)
        mtime = partial.stat().st_mtime
        source = partial.read_text(encoding="utf-8")
        return source, str(partial), lambda: partial.exists() and partial.stat().st_mtime == mtime

    def _template_name(self, template_path: Path) -> str:
        try:
            return template_path.relative_to(self._views_dir).as_posix()
        except ValueError:
            return template_path.as_posix()

    async def render(self, template_path: Path, locals_: dict[str, Any]) -> str:
        name = self._template_name(template_path)
        filename = str(template_path)
        try:
            template = self.env.get_template(name)
            if template.filename:
                filename = template.filename
            return await template.render_async(**locals_)
        except TemplateSyntaxError as exc:
            source = exc.source
            if source is None and exc.filename:
                source = Path(exc.filename).read_text(encoding="utf-8")
            raise BuildError(
                code=ErrorCode.TRANSFORM_FAILED,
                message=f"Template syntax error in {exc.filename or name}: {exc.message}",
                suggestion="Fix the template at the marked line.",
                recoverable=True,
                source=exc.filename or str(template_path),
                line=exc.lineno,
                snippet=code_snippet(source, exc.lineno) if source else "",
            ) from exc
        except BuildError:
            raise
        except Exception as exc:
            # Also runtime errors raised while evaluating the data.
            templates = {filename, *self._partials.values()}
            position = _template_position(exc, templates)
            source_name, line = position if position else (filename, None)
            snippet = ""
            if line is not None:
                with suppress(OSError):
                    snippet = code_snippet(Path(source_name).read_text(encoding="utf-8"), line)
            log.debug("template_render_failed", template=name, source=source_name, line=line)
            raise BuildError(
                code=ErrorCode.TRANSFORM_FAILED,
                message=f"Template error in {name}: {type(exc).__name__}: {exc}",
                suggestion="Check the variables, data and includes used by the template.",
                recoverable=True,
                source=source_name,
                line=line,
                snippet=snippet,
            ) from exc
