"""Build state container.

BuildState is created once per build or watch session and passed to every
component of the build. It owns the session's content cache: a new session
(process restart) always starts cold.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pagewright.cache import ContentCache
from pagewright.data import FunneledData
from pagewright.render import JinjaRenderer
from pagewright.transform import PassthroughTransformer
from pagewright.validate import TagBalanceValidator

if TYPE_CHECKING:
    from pathlib import Path

    from pagewright.config import Settings
    from pagewright.protocols import AssetTransformer, HtmlValidator, TemplateRenderer


@dataclass
class BuildState:
    """Holds all shared runtime state of a build session."""

    settings: Settings
    funneled: FunneledData = field(default_factory=FunneledData)
    cache: ContentCache = field(default_factory=ContentCache)
    renderer: TemplateRenderer | None = None
    transformer: AssetTransformer | None = None
    validator: HtmlValidator | None = None
    watch: bool = False

    @property
    def source_root(self) -> Path:
        return self.settings.site.source_root

    @property
    def views_dir(self) -> Path:
        return self.settings.site.views_dir

    @property
    def output_dir(self) -> Path:
        return self.settings.site.output_dir

    @property
    def dev(self) -> bool:
        return self.settings.build.dev


def create_state(
    settings: Settings,
    funneled: FunneledData | None = None,
    *,
    renderer: TemplateRenderer | None = None,
    transformer: AssetTransformer | None = None,
    validator: HtmlValidator | None = None,
    watch: bool = False,
) -> BuildState:
    """Wire a BuildState with the default collaborators where none are given."""
    funneled = funneled if funneled is not None else FunneledData()
    views_dir = settings.site.views_dir
    cache = ContentCache(partials=funneled.partials, views_root=views_dir)
    return BuildState(
        settings=settings,
        funneled=funneled,
        cache=cache,
        renderer=renderer or JinjaRenderer(views_dir, cache.partials),
        transformer=transformer or PassthroughTransformer(),
        validator=validator or TagBalanceValidator(),
        watch=watch,
    )
