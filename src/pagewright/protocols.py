"""Protocol interfaces for the external collaborators of a build.

The builder references these protocols, not the concrete implementations.
This allows:
- Tests to use lightweight in-memory collaborators
- Other template engines or CSS/JS toolchains to be swapped in without
  touching the build logic
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from pathlib import Path


@dataclass(frozen=True)
class TransformResult:
    code: str
    content_hash: str | None = None  # Set when the output name must be hash-suffixed


@dataclass(frozen=True)
class ValidationMessage:
    line: int
    column: int
    rule_id: str
    message: str


class TemplateRenderer(Protocol):
    """Turns a view path plus locals into HTML text."""

    async def render(self, template_path: Path, locals_: dict[str, Any]) -> str: ...


class AssetTransformer(Protocol):
    """CSS/JS transform chain."""

    async def transform(self, source_path: Path, source_text: str, dev: bool) -> TransformResult: ...


class HtmlValidator(Protocol):
    """Structural HTML validator."""

    async def validate(self, html: str) -> list[ValidationMessage]: ...
