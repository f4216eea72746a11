"""Site data file loading.

The data file feeds every template. It is JSON (``.json``) or YAML
(``.yaml``/``.yml``) with this shape, every key optional::

    raw:        list of items, or a single mapping
    meta:       free-form mapping exposed to every template as ``meta``
    pages:      list of pre-chunked item lists (overrides ``raw`` for pagination)
    pagination: {every: <items per page>}
    indexes:    dotted keys of ``raw`` items to put in the search index
    partials:   partial name -> template path, extended at build time
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import structlog
import yaml
from pydantic import BaseModel, ValidationError

from pagewright.errors import BuildError, ErrorCode

if TYPE_CHECKING:
    from pathlib import Path

log = structlog.get_logger()


class PaginationSettings(BaseModel):
    every: int | None = None
    pages: list[list[Any]] | None = None


class FunneledData(BaseModel):
    """Validated contents of the site data file."""

    raw: list[Any] | dict[str, Any] = []
    meta: dict[str, Any] = {}
    pages: list[list[Any]] = []
    pagination: PaginationSettings = PaginationSettings()
    indexes: list[str] = []
    partials: dict[str, str] = {}

    @property
    def items(self) -> list[Any]:
        """``raw`` as a list; a single mapping counts as a one-item dataset."""
        return self.raw if isinstance(self.raw, list) else [self.raw]

    @property
    def pagination_config(self) -> PaginationSettings:
        # Pre-chunked pages declared at the top level feed pagination too.
        if self.pagination.pages is None and self.pages:
            return PaginationSettings(every=self.pagination.every, pages=self.pages)
        return self.pagination


def load_data_file(path: Path) -> FunneledData:
    """Read and validate the data file. A missing file means an empty dataset."""
    if not path.is_file():
        log.info("data_file_missing", path=str(path))
        return FunneledData()

    try:
        text = path.read_text(encoding="utf-8")
        if path.suffix in (".yaml", ".yml"):
            payload = yaml.safe_load(text) or {}
        else:
            payload = json.loads(text)
        if isinstance(payload, list):
            payload = {"raw": payload}
        data = FunneledData.model_validate(payload)
    except (ValueError, yaml.YAMLError, ValidationError) as exc:
        raise BuildError(
            code=ErrorCode.INVALID_DATA_FILE,
            message=f"Invalid data file {path}: {exc}",
            suggestion="The data file must be a JSON or YAML mapping (or a list of items).",
            recoverable=False,
            source=str(path),
        ) from exc

    log.info(
        "data_file_loaded",
        path=str(path),
        items=len(data.items),
        every=data.pagination.every,
    )
    return data
