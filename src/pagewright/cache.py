"""In-memory content cache ("keep" store) for one build or watch session.

Maps source paths to their last-seen checksum and derived state, and tracks
which output pages link which assets. The cache lives exactly as long as the
``ContentCache`` instance: the builder creates one per session and nothing
is persisted, so a process restart always starts from a full build.

All accessors are synchronous; callers never hold the underlying tables.
"""

from __future__ import annotations

import hashlib
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import structlog

from pagewright.errors import ErrorCode
from pagewright.models.cache import AssetRecord, CacheRecord
from pagewright.paths import read_text

log = structlog.get_logger()

PARTIALS_TOKEN = "__"
PARTIALS_DIR_NAME = "partials"


def content_checksum(content: str) -> str:
    """SHA-256 hex digest (64 characters) of ``content``."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class ViewClassification:
    include: bool  # Belongs in the direct render set
    is_partial: bool
    changed: bool
    checksum: str


class ContentCache:
    """Checksum-keyed registry of views, pages and assets."""

    def __init__(
        self,
        partials: dict[str, str] | None = None,
        views_root: Path | None = None,
    ) -> None:
        self._records: dict[str, CacheRecord] = {}
        self._assets: dict[str, AssetRecord] = {}
        self._missing: set[str] = set()
        # Partial name -> template path; shared with the active site data.
        self.partials = partials if partials is not None else {}
        self.views_root = views_root

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, path: object) -> bool:
        return str(path) in self._records

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def add(self, path: str | Path, initial: CacheRecord | None = None) -> CacheRecord:
        """Insert a record only if ``path`` has none. Returns the stored record."""
        key = str(path)
        record = self._records.get(key)
        if record is None:
            record = initial if initial is not None else CacheRecord()
            self._records[key] = record
        return record

    def upsert(self, path: str | Path, patch: Mapping[str, Any]) -> CacheRecord:
        """Shallow-merge ``patch`` into the record, creating it if absent."""
        key = str(path)
        record = self._records.get(key)
        if record is None:
            record = CacheRecord(**patch)
            self._records[key] = record
            return record
        for field_name, value in patch.items():
            if field_name not in CacheRecord.model_fields:
                raise KeyError(f"CacheRecord has no field {field_name!r}")
            setattr(record, field_name, value)
        return record

    def get(self, path: str | Path) -> CacheRecord | None:
        return self._records.get(str(path))

    def records_under(self, path: str | Path) -> list[CacheRecord]:
        """Records of ``path`` and, when it is a directory, of everything below it."""
        root = Path(path)
        return [record for key, record in self._records.items() if Path(key).is_relative_to(root)]

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------

    def partial_name(self, path: str | Path) -> str | None:
        """The registry name of a partial view, or None for a regular view."""
        p = Path(path)
        if p.name.startswith(PARTIALS_TOKEN):
            return Path(p.name[len(PARTIALS_TOKEN) :]).stem

        parts = p.parts
        if self.views_root is not None and p.is_relative_to(self.views_root):
            parts = p.relative_to(self.views_root).parts
        if PARTIALS_DIR_NAME in parts[:-1]:
            return p.stem
        return None

    def classify_view(
        self,
        path: str | Path,
        content: str,
        *,
        bypass: bool = False,
    ) -> ViewClassification:
        """Decide whether a view must be rendered, updating its record.

        A view is changed when it has no record yet or its checksum differs.
        Partials are registered by name (first registration wins) and never
        included. Other views are included when changed, or always when
        ``bypass`` is set (first build, rescans after deletes).
        """
        checksum = content_checksum(content)
        existing = self.get(path)
        changed = existing is None or existing.checksum != checksum

        name = self.partial_name(path)
        if name is not None:
            if name not in self.partials:
                self.partials[name] = str(path)
                log.debug("partial_registered", name=name, path=str(path))
            self.upsert(path, {"checksum": checksum, "is_partial": True})
            return ViewClassification(
                include=False, is_partial=True, changed=changed, checksum=checksum
            )

        patch: dict[str, Any] = {"checksum": checksum}
        if changed:
            patch["validated"] = False
        self.upsert(path, patch)

        return ViewClassification(
            include=changed or bypass, is_partial=False, changed=changed, checksum=checksum
        )

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    def get_asset(self, source_path: str | Path) -> AssetRecord | None:
        return self._assets.get(str(source_path))

    def register_asset(self, asset: AssetRecord) -> AssetRecord:
        """Store a processed asset, keeping pages already linked to an older version."""
        existing = self._assets.get(asset.source_path)
        if existing is not None:
            asset.referencing_outputs |= existing.referencing_outputs
        self._assets[asset.source_path] = asset
        return asset

    def link_page_to_asset(self, page_output_path: str | Path, asset: AssetRecord) -> None:
        """Record that a page links ``asset``. Idempotent."""
        page_key = str(page_output_path)
        asset.referencing_outputs.add(page_key)
        page = self.add(page_key)
        page.assets[asset.source_path] = asset.output_path

    def pages_referencing(self, source_path: str | Path) -> set[str]:
        asset = self.get_asset(source_path)
        return set(asset.referencing_outputs) if asset is not None else set()

    def mark_missing(self, reference: str) -> bool:
        """True the first time a missing reference is reported."""
        if reference in self._missing:
            return False
        self._missing.add(reference)
        return True


async def read_and_classify(
    cache: ContentCache,
    path: Path,
    *,
    bypass: bool = False,
    rewatch: Callable[[], None] | None = None,
) -> ViewClassification | None:
    """Read a view and classify it.

    A view deleted between scan and read is not an error: ``rewatch`` is
    called so the caller can rescan, and None is returned. Other read
    errors propagate.
    """
    try:
        content = await read_text(path)
    except FileNotFoundError:
        log.info("view_vanished", path=str(path), code=ErrorCode.VIEW_VANISHED)
        if rewatch is not None:
            rewatch()
        return None
    return cache.classify_view(path, content, bypass=bypass)
