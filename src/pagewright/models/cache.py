from __future__ import annotations

from pydantic import BaseModel


class RenderedOutput(BaseModel):
    """One file written from a view."""

    output_path: str
    url: str  # Site-absolute URL, e.g. "/2/posts/hello.html"
    page: int = 1
    size: int = 0  # Bytes of HTML written


class CacheRecord(BaseModel):
    """Build state of one source view, or of one output page.

    View records carry the checksum and outputs; page records (keyed by the
    output path) carry the page's asset index and the view that produced it.
    """

    checksum: str | None = None  # SHA-256 hex of the last content seen
    is_partial: bool = False
    validated: bool = False  # Structural validation passed for this checksum
    outputs: dict[str, RenderedOutput] = {}
    assets: dict[str, str] = {}  # Asset source path -> asset output path
    view: str | None = None


class AssetRecord(BaseModel):
    """One processed asset, shared by every page that links it."""

    source_path: str
    output_path: str
    processed_code: str
    content_hash: str | None = None
    referencing_outputs: set[str] = set()
