from __future__ import annotations

from pagewright.models.cache import AssetRecord, CacheRecord, RenderedOutput

__all__ = [
    "AssetRecord",
    "CacheRecord",
    "RenderedOutput",
]
