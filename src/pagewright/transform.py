"""Default CSS/JS transform chain.

Leaves the code as is. In production mode it reports a content hash so the
asset is written under a cache-busting name (``app.<hash>.css``).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from pagewright.cache import content_checksum
from pagewright.protocols import TransformResult

if TYPE_CHECKING:
    from pathlib import Path

HASH_LENGTH = 10


class PassthroughTransformer:
    async def transform(self, source_path: Path, source_text: str, dev: bool) -> TransformResult:
        if dev:
            return TransformResult(code=source_text)
        return TransformResult(
            code=source_text,
            content_hash=content_checksum(source_text)[:HASH_LENGTH],
        )
