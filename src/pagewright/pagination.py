"""Pagination engine.

Partitions the dataset into pages of ``every`` items and tracks which page a
given item index falls on while a build pass walks the data in order.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from pagewright.route import DEFAULT_PAGE_NUMBER

if TYPE_CHECKING:
    from pagewright.data import PaginationSettings


@dataclass(frozen=True)
class Page:
    no: int
    url: str


@dataclass
class PaginationResult:
    pages: list[list[Any]]  # one chunk of items per page
    meta_pages: list[Page]
    paginate: bool
    flat_pages: list[Any] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.meta_pages)

    def chunk_for(self, no: int) -> list[Any]:
        """Items of page ``no`` (1-based); empty when out of range."""
        if 1 <= no <= len(self.pages):
            return self.pages[no - 1]
        return []


def format_page_entry(no: int) -> str:
    """Page 1 lives at ``/``, page n at ``/n``."""
    if no < DEFAULT_PAGE_NUMBER:
        raise ValueError(f"page numbers start at {DEFAULT_PAGE_NUMBER}, got {no}")
    return "/" if no == DEFAULT_PAGE_NUMBER else f"/{no}"


def should_paginate(every: int | None, total: int) -> bool:
    return isinstance(every, int) and not isinstance(every, bool) and 0 < every <= total


def partition(items: list[Any], every: int) -> list[list[Any]]:
    """Consecutive chunks of ``every`` items; the last may be shorter."""
    return [items[i * every : (i + 1) * every] for i in range(math.ceil(len(items) / every))]


def paginate(config: PaginationSettings, raw: list[Any]) -> PaginationResult:
    """Split ``config.pages`` (flattened) or ``raw`` into pages."""
    if config.pages is not None:
        source = [item for chunk in config.pages for item in chunk]
    else:
        source = list(raw)

    if should_paginate(config.every, len(source)):
        assert config.every is not None
        chunks = partition(source, config.every)
        is_paginated = True
    else:
        chunks = [source]
        is_paginated = False

    meta_pages = [Page(no=no, url=format_page_entry(no)) for no in range(1, len(chunks) + 1)]
    return PaginationResult(
        pages=chunks,
        meta_pages=meta_pages,
        paginate=is_paginated,
        flat_pages=source,
    )


class PageCursor:
    """Maps item indices to page URLs during one in-order pass over the data.

    Precondition: ``advance`` is called with strictly increasing indices.
    Calls out of order return stale URLs; with ``__debug__`` on they raise
    ``ValueError`` instead. Use a fresh cursor per pass.
    """

    def __init__(self, every: int | None, paginate: bool) -> None:
        self.every = every
        self.paginate = paginate
        self.current_page = DEFAULT_PAGE_NUMBER
        self.current_url = format_page_entry(DEFAULT_PAGE_NUMBER)
        self._last_index = -1

    @classmethod
    def for_result(cls, config: PaginationSettings, result: PaginationResult) -> PageCursor:
        return cls(config.every, result.paginate)

    def advance(self, index: int) -> str:
        if __debug__ and index <= self._last_index:
            raise ValueError(
                f"PageCursor.advance() needs increasing indices: {index} after {self._last_index}"
            )
        self._last_index = index

        if self.paginate and self.every:
            # One step per `every` boundary crossed since the last call.
            self.current_page = max(self.current_page, index // self.every + DEFAULT_PAGE_NUMBER)
            self.current_url = format_page_entry(self.current_page)

        return self.current_url
