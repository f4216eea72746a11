"""Route pattern parser.

A view's file name decides where its output goes. Names without a field
region are static; a field region reads the output name from the data::

    about.html              static, written as "about.html"
    [site.slug].html        one page, named from data["site"]["slug"]
    [title:0].html          one page, named from the title of data item 0
    -[slug].html            one page per data item, named from item["slug"]
    -[year_slug].html       one page per item, "<year>/<slug>.html"
    -[slug].html, slug "a/" "a/index.html"
    [#2].html               page 2 of the paginated data

Single pass, left to right, over the bare file name.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

import structlog

from pagewright.errors import BuildError, ErrorCode

log = structlog.get_logger()

FIELD_BEGIN_TOKEN = "["
FIELD_END_TOKEN = "]"
PATH_TOKEN = "_"
INDEX_TOKEN = ":"
LOOP_TOKEN = "-"
PAGE_TOKEN = "#"

INDEX_PAGE = "index.html"
DEFAULT_PAGE_NUMBER = 1
MAX_PROPERTY_DEPTH = 7

_PAGE_DIGITS_END = re.compile(rf"[/{re.escape(PATH_TOKEN)}{re.escape(INDEX_TOKEN)}]")
# ASCII only: str.isdigit() also accepts "²", which int() rejects.
_DIGITS = re.compile(r"[0-9]+")


def is_number(text: str) -> bool:
    return _DIGITS.fullmatch(text) is not None


@dataclass(frozen=True)
class FieldKey:
    key: str | None  # None: the page/item itself, not a sub-property
    index: str | None  # pins the key to one data item instead of the current one


@dataclass(frozen=True)
class RoutePattern:
    raw_name: str
    has_loop: bool = False
    page: int = DEFAULT_PAGE_NUMBER
    field_keys: tuple[FieldKey, ...] = ()
    prefix: str = ""
    suffix: str = ""
    is_static: bool = True

    @property
    def data_keys(self) -> tuple[FieldKey, ...]:
        return tuple(fk for fk in self.field_keys if fk.key is not None)

    def place(self, value: str) -> str:
        """Output name for a value resolved from ``field_keys``."""
        if self.is_static:
            return self.raw_name
        if not value and not self.prefix and self.suffix.startswith("."):
            # "[#2].html": the page's own index document
            return INDEX_PAGE
        if value.endswith("/") and self.suffix.startswith("."):
            return f"{self.prefix}{value}{INDEX_PAGE}"
        return f"{self.prefix}{value}{self.suffix}"


def _page_number(digits: str, raw_name: str) -> int:
    if not is_number(digits):
        message = f"Page is not a number: {digits!r} in {raw_name!r}"
    elif int(digits) < DEFAULT_PAGE_NUMBER:
        message = f"Page numbers start at {DEFAULT_PAGE_NUMBER}: {digits!r} in {raw_name!r}"
    else:
        return int(digits)
    raise BuildError(
        code=ErrorCode.ROUTE_PAGE_NOT_A_NUMBER,
        message=message,
        suggestion=f"Write explicit pages as {PAGE_TOKEN}<digits>, e.g. '[{PAGE_TOKEN}2]'.",
        recoverable=False,
        source=raw_name,
    )


def _parse_page(prefix: str, field: str, raw_name: str) -> int:
    # NOTE: an all-digit prefix wins even when the field says otherwise,
    # so "3[slug].html" is page 3 of the data and not a literal "3".
    if is_number(prefix):
        return _page_number(prefix, raw_name)

    if field.startswith(PAGE_TOKEN):
        digits = _PAGE_DIGITS_END.split(field[len(PAGE_TOKEN) :], maxsplit=1)[0]
        if not digits:
            return DEFAULT_PAGE_NUMBER
        return _page_number(digits, raw_name)

    return DEFAULT_PAGE_NUMBER


def _parse_field_keys(field: str) -> tuple[FieldKey, ...]:
    keys: list[FieldKey] = []
    for sub_key in field.split(PATH_TOKEN):
        key, _, index = sub_key.partition(INDEX_TOKEN)
        keys.append(
            FieldKey(
                key=None if not key or key.startswith(PAGE_TOKEN) else key,
                index=index or None,
            )
        )
    return tuple(keys)


def parse_route(file_name: str) -> RoutePattern:
    """Parse a bare view file name (no directories) into a RoutePattern.

    Raises BuildError for an explicit page that is not a number of at least
    1 (prefix or ``#`` field) and for a loop marker
    with nothing to loop over. Both only invalidate this route.
    """
    begin = file_name.find(FIELD_BEGIN_TOKEN)
    end = file_name.find(FIELD_END_TOKEN, begin + 1) if begin != -1 else -1

    if begin == -1 or end == -1:
        return RoutePattern(raw_name=file_name)

    prefix = file_name[:begin]
    suffix = file_name[end + 1 :]
    field = file_name[begin + 1 : end]

    has_loop = prefix.startswith(LOOP_TOKEN)
    if has_loop:
        prefix = prefix[len(LOOP_TOKEN) :]

    page = _parse_page(prefix, field, file_name)
    field_keys = _parse_field_keys(field)

    if has_loop and not any(fk.key is not None for fk in field_keys):
        raise BuildError(
            code=ErrorCode.ROUTE_LOOP_SINGLE_PAGE,
            message=f"Attempting to loop single page: {file_name!r}",
            suggestion="A looped view needs a data key in its field, e.g. '-[slug].html'.",
            recoverable=False,
            source=file_name,
        )

    log.debug(
        "route_parsed",
        name=file_name,
        loop=has_loop,
        page=page,
        keys=[(fk.key, fk.index) for fk in field_keys],
    )

    return RoutePattern(
        raw_name=file_name,
        has_loop=has_loop,
        page=page,
        field_keys=field_keys,
        prefix=prefix,
        suffix=suffix,
        is_static=False,
    )


# ---------------------------------------------------------------------------
# Resolving field keys against data
# ---------------------------------------------------------------------------


def _undefined(key: str, part: str) -> BuildError:
    return BuildError(
        code=ErrorCode.DATA_KEY_UNDEFINED,
        message=f"Data key {part!r} is undefined (in {key!r})",
        suggestion="Check the data file for the key used in the view name.",
        recoverable=False,
    )


def access_property(obj: Any, key: str) -> Any:
    """Read a dotted key (``"author.name"``, ``"tags.0"``) from nested data."""
    parts = key.split(".")
    if len(parts) >= MAX_PROPERTY_DEPTH:
        raise BuildError(
            code=ErrorCode.DATA_KEY_UNDEFINED,
            message=f"Reached max property depth {MAX_PROPERTY_DEPTH} for {key!r}",
            suggestion="Flatten the data or shorten the dotted key.",
            recoverable=False,
        )

    value = obj
    for part in parts:
        if isinstance(value, Mapping):
            value = value.get(part)
        elif isinstance(value, Sequence) and not isinstance(value, str) and is_number(part):
            idx = int(part)
            value = value[idx] if idx < len(value) else None
        else:
            value = None
        if value is None:
            raise _undefined(key, part)
    return value


def _pinned(data: Any, index: str) -> Any:
    if isinstance(data, Mapping):
        item = data.get(index)
    elif isinstance(data, Sequence) and is_number(index) and int(index) < len(data):
        item = data[int(index)]
    else:
        item = None
    if item is None:
        raise _undefined(index, index)
    return item


def resolve_route_value(pattern: RoutePattern, item: Any, data: Any = None) -> str:
    """Resolve the pattern's data keys to the value handed to ``place``.

    Each key reads from ``item`` unless it is pinned to an index, in which
    case it reads from ``data[index]``. Values are joined with ``/``.
    """
    values: list[str] = []
    for fk in pattern.field_keys:
        if fk.key is None:
            continue
        source = _pinned(data if data is not None else item, fk.index) if fk.index else item
        values.append(str(access_property(source, fk.key)))
    return "/".join(values)


def pinned_item(pattern: RoutePattern, data: Any) -> Any:
    """The single data item a non-loop view is pinned to, if any."""
    for fk in pattern.data_keys:
        if fk.index is not None:
            return _pinned(data, fk.index)
    return None
