"""Default structural HTML validator.

Single pass over the document with the stdlib HTML tokenizer, keeping a
stack of open elements. Reports end tags that close nothing or close out of
order, and elements left open at the end of the document.
"""

from __future__ import annotations

from html.parser import HTMLParser

from pagewright.protocols import ValidationMessage

VOID_ELEMENTS = frozenset(
    {
        "area", "base", "br", "col", "embed", "hr", "img", "input",
        "link", "meta", "param", "source", "track", "wbr",
    }
)  # fmt: skip

# End tag may be omitted per the HTML spec.
OPTIONAL_END = frozenset(
    {
        "html", "head", "body", "p", "li", "dt", "dd", "option", "optgroup",
        "thead", "tbody", "tfoot", "tr", "td", "th", "colgroup", "caption",
        "rb", "rt", "rtc", "rp",
    }
)  # fmt: skip


class _TagBalance(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.stack: list[tuple[str, int, int]] = []
        self.messages: list[ValidationMessage] = []

    def _report(self, line: int, column: int, rule_id: str, message: str) -> None:
        self.messages.append(ValidationMessage(line, column, rule_id, message))

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        if tag in VOID_ELEMENTS:
            return
        line, offset = self.getpos()
        self.stack.append((tag, line, offset + 1))

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        pass  # <br/>, <svg .../>: nothing left open

    def handle_endtag(self, tag: str) -> None:
        line, offset = self.getpos()
        if tag in VOID_ELEMENTS:
            return
        open_tags = [name for name, _, _ in self.stack]
        if tag not in open_tags:
            self._report(line, offset + 1, "close-order", f"Unexpected close-tag </{tag}>")
            return

        while self.stack:
            name, open_line, open_col = self.stack.pop()
            if name == tag:
                break
            if name not in OPTIONAL_END:
                self._report(
                    open_line,
                    open_col,
                    "close-order",
                    f"Element <{name}> closed by </{tag}> on line {line}",
                )

    def close(self) -> None:
        super().close()
        for name, line, col in self.stack:
            if name not in OPTIONAL_END:
                self._report(line, col, "unclosed-element", f"Unclosed element <{name}>")
        self.stack.clear()


class TagBalanceValidator:
    async def validate(self, html: str) -> list[ValidationMessage]:
        parser = _TagBalance()
        parser.feed(html)
        parser.close()
        return sorted(parser.messages, key=lambda m: (m.line, m.column))
