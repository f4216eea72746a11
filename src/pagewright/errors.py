from __future__ import annotations

from enum import StrEnum


class ErrorCode(StrEnum):
    ROUTE_PAGE_NOT_A_NUMBER = "ROUTE_PAGE_NOT_A_NUMBER"
    ROUTE_LOOP_SINGLE_PAGE = "ROUTE_LOOP_SINGLE_PAGE"
    DATA_KEY_UNDEFINED = "DATA_KEY_UNDEFINED"
    VIEW_VANISHED = "VIEW_VANISHED"
    PATHS_NOT_SAME_ROOT = "PATHS_NOT_SAME_ROOT"
    TRANSFORM_FAILED = "TRANSFORM_FAILED"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INVALID_DATA_FILE = "INVALID_DATA_FILE"


# Codes that only invalidate the route being built, never the whole build.
ROUTE_ERROR_CODES: frozenset[ErrorCode] = frozenset(
    {
        ErrorCode.ROUTE_PAGE_NOT_A_NUMBER,
        ErrorCode.ROUTE_LOOP_SINGLE_PAGE,
        ErrorCode.DATA_KEY_UNDEFINED,
    }
)


class BuildError(Exception):
    """Raised for all expected failure conditions of a build.

    The builder decides what a failure costs: route errors skip the route,
    everything else aborts the build (one-shot) or the current rebuild
    (watch mode). ``snippet`` carries the annotated source lines around the
    failing line when a collaborator reported one.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        suggestion: str = "",
        recoverable: bool = False,
        *,
        source: str | None = None,
        line: int | None = None,
        column: int | None = None,
        snippet: str = "",
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.recoverable = recoverable
        self.source = source
        self.line = line
        self.column = column
        self.snippet = snippet

    @property
    def is_route_error(self) -> bool:
        return self.code in ROUTE_ERROR_CODES

    def to_dict(self) -> dict:
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "suggestion": self.suggestion,
                "recoverable": self.recoverable,
                "source": self.source,
                "line": self.line,
                "column": self.column,
            }
        }
