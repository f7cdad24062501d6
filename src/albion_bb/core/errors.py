"""
Exception taxonomy for the battleboard pipeline.

- Transient transport failures are retried inside the fetch client and
  surface as FetchError once attempts are exhausted.
- SchemaError is never retried: a 2xx body that does not match the
  expected shape will not fix itself.
- UniqueConstraintError is raised by the record store when an insert hits
  a unique index; callers decide whether it is benign.
"""

from __future__ import annotations

from typing import Any, Optional


class BattleboardError(Exception):
    """Base class for all battleboard errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to JSON-serializable dict."""
        return {"error": type(self).__name__, "message": self.message}


class TransientFetchError(BattleboardError):
    """
    A single request attempt failed in a way worth retrying.

    Raised for non-2xx responses and transport errors (including timeouts).
    Only used as a retry signal inside the fetch client.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        self.status_code = status_code
        self.original_error = original_error
        super().__init__(message)


class FetchError(BattleboardError):
    """A request failed after exhausting all attempts."""

    def __init__(
        self,
        message: str,
        path: str,
        attempts: int,
        status_code: Optional[int] = None,
        cause: Optional[BaseException] = None,
    ) -> None:
        self.path = path
        self.attempts = attempts
        self.status_code = status_code
        self.cause = cause
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["path"] = self.path
        result["attempts"] = self.attempts
        if self.status_code is not None:
            result["status_code"] = self.status_code
        return result


class SchemaError(BattleboardError):
    """A successful response body could not be parsed into the expected model."""

    def __init__(self, message: str, path: str) -> None:
        self.path = path
        super().__init__(message)


class StoreError(BattleboardError):
    """The record store rejected an operation."""


class UniqueConstraintError(StoreError):
    """An insert violated a unique index."""

    def __init__(self, table: str, columns: tuple[str, ...], message: str = "") -> None:
        self.table = table
        self.columns = columns
        super().__init__(message or f"UNIQUE constraint failed: {table}({', '.join(columns)})")

    def is_for(self, table: str, column: str) -> bool:
        """Check whether the violation is on the given table column."""
        return self.table == table and column in self.columns
