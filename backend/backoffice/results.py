from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .errors import BackOfficeError, ErrorCode, error_for_code


@dataclass(frozen=True)
class Result:
    """
    Outcome of a gateway call.

    ok=True carries value; ok=False carries an ErrorCode and a user-facing
    message. The presentation layer never sees exceptions.
    """
    ok: bool
    value: Any = None
    error: ErrorCode | None = None
    message: str | None = None
    details: dict | None = None

    @classmethod
    def success(cls, value: Any = None) -> "Result":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: ErrorCode, message: str, details: dict | None = None) -> "Result":
        return cls(ok=False, error=error, message=message, details=details or None)

    @classmethod
    def from_error(cls, exc: BackOfficeError) -> "Result":
        return cls.failure(exc.code, exc.message, exc.details)

    def unwrap(self) -> Any:
        """Return value, or raise the error as a BackOfficeError (CLI and tests)."""
        if not self.ok:
            raise error_for_code(self.error, self.message, **(self.details or {}))
        return self.value
