from __future__ import annotations

from typing import Iterable


class EngineError(Exception):
    pass


class RecordValidationError(EngineError, ValueError):
    """Local validation failure; raised before any store call is made."""

    def __init__(
        self,
        message: str,
        *,
        missing: Iterable[str] = (),
        tooth_ids: Iterable[int | None] = (),
    ) -> None:
        super().__init__(message)
        self.missing = tuple(missing)
        self.tooth_ids = tuple(tooth_ids)


class SyncError(EngineError):
    """A chart, budget or catalog store call failed; local state was left as it was."""

    def __init__(self, message: str, *, step: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.step = step
        self.status_code = status_code
