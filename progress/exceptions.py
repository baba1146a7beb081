# progress/exceptions.py
"""Error taxonomy of the progress engine.

ValidationError and NotFoundError are not retryable without changing the
input. PersistenceError is retryable. ConflictRecoveredError never leaves
the engine: it marks a lost unique-constraint race that was resolved by
re-reading the winner's row.
"""
from __future__ import annotations


class ProgressError(Exception):
    default_detail = "progress engine error"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)


class ValidationError(ProgressError):
    default_detail = "invalid input"


class NotFoundError(ProgressError):
    default_detail = "not found"


class ConflictRecoveredError(ProgressError):
    default_detail = "unique constraint race"


class PersistenceError(ProgressError):
    default_detail = "storage failure"
