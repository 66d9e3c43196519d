from __future__ import annotations

from typing import List, Optional


class InvalidSubmissionError(ValueError):
    """Rejected run submission (bad user id or domain selection)."""

    def __init__(self, message: str, invalid_tokens: Optional[List[str]] = None):
        super().__init__(message)
        self.invalid_tokens = invalid_tokens


class RunNotFoundError(LookupError):
    pass


class ReportNotReadyError(RuntimeError):
    pass
