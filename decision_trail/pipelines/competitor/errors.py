"""Errors raised by the competitor detection pipeline."""

from typing import Optional


class CompetitorDetectionError(Exception):
    """Unrecoverable failure during competitor detection."""

    def __init__(self, message: str, execution_id: Optional[str] = None):
        super().__init__(message)
        self.execution_id = execution_id


class ReferenceValidationError(CompetitorDetectionError):
    """The reference item cannot drive a search (e.g. no usable keywords)."""
    pass
