"""
Error taxonomy shared by the API, the processing pipeline and the workers.

ErrorKind values are stable identifiers exposed to clients (on documents in
`error` status and on processing results) so they can branch without
matching on free-text messages.
"""

from __future__ import annotations

import enum


class ErrorKind(str, enum.Enum):
    NOT_FOUND             = "not_found"
    VALIDATION_ERROR      = "validation_error"
    UNAUTHORIZED          = "unauthorized"
    CONFLICT              = "conflict"
    EXTRACTION_FAILURE    = "extraction_failure"
    SUMMARIZATION_FAILURE = "summarization_failure"
    PERSISTENCE_FAILURE   = "persistence_failure"
    TIMEOUT               = "timeout"
    INTERNAL              = "internal"


class PipelineError(Exception):
    """Base class for failures raised inside the processing pipeline."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ExtractionError(PipelineError):
    """Source unfetchable, not a PDF, or below the minimum-content bar."""

    kind = ErrorKind.EXTRACTION_FAILURE


class SummarizationError(PipelineError):
    """Summarization provider unreachable or erroring."""

    kind = ErrorKind.SUMMARIZATION_FAILURE


class ClaimLostError(PipelineError):
    """The document left `processing` (e.g. timed out by the sweep) before the run finished."""

    kind = ErrorKind.CONFLICT
