"""Error taxonomy for the source material subsystem."""

from __future__ import annotations


class SourceMaterialError(Exception):
    """Base class for all source material errors."""


class UnsupportedFormat(SourceMaterialError):
    """Raised when a declared format has no registered extractor."""

    def __init__(self, file_type: str):
        super().__init__(f"Unsupported file type: {file_type}")
        self.file_type = file_type


class ExtractionFailed(SourceMaterialError):
    """Raised when a parser, storage read, or content decode fails."""

    def __init__(self, reason: str):
        super().__init__(reason)
        self.reason = reason


class NotFound(SourceMaterialError):
    pass


class PermissionDenied(SourceMaterialError):
    pass


class InvalidUpload(SourceMaterialError):
    """Raised when an upload request has a disallowed type or size."""


class InvalidTransition(SourceMaterialError):
    """Raised when a status change is not in the ledger's transition table."""
