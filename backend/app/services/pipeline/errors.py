"""
Classified failures of an analysis request.

Recoverable problems (malformed records, lookup misses, text service
outages) are handled inside the stages and never appear here.
"""

from typing import Optional

ASSEMBLY_MISMATCH = "ASSEMBLY_MISMATCH"
VALIDATION_FAILED = "VALIDATION_FAILED"
UPLOAD_NOT_FOUND = "UPLOAD_NOT_FOUND"
INTERNAL_ERROR = "INTERNAL_ERROR"


class AnalysisError(Exception):
    """Base class; ``code`` is stable and safe to return to callers."""

    code = INTERNAL_ERROR

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        if code is not None:
            self.code = code

    def to_dict(self):
        return {"error": self.code, "detail": str(self)}


class ContractViolationError(AnalysisError):
    """The assembled report broke the output contract; nothing is released."""

    code = VALIDATION_FAILED


class UploadNotFoundError(AnalysisError):
    code = UPLOAD_NOT_FOUND
