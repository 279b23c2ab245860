"""
Exceptions raised by the upload protocol.

Each protocol step has its own error type carrying the file name and the
underlying cause so the coordinator can record a readable message per item.
"""
from typing import Optional


class UploadError(Exception):
    """Base exception for a failed protocol step."""
    step = "upload"

    def __init__(self, file_name: str, cause: str, status_code: Optional[int] = None):
        self.file_name = file_name
        self.cause = cause
        self.status_code = status_code
        super().__init__(f"{self.step} failed for {file_name}: {cause}")

    @property
    def retryable(self) -> bool:
        """Transport failures and 5xx responses may succeed on a later attempt."""
        return self.status_code is None or self.status_code >= 500


class GrantError(UploadError):
    """Presigned URL request failed."""
    step = "grant"


class TransferError(UploadError):
    """Byte transfer to the presigned URL failed."""
    step = "transfer"


class ConfirmError(UploadError):
    """Confirm call rejected or unreachable."""
    step = "confirm"


class InvalidTransitionError(ValueError):
    """Raised when a status change skips or reverses a protocol step."""
