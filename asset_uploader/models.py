"""
Models for asset_uploader.

Value objects are immutable dataclasses; UploadItem is the only mutable
record and is owned by the UploadItemStore.
"""
from __future__ import annotations

import asyncio
import mimetypes
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Iterator, Optional, Tuple


DEFAULT_CONTENT_TYPE = "application/octet-stream"
DEFAULT_CATEGORY = "other"


class ItemStatus(Enum):
    """Per-file upload status."""
    PENDING = "pending"
    TRANSFERRING = "transferring"
    CONFIRMING = "confirming"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (ItemStatus.COMPLETED, ItemStatus.FAILED)


# Legal forward moves of the per-item state machine.
TRANSITIONS = {
    ItemStatus.PENDING: frozenset({ItemStatus.TRANSFERRING, ItemStatus.FAILED}),
    ItemStatus.TRANSFERRING: frozenset({ItemStatus.CONFIRMING, ItemStatus.FAILED}),
    ItemStatus.CONFIRMING: frozenset({ItemStatus.COMPLETED, ItemStatus.FAILED}),
    ItemStatus.COMPLETED: frozenset(),
    ItemStatus.FAILED: frozenset(),
}


@dataclass(frozen=True)
class FileRef:
    """Immutable handle to a file's bytes, name, size and declared type."""
    name: str
    size: int
    content_type: str = ""
    path: Optional[Path] = None
    data: Optional[bytes] = field(default=None, repr=False)

    @classmethod
    def from_path(cls, path: Path, content_type: Optional[str] = None) -> "FileRef":
        path = Path(path)
        if content_type is None:
            content_type, _ = mimetypes.guess_type(path.name)
        return cls(
            name=path.name,
            size=path.stat().st_size,
            content_type=content_type or "",
            path=path,
        )

    @classmethod
    def from_bytes(cls, name: str, data: bytes, content_type: str = "") -> "FileRef":
        return cls(name=name, size=len(data), content_type=content_type, data=data)

    @property
    def wire_content_type(self) -> str:
        """Content-Type header value for the byte transfer."""
        return self.content_type or DEFAULT_CONTENT_TYPE

    def iter_chunks(self, chunk_size: int = 64 * 1024) -> Iterator[bytes]:
        """Yield the file contents in chunks of at most chunk_size bytes."""
        if self.data is not None:
            for start in range(0, len(self.data), chunk_size):
                yield self.data[start:start + chunk_size]
            return
        if self.path is None:
            raise ValueError(f"FileRef {self.name!r} has neither path nor data")
        with open(self.path, "rb") as fh:
            while True:
                chunk = fh.read(chunk_size)
                if not chunk:
                    break
                yield chunk

    async def aiter_chunks(self, chunk_size: int = 64 * 1024) -> AsyncIterator[bytes]:
        """Async variant of iter_chunks; disk reads run in a worker thread."""
        if self.data is not None or self.path is None:
            for chunk in self.iter_chunks(chunk_size):
                yield chunk
            return
        fh = await asyncio.to_thread(open, self.path, "rb")
        try:
            while True:
                chunk = await asyncio.to_thread(fh.read, chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            fh.close()


@dataclass
class UploadItem:
    """Tracked state of one submitted file."""
    id: str
    file_ref: FileRef
    progress_percent: float = 0.0
    status: ItemStatus = ItemStatus.PENDING
    error_message: Optional[str] = None
    key: Optional[str] = None

    @property
    def file_name(self) -> str:
        return self.file_ref.name

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal


@dataclass(frozen=True)
class PresignGrant:
    """Presigned write grant returned by the storage backend."""
    url: str
    key: str


def category_for(mime_type: Optional[str]) -> str:
    """First segment of a MIME type ('image' for 'image/png')."""
    if not mime_type:
        return DEFAULT_CATEGORY
    head = mime_type.split("/", 1)[0].strip()
    return head or DEFAULT_CATEGORY


@dataclass(frozen=True)
class ConfirmMetadata:
    """Metadata attached to a stored object by the confirm call."""
    key: str
    file_name: str
    original_name: str
    mime_type: str
    size: int
    tags: Tuple[str, ...] = ()
    category: str = DEFAULT_CATEGORY

    @classmethod
    def for_file(
        cls,
        key: str,
        file_ref: FileRef,
        tags: Tuple[str, ...] = (),
        category: Optional[str] = None,
    ) -> "ConfirmMetadata":
        return cls(
            key=key,
            file_name=file_ref.name,
            original_name=file_ref.name,
            mime_type=file_ref.content_type,
            size=file_ref.size,
            tags=tuple(tags),
            category=category or category_for(file_ref.content_type),
        )

    def to_payload(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "fileName": self.file_name,
            "originalName": self.original_name,
            "mimeType": self.mime_type,
            "size": self.size,
            "tags": list(self.tags),
            "category": self.category,
        }


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    return float(value) if value else default


def _env_int(name: str, default: Optional[int]) -> Optional[int]:
    value = os.getenv(name)
    return int(value) if value else default


@dataclass(frozen=True)
class UploadConfig:
    """Immutable configuration for upload sessions."""
    api_url: str = "http://localhost:5000"
    presign_endpoint: str = "/api/v1/storage/presign"
    confirm_endpoint: str = "/api/v1/storage/confirm"
    timeout: float = 60.0
    max_concurrency: Optional[int] = None  # None = one task per item
    grace_delay: float = 2.0
    chunk_size: int = 64 * 1024
    retry_attempts: int = 1  # 1 = no retry
    retry_backoff: float = 0.5
    default_tags: Tuple[str, ...] = ()

    @classmethod
    def from_env(cls, **overrides: Any) -> "UploadConfig":
        """Build config from ASSET_* environment variables."""
        values: Dict[str, Any] = {
            "api_url": os.getenv("ASSET_API_URL") or cls.api_url,
            "timeout": _env_float("ASSET_UPLOAD_TIMEOUT", cls.timeout),
            "max_concurrency": _env_int("ASSET_UPLOAD_MAX_PARALLEL", None),
            "grace_delay": _env_float("ASSET_UPLOAD_GRACE_DELAY", cls.grace_delay),
            "retry_attempts": _env_int("ASSET_UPLOAD_RETRIES", cls.retry_attempts),
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
