"""
Protocols (Interfaces) for Dependency Inversion.

The coordinator only depends on IStorageGateway, so tests and decorators
(retry) can stand in for the HTTP gateway.
"""
from typing import Any, AsyncIterator, Callable, Dict, Optional, Protocol, runtime_checkable

from .models import ConfirmMetadata, FileRef, PresignGrant


ProgressCallback = Callable[[float], None]


@runtime_checkable
class IAPIClient(Protocol):
    """Interface for HTTP operations against the storage backend."""

    async def post(self, endpoint: str, json: Dict) -> Any:
        """POST a JSON body."""
        ...

    async def put(
        self,
        url: str,
        content: AsyncIterator[bytes],
        headers: Optional[Dict[str, str]] = None,
    ) -> Any:
        """PUT a streamed body to an absolute URL."""
        ...


@runtime_checkable
class IStorageGateway(Protocol):
    """Interface for the three-step storage protocol."""

    async def request_grant(self, file_name: str) -> PresignGrant:
        """Obtain a presigned write grant."""
        ...

    async def transfer_bytes(
        self,
        url: str,
        file_ref: FileRef,
        content_type: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        """Write the file bytes to the granted URL."""
        ...

    async def confirm_write(self, metadata: ConfirmMetadata) -> None:
        """Confirm the write and attach metadata."""
        ...
