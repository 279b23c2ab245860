"""Retry decorator around a storage gateway."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from ..exceptions import UploadError
from ..models import ConfirmMetadata, FileRef, PresignGrant
from ..protocols import IStorageGateway, ProgressCallback

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryingGateway:
    """
    Retries each protocol step on transport failures and 5xx responses.

    Wraps any IStorageGateway; the coordinator's state machine is unaware
    of attempts. 4xx responses are never retried.
    """

    def __init__(self, gateway: IStorageGateway, attempts: int = 3, backoff: float = 0.5):
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        self._gateway = gateway
        self._attempts = attempts
        self._backoff = backoff

    async def _call(self, label: str, operation: Callable[[], Awaitable[T]]) -> T:
        for attempt in range(self._attempts):
            try:
                return await operation()
            except UploadError as exc:
                if not exc.retryable or attempt >= self._attempts - 1:
                    raise
                delay = self._backoff * (attempt + 1)
                logger.warning(
                    f"{label} attempt {attempt + 1}/{self._attempts} failed ({exc.cause}), "
                    f"retrying in {delay:.1f}s"
                )
                await asyncio.sleep(delay)
        raise RuntimeError(f"{label} exhausted {self._attempts} attempts")

    async def request_grant(self, file_name: str) -> PresignGrant:
        return await self._call(
            f"grant {file_name}", lambda: self._gateway.request_grant(file_name)
        )

    async def transfer_bytes(
        self,
        url: str,
        file_ref: FileRef,
        content_type: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        # Progress restarts from zero on a retry; the store ignores decreases.
        await self._call(
            f"transfer {file_ref.name}",
            lambda: self._gateway.transfer_bytes(url, file_ref, content_type, on_progress),
        )

    async def confirm_write(self, metadata: ConfirmMetadata) -> None:
        await self._call(
            f"confirm {metadata.file_name}", lambda: self._gateway.confirm_write(metadata)
        )
