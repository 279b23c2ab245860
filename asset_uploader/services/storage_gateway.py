"""
Storage Gateway - Single Responsibility: the three storage RPCs.

Stateless client for the presign / PUT / confirm protocol. Every failure is
raised as the step's typed error; nothing is retried here.
"""
from __future__ import annotations

import logging
from typing import AsyncIterator, Optional

import httpx

from ..exceptions import ConfirmError, GrantError, TransferError
from ..models import ConfirmMetadata, FileRef, PresignGrant, UploadConfig
from ..protocols import IAPIClient, ProgressCallback
from .api_client import describe_error

logger = logging.getLogger(__name__)

TRANSPORT_ERRORS = (httpx.HTTPError, httpx.InvalidURL)


class StorageGateway:
    """
    Client for the storage backend protocol.

    Implements IStorageGateway protocol.
    """

    def __init__(self, api_client: IAPIClient, config: Optional[UploadConfig] = None):
        self._api = api_client
        self._config = config or UploadConfig()

    async def request_grant(self, file_name: str) -> PresignGrant:
        """
        Request a presigned write URL for file_name.

        Raises:
            GrantError: backend unreachable, non-200 status or malformed body
        """
        try:
            response = await self._api.post(
                self._config.presign_endpoint, json={"fileName": file_name}
            )
        except TRANSPORT_ERRORS as exc:
            raise GrantError(file_name, f"backend unreachable: {exc}") from exc

        if response.status_code != 200:
            raise GrantError(
                file_name,
                f"presign returned {response.status_code}: {describe_error(response)}",
                status_code=response.status_code,
            )

        try:
            body = response.json()
            grant = PresignGrant(url=body["url"], key=body["key"])
        except (ValueError, KeyError, TypeError) as exc:
            raise GrantError(
                file_name, f"malformed presign response: {exc}", status_code=response.status_code
            ) from exc

        logger.debug(f"Grant for {file_name}: key={grant.key}")
        return grant

    async def transfer_bytes(
        self,
        url: str,
        file_ref: FileRef,
        content_type: str,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        """
        PUT the file bytes to the presigned URL.

        on_progress receives non-decreasing fractions in [0, 1] while the body
        is streamed. It is not called for empty files.

        Raises:
            TransferError: network failure, unreadable file or non-200 status
        """
        headers = {
            "Content-Type": content_type or file_ref.wire_content_type,
            "Content-Length": str(file_ref.size),
        }
        try:
            response = await self._api.put(
                url,
                content=self._stream(file_ref, on_progress),
                headers=headers,
            )
        except TRANSPORT_ERRORS as exc:
            raise TransferError(file_ref.name, f"network error: {exc}") from exc
        except OSError as exc:
            raise TransferError(file_ref.name, f"could not read file: {exc}") from exc

        if response.status_code != 200:
            raise TransferError(
                file_ref.name,
                f"PUT returned {response.status_code}",
                status_code=response.status_code,
            )

    async def _stream(
        self, file_ref: FileRef, on_progress: Optional[ProgressCallback]
    ) -> AsyncIterator[bytes]:
        total = file_ref.size
        sent = 0
        async for chunk in file_ref.aiter_chunks(self._config.chunk_size):
            yield chunk
            sent += len(chunk)
            if on_progress and total > 0:
                on_progress(min(sent / total, 1.0))

    async def confirm_write(self, metadata: ConfirmMetadata) -> None:
        """
        Confirm a completed transfer.

        A duplicate confirm for the same key is rejected by the backend
        (409) and surfaces as ConfirmError like any other non-2xx status.

        Raises:
            ConfirmError: backend unreachable or non-2xx status
        """
        try:
            response = await self._api.post(
                self._config.confirm_endpoint, json=metadata.to_payload()
            )
        except TRANSPORT_ERRORS as exc:
            raise ConfirmError(metadata.file_name, f"backend unreachable: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise ConfirmError(
                metadata.file_name,
                f"confirm returned {response.status_code}: {describe_error(response)}",
                status_code=response.status_code,
            )
        logger.debug(f"Confirmed {metadata.file_name} (key={metadata.key})")
