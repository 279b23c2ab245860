"""Core orchestrator - wires one upload session."""
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Union

import httpx

from ..models import FileRef, UploadConfig, UploadItem
from ..protocols import IStorageGateway
from ..services.api_client import HTTPAPIClient
from ..services.retry import RetryingGateway
from ..services.storage_gateway import StorageGateway

from .coordinator import UploadCoordinator
from .store import UploadItemStore
from .watcher import CompletionCallback, CompletionWatcher


FileLike = Union[FileRef, Path, str]


def to_file_ref(source: FileLike) -> FileRef:
    if isinstance(source, FileRef):
        return source
    return FileRef.from_path(Path(source))


class UploadOrchestrator:
    """
    Orchestrates batch uploads using injected services.

    Owns the item store for the session: it is created on enter and torn
    down (in-flight runs cancelled, watcher stopped, HTTP client closed)
    on exit.

    Usage:
        async with UploadOrchestrator(config, on_complete=notify) as uploader:
            ids = uploader.submit([Path("a.png"), Path("b.wav")])
            uploader.remove(ids[1])
            await uploader.wait_complete()
    """

    def __init__(
        self,
        config: Optional[UploadConfig] = None,
        on_complete: Optional[CompletionCallback] = None,
        gateway: Optional[IStorageGateway] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize orchestrator with dependencies.

        Args:
            config: Upload configuration
            on_complete: Called with the final items once a batch is done
            gateway: Pre-built gateway; skips the HTTP client when given
            transport: httpx transport override for the default HTTP client
        """
        self._config = config or UploadConfig()
        self._on_complete = on_complete
        self._external_gateway = gateway
        self._transport = transport

        # Initialized in __aenter__
        self._api_client: Optional[HTTPAPIClient] = None
        self._store: Optional[UploadItemStore] = None
        self._coordinator: Optional[UploadCoordinator] = None
        self._watcher: Optional[CompletionWatcher] = None

    async def __aenter__(self):
        if self._external_gateway is not None:
            gateway = self._external_gateway
        else:
            self._api_client = HTTPAPIClient(
                self._config.api_url,
                timeout=self._config.timeout,
                transport=self._transport,
            )
            await self._api_client.__aenter__()
            gateway = StorageGateway(self._api_client, self._config)

        if self._config.retry_attempts > 1:
            gateway = RetryingGateway(
                gateway,
                attempts=self._config.retry_attempts,
                backoff=self._config.retry_backoff,
            )

        self._store = UploadItemStore()
        self._coordinator = UploadCoordinator(gateway, self._store, self._config)
        self._watcher = CompletionWatcher(
            self._store,
            on_complete=self._on_complete,
            grace_delay=self._config.grace_delay,
        )
        self._watcher.start()
        return self

    async def __aexit__(self, *args):
        if self._coordinator:
            await self._coordinator.close()
        if self._watcher:
            await self._watcher.stop()
        if self._store:
            self._store.clear()
        if self._api_client:
            await self._api_client.__aexit__(*args)

    @property
    def coordinator(self) -> UploadCoordinator:
        assert self._coordinator is not None
        return self._coordinator

    @property
    def watcher(self) -> CompletionWatcher:
        assert self._watcher is not None
        return self._watcher

    def submit(self, files: Sequence[FileLike], tags: Optional[Sequence[str]] = None) -> List[str]:
        """Start uploading files without waiting. Returns item ids."""
        return self.coordinator.submit([to_file_ref(f) for f in files], tags=tags)

    async def upload(
        self, files: Sequence[FileLike], tags: Optional[Sequence[str]] = None
    ) -> List[UploadItem]:
        """Upload files and return their final records."""
        return await self.coordinator.upload([to_file_ref(f) for f in files], tags=tags)

    def remove(self, item_id: str) -> bool:
        return self.coordinator.remove(item_id)

    def snapshot(self) -> List[UploadItem]:
        assert self._store is not None
        return self._store.snapshot()

    async def wait_complete(self) -> None:
        """Wait for the completion notification of the current batch."""
        await self.watcher.wait()

    def on_item_start(self, callback: Callable[[UploadItem], None]):
        self.coordinator.on_item_start(callback)

    def on_item_progress(self, callback: Callable[[str, float], None]):
        self.coordinator.on_item_progress(callback)

    def on_item_complete(self, callback: Callable[[UploadItem], None]):
        self.coordinator.on_item_complete(callback)

    def on_item_fail(self, callback: Callable[[UploadItem], None]):
        self.coordinator.on_item_fail(callback)
