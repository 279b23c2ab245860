"""Per-file protocol runs over a shared item store."""
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable, Dict, List, Optional, Sequence

from ..exceptions import ConfirmError, UploadError
from ..models import ConfirmMetadata, FileRef, ItemStatus, UploadConfig, UploadItem
from ..protocols import IStorageGateway, ProgressCallback
from ..utils.events import EventEmitter
from .parallel import get_parallel_limit
from .store import UploadItemStore

logger = logging.getLogger(__name__)


class UploadCoordinator:
    """
    Drives grant -> transfer -> confirm for every item of a batch.

    Each item runs as its own asyncio task; a failure is recorded on that
    item only and never cancels siblings. Removing an item cancels its task
    and drops any later store write for its id.

    Usage:
        coordinator = UploadCoordinator(gateway, store)
        coordinator.on_item_fail(lambda item: print(item.error_message))
        items = await coordinator.upload([FileRef.from_path(p) for p in paths])
    """

    def __init__(
        self,
        gateway: IStorageGateway,
        store: UploadItemStore,
        config: Optional[UploadConfig] = None,
    ):
        self._gateway = gateway
        self._store = store
        self._config = config or UploadConfig()
        self._events = EventEmitter()
        self._tasks: Dict[str, asyncio.Task] = {}

        limit = get_parallel_limit(self._config.max_concurrency)
        self._semaphore: Optional[asyncio.Semaphore] = asyncio.Semaphore(limit) if limit else None

    # Event subscription methods
    def on_item_start(self, callback: Callable[[UploadItem], None]):
        """Called when an item's protocol run starts. Receives UploadItem."""
        self._events.on("item_start", callback)

    def on_item_progress(self, callback: Callable[[str, float], None]):
        """Called on transfer progress. Receives (item_id, percent)."""
        self._events.on("item_progress", callback)

    def on_item_complete(self, callback: Callable[[UploadItem], None]):
        """Called when an item is confirmed. Receives UploadItem."""
        self._events.on("item_complete", callback)

    def on_item_fail(self, callback: Callable[[UploadItem], None]):
        """Called when an item fails. Receives UploadItem."""
        self._events.on("item_fail", callback)

    @property
    def store(self) -> UploadItemStore:
        return self._store

    @property
    def in_flight(self) -> int:
        return sum(1 for task in self._tasks.values() if not task.done())

    # Control methods
    def submit(
        self,
        file_refs: Sequence[FileRef],
        tags: Optional[Sequence[str]] = None,
        category: Optional[str] = None,
    ) -> List[str]:
        """Register a batch and start one task per file. Returns the item ids."""
        file_refs = list(file_refs)
        ids = self._store.register_batch(file_refs)
        batch_tags = tuple(tags) if tags is not None else self._config.default_tags
        for item_id, file_ref in zip(ids, file_refs):
            task = asyncio.create_task(
                self._run_item(item_id, file_ref, batch_tags, category),
                name=f"upload:{file_ref.name}",
            )
            self._tasks[item_id] = task
            task.add_done_callback(lambda _t, i=item_id: self._tasks.pop(i, None))
        logger.info(f"Submitted {len(ids)} file(s) for upload")
        return ids

    async def upload(
        self,
        file_refs: Sequence[FileRef],
        tags: Optional[Sequence[str]] = None,
        category: Optional[str] = None,
    ) -> List[UploadItem]:
        """Submit a batch and wait for it. Returns the final record of every item not removed."""
        ids = self.submit(file_refs, tags=tags, category=category)
        tasks = [self._tasks[i] for i in ids if i in self._tasks]
        results = await asyncio.gather(*tasks, return_exceptions=True) if tasks else []
        return [result for result in results if isinstance(result, UploadItem)]

    async def wait(self) -> None:
        """Wait until no protocol run is in flight."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    def remove(self, item_id: str) -> bool:
        """Delete an item and abort its protocol run if still running."""
        removed = self._store.remove(item_id)
        task = self._tasks.get(item_id)
        if task is not None and not task.done():
            task.cancel()
            logger.info(f"Cancelled upload of item {item_id}")
        return removed

    async def close(self) -> None:
        """Cancel every in-flight run (session teardown)."""
        tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # Protocol run
    def _slot(self):
        return self._semaphore if self._semaphore is not None else contextlib.nullcontext()

    def _progress_callback(self, item_id: str) -> ProgressCallback:
        def callback(fraction: float) -> None:
            percent = fraction * 100
            self._store.set_progress(item_id, percent)
            self._events.emit_nowait("item_progress", item_id, percent)

        return callback

    async def _run_item(
        self,
        item_id: str,
        file_ref: FileRef,
        tags: Sequence[str],
        category: Optional[str],
    ) -> Optional[UploadItem]:
        async with self._slot():
            if item_id not in self._store:
                return None
            await self._emit_item("item_start", item_id)
            try:
                await self._run_protocol(item_id, file_ref, tags, category)
            except UploadError as exc:
                logger.error(str(exc))
                self._store.set_status(item_id, ItemStatus.FAILED, error=str(exc))
                event = "item_fail"
            except Exception as exc:
                logger.exception(f"Unexpected error uploading {file_ref.name}")
                self._store.set_status(
                    item_id,
                    ItemStatus.FAILED,
                    error=f"upload failed for {file_ref.name}: {exc}",
                )
                event = "item_fail"
            else:
                event = "item_complete"

            # The watcher may clear the store after the next await.
            final = self._store.get(item_id)
            if final is not None:
                await self._events.emit(event, final)
            return final

    async def _run_protocol(
        self,
        item_id: str,
        file_ref: FileRef,
        tags: Sequence[str],
        category: Optional[str],
    ) -> None:
        grant = await self._gateway.request_grant(file_ref.name)
        self._store.set_status(item_id, ItemStatus.TRANSFERRING, key=grant.key)

        await self._gateway.transfer_bytes(
            grant.url,
            file_ref,
            file_ref.wire_content_type,
            on_progress=self._progress_callback(item_id),
        )
        if item_id not in self._store:
            return
        self._store.set_status(item_id, ItemStatus.CONFIRMING)

        metadata = ConfirmMetadata.for_file(grant.key, file_ref, tags=tuple(tags), category=category)
        try:
            await self._gateway.confirm_write(metadata)
        except ConfirmError:
            # No compensating delete exists in the backend contract.
            logger.warning(f"Object {grant.key} stored without confirmation ({file_ref.name})")
            raise
        self._store.set_status(item_id, ItemStatus.COMPLETED)
        logger.info(f"Uploaded {file_ref.name} (key={grant.key})")

    async def _emit_item(self, event_name: str, item_id: str) -> None:
        item = self._store.get(item_id)
        if item is not None:
            await self._events.emit(event_name, item)
