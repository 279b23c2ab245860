"""Batch completion detection."""
from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, List, Optional, Set

from ..models import ItemStatus, UploadItem
from .store import UploadItemStore

logger = logging.getLogger(__name__)

CompletionCallback = Callable[[List[UploadItem]], Any]


def batch_done(items: List[UploadItem]) -> bool:
    """True when there is at least one item and every item is terminal."""
    return bool(items) and all(item.is_terminal for item in items)


class CompletionWatcher:
    """
    Fires a one-shot notification once the store's batch is done.

    After the grace delay the callback receives the final records, which
    are then removed from the store. Registering a new batch, or an item
    leaving the done state, cancels a pending notification; the watcher
    re-arms when the condition holds again. An empty store never triggers.

    The store may be mutated from any thread; checks always run on the
    loop that called start().
    """

    def __init__(
        self,
        store: UploadItemStore,
        on_complete: Optional[CompletionCallback] = None,
        grace_delay: float = 2.0,
    ):
        self._store = store
        self._on_complete = on_complete
        self._grace_delay = grace_delay
        self._pending: Optional[asyncio.Task] = None
        self._armed_generation: Optional[int] = None
        self._seen_generation = store.generation
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._fired = asyncio.Event()
        self._fired_count = 0
        self._reporting: Set[str] = set()

    @property
    def fired_count(self) -> int:
        return self._fired_count

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def start(self) -> None:
        """Subscribe to store changes. Must be called from the event loop."""
        self._loop = asyncio.get_running_loop()
        self._store.subscribe(self._on_store_change)
        self._check()

    async def stop(self) -> None:
        self._store.unsubscribe(self._on_store_change)
        await self._cancel_pending()

    async def wait(self) -> None:
        """Wait until the most recently registered batch has been reported."""
        await self._fired.wait()

    def _unreported(self) -> List[UploadItem]:
        return [item for item in self._store.snapshot() if item.id not in self._reporting]

    def _on_store_change(self) -> None:
        # Store listeners run on whichever thread mutated the store.
        loop = self._loop
        if loop is None:
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._check()
        else:
            loop.call_soon_threadsafe(self._check)

    def _check(self) -> None:
        done = batch_done(self._unreported())
        generation = self._store.generation
        if generation != self._seen_generation:
            self._seen_generation = generation
            self._fired.clear()

        if self.pending:
            if done and generation == self._armed_generation:
                return
            logger.debug("Batch changed before completion fired; re-arming")
            self._pending.cancel()
            self._pending = None

        if done:
            self._armed_generation = generation
            self._pending = self._loop.create_task(self._fire_after_delay())

    async def _cancel_pending(self) -> None:
        task, self._pending = self._pending, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    async def _fire_after_delay(self) -> None:
        await asyncio.sleep(self._grace_delay)
        items = self._unreported()
        if not batch_done(items):
            return

        generation = self._store.generation
        ids = [item.id for item in items]
        # Detach first so the removal below does not cancel this task.
        self._pending = None
        self._reporting.update(ids)
        self._fired_count += 1
        completed = sum(1 for item in items if item.status is ItemStatus.COMPLETED)
        logger.info(f"Batch finished: {completed}/{len(items)} completed")
        try:
            if self._on_complete is not None:
                result = self._on_complete(items)
                if inspect.isawaitable(result):
                    await result
        except Exception as e:
            logger.error(f"Error in completion callback: {e}")
        finally:
            # Only the reported records go; a batch registered meanwhile stays armed.
            self._store.remove_many(ids)
            self._reporting.difference_update(ids)
            if self._store.generation == generation:
                self._fired.set()
