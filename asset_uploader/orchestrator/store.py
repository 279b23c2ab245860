"""Keyed record store for per-file upload state."""
from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import replace
from typing import Callable, Dict, Iterable, List, Optional

from ..exceptions import InvalidTransitionError
from ..models import TRANSITIONS, FileRef, ItemStatus, UploadItem

logger = logging.getLogger(__name__)

StoreListener = Callable[[], None]


def _new_id() -> str:
    return uuid.uuid4().hex


class UploadItemStore:
    """
    Concurrency-safe mapping from item id to UploadItem.

    All mutations take the same lock, so updates for one id are serialized
    and concurrent protocol runs never corrupt the mapping. Updates for
    ids that were removed are silently dropped. Listeners are notified
    after every effective change, outside the lock.
    """

    def __init__(self, id_factory: Callable[[], str] = _new_id):
        self._items: Dict[str, UploadItem] = {}
        self._lock = threading.RLock()
        self._id_factory = id_factory
        self._listeners: List[StoreListener] = []
        self._generation = 0

    # Observation

    def subscribe(self, listener: StoreListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def unsubscribe(self, listener: StoreListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        for listener in self._listeners[:]:
            try:
                listener()
            except Exception as e:
                logger.error(f"Error in store listener {listener!r}: {e}")

    @property
    def generation(self) -> int:
        """Number of batches registered so far."""
        return self._generation

    # Mutations

    def register_batch(self, file_refs: Iterable[FileRef]) -> List[str]:
        """Create one pending record per file; ids are returned in submission order."""
        ids: List[str] = []
        with self._lock:
            for file_ref in file_refs:
                item_id = self._id_factory()
                while item_id in self._items:
                    item_id = self._id_factory()
                self._items[item_id] = UploadItem(id=item_id, file_ref=file_ref)
                ids.append(item_id)
            if ids:
                self._generation += 1
        if ids:
            logger.debug(f"Registered batch of {len(ids)} item(s)")
            self._notify()
        return ids

    def set_progress(self, item_id: str, percent: float) -> None:
        """Record transfer progress; lower values than already recorded are ignored."""
        with self._lock:
            item = self._items.get(item_id)
            if item is None or item.status is not ItemStatus.TRANSFERRING:
                return
            percent = max(0.0, min(100.0, float(percent)))
            if percent <= item.progress_percent:
                return
            item.progress_percent = percent
        self._notify()

    def set_status(
        self,
        item_id: str,
        status: ItemStatus,
        error: Optional[str] = None,
        key: Optional[str] = None,
    ) -> None:
        """
        Move an item along the state machine.

        No-op for absent ids and terminal items.

        Raises:
            InvalidTransitionError: status is not reachable from the current one
        """
        with self._lock:
            item = self._items.get(item_id)
            if item is None or item.is_terminal:
                return
            if status is item.status:
                return
            if status not in TRANSITIONS[item.status]:
                raise InvalidTransitionError(
                    f"{item.file_name}: cannot go from {item.status.value} to {status.value}"
                )
            item.status = status
            if key is not None:
                item.key = key
            if status is ItemStatus.COMPLETED:
                item.progress_percent = 100.0
            if status is ItemStatus.FAILED:
                item.error_message = error or f"upload failed for {item.file_name}"
        self._notify()

    def remove(self, item_id: str) -> bool:
        with self._lock:
            removed = self._items.pop(item_id, None) is not None
        if removed:
            self._notify()
        return removed

    def remove_many(self, item_ids: Iterable[str]) -> int:
        """Remove several items with a single change notification. Returns how many were present."""
        with self._lock:
            removed = sum(1 for item_id in item_ids if self._items.pop(item_id, None) is not None)
        if removed:
            self._notify()
        return removed

    def clear(self) -> None:
        with self._lock:
            had_items = bool(self._items)
            self._items.clear()
        if had_items:
            self._notify()

    # Reads

    def get(self, item_id: str) -> Optional[UploadItem]:
        with self._lock:
            item = self._items.get(item_id)
            return replace(item) if item else None

    def snapshot(self) -> List[UploadItem]:
        """Copies of all records in registration order."""
        with self._lock:
            return [replace(item) for item in self._items.values()]

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __contains__(self, item_id: object) -> bool:
        with self._lock:
            return item_id in self._items
