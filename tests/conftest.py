"""Shared fixtures: an in-memory storage gateway with scriptable failures."""
import asyncio
from typing import Dict, List, Optional, Set

import pytest

from asset_uploader.exceptions import ConfirmError, GrantError, TransferError
from asset_uploader.models import ConfirmMetadata, FileRef, PresignGrant


class FakeGateway:
    """
    IStorageGateway double.

    fail_grant / fail_transfer / fail_confirm hold file names whose step
    fails; hold_transfer holds names whose transfer blocks until released.
    """

    def __init__(self, progress_steps=(0.25, 0.5, 0.75, 1.0)):
        self.progress_steps = progress_steps
        self.fail_grant: Set[str] = set()
        self.fail_transfer: Set[str] = set()
        self.fail_confirm: Set[str] = set()
        self.hold_transfer: Set[str] = set()
        self.calls: List[tuple] = []
        self.stored: Dict[str, bytes] = {}
        self.confirmed: Dict[str, ConfirmMetadata] = {}
        self._release: Dict[str, asyncio.Event] = {}
        self.transfer_started: Dict[str, asyncio.Event] = {}
        self.active = 0
        self.max_active = 0

    def _started(self, name: str) -> asyncio.Event:
        return self.transfer_started.setdefault(name, asyncio.Event())

    def release(self, name: str) -> None:
        self._release.setdefault(name, asyncio.Event()).set()

    async def wait_transfer_started(self, name: str) -> None:
        await asyncio.wait_for(self._started(name).wait(), timeout=2)

    async def request_grant(self, file_name: str) -> PresignGrant:
        self.calls.append(("grant", file_name))
        await asyncio.sleep(0)
        if file_name in self.fail_grant:
            raise GrantError(file_name, "presign returned 500", status_code=500)
        return PresignGrant(url=f"http://bucket.test/{file_name}?sig=1", key=f"uploads/{file_name}")

    async def transfer_bytes(
        self,
        url: str,
        file_ref: FileRef,
        content_type: str,
        on_progress=None,
    ) -> None:
        self.calls.append(("transfer", file_ref.name))
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            self._started(file_ref.name).set()
            for fraction in self.progress_steps[:-1]:
                if on_progress:
                    on_progress(fraction)
                await asyncio.sleep(0)
            if file_ref.name in self.hold_transfer:
                await self._release.setdefault(file_ref.name, asyncio.Event()).wait()
            if file_ref.name in self.fail_transfer:
                raise TransferError(file_ref.name, "network error: connection reset")
            if on_progress:
                on_progress(self.progress_steps[-1])
            self.stored[url.split("?")[0].rsplit("/", 1)[-1]] = b"".join(file_ref.iter_chunks())
        finally:
            self.active -= 1

    async def confirm_write(self, metadata: ConfirmMetadata) -> None:
        self.calls.append(("confirm", metadata.file_name))
        await asyncio.sleep(0)
        if metadata.file_name in self.fail_confirm:
            raise ConfirmError(metadata.file_name, "confirm returned 500", status_code=500)
        if metadata.key in self.confirmed:
            raise ConfirmError(metadata.file_name, "confirm returned 409", status_code=409)
        self.confirmed[metadata.key] = metadata

    def steps_for(self, name: str) -> List[str]:
        return [step for step, file_name in self.calls if file_name == name]


def make_refs(*names: str, data: bytes = b"payload") -> List[FileRef]:
    return [FileRef.from_bytes(name, data, "image/png") for name in names]


@pytest.fixture
def gateway():
    return FakeGateway()
