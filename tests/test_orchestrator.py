"""End-to-end tests for UploadOrchestrator over a mocked storage backend."""
import asyncio
import json

import httpx
import pytest

from asset_uploader import FileRef, ItemStatus, UploadConfig, UploadOrchestrator
from conftest import FakeGateway


class FakeBackend:
    """In-memory presign/PUT/confirm backend for httpx.MockTransport."""

    def __init__(self):
        self.objects = {}
        self.confirmed = {}
        self.presign_status = {}
        self.put_status = {}
        self.confirm_status = {}

    def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == "/api/v1/storage/presign":
            name = json.loads(request.content)["fileName"]
            status = self.presign_status.get(name, 200)
            if status != 200:
                return httpx.Response(status, json={"error": "presign failed"})
            return httpx.Response(
                200,
                json={"url": f"http://bucket.test/objects/{name}?sig=1", "key": f"objects/{name}"},
            )
        if request.method == "PUT" and request.url.host == "bucket.test":
            name = request.url.path.rsplit("/", 1)[-1]
            status = self.put_status.get(name, 200)
            if status == 200:
                self.objects[f"objects/{name}"] = request.content
            return httpx.Response(status)
        if request.url.path == "/api/v1/storage/confirm":
            body = json.loads(request.content)
            status = self.confirm_status.get(body["fileName"], 201)
            if body["key"] in self.confirmed:
                status = 409
            if status < 300:
                self.confirmed[body["key"]] = body
            return httpx.Response(status, json={})
        return httpx.Response(404)


def _config(**overrides):
    values = {"api_url": "http://api.test", "grace_delay": 0.05}
    values.update(overrides)
    return UploadConfig(**values)


@pytest.mark.asyncio
async def test_two_files_end_to_end(tmp_path):
    backend = FakeBackend()
    (tmp_path / "cover.png").write_bytes(b"png-bytes")
    (tmp_path / "take1.wav").write_bytes(b"wav-bytes")
    notified = []

    async with UploadOrchestrator(
        _config(), on_complete=notified.append, transport=httpx.MockTransport(backend)
    ) as uploader:
        items = await uploader.upload([tmp_path / "cover.png", tmp_path / "take1.wav"])
        assert [item.status for item in items] == [ItemStatus.COMPLETED] * 2
        assert all(item.progress_percent == 100.0 for item in items)

        await asyncio.wait_for(uploader.wait_complete(), timeout=1)
        assert uploader.snapshot() == []

    assert len(notified) == 1
    assert backend.objects == {"objects/cover.png": b"png-bytes", "objects/take1.wav": b"wav-bytes"}
    assert backend.confirmed["objects/cover.png"]["category"] == "image"
    assert backend.confirmed["objects/take1.wav"]["category"] == "audio"
    assert backend.confirmed["objects/take1.wav"]["size"] == 9


@pytest.mark.asyncio
async def test_grant_failure_end_to_end():
    backend = FakeBackend()
    backend.presign_status["broken.png"] = 500
    seen_paths = []

    def handler(request):
        seen_paths.append(request.url.path)
        return backend(request)

    async with UploadOrchestrator(_config(), transport=httpx.MockTransport(handler)) as uploader:
        (item,) = await uploader.upload([FileRef.from_bytes("broken.png", b"x", "image/png")])

    assert item.status is ItemStatus.FAILED
    assert "broken.png" in item.error_message
    assert seen_paths == ["/api/v1/storage/presign"]


@pytest.mark.asyncio
async def test_confirm_failure_leaves_object_at_backend():
    backend = FakeBackend()
    backend.confirm_status["a.png"] = 500

    async with UploadOrchestrator(_config(), transport=httpx.MockTransport(backend)) as uploader:
        (item,) = await uploader.upload([FileRef.from_bytes("a.png", b"abc", "image/png")])

    assert item.status is ItemStatus.FAILED
    assert "objects/a.png" in backend.objects
    assert backend.confirmed == {}


@pytest.mark.asyncio
async def test_removal_with_watcher_over_remaining_items():
    gateway = FakeGateway()
    gateway.hold_transfer.add("b.png")
    notified = []

    async with UploadOrchestrator(_config(), on_complete=notified.append, gateway=gateway) as uploader:
        ids = uploader.submit([FileRef.from_bytes(n, b"x", "image/png") for n in ("a.png", "b.png", "c.png")])
        await gateway.wait_transfer_started("b.png")
        uploader.remove(ids[1])
        await asyncio.wait_for(uploader.wait_complete(), timeout=1)

    assert len(notified) == 1
    assert [item.file_name for item in notified[0]] == ["a.png", "c.png"]


@pytest.mark.asyncio
async def test_retry_configuration_recovers_from_transient_errors():
    backend = FakeBackend()
    attempts = {"presign": 0}

    def flaky(request):
        if request.url.path == "/api/v1/storage/presign":
            attempts["presign"] += 1
            if attempts["presign"] == 1:
                return httpx.Response(503)
        return backend(request)

    config = _config(retry_attempts=2, retry_backoff=0)
    async with UploadOrchestrator(config, transport=httpx.MockTransport(flaky)) as uploader:
        (item,) = await uploader.upload([FileRef.from_bytes("a.png", b"abc", "image/png")])

    assert item.status is ItemStatus.COMPLETED
    assert attempts["presign"] == 2


@pytest.mark.asyncio
async def test_upload_returns_records_even_after_store_is_emptied():
    notified = []

    async with UploadOrchestrator(
        _config(grace_delay=0), on_complete=notified.append, gateway=FakeGateway()
    ) as uploader:
        items = await uploader.upload(
            [FileRef.from_bytes(n, b"x", "image/png") for n in ("a.png", "b.png")]
        )
        await asyncio.wait_for(uploader.wait_complete(), timeout=1)
        assert uploader.snapshot() == []

    assert [item.file_name for item in items] == ["a.png", "b.png"]
    assert [item.status for item in items] == [ItemStatus.COMPLETED] * 2
    assert len(notified) == 1
