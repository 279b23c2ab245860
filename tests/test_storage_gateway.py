"""Wire-level tests for StorageGateway using httpx.MockTransport."""
import json

import httpx
import pytest

from asset_uploader.exceptions import ConfirmError, GrantError, TransferError
from asset_uploader.models import ConfirmMetadata, FileRef, UploadConfig
from asset_uploader.services.api_client import HTTPAPIClient
from asset_uploader.services.storage_gateway import StorageGateway

API = "http://api.test"
BUCKET = "http://bucket.test/uploads/cover.png?X-Amz-Signature=abc"


def _client(handler):
    return HTTPAPIClient(API, transport=httpx.MockTransport(handler))


class TestRequestGrant:
    @pytest.mark.asyncio
    async def test_returns_url_and_key(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"url": BUCKET, "key": "uploads/cover.png"})

        async with _client(handler) as api:
            grant = await StorageGateway(api).request_grant("cover.png")

        assert grant.url == BUCKET
        assert grant.key == "uploads/cover.png"
        assert seen == {"path": "/api/v1/storage/presign", "body": {"fileName": "cover.png"}}

    @pytest.mark.asyncio
    async def test_non_success_status_raises(self):
        async with _client(lambda request: httpx.Response(403, json={"error": "denied"})) as api:
            with pytest.raises(GrantError) as exc_info:
                await StorageGateway(api).request_grant("cover.png")

        assert exc_info.value.file_name == "cover.png"
        assert exc_info.value.status_code == 403
        assert "cover.png" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_unreachable_backend_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with _client(handler) as api:
            with pytest.raises(GrantError, match="unreachable"):
                await StorageGateway(api).request_grant("cover.png")

    @pytest.mark.asyncio
    async def test_malformed_body_raises(self):
        async with _client(lambda request: httpx.Response(200, json={"url": BUCKET})) as api:
            with pytest.raises(GrantError, match="malformed"):
                await StorageGateway(api).request_grant("cover.png")


class TestTransferBytes:
    @pytest.mark.asyncio
    async def test_puts_raw_bytes_and_reports_progress(self):
        seen = {}

        def handler(request):
            seen["method"] = request.method
            seen["url"] = str(request.url)
            seen["content_type"] = request.headers["Content-Type"]
            seen["length"] = request.headers["Content-Length"]
            seen["body"] = request.content
            return httpx.Response(200)

        data = b"x" * 10
        ref = FileRef.from_bytes("cover.png", data, "image/png")
        fractions = []

        async with _client(handler) as api:
            gateway = StorageGateway(api, UploadConfig(chunk_size=4))
            await gateway.transfer_bytes(BUCKET, ref, ref.wire_content_type, fractions.append)

        assert seen["method"] == "PUT"
        assert seen["url"] == BUCKET
        assert seen["content_type"] == "image/png"
        assert seen["length"] == "10"
        assert seen["body"] == data
        assert fractions == [0.4, 0.8, 1.0]

    @pytest.mark.asyncio
    async def test_reads_file_from_disk(self, tmp_path):
        path = tmp_path / "take1.wav"
        path.write_bytes(b"RIFF....WAVE")
        bodies = []

        def handler(request):
            bodies.append(request.content)
            return httpx.Response(200)

        ref = FileRef.from_path(path)
        async with _client(handler) as api:
            await StorageGateway(api).transfer_bytes(BUCKET, ref, ref.wire_content_type)

        assert bodies == [b"RIFF....WAVE"]

    @pytest.mark.asyncio
    async def test_empty_file_reports_no_progress(self):
        fractions = []
        ref = FileRef.from_bytes("empty.txt", b"")
        async with _client(lambda request: httpx.Response(200)) as api:
            await StorageGateway(api).transfer_bytes(BUCKET, ref, "", fractions.append)
        assert fractions == []

    @pytest.mark.asyncio
    async def test_non_200_raises(self):
        ref = FileRef.from_bytes("cover.png", b"abc", "image/png")
        async with _client(lambda request: httpx.Response(403)) as api:
            with pytest.raises(TransferError) as exc_info:
                await StorageGateway(api).transfer_bytes(BUCKET, ref, "image/png")
        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_network_error_raises(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        ref = FileRef.from_bytes("cover.png", b"abc", "image/png")
        async with _client(handler) as api:
            with pytest.raises(TransferError, match="network error"):
                await StorageGateway(api).transfer_bytes(BUCKET, ref, "image/png")


class TestConfirmWrite:
    def _metadata(self):
        ref = FileRef.from_bytes("cover.png", b"abc", "image/png")
        return ConfirmMetadata.for_file("uploads/cover.png", ref)

    @pytest.mark.asyncio
    async def test_posts_metadata(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen["body"] = json.loads(request.content)
            return httpx.Response(201, json={"id": "asset-1"})

        async with _client(handler) as api:
            await StorageGateway(api).confirm_write(self._metadata())

        assert seen["path"] == "/api/v1/storage/confirm"
        assert seen["body"]["key"] == "uploads/cover.png"
        assert seen["body"]["category"] == "image"
        assert seen["body"]["tags"] == []

    @pytest.mark.asyncio
    async def test_duplicate_confirm_is_rejected(self):
        confirmed = set()

        def handler(request):
            key = json.loads(request.content)["key"]
            if key in confirmed:
                return httpx.Response(409, json={"error": "already confirmed"})
            confirmed.add(key)
            return httpx.Response(200)

        async with _client(handler) as api:
            gateway = StorageGateway(api)
            await gateway.confirm_write(self._metadata())
            with pytest.raises(ConfirmError) as exc_info:
                await gateway.confirm_write(self._metadata())

        assert exc_info.value.status_code == 409
        assert exc_info.value.retryable is False
