"""
ImageStorage against a mocked storage REST API.
"""

import httpx
import pytest

from fakes import JPEG_BYTES
from services.errors import UploadError, ValidationError
from services.image_storage import ImageStorage

BASE = "https://project.supabase.test"


def make_storage(handler, **kwargs):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ImageStorage(BASE, "service-key", "pickup-photos", client=client, **kwargs)


class TestUpload:

    @pytest.mark.asyncio
    async def test_upload_returns_public_url(self):
        seen = {}

        def handler(request: httpx.Request):
            seen["method"] = request.method
            seen["path"] = request.url.path
            seen["headers"] = request.headers
            seen["body"] = request.content
            return httpx.Response(200, json={"Key": "pickup-photos/x.jpg"})

        storage = make_storage(handler)
        url = await storage.upload(JPEG_BYTES, prefix="user-123")

        assert seen["method"] == "POST"
        assert seen["path"].startswith("/storage/v1/object/pickup-photos/user-123/")
        assert seen["path"].endswith(".jpg")
        assert seen["headers"]["authorization"] == "Bearer service-key"
        assert seen["headers"]["content-type"] == "image/jpeg"
        assert seen["body"] == JPEG_BYTES

        object_path = seen["path"][len("/storage/v1/object/pickup-photos/"):]
        assert url == f"{BASE}/storage/v1/object/public/pickup-photos/{object_path}"

    @pytest.mark.asyncio
    async def test_content_type_sets_extension(self):
        paths = []

        def handler(request):
            paths.append(request.url.path)
            return httpx.Response(200)

        storage = make_storage(handler)
        await storage.upload(b"\x89PNG\r\n\x1a\n" + b"\x00" * 8)
        await storage.upload(JPEG_BYTES, content_type="image/webp")

        assert paths[0].endswith(".png")
        assert paths[1].endswith(".webp")

    @pytest.mark.asyncio
    async def test_each_upload_gets_a_unique_path(self):
        paths = set()

        def handler(request):
            paths.add(request.url.path)
            return httpx.Response(200)

        storage = make_storage(handler)
        for _ in range(3):
            await storage.upload(JPEG_BYTES)

        assert len(paths) == 3

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        storage = make_storage(lambda request: httpx.Response(413, text="Payload too large"))

        with pytest.raises(UploadError) as exc_info:
            await storage.upload(JPEG_BYTES)
        assert "413" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        storage = make_storage(handler)

        with pytest.raises(UploadError):
            await storage.upload(JPEG_BYTES)

    @pytest.mark.asyncio
    async def test_empty_image(self):
        storage = make_storage(lambda request: httpx.Response(200))

        with pytest.raises(ValidationError):
            await storage.upload(b"")

    @pytest.mark.asyncio
    async def test_not_configured(self):
        storage = ImageStorage("", "", "pickup-photos")

        with pytest.raises(UploadError):
            await storage.upload(JPEG_BYTES)


class TestDownload:

    @pytest.mark.asyncio
    async def test_download(self):
        storage = make_storage(lambda request: httpx.Response(200, content=JPEG_BYTES))

        data = await storage.download(f"{BASE}/storage/v1/object/public/pickup-photos/a.jpg")

        assert data == JPEG_BYTES

    @pytest.mark.asyncio
    async def test_download_missing(self):
        storage = make_storage(lambda request: httpx.Response(404))

        with pytest.raises(UploadError):
            await storage.download(f"{BASE}/storage/v1/object/public/pickup-photos/a.jpg")
