"""
Unit tests for the Cloudinary image uploader.
"""

import httpx
import pytest

from nihongo_quiz.errors import ContentValidationError, UploadError
from nihongo_quiz.uploads import ImageFile, ImageUploader


def uploader_for(handler, **kwargs):
    options = {"cloud_name": "demo", "upload_preset": "quiz", "max_bytes": 1024}
    options.update(kwargs)
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ImageUploader(client=client, **options)


@pytest.fixture
def image():
    return ImageFile(content=b"\x89PNG fake", filename="neko.png", content_type="image/png")


class TestUpload:
    @pytest.mark.asyncio
    async def test_returns_secure_url(self, image):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"secure_url": "https://res.example/neko.png"})

        uploader = uploader_for(handler)
        url = await uploader.upload(image)
        await uploader.aclose()

        assert url == "https://res.example/neko.png"
        assert str(seen[0].url) == "https://api.cloudinary.com/v1_1/demo/image/upload"
        body = seen[0].read()
        assert b'name="upload_preset"' in body
        assert b"quiz" in body
        assert b'filename="neko.png"' in body

    @pytest.mark.asyncio
    async def test_http_error_status_is_upload_error(self, image):
        uploader = uploader_for(lambda request: httpx.Response(400, json={"error": "bad preset"}))
        with pytest.raises(UploadError):
            await uploader.upload(image)

    @pytest.mark.asyncio
    async def test_transport_failure_is_upload_error(self, image):
        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        with pytest.raises(UploadError):
            await uploader_for(handler).upload(image)

    @pytest.mark.asyncio
    async def test_missing_url_is_upload_error(self, image):
        with pytest.raises(UploadError):
            await uploader_for(lambda request: httpx.Response(200, json={})).upload(image)

    @pytest.mark.asyncio
    async def test_oversized_image_never_sent(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json={"secure_url": "x"})

        big = ImageFile(content=b"0" * 2048)
        with pytest.raises(ContentValidationError):
            await uploader_for(handler).upload(big)
        assert calls == []

    @pytest.mark.asyncio
    async def test_unconfigured_uploader_fails(self, image):
        uploader = uploader_for(lambda request: httpx.Response(200), cloud_name="")
        with pytest.raises(UploadError):
            await uploader.upload(image)
