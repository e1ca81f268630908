"""
Image uploads for question illustrations.

Images go to Cloudinary through its unsigned upload endpoint; the returned
``secure_url`` is what gets stored on the question.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx

from .config import settings
from .errors import ContentValidationError, UploadError

logger = logging.getLogger(__name__)

UPLOAD_URL = "https://api.cloudinary.com/v1_1/{cloud_name}/image/upload"


@dataclass
class ImageFile:
    content: bytes
    filename: str = "image"
    content_type: str = "application/octet-stream"


class ImageUploader:
    def __init__(
        self,
        cloud_name: str = settings.CLOUDINARY_CLOUD_NAME,
        upload_preset: str = settings.CLOUDINARY_UPLOAD_PRESET,
        max_bytes: int = settings.MAX_IMAGE_BYTES,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.cloud_name = cloud_name
        self.upload_preset = upload_preset
        self.max_bytes = max_bytes
        self.client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(settings.UPLOAD_TIMEOUT_SECONDS),
        )

    async def aclose(self) -> None:
        await self.client.aclose()

    def check_size(self, image: ImageFile) -> None:
        if len(image.content) > self.max_bytes:
            limit_mb = self.max_bytes // (1024 * 1024)
            raise ContentValidationError(f"Image is larger than {limit_mb} MB")

    async def upload(self, image: ImageFile) -> str:
        """Uploads one image and returns its durable URL."""
        self.check_size(image)
        if not self.cloud_name or not self.upload_preset:
            raise UploadError("Image upload is not configured")

        url = UPLOAD_URL.format(cloud_name=self.cloud_name)
        try:
            response = await self.client.post(
                url,
                data={"upload_preset": self.upload_preset},
                files={"file": (image.filename, image.content, image.content_type)},
            )
        except httpx.HTTPError as e:
            logger.error(f"Image upload failed: {e}")
            raise UploadError("Could not reach the image host") from e

        if not response.is_success:
            logger.error(f"Image upload rejected with HTTP {response.status_code}")
            raise UploadError(f"Image host answered HTTP {response.status_code}")

        try:
            secure_url = response.json().get("secure_url")
        except ValueError as e:
            raise UploadError("Image host returned an unreadable response") from e
        if not secure_url:
            raise UploadError("Image host did not return a URL")
        logger.info(f"Uploaded {image.filename} ({len(image.content)} bytes)")
        return secure_url
