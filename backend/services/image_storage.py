"""
Image Storage - durable storage for pickup photos

Talks to a Supabase-style storage REST API:
- upload:  POST {base}/storage/v1/object/{bucket}/{path}
- public:  {base}/storage/v1/object/public/{bucket}/{path}

Every failure surfaces as UploadError. Upload happens before the pickup
request is created, so a failed upload never leaves an orphan record.
"""
import logging
import uuid
from typing import Optional

import httpx

from config.settings import Settings, get_settings
from services.errors import UploadError, ValidationError
from utils.image_utils import detect_image_mime, extension_for_mime

logger = logging.getLogger(__name__)


class ImageStorage:
    """
    Photo storage client

    Pass `client` to share a connection pool or to inject a test transport.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        bucket: str,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.base_url = (base_url or "").rstrip('/')
        self.api_key = api_key
        self.bucket = bucket
        self.timeout = timeout
        self._client = client

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> 'ImageStorage':
        settings = settings or get_settings()
        return cls(
            base_url=settings.storage_url,
            api_key=settings.storage_key,
            bucket=settings.storage_bucket,
            timeout=settings.storage_timeout_seconds,
        )

    @property
    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "apikey": self.api_key,
        }

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/storage/v1/object/public/{self.bucket}/{path}"

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self._client is not None:
            return await self._client.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            return await client.request(method, url, **kwargs)

    async def upload(self, image: bytes, content_type: Optional[str] = None, prefix: Optional[str] = None) -> str:
        """
        Store photo bytes and return their public URL.

        Args:
            image: raw photo bytes
            content_type: MIME type (sniffed from the bytes when omitted)
            prefix: optional folder, e.g. the submitter id

        Raises:
            ValidationError: empty image
            UploadError: storage not configured, transport failure, non-2xx
        """
        if not image:
            raise ValidationError("Image is empty")
        if not self.base_url or not self.api_key:
            raise UploadError("Image storage not configured (STORAGE_URL / STORAGE_KEY)")

        mime = content_type or detect_image_mime(image)
        name = f"{uuid.uuid4().hex}.{extension_for_mime(mime)}"
        path = f"{prefix.strip('/')}/{name}" if prefix else name

        try:
            response = await self._request(
                "POST",
                f"{self.base_url}/storage/v1/object/{self.bucket}/{path}",
                content=image,
                headers={**self._headers, "Content-Type": mime, "x-upsert": "false"},
            )
        except httpx.HTTPError as e:
            raise UploadError(f"Photo upload failed: {e}") from e

        if response.status_code >= 400:
            raise UploadError(f"Photo upload rejected: HTTP {response.status_code} {response.text[:200]}")

        url = self.public_url(path)
        logger.info(f"📷 Stored photo {path} ({len(image)} bytes)")
        return url

    async def download(self, url: str) -> bytes:
        """
        Fetch a previously stored photo (used when retrying classification).

        Raises:
            UploadError: transport failure or non-2xx
        """
        try:
            response = await self._request("GET", url, headers=self._headers)
        except httpx.HTTPError as e:
            raise UploadError(f"Photo download failed: {e}") from e

        if response.status_code >= 400:
            raise UploadError(f"Photo download failed: HTTP {response.status_code}")

        return response.content
