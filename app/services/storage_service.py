"""Storage service for evidence files in Supabase storage."""

import re
import uuid
from datetime import UTC, datetime
from typing import Any

import httpx

from app.config import settings
from app.exceptions import UpstreamError
from app.utils.logger import setup_logger

logger = setup_logger("storage_service")

_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def sanitize_filename(filename: str | None) -> str:
    name = (filename or "").strip().replace("\\", "/").split("/")[-1]
    name = _UNSAFE_FILENAME_CHARS.sub("_", name).strip("._")
    return name[:120] or "file"


def build_evidence_path(user_id: uuid.UUID, filename: str | None, now: datetime | None = None) -> str:
    """Owner-namespaced object path: evidence/{user_id}/{timestamp}-{filename}."""
    timestamp = int((now or datetime.now(UTC)).timestamp() * 1000)
    return f"evidence/{user_id}/{timestamp}-{sanitize_filename(filename)}"


class StorageService:
    """Uploads and signed URLs over the Supabase storage REST API."""

    def __init__(self, bucket: str | None = None):
        self.url = (settings.supabase_url or "").rstrip("/")
        self.service_role_key = settings.supabase_service_role_key or ""
        self.bucket = bucket or settings.storage_bucket
        self.base_api_url = f"{self.url}/storage/v1"
        self.headers = {
            "Authorization": f"Bearer {self.service_role_key}",
            "apikey": self.service_role_key,
        }

    def _ensure_configured(self) -> None:
        if not self.url or not self.service_role_key:
            raise UpstreamError("Evidence storage is not configured", kind="failure")

    async def upload(self, path: str, content: bytes, content_type: str) -> dict[str, Any]:
        """Upload bytes to the evidence bucket at path."""
        self._ensure_configured()
        upload_url = f"{self.base_api_url}/object/{self.bucket}/{path}"
        try:
            async with httpx.AsyncClient(timeout=settings.storage_http_timeout) as client:
                response = await client.post(
                    upload_url,
                    headers={
                        **self.headers,
                        "Content-Type": content_type or "application/octet-stream",
                    },
                    content=content,
                )
        except httpx.TimeoutException as e:
            logger.error(f"Storage upload timed out for {path}: {e}")
            raise UpstreamError("Evidence upload timed out", kind="timeout") from e
        except httpx.HTTPError as e:
            logger.error(f"Storage upload failed for {path}: {e}")
            raise UpstreamError("Evidence upload failed", kind="failure") from e

        if response.status_code not in (200, 201):
            logger.error(
                f"Failed to upload file to storage: {response.status_code} {response.text[:300]}"
            )
            raise UpstreamError("Evidence upload failed", kind="failure")

        logger.info(f"Uploaded {len(content)} bytes to {self.bucket}/{path}")
        return response.json()

    async def create_signed_url(self, path: str, ttl: int | None = None) -> str:
        """Time-limited URL for a stored object."""
        self._ensure_configured()
        expires_in = ttl or settings.signed_url_ttl_seconds
        url = f"{self.base_api_url}/object/sign/{self.bucket}/{path}"
        try:
            async with httpx.AsyncClient(timeout=settings.storage_http_timeout) as client:
                response = await client.post(url, headers=self.headers, json={"expiresIn": expires_in})
        except httpx.TimeoutException as e:
            logger.error(f"Signed URL request timed out for {path}: {e}")
            raise UpstreamError("Signed URL request timed out", kind="timeout") from e
        except httpx.HTTPError as e:
            logger.error(f"Signed URL request failed for {path}: {e}")
            raise UpstreamError("Could not create a signed URL", kind="failure") from e

        if response.status_code != 200:
            logger.error(
                f"Failed to generate signed URL: {response.status_code} {response.text[:300]}"
            )
            raise UpstreamError("Could not create a signed URL", kind="failure")

        signed_path = response.json().get("signedURL")
        if not signed_path:
            raise UpstreamError("Storage response did not contain signedURL", kind="failure")

        # Supabase answers with a path relative to the storage API root
        if signed_path.startswith("/storage/"):
            return f"{self.url}{signed_path}"
        if signed_path.startswith("/"):
            return f"{self.base_api_url}{signed_path}"
        return signed_path
