from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Protocol

import httpx

from .errors import AttachmentUploadError

logger = logging.getLogger(__name__)

CLOUDINARY_API_BASE = "https://api.cloudinary.com/v1_1"


class AttachmentUploader(Protocol):
    """Turns a binary payload into a durable, retrievable URL."""

    async def upload(self, payload: bytes) -> str:
        ...


def sign_params(params: Mapping[str, Any], api_secret: str) -> str:
    """Compute the Cloudinary request signature for ``params``."""

    to_sign = "&".join(f"{key}={params[key]}" for key in sorted(params) if params[key] not in (None, ""))
    return hashlib.sha1(f"{to_sign}{api_secret}".encode("utf-8")).hexdigest()


@dataclass(slots=True)
class CloudinaryUploader:
    """Signed image uploads to Cloudinary over its REST API."""

    cloud_name: str
    api_key: str
    api_secret: str
    folder: str = "tickets"
    timeout: float = 30.0
    transport: httpx.AsyncBaseTransport | None = None
    clock: Callable[[], float] = field(default=time.time)

    @property
    def endpoint(self) -> str:
        return f"{CLOUDINARY_API_BASE}/{self.cloud_name}/image/upload"

    async def upload(self, payload: bytes) -> str:
        params: dict[str, Any] = {"folder": self.folder, "timestamp": int(self.clock())}
        data = {
            **{key: str(value) for key, value in params.items()},
            "api_key": self.api_key,
            "signature": sign_params(params, self.api_secret),
        }
        files = {"file": ("attachment", payload, "application/octet-stream")}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.endpoint, data=data, files=files)
        except httpx.HTTPError as exc:
            raise AttachmentUploadError(f"Attachment upload failed: {exc}") from exc

        if response.status_code >= 400:
            raise AttachmentUploadError(f"Attachment upload rejected with status {response.status_code}")

        try:
            body = response.json()
        except ValueError as exc:
            raise AttachmentUploadError("Attachment upload returned a non-JSON response") from exc

        secure_url = body.get("secure_url") if isinstance(body, Mapping) else None
        if not secure_url:
            raise AttachmentUploadError("Attachment upload response did not include a URL")

        logger.debug("Uploaded attachment (%d bytes) to %s", len(payload), secure_url)
        return str(secure_url)
