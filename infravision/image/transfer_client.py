"""Binary image transfer to and from the graph-execution backend.

Processing flow:
    Upload: data URL -> raw bytes -> `POST /upload/image` (multipart, overwrite=true)
            -> `{name, subfolder, type}` -> `name` used as the graph handle.
    Fetch:  output descriptor -> `GET /view?filename&subfolder&type` -> raw bytes
            -> self-contained data URL.

Error handling strategy:
    - Transport failures during upload -> `ConnectionUnavailable`.
    - Non-2xx upload responses -> `UploadFailed`.
    - Any fetch failure -> `ArtifactUnavailable`.

Scope:
    Pure I/O. No workflow or project-state logic lives here.
"""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from infravision.core.errors import ErrorKind, GenerationError
from infravision.core.models import ImageAsset
from infravision.image.encoding import (
    DEFAULT_MIME_TYPE,
    decode_data_url,
    encode_data_url,
    extension_for,
)
from infravision.image.provider_config import COMFY_API_URL, HTTP_TIMEOUT_SECONDS


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredImage:
    """Backend storage descriptor for an uploaded input or a generated output."""

    filename: str
    subfolder: str = ""
    type: str = "output"

    @classmethod
    def from_upload_response(cls, data: dict[str, Any]) -> "StoredImage":
        return cls(
            filename=str(data.get("name", "")),
            subfolder=str(data.get("subfolder", "") or ""),
            type=str(data.get("type", "input") or "input"),
        )

    @classmethod
    def from_output_descriptor(cls, data: dict[str, Any]) -> "StoredImage":
        return cls(
            filename=str(data.get("filename", "")),
            subfolder=str(data.get("subfolder", "") or ""),
            type=str(data.get("type", "output") or "output"),
        )

    def query_params(self) -> dict[str, str]:
        return {"filename": self.filename, "subfolder": self.subfolder, "type": self.type}


class AssetTransferClient:
    """Uploads source images and downloads generated artifacts."""

    def __init__(
        self,
        base_url: str = COMFY_API_URL,
        timeout_seconds: float = HTTP_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_seconds,
            transport=self._transport,
        )

    async def upload_image(
        self,
        content: bytes,
        filename: str,
        mime_type: str = DEFAULT_MIME_TYPE,
        overwrite: bool = True,
    ) -> StoredImage:
        """Upload raw image bytes into the backend input directory.

        Returns:
            Storage descriptor whose `filename` is the backend-side handle.
        """
        files = {"image": (filename, content, mime_type)}
        data = {"overwrite": "true" if overwrite else "false"}

        try:
            async with self._client() as client:
                response = await client.post("/upload/image", files=files, data=data)
        except httpx.RequestError as err:
            raise GenerationError(
                ErrorKind.CONNECTION_UNAVAILABLE,
                f"Could not reach the image backend at {self.base_url}: {err}",
            ) from err

        if not response.is_success:
            raise GenerationError(
                ErrorKind.UPLOAD_FAILED,
                f"Failed to upload image ({response.status_code}): {response.text}",
            )

        try:
            stored = StoredImage.from_upload_response(response.json())
        except ValueError as err:
            raise GenerationError(
                ErrorKind.UPLOAD_FAILED, "Upload response was not valid JSON"
            ) from err
        if not stored.filename:
            raise GenerationError(ErrorKind.UPLOAD_FAILED, "Upload response carried no image name")

        logger.debug("Uploaded %s as %s", filename, stored.filename)
        return stored

    async def upload_asset(self, asset: ImageAsset) -> str:
        """Upload a project asset and return its backend-side handle.

        The file is named after the asset id, so re-uploading the same asset
        overwrites the earlier copy instead of accumulating duplicates.
        """
        mime_type, content = decode_data_url(asset.content)
        filename = f"{asset.role.value}_{asset.id}.{extension_for(mime_type)}"
        stored = await self.upload_image(content, filename, mime_type=mime_type)
        return stored.filename

    async def fetch_image(self, image: StoredImage) -> tuple[str, bytes]:
        """Download a stored artifact as `(mime_type, bytes)`."""
        try:
            async with self._client() as client:
                response = await client.get("/view", params=image.query_params())
        except httpx.RequestError as err:
            raise GenerationError(
                ErrorKind.ARTIFACT_UNAVAILABLE,
                f"Could not fetch generated image {image.filename}: {err}",
            ) from err

        if not response.is_success:
            raise GenerationError(
                ErrorKind.ARTIFACT_UNAVAILABLE,
                f"Fetching generated image {image.filename} failed ({response.status_code})",
            )

        mime_type = response.headers.get("content-type", DEFAULT_MIME_TYPE).split(";")[0].strip()
        if not mime_type.startswith("image/"):
            mime_type = DEFAULT_MIME_TYPE
        return mime_type, response.content

    async def fetch_data_url(self, image: StoredImage) -> str:
        mime_type, content = await self.fetch_image(image)
        return encode_data_url(content, mime_type)
