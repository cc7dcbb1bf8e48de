"""Generation provider capability and its two backend variants.

Architectural role:
    `GenerationProvider` is the single operation the session layer depends on:
    `generate(prompt, base_image, style_images, params, mask) -> data URL`.
    Which variant runs is decided once, by configuration, in
    `infravision.image.service.create_provider`.

Variants:
    - `ComfyGraphProvider`: preflight -> upload base image -> build workflow graph
      -> submit and track the job -> fetch the artifact.
    - `GeminiImageProvider`: one multimodal `generateContent` round trip with the
      base/style images as inline parts followed by an augmented text prompt.

Contract:
    - A missing base image, more than three style images, or an unsupported
      aspect ratio is rejected with `PreconditionViolation` before I/O.
    - `check_connection()` is the health check used on reconnect by the session layer.
    - Inputs are never mutated.
    - Every failure is raised as `GenerationError`.
    - Providers hold configuration only; each call builds its own clients, so a
      provider instance is re-entrant.

Mask handling:
    Neither variant consumes the mask yet; it is accepted for interface
    compatibility and logged at debug level.
"""

import logging
import random
from typing import Any, Protocol, Sequence

import httpx

from infravision.core.errors import ErrorKind, GenerationError, PreconditionViolation
from infravision.core.models import GenerationParameters, ImageAsset
from infravision.image.encoding import decode_data_url
from infravision.image.job_client import Connector, JobExecutionClient, ProgressCallback
from infravision.image.provider_config import (
    COMFY_API_URL,
    GEMINI_IMAGE_MODEL,
    GEMINI_URL_TEMPLATE,
    HTTP_TIMEOUT_SECONDS,
    IMAGE_PROVIDERS,
    load_key,
)
from infravision.image.transfer_client import AssetTransferClient
from infravision.image.workflow_builder import build_workflow, resolve_resolution
from infravision.prompting.prompt_builder import augment_prompt


logger = logging.getLogger(__name__)

MAX_STYLE_IMAGES = 3

_AUTHORIZATION_MARKERS = ("API key", "Permission denied", "Requested entity was not found")


class GenerationProvider(Protocol):
    """Capability shared by every image-generation backend."""

    async def generate(
        self,
        prompt: str,
        base_image: ImageAsset,
        style_images: Sequence[ImageAsset],
        params: GenerationParameters,
        mask: str | None = None,
    ) -> str:
        """Return the generated image as a self-contained data URL."""
        ...

    async def check_connection(self) -> None:
        """Raise `GenerationError` when the backend cannot be used right now."""
        ...


def _check_inputs(
    base_image: ImageAsset | None,
    style_images: Sequence[ImageAsset],
    params: GenerationParameters,
) -> None:
    if base_image is None:
        raise PreconditionViolation("A base image is required before generating.")
    if len(style_images) > MAX_STYLE_IMAGES:
        raise PreconditionViolation(
            f"At most {MAX_STYLE_IMAGES} style images are supported, got {len(style_images)}."
        )
    resolve_resolution(params.aspect_ratio)


class ComfyGraphProvider:
    """Graph-engine variant backed by a ComfyUI-compatible server."""

    def __init__(
        self,
        base_url: str = COMFY_API_URL,
        timeout_seconds: float = HTTP_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
        connect: Connector | None = None,
        rng: random.Random | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._connect = connect
        self._rng = rng
        self._on_progress = on_progress

    def _job_client(self, transfer: AssetTransferClient) -> JobExecutionClient:
        return JobExecutionClient(
            base_url=self.base_url,
            transfer_client=transfer,
            timeout_seconds=self.timeout_seconds,
            transport=self._transport,
            connect=self._connect,
            on_progress=self._on_progress,
        )

    def _transfer_client(self) -> AssetTransferClient:
        return AssetTransferClient(
            base_url=self.base_url,
            timeout_seconds=self.timeout_seconds,
            transport=self._transport,
        )

    async def check_connection(self) -> None:
        """Health check against `GET /system_stats`; raises `ConnectionUnavailable` on failure."""
        await self._job_client(self._transfer_client()).check_connection()

    async def generate(
        self,
        prompt: str,
        base_image: ImageAsset,
        style_images: Sequence[ImageAsset],
        params: GenerationParameters,
        mask: str | None = None,
    ) -> str:
        """Run the ControlNet workflow for one request.

        Ordering:
            preflight -> upload -> build -> subscribe -> submit -> completion ->
            fetch. A failed preflight stops before any upload or submission.

        Style images and the mask are not wired into the workflow graph.
        """
        _check_inputs(base_image, style_images, params)
        if mask:
            logger.debug("Mask supplied; the graph workflow does not consume masks")

        transfer = self._transfer_client()
        jobs = self._job_client(transfer)

        await jobs.check_connection()
        handle = await transfer.upload_asset(base_image)
        graph = build_workflow(prompt, handle, params, rng=self._rng)
        return await jobs.execute(graph)


class GeminiImageProvider:
    """Single-call variant using the Gemini `generateContent` REST endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = GEMINI_IMAGE_MODEL,
        url_template: str = GEMINI_URL_TEMPLATE,
        timeout_seconds: float = HTTP_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self.model = model
        self.url_template = url_template
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    def _resolve_key(self) -> str | None:
        if self._api_key:
            return self._api_key
        return load_key(IMAGE_PROVIDERS["gemini"]["key_file"])

    async def check_connection(self) -> None:
        """Require a credential; the hosted endpoint itself is not contacted."""
        if not self._resolve_key():
            raise _missing_key_error()

    def build_payload(
        self,
        prompt: str,
        base_image: ImageAsset,
        style_images: Sequence[ImageAsset],
        params: GenerationParameters,
    ) -> dict[str, Any]:
        """Assemble the request body: image parts first, then the text part."""
        parts: list[dict[str, Any]] = []

        for asset in (base_image, *style_images):
            mime_type, _ = decode_data_url(asset.content)
            parts.append({
                "inlineData": {
                    "mimeType": mime_type,
                    "data": asset.content.split(",", 1)[1],
                }
            })

        parts.append({"text": augment_prompt(prompt, params)})

        return {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {"responseModalities": ["TEXT", "IMAGE"]},
        }

    async def generate(
        self,
        prompt: str,
        base_image: ImageAsset,
        style_images: Sequence[ImageAsset],
        params: GenerationParameters,
        mask: str | None = None,
    ) -> str:
        """Send one multimodal request and return the first inline image.

        Failure handling:
            - No credential, 401/403, or credential-related messages ->
              `AuthorizationInvalid`.
            - Other non-2xx answers -> `SubmissionRejected`.
            - Transport failures -> `ConnectionUnavailable`.
            - No inline image in the answer -> `ModelReturnedNoImage`.
        """
        _check_inputs(base_image, style_images, params)
        if mask:
            logger.debug("Mask supplied; the single-call model does not consume masks")

        api_key = self._resolve_key()
        if not api_key:
            raise _missing_key_error()

        payload = self.build_payload(prompt, base_image, style_images, params)
        headers = {
            "x-goog-api-key": api_key,
            "Content-Type": "application/json",
        }
        url = self.url_template.format(model=self.model)

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(url, json=payload, headers=headers)
        except httpx.RequestError as err:
            raise GenerationError(
                ErrorKind.CONNECTION_UNAVAILABLE, f"Gemini request failed: {err}"
            ) from err

        if not response.is_success:
            raise _classify_http_failure(response)

        try:
            data = response.json()
        except ValueError as err:
            raise GenerationError(
                ErrorKind.MODEL_RETURNED_NO_IMAGE, "Gemini returned a non-JSON response."
            ) from err

        return _extract_image(data)


def _missing_key_error() -> GenerationError:
    return GenerationError(
        ErrorKind.AUTHORIZATION_INVALID,
        "Gemini API key is missing. Reconnect the project to select a key.",
    )


def _classify_http_failure(response: httpx.Response) -> GenerationError:
    text = response.text
    if response.status_code in (401, 403) or any(marker in text for marker in _AUTHORIZATION_MARKERS):
        return GenerationError(
            ErrorKind.AUTHORIZATION_INVALID,
            f"API key is invalid or not enabled ({response.status_code}). Reconnect the project.",
        )
    return GenerationError(
        ErrorKind.SUBMISSION_REJECTED,
        f"Generation failed ({response.status_code}): {text}",
    )


def _extract_image(data: dict[str, Any]) -> str:
    """Return the first inline image part as a data URL."""
    texts: list[str] = []

    for candidate in data.get("candidates") or []:
        content = candidate.get("content") or {}
        for part in content.get("parts") or []:
            inline = part.get("inlineData") or part.get("inline_data")
            if inline and inline.get("data"):
                mime_type = inline.get("mimeType") or inline.get("mime_type") or "image/png"
                return f"data:{mime_type};base64,{inline['data']}"
            if part.get("text"):
                texts.append(str(part["text"]).strip())

    if texts:
        logger.warning("Model returned text instead of an image")
        raise GenerationError(
            ErrorKind.MODEL_RETURNED_NO_IMAGE,
            "The model only returned a text description and no image: " + " ".join(texts),
        )
    raise GenerationError(ErrorKind.MODEL_RETURNED_NO_IMAGE, "No image data received from API.")
