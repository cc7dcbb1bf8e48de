"""Graph submission and asynchronous completion tracking.

Protocol state machine:
    IDLE -> SUBSCRIBING -> SUBMITTED -> RUNNING -> DONE
    FAILED is reachable from every state after SUBSCRIBING.

Processing flow:
    1. Open the event channel for a fresh client id and wait for the handshake,
       so completion events cannot be emitted before anyone is listening.
    2. `POST /prompt` with `{client_id, prompt: <graph>}`.
    3. Read channel messages. Progress-type messages are informational; an
       `executed` message carrying images completes the job.
    4. Fetch the first output image and convert it to a data URL before
       returning, so the result survives the backend going away.

Message handling:
    - Binary frames (live previews) and non-JSON text frames are ignored.
    - Unrecognized message types are ignored.
    - Messages tagged with another job's `prompt_id` are ignored.
    - `execution_error` and `execution_interrupted` fail the job with
      `ExecutionFailed`.

Resource handling:
    The channel is closed exactly once, on both success and failure. No timeout
    is imposed here; the caller applies a ceiling when it wants one.

Instances are single-use: one client tracks one job.
"""

import asyncio
import json
import logging
import uuid
from enum import Enum
from typing import Any, Awaitable, Callable, Protocol

import httpx
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from infravision.core.errors import ErrorKind, GenerationError
from infravision.image.provider_config import (
    COMFY_API_URL,
    HTTP_TIMEOUT_SECONDS,
    websocket_url,
)
from infravision.image.transfer_client import AssetTransferClient, StoredImage


logger = logging.getLogger(__name__)

PROGRESS_EVENT_TYPES = frozenset({
    "status",
    "execution_start",
    "execution_cached",
    "executing",
    "progress",
})
COMPLETION_EVENT_TYPE = "executed"
ERROR_EVENT_TYPE = "execution_error"
INTERRUPTED_EVENT_TYPE = "execution_interrupted"


class EventChannel(Protocol):
    """Minimal duplex message channel used by the job client."""

    async def recv(self) -> str | bytes:
        ...

    async def close(self) -> None:
        ...


Connector = Callable[[str], Awaitable[EventChannel]]
ProgressCallback = Callable[[str, dict], None]


class JobState(str, Enum):
    IDLE = "IDLE"
    SUBSCRIBING = "SUBSCRIBING"
    SUBMITTED = "SUBMITTED"
    RUNNING = "RUNNING"
    DONE = "DONE"
    FAILED = "FAILED"


async def _open_websocket(url: str) -> EventChannel:
    return await websockets.connect(url, max_size=None)


class JobExecutionClient:
    """Submits one workflow graph and resolves to its first output image."""

    def __init__(
        self,
        base_url: str = COMFY_API_URL,
        transfer_client: AssetTransferClient | None = None,
        timeout_seconds: float = HTTP_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
        connect: Connector | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._transfer = transfer_client or AssetTransferClient(
            base_url=self.base_url,
            timeout_seconds=timeout_seconds,
            transport=transport,
        )
        self._connect = connect or _open_websocket
        self._on_progress = on_progress

        self.state = JobState.IDLE
        self.client_id: str | None = None
        self.prompt_id: str | None = None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_seconds,
            transport=self._transport,
        )

    async def check_connection(self) -> dict[str, Any]:
        """Liveness check against `GET /system_stats`.

        Raises:
            GenerationError: `ConnectionUnavailable` on transport failure or a
                non-2xx answer.
        """
        try:
            async with self._client() as client:
                response = await client.get("/system_stats")
        except httpx.RequestError as err:
            raise GenerationError(
                ErrorKind.CONNECTION_UNAVAILABLE,
                f"Cannot connect to the image backend at {self.base_url}. "
                "Make sure the service is running and reachable.",
            ) from err

        if not response.is_success:
            raise GenerationError(
                ErrorKind.CONNECTION_UNAVAILABLE,
                f"Image backend at {self.base_url} answered {response.status_code} to the health check.",
            )

        try:
            return response.json()
        except ValueError:
            return {}

    async def execute(self, graph: dict) -> str:
        """Run `graph` to completion and return the first output as a data URL.

        Raises:
            GenerationError: On any protocol failure; `state` is FAILED afterwards.
            RuntimeError: If this client already ran a job.
        """
        if self.state is not JobState.IDLE:
            raise RuntimeError("JobExecutionClient instances track a single job")

        self.client_id = f"client_{uuid.uuid4().hex}"
        self.state = JobState.SUBSCRIBING

        try:
            channel = await self._connect(websocket_url(self.base_url, self.client_id))
        except (OSError, asyncio.TimeoutError, WebSocketException) as err:
            self.state = JobState.FAILED
            raise GenerationError(
                ErrorKind.TRANSPORT_ERROR, f"WebSocket connection error: {err}"
            ) from err

        try:
            await self._submit(graph)
            output = await self._await_output(channel)
            result = await self._transfer.fetch_data_url(output)
        except BaseException:
            self.state = JobState.FAILED
            raise
        finally:
            await self._close(channel)

        self.state = JobState.DONE
        logger.info("Job %s finished with %s", self.prompt_id, output.filename)
        return result

    async def _submit(self, graph: dict) -> None:
        body = {"client_id": self.client_id, "prompt": graph}
        try:
            async with self._client() as client:
                response = await client.post("/prompt", json=body)
        except httpx.RequestError as err:
            raise GenerationError(
                ErrorKind.CONNECTION_UNAVAILABLE, f"Failed to queue prompt: {err}"
            ) from err

        if not response.is_success:
            raise GenerationError(
                ErrorKind.SUBMISSION_REJECTED,
                f"Failed to queue prompt ({response.status_code}): {response.text}",
            )

        try:
            data = response.json()
        except ValueError:
            data = {}
        self.prompt_id = data.get("prompt_id") if isinstance(data, dict) else None
        self.state = JobState.SUBMITTED
        logger.info("Queued prompt %s for %s", self.prompt_id, self.client_id)

    async def _await_output(self, channel: EventChannel) -> StoredImage:
        while True:
            try:
                raw = await channel.recv()
            except ConnectionClosed as err:
                raise GenerationError(
                    ErrorKind.TRANSPORT_ERROR,
                    f"WebSocket closed before the job completed: {err}",
                ) from err
            except (OSError, WebSocketException) as err:
                raise GenerationError(
                    ErrorKind.TRANSPORT_ERROR, f"WebSocket Connection Error: {err}"
                ) from err

            message = _parse_message(raw)
            if message is None:
                continue

            msg_type, data = message
            job_id = data.get("prompt_id")
            if self.prompt_id and job_id and job_id != self.prompt_id:
                continue

            if msg_type in PROGRESS_EVENT_TYPES:
                self.state = JobState.RUNNING
                logger.debug("Job %s progress: %s", self.prompt_id, msg_type)
                if self._on_progress is not None:
                    self._on_progress(msg_type, data)
                continue

            if msg_type == ERROR_EVENT_TYPE:
                detail = data.get("exception_message") or "Backend reported an execution error"
                raise GenerationError(ErrorKind.EXECUTION_FAILED, str(detail).strip())

            if msg_type == INTERRUPTED_EVENT_TYPE:
                raise GenerationError(ErrorKind.EXECUTION_FAILED, "Execution interrupted")

            if msg_type == COMPLETION_EVENT_TYPE:
                output = data.get("output") or {}
                images = output.get("images") if isinstance(output, dict) else None
                if images:
                    return StoredImage.from_output_descriptor(images[0])
                continue

            logger.debug("Ignoring channel message of type %r", msg_type)

    async def _close(self, channel: EventChannel) -> None:
        try:
            await channel.close()
        except (OSError, WebSocketException):
            logger.debug("Channel close raised", exc_info=True)


def _parse_message(raw: str | bytes) -> tuple[str, dict] | None:
    """Return `(type, data)` for JSON envelopes, `None` for anything else."""
    if isinstance(raw, (bytes, bytearray)):
        return None
    try:
        envelope = json.loads(raw)
    except ValueError:
        logger.debug("Ignoring non-JSON channel frame")
        return None
    if not isinstance(envelope, dict):
        return None
    data = envelope.get("data")
    return str(envelope.get("type", "")), data if isinstance(data, dict) else {}
