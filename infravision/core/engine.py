"""Generation session: the core surface consumed by the presentation layer.

Architectural role:
    Connects one `ProjectStore` to one injected `GenerationProvider` and
    reconciles each provider outcome into the version history.

Control-flow model (one submission):
    1. Validate the request against the current snapshot (no mutation on failure).
    2. Resolve the seed (unlocked seeds are drawn here), append a GENERATING
       version carrying it, and make it active, synchronously.
    3. Schedule the provider call as one asyncio task.
    4. Success -> COMPLETED with a new generated asset.
       `GenerationError` -> FAILED with its detail.
       Any other exception -> logged, FAILED with its message.
       Cancellation -> FAILED ("Generation cancelled"), then re-raised.

Concurrency policy:
    At most one generation is outstanding per session. A second submission while
    one is running is rejected with `GenerationInProgress`.

Session state:
    `connected` drops to False when a provider reports `AuthorizationInvalid`, so
    the presentation layer can force re-authentication. `reconnect()` checks the
    provider before raising the flag again. Other failure kinds only affect their
    own version.

Known limitation:
    Cancelling the task does not cancel the backend job; the backend keeps running
    with nobody listening.
"""

import asyncio
import logging
import random
from dataclasses import replace

from infravision.core.errors import (
    ErrorKind,
    GenerationError,
    GenerationInProgress,
    PreconditionViolation,
)
from infravision.core.models import AssetRole, GenerationRequest, ImageAsset, ProjectVersion
from infravision.core.store import ProjectStore
from infravision.image.provider_config import GENERATION_TIMEOUT_SECONDS
from infravision.image.providers import MAX_STYLE_IMAGES, GenerationProvider
from infravision.image.workflow_builder import resolve_resolution, resolve_seed


logger = logging.getLogger(__name__)

BASE_IMAGE_ROLES = (AssetRole.BASE, AssetRole.GENERATED)
CANCELLED_MESSAGE = "Generation cancelled"


class GenerationSession:
    """Drives generations for one project and one provider."""

    def __init__(
        self,
        store: ProjectStore,
        provider: GenerationProvider,
        timeout_seconds: float | None = GENERATION_TIMEOUT_SECONDS,
        rng: random.Random | None = None,
    ) -> None:
        self.store = store
        self.provider = provider
        self.timeout_seconds = timeout_seconds
        self.connected = True
        self._rng = rng
        self._task: asyncio.Task | None = None

    @property
    def is_generating(self) -> bool:
        return self._task is not None and not self._task.done()

    async def reconnect(self) -> None:
        """Check the provider and mark the session connected when it answers.

        Raises:
            GenerationError: The check failed; `connected` stays False.
        """
        try:
            await self.provider.check_connection()
        except GenerationError as error:
            self.connected = False
            logger.warning("Reconnect failed (%s): %s", error.kind.value, error.detail)
            raise
        self.connected = True

    def start_generation(
        self, request: GenerationRequest
    ) -> tuple[ProjectVersion, "asyncio.Task[ProjectVersion]"]:
        """Validate, record the pending version, and schedule the provider call.

        Must be called from a running event loop.

        Returns:
            The GENERATING version and the task resolving to its final state.

        Raises:
            PreconditionViolation: Invalid request; the project is unchanged.
            GenerationInProgress: Another generation is still outstanding.
        """
        if self.is_generating:
            raise GenerationInProgress()

        base_asset, style_assets = self._resolve_assets(request)
        resolve_resolution(request.params.aspect_ratio)
        loop = asyncio.get_running_loop()

        # The drawn seed is stored on the version so unlocked results can be replayed.
        params = replace(request.params, seed=resolve_seed(request.params, self._rng))
        version = self.store.begin_generation(
            base_asset.id,
            request.prompt,
            params,
            style_image_ids=[asset.id for asset in style_assets],
        )
        logger.info("Started generation %s (parent=%s)", version.id, version.parent_id)

        self._task = loop.create_task(
            self._run(version, request, base_asset, style_assets)
        )
        return version, self._task

    async def submit_generation(self, request: GenerationRequest) -> ProjectVersion:
        """Run one generation to its terminal state and return the final version."""
        _, task = self.start_generation(request)
        return await task

    def _resolve_assets(
        self, request: GenerationRequest
    ) -> tuple[ImageAsset, list[ImageAsset]]:
        project = self.store.project

        if not request.base_image_id:
            raise PreconditionViolation("A base image is required before generating.")
        base_asset = project.assets.get(request.base_image_id)
        if base_asset is None:
            raise PreconditionViolation(f"Unknown base image: {request.base_image_id}")
        if base_asset.role not in BASE_IMAGE_ROLES:
            raise PreconditionViolation(
                f"Asset {base_asset.id} has role {base_asset.role.value} and cannot be a base image."
            )

        if len(request.style_image_ids) > MAX_STYLE_IMAGES:
            raise PreconditionViolation(
                f"At most {MAX_STYLE_IMAGES} style images are supported."
            )
        style_assets = []
        for asset_id in request.style_image_ids:
            asset = project.assets.get(asset_id)
            if asset is None:
                raise PreconditionViolation(f"Unknown style image: {asset_id}")
            style_assets.append(asset)

        return base_asset, style_assets

    async def _run(
        self,
        version: ProjectVersion,
        request: GenerationRequest,
        base_asset: ImageAsset,
        style_assets: list[ImageAsset],
    ) -> ProjectVersion:
        call = self.provider.generate(
            request.prompt,
            base_asset,
            style_assets,
            replace(version.params, locked_seed=True),
            request.mask,
        )

        try:
            if self.timeout_seconds:
                content = await asyncio.wait_for(call, self.timeout_seconds)
            else:
                content = await call
        except asyncio.CancelledError:
            self.store.fail_generation(version.id, CANCELLED_MESSAGE)
            raise
        except asyncio.TimeoutError:
            error = GenerationError(
                ErrorKind.TIMED_OUT,
                f"Generation did not finish within {self.timeout_seconds:g} seconds.",
            )
            return self._record_failure(version, error)
        except GenerationError as error:
            return self._record_failure(version, error)
        except Exception as err:
            logger.exception("Generation %s failed unexpectedly", version.id)
            return self.store.fail_generation(version.id, str(err) or type(err).__name__)

        try:
            self.store.complete_generation(version.id, content)
        except PreconditionViolation as error:
            return self._record_failure(version, error)

        logger.info("Generation %s completed", version.id)
        return self.store.get_version(version.id)

    def _record_failure(self, version: ProjectVersion, error: GenerationError) -> ProjectVersion:
        logger.warning(
            "Generation %s failed (%s): %s", version.id, error.kind.value, error.detail
        )
        if error.kind is ErrorKind.AUTHORIZATION_INVALID:
            self.connected = False
        return self.store.fail_generation(version.id, str(error))
