"""
HTTP API adapter exposing the generation core to a presentation layer.

Architectural role:
- Expose the project read model, asset upload, generation submission, history
  navigation, presets, and session state over JSON.
- Enforce adapter-level input validation via pydantic request schemas.
- Delegate every state change to `GenerationSession` / `ProjectStore`.

Endpoint responsibilities:
- `GET /project`: project read model (asset metadata only, no payloads).
- `POST /assets`, `GET /assets/{id}`: upload and read image assets (data URLs).
- `POST /generations`: fire-and-forget submission; answers 202 with the pending
  version while the provider runs in the background.
- `GET|PUT /versions/active`, `POST /versions/{id}/favorite`: history browsing.
- `GET /presets`, `POST /presets/{id}/apply`: municipal preset templates.
- `GET /session`, `POST /session/connect`: connection flag and in-flight state.

Error handling strategy:
- `PreconditionViolation` -> HTTP 400.
- `GenerationInProgress` -> HTTP 409.
- `InvalidTransition` (unknown version) -> HTTP 404.
- Other `GenerationError` (reconnect health check failed) -> HTTP 503.
- Generation failures never surface here; they are recorded on the version.

Side effects:
- Loads environment variables at import time via `load_dotenv()`.
- Emits request debug logs only when `DEBUG == "true"`.
"""

from dotenv import load_dotenv

load_dotenv()

import logging
import os

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from infravision.core.engine import GenerationSession
from infravision.core.errors import (
    GenerationError,
    GenerationInProgress,
    InvalidTransition,
    PreconditionViolation,
)
from infravision.core.models import (
    AspectRatio,
    AssetRole,
    GenerationParameters,
    GenerationRequest,
    OutputQuality,
)
from infravision.core.store import ProjectStore
from infravision.image.service import create_provider
from infravision.prompting.presets import MUNICIPAL_PRESETS, apply_preset


logger = logging.getLogger(__name__)

# Sensitive request debug logging is opt-in.
DEBUG = os.getenv("DEBUG") == "true"


# ============================================================
# Request Schemas
# ============================================================

class ParamsBody(BaseModel):
    aspect_ratio: str = AspectRatio.WIDE.value
    fidelity: float = Field(0.8, ge=0.0, le=1.0)
    style_strength: float = Field(0.5, ge=0.0, le=1.0)
    seed: int = 42
    locked_seed: bool = False
    preset_id: str | None = None
    output_quality: OutputQuality = OutputQuality.SPEED

    def to_params(self) -> GenerationParameters:
        return GenerationParameters(**self.model_dump())


class AssetBody(BaseModel):
    content: str
    role: AssetRole = AssetRole.BASE


class GenerationBody(BaseModel):
    prompt: str = ""
    base_image_id: str | None = None
    style_image_ids: list[str] = Field(default_factory=list)
    params: ParamsBody = Field(default_factory=ParamsBody)
    mask: str | None = None


class ActiveVersionBody(BaseModel):
    version_id: str | None = None


# ============================================================
# App Factory
# ============================================================

def create_app(session: GenerationSession | None = None) -> FastAPI:
    """
    Build the FastAPI application around one generation session.

    When no session is given, a fresh project store is paired with the provider
    selected by `IMAGE_PROVIDER`.
    """
    if session is None:
        session = GenerationSession(ProjectStore(), create_provider())

    api = FastAPI(title="Infravision")
    api.state.session = session
    store = session.store

    @api.exception_handler(GenerationInProgress)
    async def _busy(request: Request, exc: GenerationInProgress):
        return JSONResponse(status_code=409, content={"error": str(exc)})

    @api.exception_handler(PreconditionViolation)
    async def _precondition(request: Request, exc: PreconditionViolation):
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @api.exception_handler(InvalidTransition)
    async def _unknown(request: Request, exc: InvalidTransition):
        return JSONResponse(status_code=404, content={"error": str(exc)})

    @api.exception_handler(GenerationError)
    async def _backend(request: Request, exc: GenerationError):
        return JSONResponse(
            status_code=503,
            content={"error": str(exc), "kind": exc.kind.value},
        )

    # ------------------------------------------------------------
    # Project read model
    # ------------------------------------------------------------

    @api.get("/project")
    def get_project():
        project = store.project
        result = store.result_asset
        return {
            **project.to_dict(),
            "result_asset_id": result.id if result else None,
        }

    # ------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------

    @api.post("/assets", status_code=201)
    def upload_asset(body: AssetBody):
        if body.role is AssetRole.GENERATED:
            raise PreconditionViolation("Generated assets are created by the generation flow only.")
        asset = store.add_asset(body.content, body.role)
        if DEBUG:
            logger.info("Stored %s asset %s", asset.role.value, asset.id)
        return asset.to_dict()

    @api.get("/assets/{asset_id}")
    def get_asset(asset_id: str):
        asset = store.get_asset(asset_id)
        if asset is None:
            return JSONResponse(status_code=404, content={"error": "Unknown asset"})
        return asset.to_dict(include_content=True)

    # ------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------

    @api.post("/generations", status_code=202)
    async def submit_generation(body: GenerationBody):
        request = GenerationRequest(
            prompt=body.prompt,
            base_image_id=body.base_image_id,
            params=body.params.to_params(),
            style_image_ids=tuple(body.style_image_ids),
            mask=body.mask,
        )
        if DEBUG:
            logger.info(
                "Generation request: base=%s styles=%s params=%s",
                request.base_image_id,
                list(request.style_image_ids),
                request.params.to_dict(),
            )
        version, _ = session.start_generation(request)
        return version.to_dict()

    # ------------------------------------------------------------
    # History navigation
    # ------------------------------------------------------------

    @api.get("/versions/active")
    def get_active_version():
        version = store.active_version
        result = store.result_asset
        return {
            "version": version.to_dict() if version else None,
            "result_asset_id": result.id if result else None,
        }

    @api.put("/versions/active")
    def set_active_version(body: ActiveVersionBody):
        project = store.set_active_version(body.version_id)
        return {"active_version_id": project.active_version_id}

    @api.post("/versions/{version_id}/favorite")
    def toggle_favorite(version_id: str):
        return store.toggle_favorite(version_id).to_dict()

    # ------------------------------------------------------------
    # Presets
    # ------------------------------------------------------------

    @api.get("/presets")
    def list_presets():
        return [preset.to_dict() for preset in MUNICIPAL_PRESETS]

    @api.post("/presets/{preset_id}/apply")
    def use_preset(preset_id: str, body: ParamsBody | None = None):
        params = (body or ParamsBody()).to_params()
        prompt, updated = apply_preset(preset_id, params)
        return {"prompt": prompt, "params": updated.to_dict()}

    # ------------------------------------------------------------
    # Session
    # ------------------------------------------------------------

    @api.get("/session")
    def get_session():
        return {"connected": session.connected, "generating": session.is_generating}

    @api.post("/session/connect")
    async def connect():
        await session.reconnect()
        return {"connected": session.connected}

    return api


app = create_app()
