"""Provider/runtime configuration for the image-generation layer.

Architectural role:
    Centralizes backend selection, endpoint URLs, timeouts, and credential lookup
    for `infravision.image.service` and the provider clients.

Generation flow integration:
    - `service.create_provider` consumes `IMAGE_PROVIDER` and `IMAGE_PROVIDERS`.
    - `transfer_client` / `job_client` default to `COMFY_API_URL`.
    - `providers.GeminiImageProvider` consumes the Gemini URL template, model, and
      key resolution.
    - `core.engine.GenerationSession` consumes `GENERATION_TIMEOUT_SECONDS`.

Determinism:
    Deterministic for a fixed process environment and key files. Values are resolved
    at import time (plus runtime key-file reads in `load_key`).

Failure behavior:
    Missing key material is represented as `None`; providers translate that into an
    `AuthorizationInvalid` failure.
"""

import os
from dotenv import load_dotenv

load_dotenv()


def _optional_float(name):
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    value = float(raw)
    return value if value > 0 else None


# Backend selection: "comfyui" (graph engine) or "gemini" (single multimodal call).
IMAGE_PROVIDER = os.getenv("IMAGE_PROVIDER", "comfyui").strip().lower()

COMFY_API_URL = os.getenv("COMFY_API_URL", "http://127.0.0.1:8188").rstrip("/")

GEMINI_IMAGE_MODEL = os.getenv("GEMINI_IMAGE_MODEL", "gemini-2.5-flash-image")

GEMINI_URL_TEMPLATE = (
    "https://generativelanguage.googleapis.com/v1beta/models/"
    "{model}:generateContent"
)

HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "120"))

# Caller-side ceiling for one generate call; None disables it.
GENERATION_TIMEOUT_SECONDS = _optional_float("GENERATION_TIMEOUT_SECONDS")

IMAGE_PROVIDERS = {

    "comfyui": {
        "url": COMFY_API_URL,
        "key_file": None
    },

    "gemini": {
        "url": GEMINI_URL_TEMPLATE,
        "key_file": "config/gemini.key"
    }

}


def load_key(path):
    """Load API key from environment override or key file.

    Resolution order:
        1. Environment variable inferred from file stem (for example
           `config/gemini.key` -> `GEMINI_API_KEY`).
        2. Raw file contents at `path`.

    Args:
        path: Configured key file path or `None`.

    Returns:
        Key string or `None` when not available.

    Edge cases:
        - `None` path returns `None`.
        - Missing or empty file returns `None`.
    """
    if not path:
        return None
    key_name = os.path.splitext(os.path.basename(path))[0].upper() + "_API_KEY"
    env_value = os.getenv(key_name)
    if env_value:
        return env_value
    if not os.path.exists(path):
        return None
    with open(path, "r") as f:
        return f.read().strip() or None


def websocket_url(base_url, client_id):
    """Derive the event-channel URL for `client_id` from an HTTP base URL."""
    if base_url.startswith("https://"):
        ws_base = "wss://" + base_url[len("https://"):]
    elif base_url.startswith("http://"):
        ws_base = "ws://" + base_url[len("http://"):]
    else:
        ws_base = base_url
    return f"{ws_base.rstrip('/')}/ws?clientId={client_id}"
