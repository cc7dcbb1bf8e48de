"""Provider factory used by the session layer and HTTP adapter.

Role in pipeline:
    - Reads the configured backend name (`IMAGE_PROVIDER`).
    - Instantiates the matching `GenerationProvider` variant.
    - Callers receive the provider as an injected dependency; no other module
      branches on the backend name.

Error handling strategy:
    - Unknown provider names raise `ValueError` at construction time.
"""

from infravision.image.provider_config import IMAGE_PROVIDER, IMAGE_PROVIDERS
from infravision.image.providers import (
    ComfyGraphProvider,
    GeminiImageProvider,
    GenerationProvider,
)


_PROVIDER_FACTORIES = {
    "comfyui": lambda **kwargs: ComfyGraphProvider(
        base_url=IMAGE_PROVIDERS["comfyui"]["url"], **kwargs
    ),
    "gemini": lambda **kwargs: GeminiImageProvider(**kwargs),
}


def create_provider(name: str | None = None, **kwargs) -> GenerationProvider:
    """Create the generation provider selected by configuration.

    Args:
        name: Provider name; defaults to `IMAGE_PROVIDER`.
        **kwargs: Forwarded to the provider constructor (timeouts, transports).

    Returns:
        A ready-to-use provider instance.
    """
    provider_name = (name or IMAGE_PROVIDER).strip().lower()
    factory = _PROVIDER_FACTORIES.get(provider_name)
    if factory is None:
        raise ValueError(f"Unknown image provider: {provider_name}")
    return factory(**kwargs)
