"""Request-specific instantiation of the ControlNet workflow graph.

Architectural role:
    Maps abstract generation parameters onto the fixed template in
    `workflow_template`. No I/O happens here; the uploaded base-image handle is
    passed in by the caller.

Rewritten fields (everything else, including topology, is left as in the template):
    - latent width/height from the aspect-ratio lookup table
    - positive text = prompt + quality suffix
    - sampler seed = params.seed when locked, otherwise a fresh draw in [0, 1e9)
    - base image node = uploaded handle
    - conditioning strength = params.fidelity, passed through unchanged

The sampler node's `_meta` block additionally records style strength, preset id,
and output quality. The backend ignores `_meta`, so this does not alter the job.

Determinism:
    With `locked_seed=True` the output is identical for identical inputs. With an
    unlocked seed, pass a seeded `random.Random` to make builds reproducible.
"""

import copy
import random

from infravision.core.errors import PreconditionViolation
from infravision.core.models import GenerationParameters
from infravision.image import workflow_template as template
from infravision.prompting.prompt_builder import build_positive_prompt


ASPECT_RATIO_RESOLUTIONS = {
    "16:9": (1280, 720),
    "4:3": (1152, 896),
    "1:1": (1024, 1024),
}

SEED_UPPER_BOUND = 1_000_000_000


def resolve_resolution(aspect_ratio) -> tuple[int, int]:
    """Return `(width, height)` for a supported aspect ratio.

    Raises:
        PreconditionViolation: For ratios outside the lookup table.
    """
    key = getattr(aspect_ratio, "value", aspect_ratio)
    try:
        return ASPECT_RATIO_RESOLUTIONS[key]
    except (KeyError, TypeError):
        raise PreconditionViolation(f"Unsupported aspect ratio: {aspect_ratio!r}") from None


def resolve_seed(params: GenerationParameters, rng: random.Random | None = None) -> int:
    if params.locked_seed:
        return params.seed
    return (rng or random).randrange(SEED_UPPER_BOUND)


def build_workflow(
    prompt: str,
    base_image_handle: str,
    params: GenerationParameters,
    rng: random.Random | None = None,
) -> dict:
    """Build a submission-ready workflow graph.

    Args:
        prompt: User prompt text.
        base_image_handle: Backend-side name returned by the image upload.
        params: Generation parameters.
        rng: Optional random source for unlocked seeds.

    Returns:
        A new graph dict; the template is never modified.

    Raises:
        PreconditionViolation: Unsupported aspect ratio or missing handle.
    """
    width, height = resolve_resolution(params.aspect_ratio)
    if not base_image_handle:
        raise PreconditionViolation("A base image handle is required to build the workflow.")

    workflow = copy.deepcopy(template.WORKFLOW_TEMPLATE)

    workflow[template.POSITIVE_TEXT_NODE]["inputs"]["text"] = build_positive_prompt(prompt)

    latent = workflow[template.LATENT_NODE]["inputs"]
    latent["width"] = width
    latent["height"] = height

    sampler = workflow[template.SAMPLER_NODE]
    sampler["inputs"]["seed"] = resolve_seed(params, rng)
    sampler["_meta"].update({
        "style_strength": params.style_strength,
        "preset_id": params.preset_id,
        "output_quality": params.output_quality.value,
    })

    workflow[template.BASE_IMAGE_NODE]["inputs"]["image"] = base_image_handle
    workflow[template.CONTROLNET_APPLY_NODE]["inputs"]["strength"] = params.fidelity

    return workflow
