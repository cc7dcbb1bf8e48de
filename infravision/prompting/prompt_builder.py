"""Prompt assembly for both generation backends.

Architectural role:
    - Graph engine: appends a fixed quality suffix to the positive text node.
    - Single-call multimodal model: folds tunable parameters into natural-language
      qualifiers, since that backend has no explicit conditioning weights.

Determinism:
    Pure string assembly; identical inputs yield identical prompts.
"""

from infravision.core.models import GenerationParameters


QUALITY_SUFFIX = ", highly detailed, 8k, photorealistic"

HIGH_FIDELITY_THRESHOLD = 0.7
HIGH_STYLE_THRESHOLD = 0.6

FIDELITY_QUALIFIER = " (Strictly follow the structure and geometry of the input image)."
STYLE_QUALIFIER = " (Strongly apply the artistic style, dramatic lighting, high contrast)."


def build_positive_prompt(prompt: str) -> str:
    """Return the positive text for the workflow graph."""
    return f"{prompt}{QUALITY_SUFFIX}"


def augment_prompt(prompt: str, params: GenerationParameters) -> str:
    """Fold fidelity and style strength into qualifiers for the single-call model.

    Args:
        prompt: User prompt text.
        params: Submitted generation parameters.

    Returns:
        Prompt with zero, one, or two qualifiers appended, fidelity first.

    Edge cases:
        Thresholds are strict: fidelity exactly 0.7 or style exactly 0.6 add
        nothing.
    """
    augmented = prompt

    if params.fidelity > HIGH_FIDELITY_THRESHOLD:
        augmented += FIDELITY_QUALIFIER

    if params.style_strength > HIGH_STYLE_THRESHOLD:
        augmented += STYLE_QUALIFIER

    return augmented
