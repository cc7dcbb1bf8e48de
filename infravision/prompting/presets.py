"""Municipal infrastructure preset templates.

Each preset supplies a prompt template, the backend style names it was tuned with,
and default parameter overrides. Applying a preset never mutates the caller's
parameters; it returns a new value with `preset_id` set.
"""

from dataclasses import dataclass, field, replace
from typing import Any

from infravision.core.errors import PreconditionViolation
from infravision.core.models import GenerationParameters


@dataclass(frozen=True)
class Preset:
    id: str
    category: str
    name: str
    prompt_template: str
    styles: tuple[str, ...] = ()
    default_params: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "category": self.category,
            "name": self.name,
            "prompt_template": self.prompt_template,
            "styles": list(self.styles),
            "default_params": dict(self.default_params),
        }


MUNICIPAL_PRESETS = (
    Preset(
        id="road-urban-arterial",
        category="Road",
        name="城市主干路 (日景)",
        prompt_template=(
            "photorealistic urban arterial road, 6 lanes, asphalt pavement, crisp white "
            "thermoplastic lane markings, median strip with manicured low shrubs, modern "
            "LED streetlights, clear blue sky, city skyline in background, 4k "
            "visualization, cinematic lighting"
        ),
        styles=("Fooocus V2", "Fooocus Photograph", "MRE Cinematic Dynamic"),
        default_params={"fidelity": 0.8, "style_strength": 0.6},
    ),
    Preset(
        id="bridge-highway",
        category="Bridge",
        name="高架桥/立交 (工程风)",
        prompt_template=(
            "concrete highway viaduct, precast box girder structure, clean concrete "
            "texture, safety crash barriers, smooth asphalt deck, soft sunlight, highly "
            "detailed engineering structure, aerial view, architectural photography"
        ),
        styles=("Fooocus V2", "Fooocus Sharp", "SAI 3D Model"),
        default_params={"fidelity": 0.9, "style_strength": 0.4},
    ),
    Preset(
        id="street-scape",
        category="Landscape",
        name="街道景观提升 (人视)",
        prompt_template=(
            "urban streetscape renovation, permeable paver sidewalks, granite "
            "curbstones, mature street trees providing canopy, pedestrian friendly "
            "furniture, vibrant commercial frontage, warm morning lighting, depth of field"
        ),
        styles=("Fooocus V2", "Fooocus Masterpiece", "Ads Luxury"),
        default_params={"fidelity": 0.7, "style_strength": 0.7},
    ),
    Preset(
        id="tunnel-interior",
        category="Tunnel",
        name="隧道内部 (现代)",
        prompt_template=(
            "modern tunnel interior, fire-resistant wall cladding, LED strip lighting, "
            "emergency signage, asphalt road surface, cinematic lighting, vanishing "
            "point perspective, hyperrealistic"
        ),
        styles=("Fooocus V2", "Fooocus Futuristic", "MRE Cinematic Dynamic"),
        default_params={"fidelity": 0.85, "style_strength": 0.5},
    ),
)

_PRESETS_BY_ID = {preset.id: preset for preset in MUNICIPAL_PRESETS}


def get_preset(preset_id: str) -> Preset:
    try:
        return _PRESETS_BY_ID[preset_id]
    except KeyError:
        raise PreconditionViolation(f"Unknown preset: {preset_id}") from None


def apply_preset(
    preset_id: str, params: GenerationParameters
) -> tuple[str, GenerationParameters]:
    """Return the preset prompt and `params` with the preset overrides applied."""
    preset = get_preset(preset_id)
    return preset.prompt_template, replace(params, preset_id=preset.id, **preset.default_params)
