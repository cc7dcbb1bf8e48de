"""Data contracts for projects, versions, assets, and generation parameters.

Architectural role:
    Defines the immutable records owned by `infravision.core.store.ProjectStore`
    and consumed by generation providers and the HTTP adapter.

Ownership model:
    - `Project` is the aggregate root. It owns its versions and its asset table.
    - Versions reference assets by id only; assets are never duplicated.
    - `parent_id` is a non-owning back-reference forming a history tree.

Mutability:
    All records are frozen dataclasses. State changes are expressed by building a
    new record with `dataclasses.replace` and swapping the whole `Project`
    snapshot inside the store.
"""

import time
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping

from infravision.core.errors import PreconditionViolation


def new_id() -> str:
    """Return a short random identifier for assets, versions, and projects."""
    return uuid.uuid4().hex[:12]


def now_ms() -> int:
    return int(time.time() * 1000)


class AssetRole(str, Enum):
    BASE = "base"
    STYLE = "style"
    GENERATED = "generated"
    MASK = "mask"


class AspectRatio(str, Enum):
    """Aspect ratios with a fixed target resolution in the workflow graph."""

    WIDE = "16:9"
    STANDARD = "4:3"
    SQUARE = "1:1"


class OutputQuality(str, Enum):
    SPEED = "Speed"
    QUALITY = "Quality"


class GenerationStatus(str, Enum):
    GENERATING = "GENERATING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class ImageAsset:
    """Immutable image payload stored in the project asset table.

    Attributes:
        id: Asset identifier, unique within a project.
        content: Self-contained data URL (`data:<mime>;base64,<payload>`).
        role: How the asset is used (base, style, generated, mask).
    """

    id: str
    content: str
    role: AssetRole

    def to_dict(self, include_content: bool = False) -> dict[str, Any]:
        data: dict[str, Any] = {"id": self.id, "role": self.role.value}
        if include_content:
            data["content"] = self.content
        return data


@dataclass(frozen=True)
class GenerationParameters:
    """User-tunable generation parameters, copied into each version.

    `aspect_ratio` is kept as a plain string so unsupported values reach the
    workflow builder, which owns the resolution lookup and rejects them.
    `fidelity` and `style_strength` must lie in [0, 1] and are never rescaled.
    """

    aspect_ratio: str = AspectRatio.WIDE.value
    fidelity: float = 0.8
    style_strength: float = 0.5
    seed: int = 42
    locked_seed: bool = False
    preset_id: str | None = None
    output_quality: OutputQuality = OutputQuality.SPEED

    def __post_init__(self) -> None:
        if isinstance(self.aspect_ratio, AspectRatio):
            object.__setattr__(self, "aspect_ratio", self.aspect_ratio.value)
        if not isinstance(self.output_quality, OutputQuality):
            try:
                object.__setattr__(self, "output_quality", OutputQuality(self.output_quality))
            except ValueError:
                raise PreconditionViolation(
                    f"Unsupported output quality: {self.output_quality!r}"
                ) from None
        for name in ("fidelity", "style_strength"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise PreconditionViolation(f"{name} must be within [0, 1], got {value!r}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "aspect_ratio": self.aspect_ratio,
            "fidelity": self.fidelity,
            "style_strength": self.style_strength,
            "seed": self.seed,
            "locked_seed": self.locked_seed,
            "preset_id": self.preset_id,
            "output_quality": self.output_quality.value,
        }


@dataclass(frozen=True)
class ProjectVersion:
    """One generation attempt in the project history.

    Invariant:
        Exactly one of the following holds: status is GENERATING, a result
        image id is present (COMPLETED), or an error message is present (FAILED).
        Once terminal, only `is_favorite` may change.
    """

    id: str
    parent_id: str | None
    timestamp: int
    base_image_id: str
    prompt: str
    params: GenerationParameters
    status: GenerationStatus = GenerationStatus.GENERATING
    style_image_ids: tuple[str, ...] = ()
    result_image_id: str | None = None
    error_message: str | None = None
    is_favorite: bool = False

    def __post_init__(self) -> None:
        generating = self.status is GenerationStatus.GENERATING
        completed = self.status is GenerationStatus.COMPLETED and self.result_image_id is not None
        failed = self.status is GenerationStatus.FAILED and bool(self.error_message)
        if generating and (self.result_image_id is not None or self.error_message):
            raise ValueError("A generating version carries neither result nor error")
        if completed and self.error_message:
            raise ValueError("A completed version must not carry an error message")
        if failed and self.result_image_id is not None:
            raise ValueError("A failed version must not reference a result image")
        if not (generating or completed or failed):
            raise ValueError(f"Inconsistent version state for status {self.status.value}")

    @property
    def is_terminal(self) -> bool:
        return self.status is not GenerationStatus.GENERATING

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "parent_id": self.parent_id,
            "timestamp": self.timestamp,
            "base_image_id": self.base_image_id,
            "style_image_ids": list(self.style_image_ids),
            "prompt": self.prompt,
            "params": self.params.to_dict(),
            "status": self.status.value,
            "result_image_id": self.result_image_id,
            "error_message": self.error_message,
            "is_favorite": self.is_favorite,
        }


@dataclass(frozen=True)
class Project:
    """Aggregate root: history, asset table, and the active-version pointer.

    `versions` is ordered newest-first. `assets` is never mutated in place; the
    store always builds a new mapping.
    """

    id: str
    name: str
    updated_at: int = field(default_factory=now_ms)
    versions: tuple[ProjectVersion, ...] = ()
    active_version_id: str | None = None
    assets: Mapping[str, ImageAsset] = field(default_factory=dict)

    @classmethod
    def new(cls, name: str) -> "Project":
        return cls(id=new_id(), name=name)

    def touch(self, **changes: Any) -> "Project":
        """Return a copy with `changes` applied and `updated_at` refreshed."""
        return replace(self, updated_at=now_ms(), **changes)

    def find_version(self, version_id: str | None) -> ProjectVersion | None:
        if version_id is None:
            return None
        for version in self.versions:
            if version.id == version_id:
                return version
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "updated_at": self.updated_at,
            "active_version_id": self.active_version_id,
            "versions": [version.to_dict() for version in self.versions],
            "assets": [asset.to_dict() for asset in self.assets.values()],
        }


@dataclass(frozen=True)
class GenerationRequest:
    """Everything the presentation layer gathers for one submission."""

    prompt: str
    base_image_id: str | None
    params: GenerationParameters = field(default_factory=GenerationParameters)
    style_image_ids: tuple[str, ...] = ()
    mask: str | None = None
