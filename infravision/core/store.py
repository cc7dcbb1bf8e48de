"""Project state owner with atomic snapshot-replace transitions.

Architectural role:
    `ProjectStore` is the only writer of the `Project` aggregate. Every
    operation builds a complete new `Project` snapshot and swaps it in under a
    lock, so readers always observe a consistent history/asset/pointer triple.

Version lifecycle:
    GENERATING -> COMPLETED (result asset attached)
    GENERATING -> FAILED    (error message attached)
    Terminal versions accept only favorite toggling.

Notification:
    Listeners registered through `subscribe` are called with the new snapshot
    after each committed transition. A failing listener is logged and does not
    affect other listeners or the committed state.

Determinism:
    Transitions are deterministic for fixed inputs except generated ids and
    timestamps.
"""

import logging
import threading
from dataclasses import replace
from typing import Callable, Iterable, TypeVar

from infravision.core.errors import InvalidTransition, PreconditionViolation
from infravision.core.models import (
    AssetRole,
    GenerationParameters,
    GenerationStatus,
    ImageAsset,
    Project,
    ProjectVersion,
    new_id,
    now_ms,
)
from infravision.image.encoding import decode_data_url


logger = logging.getLogger(__name__)

DEFAULT_PROJECT_NAME = "新建市政项目"

Listener = Callable[[Project], None]
T = TypeVar("T")


class ProjectStore:
    """Owns one project's versions, assets, and active-version pointer."""

    def __init__(self, project: Project | None = None, name: str = DEFAULT_PROJECT_NAME) -> None:
        self._project = project if project is not None else Project.new(name)
        self._lock = threading.Lock()
        self._listeners: list[Listener] = []

    # ============================================================
    # Read model
    # ============================================================

    @property
    def project(self) -> Project:
        return self._project

    @property
    def active_version(self) -> ProjectVersion | None:
        project = self._project
        return project.find_version(project.active_version_id)

    @property
    def result_asset(self) -> ImageAsset | None:
        """Generated asset of the active version, when it completed."""
        project = self._project
        version = project.find_version(project.active_version_id)
        if version is None or version.result_image_id is None:
            return None
        return project.assets.get(version.result_image_id)

    def get_version(self, version_id: str) -> ProjectVersion | None:
        return self._project.find_version(version_id)

    def get_asset(self, asset_id: str) -> ImageAsset | None:
        return self._project.assets.get(asset_id)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a snapshot listener and return its unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ============================================================
    # Transitions
    # ============================================================

    def add_asset(self, content: str, role: AssetRole) -> ImageAsset:
        """Store an uploaded or generated image under a fresh id.

        Raises:
            PreconditionViolation: If `content` is not a decodable data URL.
        """
        decode_data_url(content)
        asset = ImageAsset(id=new_id(), content=content, role=AssetRole(role))

        def apply(project: Project) -> tuple[Project, ImageAsset]:
            return project.touch(assets={**project.assets, asset.id: asset}), asset

        return self._commit(apply)

    def begin_generation(
        self,
        base_image_id: str,
        prompt: str,
        params: GenerationParameters,
        style_image_ids: Iterable[str] = (),
    ) -> ProjectVersion:
        """Append a GENERATING version and make it the active one.

        The parent is whatever version was active at call time. The parameter
        record is frozen, so the version keeps the values as submitted.
        """
        style_ids = tuple(style_image_ids)

        def apply(project: Project) -> tuple[Project, ProjectVersion]:
            if base_image_id not in project.assets:
                raise PreconditionViolation("A base image is required before generating.")
            version = ProjectVersion(
                id=new_id(),
                parent_id=project.active_version_id if project.find_version(project.active_version_id) else None,
                timestamp=now_ms(),
                base_image_id=base_image_id,
                prompt=prompt,
                params=replace(params),
                style_image_ids=style_ids,
            )
            updated = project.touch(
                versions=(version,) + project.versions,
                active_version_id=version.id,
            )
            return updated, version

        return self._commit(apply)

    def complete_generation(self, version_id: str, content: str) -> ImageAsset:
        """Attach a generated asset and move the version to COMPLETED.

        The active-version pointer is left untouched; it was set on submission
        and the user may have navigated elsewhere since.
        """
        decode_data_url(content)
        asset = ImageAsset(id=new_id(), content=content, role=AssetRole.GENERATED)

        def apply(project: Project) -> tuple[Project, ImageAsset]:
            version = _pending_version(project, version_id)
            completed = replace(version, status=GenerationStatus.COMPLETED, result_image_id=asset.id)
            updated = project.touch(
                versions=_swap_version(project.versions, completed),
                assets={**project.assets, asset.id: asset},
            )
            return updated, asset

        return self._commit(apply)

    def fail_generation(self, version_id: str, message: str) -> ProjectVersion:
        """Move the version to FAILED; it stays in history as an audit record."""
        message = message or "Generation failed"

        def apply(project: Project) -> tuple[Project, ProjectVersion]:
            version = _pending_version(project, version_id)
            failed = replace(version, status=GenerationStatus.FAILED, error_message=message)
            return project.touch(versions=_swap_version(project.versions, failed)), failed

        return self._commit(apply)

    def set_active_version(self, version_id: str | None) -> Project:
        def apply(project: Project) -> tuple[Project, Project]:
            if version_id is not None and project.find_version(version_id) is None:
                raise InvalidTransition(f"Unknown version: {version_id}")
            updated = project.touch(active_version_id=version_id)
            return updated, updated

        return self._commit(apply)

    def set_favorite(self, version_id: str, is_favorite: bool) -> ProjectVersion:
        return self._flag_favorite(version_id, lambda current: bool(is_favorite))

    def toggle_favorite(self, version_id: str) -> ProjectVersion:
        """Negate the favorite flag; read and write happen in one commit."""
        return self._flag_favorite(version_id, lambda current: not current)

    def rename(self, name: str) -> Project:
        def apply(project: Project) -> tuple[Project, Project]:
            updated = project.touch(name=name)
            return updated, updated

        return self._commit(apply)

    # ============================================================
    # Internals
    # ============================================================

    def _flag_favorite(
        self, version_id: str, flag: Callable[[bool], bool]
    ) -> ProjectVersion:
        def apply(project: Project) -> tuple[Project, ProjectVersion]:
            version = project.find_version(version_id)
            if version is None:
                raise InvalidTransition(f"Unknown version: {version_id}")
            flagged = replace(version, is_favorite=flag(version.is_favorite))
            return project.touch(versions=_swap_version(project.versions, flagged)), flagged

        return self._commit(apply)

    def _commit(self, apply: Callable[[Project], tuple[Project, T]]) -> T:
        with self._lock:
            updated, result = apply(self._project)
            self._project = updated

        for listener in list(self._listeners):
            try:
                listener(updated)
            except Exception:
                logger.exception("Project listener failed")

        return result


def _pending_version(project: Project, version_id: str) -> ProjectVersion:
    version = project.find_version(version_id)
    if version is None:
        raise InvalidTransition(f"Unknown version: {version_id}")
    if version.is_terminal:
        raise InvalidTransition(
            f"Version {version_id} is already {version.status.value}"
        )
    return version


def _swap_version(
    versions: tuple[ProjectVersion, ...], updated: ProjectVersion
) -> tuple[ProjectVersion, ...]:
    return tuple(updated if version.id == updated.id else version for version in versions)
