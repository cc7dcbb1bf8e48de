"""Tests for ProjectStore version lifecycle transitions."""

import dataclasses
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import RESULT_BYTES
from infravision.core.errors import InvalidTransition, PreconditionViolation
from infravision.core.models import AssetRole, GenerationParameters, GenerationStatus
from infravision.image.encoding import decode_data_url, encode_data_url

RESULT_URL = encode_data_url(RESULT_BYTES)


def _begin(store, base_id, prompt="road", params=None):
    return store.begin_generation(base_id, prompt, params or GenerationParameters())


def test_new_project_is_empty(store) -> None:
    project = store.project

    assert project.name == "Test project"
    assert project.versions == ()
    assert project.active_version_id is None
    assert store.active_version is None
    assert store.result_asset is None


def test_add_asset_validates_data_url(store, png_data_url) -> None:
    asset = store.add_asset(png_data_url, AssetRole.BASE)

    assert store.get_asset(asset.id) == asset
    with pytest.raises(PreconditionViolation):
        store.add_asset("https://example.com/a.png", AssetRole.BASE)
    assert len(store.project.assets) == 1


def test_begin_generation_appends_active_generating_version(store, png_data_url) -> None:
    base = store.add_asset(png_data_url, AssetRole.BASE)
    params = GenerationParameters(fidelity=0.9, seed=7)

    version = _begin(store, base.id, params=params)

    assert version.status is GenerationStatus.GENERATING
    assert version.parent_id is None
    assert version.params == params
    assert store.project.versions[0] == version
    assert store.project.active_version_id == version.id


def test_begin_generation_requires_known_base(store) -> None:
    before = store.project

    with pytest.raises(PreconditionViolation):
        _begin(store, "missing")

    assert store.project is before


def test_parent_is_active_version_at_submission(store, png_data_url) -> None:
    base = store.add_asset(png_data_url, AssetRole.BASE)
    first = _begin(store, base.id)
    store.complete_generation(first.id, RESULT_URL)

    second = _begin(store, base.id)

    assert second.parent_id == first.id
    assert [v.id for v in store.project.versions] == [second.id, first.id]

    store.set_active_version(None)
    third = _begin(store, base.id)
    assert third.parent_id is None


def test_complete_generation_attaches_result_without_moving_pointer(store, png_data_url) -> None:
    base = store.add_asset(png_data_url, AssetRole.BASE)
    first = _begin(store, base.id)
    store.complete_generation(first.id, RESULT_URL)
    second = _begin(store, base.id)
    store.set_active_version(first.id)

    asset = store.complete_generation(second.id, RESULT_URL)

    completed = store.get_version(second.id)
    assert completed.status is GenerationStatus.COMPLETED
    assert completed.result_image_id == asset.id
    assert completed.error_message is None
    assert asset.role is AssetRole.GENERATED
    assert decode_data_url(asset.content)[1] == RESULT_BYTES
    assert store.project.active_version_id == first.id


def test_fail_generation_keeps_version_as_record(store, png_data_url) -> None:
    base = store.add_asset(png_data_url, AssetRole.BASE)
    version = _begin(store, base.id)

    failed = store.fail_generation(version.id, "WebSocket Connection Error")

    assert failed.status is GenerationStatus.FAILED
    assert failed.error_message == "WebSocket Connection Error"
    assert failed.result_image_id is None
    assert store.result_asset is None
    assert len(store.project.versions) == 1


def test_terminal_versions_reject_lifecycle_transitions(store, png_data_url) -> None:
    base = store.add_asset(png_data_url, AssetRole.BASE)
    version = _begin(store, base.id)
    store.fail_generation(version.id, "boom")

    with pytest.raises(InvalidTransition):
        store.complete_generation(version.id, RESULT_URL)
    with pytest.raises(InvalidTransition):
        store.fail_generation(version.id, "again")

    assert store.get_version(version.id).error_message == "boom"


def test_favorite_toggle_allowed_on_terminal_version(store, png_data_url) -> None:
    base = store.add_asset(png_data_url, AssetRole.BASE)
    version = _begin(store, base.id)
    store.complete_generation(version.id, RESULT_URL)

    assert store.toggle_favorite(version.id).is_favorite is True
    assert store.toggle_favorite(version.id).is_favorite is False
    assert store.get_version(version.id).status is GenerationStatus.COMPLETED


def test_unknown_version_transitions_are_rejected(store) -> None:
    with pytest.raises(InvalidTransition):
        store.set_active_version("nope")
    with pytest.raises(InvalidTransition):
        store.toggle_favorite("nope")
    with pytest.raises(InvalidTransition):
        store.complete_generation("nope", RESULT_URL)


def test_result_asset_follows_active_version(store, png_data_url) -> None:
    base = store.add_asset(png_data_url, AssetRole.BASE)
    first = _begin(store, base.id)
    asset = store.complete_generation(first.id, RESULT_URL)
    second = _begin(store, base.id)

    assert store.result_asset is None

    store.set_active_version(first.id)
    assert store.result_asset == asset
    assert store.active_version.id == first.id
    assert second.id in {v.id for v in store.project.versions}


def test_snapshots_are_immutable(store, png_data_url) -> None:
    base = store.add_asset(png_data_url, AssetRole.BASE)
    before = store.project

    _begin(store, base.id)

    assert before.versions == ()
    with pytest.raises(dataclasses.FrozenInstanceError):
        store.project.name = "changed"


def test_listeners_receive_snapshots_and_can_unsubscribe(store, png_data_url) -> None:
    seen = []
    unsubscribe = store.subscribe(seen.append)

    base = store.add_asset(png_data_url, AssetRole.BASE)
    unsubscribe()
    _begin(store, base.id)

    assert len(seen) == 1
    assert base.id in seen[0].assets


def test_failing_listener_does_not_block_commit(store, png_data_url) -> None:
    seen = []

    def broken(project):
        raise RuntimeError("listener bug")

    store.subscribe(broken)
    store.subscribe(seen.append)

    asset = store.add_asset(png_data_url, AssetRole.STYLE)

    assert store.get_asset(asset.id) == asset
    assert len(seen) == 1


def test_rename_updates_name(store) -> None:
    store.rename("Ring road upgrade")

    assert store.project.name == "Ring road upgrade"


def test_concurrent_favorite_toggles_are_not_lost(store, png_data_url) -> None:
    base = store.add_asset(png_data_url, AssetRole.BASE)
    version = _begin(store, base.id)
    store.complete_generation(version.id, RESULT_URL)

    with ThreadPoolExecutor(max_workers=8) as pool:
        results = list(pool.map(lambda _: store.toggle_favorite(version.id), range(41)))

    assert sum(result.is_favorite for result in results) == 21
    assert store.get_version(version.id).is_favorite is True


def test_set_favorite_is_idempotent(store, png_data_url) -> None:
    base = store.add_asset(png_data_url, AssetRole.BASE)
    version = _begin(store, base.id)
    store.fail_generation(version.id, "boom")

    store.set_favorite(version.id, True)
    store.set_favorite(version.id, True)

    assert store.get_version(version.id).is_favorite is True
