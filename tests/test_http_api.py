"""HTTP adapter tests driven through FastAPI's TestClient."""

import time

import pytest
from fastapi.testclient import TestClient

from conftest import RESULT_BYTES
from infravision.api.http_api import create_app
from infravision.core.engine import GenerationSession
from infravision.core.errors import ErrorKind, GenerationError
from infravision.core.store import ProjectStore
from infravision.image.encoding import encode_data_url


class StaticProvider:
    def __init__(
        self,
        error: GenerationError | None = None,
        check_error: GenerationError | None = None,
    ) -> None:
        self.error = error
        self.check_error = check_error

    async def check_connection(self) -> None:
        if self.check_error is not None:
            raise self.check_error

    async def generate(self, prompt, base_image, style_images, params, mask=None):
        if self.error is not None:
            raise self.error
        return encode_data_url(RESULT_BYTES)


def _client(provider=None) -> TestClient:
    session = GenerationSession(ProjectStore(), provider or StaticProvider(), timeout_seconds=None)
    return TestClient(create_app(session))


def _wait_idle(client: TestClient) -> None:
    for _ in range(100):
        if not client.get("/session").json()["generating"]:
            return
        time.sleep(0.01)
    pytest.fail("generation did not finish")


def _upload_base(client: TestClient, png_data_url: str) -> str:
    response = client.post("/assets", json={"content": png_data_url, "role": "base"})
    assert response.status_code == 201
    return response.json()["id"]


def test_project_starts_empty() -> None:
    with _client() as client:
        body = client.get("/project").json()

    assert body["versions"] == []
    assert body["active_version_id"] is None
    assert body["result_asset_id"] is None


def test_upload_and_read_asset(png_data_url) -> None:
    with _client() as client:
        asset_id = _upload_base(client, png_data_url)
        body = client.get(f"/assets/{asset_id}").json()
        missing = client.get("/assets/nope")

    assert body == {"id": asset_id, "role": "base", "content": png_data_url}
    assert missing.status_code == 404


def test_upload_rejects_invalid_content_and_generated_role(png_data_url) -> None:
    with _client() as client:
        bad = client.post("/assets", json={"content": "not a data url"})
        generated = client.post("/assets", json={"content": png_data_url, "role": "generated"})

    assert bad.status_code == 400
    assert generated.status_code == 400


def test_generation_without_base_is_rejected() -> None:
    with _client() as client:
        response = client.post("/generations", json={"prompt": "bridge"})
        project = client.get("/project").json()

    assert response.status_code == 400
    assert "base image" in response.json()["error"]
    assert project["versions"] == []


def test_generation_completes_in_background(png_data_url) -> None:
    with _client() as client:
        base_id = _upload_base(client, png_data_url)
        response = client.post(
            "/generations",
            json={
                "prompt": "桥",
                "base_image_id": base_id,
                "params": {"aspect_ratio": "1:1", "seed": 42, "locked_seed": True},
            },
        )
        _wait_idle(client)
        active = client.get("/versions/active").json()

    assert response.status_code == 202
    pending = response.json()
    assert pending["status"] == "GENERATING"
    assert pending["params"]["seed"] == 42
    assert active["version"]["id"] == pending["id"]
    assert active["version"]["status"] == "COMPLETED"
    assert active["result_asset_id"] == active["version"]["result_image_id"]


def test_out_of_range_parameters_are_rejected(png_data_url) -> None:
    with _client() as client:
        base_id = _upload_base(client, png_data_url)
        response = client.post(
            "/generations",
            json={"prompt": "road", "base_image_id": base_id, "params": {"fidelity": 1.5}},
        )

    assert response.status_code == 422


def test_authorization_failure_is_reported_by_session(png_data_url) -> None:
    provider = StaticProvider(GenerationError(ErrorKind.AUTHORIZATION_INVALID, "API key is invalid"))

    with _client(provider) as client:
        base_id = _upload_base(client, png_data_url)
        client.post("/generations", json={"prompt": "road", "base_image_id": base_id})
        _wait_idle(client)
        session = client.get("/session").json()
        version = client.get("/versions/active").json()["version"]
        reconnected = client.post("/session/connect").json()

    assert session["connected"] is False
    assert version["status"] == "FAILED"
    assert version["error_message"] == "API key is invalid"
    assert reconnected["connected"] is True


def test_history_navigation_and_favorites(png_data_url) -> None:
    with _client() as client:
        base_id = _upload_base(client, png_data_url)
        first = client.post("/generations", json={"prompt": "a", "base_image_id": base_id}).json()
        _wait_idle(client)
        second = client.post("/generations", json={"prompt": "b", "base_image_id": base_id}).json()
        _wait_idle(client)

        switched = client.put("/versions/active", json={"version_id": first["id"]}).json()
        favorite = client.post(f"/versions/{first['id']}/favorite").json()
        unknown = client.put("/versions/active", json={"version_id": "nope"})
        project = client.get("/project").json()

    assert second["parent_id"] == first["id"]
    assert switched["active_version_id"] == first["id"]
    assert favorite["is_favorite"] is True
    assert unknown.status_code == 404
    assert [v["id"] for v in project["versions"]] == [second["id"], first["id"]]


def test_presets_list_and_apply() -> None:
    with _client() as client:
        presets = client.get("/presets").json()
        applied = client.post("/presets/street-scape/apply", json={"seed": 3}).json()
        unknown = client.post("/presets/canal/apply")

    assert {preset["id"] for preset in presets} >= {"road-urban-arterial", "street-scape"}
    assert applied["params"]["preset_id"] == "street-scape"
    assert applied["params"]["style_strength"] == 0.7
    assert applied["params"]["seed"] == 3
    assert unknown.status_code == 400


def test_connect_reports_unreachable_backend() -> None:
    provider = StaticProvider(
        check_error=GenerationError(ErrorKind.CONNECTION_UNAVAILABLE, "Cannot connect to the image backend")
    )

    with _client(provider) as client:
        response = client.post("/session/connect")
        session = client.get("/session").json()

    assert response.status_code == 503
    assert response.json() == {
        "error": "Cannot connect to the image backend",
        "kind": "ConnectionUnavailable",
    }
    assert session["connected"] is False


def test_unsupported_aspect_ratio_creates_no_version(png_data_url) -> None:
    with _client() as client:
        base_id = _upload_base(client, png_data_url)
        response = client.post(
            "/generations",
            json={"prompt": "road", "base_image_id": base_id, "params": {"aspect_ratio": "9:16"}},
        )
        project = client.get("/project").json()

    assert response.status_code == 400
    assert project["versions"] == []
