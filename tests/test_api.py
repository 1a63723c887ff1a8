import io
import zipfile

import pytest
from fakes import png_bytes
from fastapi.testclient import TestClient

from listing_studio.api import app as api_app


@pytest.fixture
def client(make_studio, provider):
    studio = make_studio()
    api_app.app.dependency_overrides[api_app.get_studio] = lambda: studio
    try:
        yield TestClient(api_app.app)
    finally:
        api_app.app.dependency_overrides.clear()


def _login(client):
    res = client.post("/login", json={"email": "ana@example.com", "brandName": "Acme"})
    assert res.status_code == 200
    return res.json()


def test_missing_api_key_is_reported(monkeypatch):
    monkeypatch.setattr(api_app.settings, "gemini_api_key", None)
    monkeypatch.setattr(api_app, "_studio", None)
    res = TestClient(api_app.app).get("/state")
    assert res.status_code == 400
    assert "GEMINI_API_KEY" in res.json()["detail"]


def test_login_and_state(client):
    assert client.get("/state").json()["step"] == "login"
    state = _login(client)
    assert state["step"] == "input"
    assert state["user"]["brandName"] == "Acme"


def test_login_requires_fields(client):
    res = client.post("/login", json={"email": " ", "brandName": "Acme"})
    assert res.status_code == 400


def test_analyze_requires_input(client):
    _login(client)
    res = client.post("/analyze", data={"text": ""})
    assert res.status_code == 400


def test_full_project_flow(client, provider):
    _login(client)
    provider.queue_project()

    state = client.post("/analyze", data={"text": "B0CXXXX"}).json()
    assert state["step"] == "results"
    assert state["inputSource"] == {"type": "asin", "value": "B0CXXXX"}
    assert len(state["images"]) == 8
    project_id = state["activeProjectId"]

    first = client.post("/assets/0/generate").json()
    assert len(first["versions"]) == 1
    assert first["generatedImageUrl"] == first["versions"][0]

    edited = client.post("/assets/0/edit", json={"instruction": "warmer light"}).json()
    assert len(edited["versions"]) == 2

    switched = client.post("/assets/0/version", json={"uri": first["versions"][0]}).json()
    assert switched["generatedImageUrl"] == first["versions"][0]
    assert len(switched["versions"]) == 2

    brief_id = state["images"][1]["id"]
    patched = client.patch(f"/briefs/{brief_id}", json={"field": "headline", "value": "New headline"}).json()
    assert patched["headline"] == "New headline"

    ref = client.post("/reference", files={"image": ("p.png", png_bytes(), "image/png")}).json()
    assert ref["referenceImage"].startswith("data:image/png;base64,")

    history = client.get("/history", params={"q": "running"}).json()
    assert [h["id"] for h in history] == [project_id]
    assert history[0]["renderedCount"] == 1

    export = client.get(f"/projects/{project_id}/export")
    assert export.status_code == 200
    assert export.headers["content-type"] == "application/zip"
    names = zipfile.ZipFile(io.BytesIO(export.content)).namelist()
    assert "briefs.json" in names

    assert client.post("/reset").json()["step"] == "input"
    assert client.post(f"/history/{project_id}/select").json()["activeProjectId"] == project_id


def test_photo_upload_analysis(client, provider):
    _login(client)
    provider.queue_project()
    state = client.post("/analyze", files={"image": ("shoe.png", png_bytes(), "image/png")}).json()
    assert state["inputSource"]["type"] == "image"
    assert state["referenceImage"].startswith("data:image/png;base64,")
    assert provider.research_calls == []


def test_failed_analysis_surfaces_error(client, provider):
    _login(client)
    provider.structure_queue.append("no json")
    state = client.post("/analyze", data={"text": "B0CXXXX"}).json()
    assert state["step"] == "input"
    assert state["error"]


def test_asset_calls_without_project_conflict(client):
    _login(client)
    assert client.post("/assets/0/generate").status_code == 409
    assert client.post("/reset").status_code == 200


def test_unknown_project(client):
    _login(client)
    assert client.post("/history/nope/select").status_code == 404
    assert client.get("/projects/nope/export").status_code == 404
