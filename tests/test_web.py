"""Tests for the HTTP API."""

import json
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from charforge.config import parse_config
from charforge.storage import MemoryStore
from charforge.web.app import create_app

TAGS = {"genre": ["Fantasy"], "tone": ["Dark"], "identity": ["Elf"]}


@pytest.fixture
def api(service):
    config = parse_config({"storage": {"path": ":memory:"}}, Path.cwd(), environ={})
    return TestClient(create_app(config, store=MemoryStore(), service=service))


@pytest.fixture
def project_id(api):
    return api.get("/api/projects").json()["activeProjectId"]


class TestStateEndpoints:
    def test_categories(self, api):
        categories = api.get("/api/categories").json()
        assert len(categories) == 11
        assert "genre" in [c["id"] for c in categories]
        assert all("suggestedTags" in c for c in categories)

    def test_tags_put_and_toggle(self, api):
        assert api.get("/api/tags").json() == {}
        api.put("/api/tags", json={"genre": ["Fantasy"]})
        toggled = api.post("/api/tags/toggle", json={"category": "tone", "tag": "Dark"}).json()
        assert toggled == {"genre": ["Fantasy"], "tone": ["Dark"]}
        assert api.get("/api/tags").json() == toggled

    def test_ui_state(self, api):
        assert api.get("/api/ui-state").json()["imageSize"] == "1K"
        api.put("/api/ui-state", json={"activeTab": "projects", "imageSize": "2K"})
        assert api.get("/api/ui-state").json()["imageSize"] == "2K"


class TestNames:
    def test_names(self, api):
        response = api.post("/api/names", json={"seeds": ["Ember"], "count": 2})
        assert response.status_code == 200
        assert response.json() == {"names": ["Ember", "Ember"]}

    def test_names_without_seeds(self, api):
        assert api.post("/api/names", json={"seeds": [], "count": 1}).json() == {"names": ["Unknown"]}

    def test_project_names_preview(self, api, project_id):
        api.patch(f"/api/projects/{project_id}/settings", json={"markovSeeds": ["Rowan"]})
        assert api.get(f"/api/projects/{project_id}/names", params={"count": 3}).json() == {
            "names": ["Rowan", "Rowan", "Rowan"]
        }

    def test_project_names_count_is_capped(self, api, project_id):
        response = api.get(f"/api/projects/{project_id}/names", params={"count": 201})
        assert response.status_code == 422


class TestProjects:
    def test_create_and_activate(self, api):
        created = api.post("/api/projects", json={"name": "Saga"})
        assert created.status_code == 201
        listing = api.get("/api/projects").json()
        assert listing["activeProjectId"] == created.json()["id"]
        assert [p["name"] for p in listing["projects"]] == ["Default Project", "Saga"]

    def test_unknown_project_is_404(self, api):
        assert api.get("/api/projects/nope").status_code == 404
        assert api.delete("/api/projects/nope").status_code == 404

    def test_bad_settings_key_is_400(self, api, project_id):
        response = api.patch(f"/api/projects/{project_id}/settings", json={"bogus": 1})
        assert response.status_code == 400

    @pytest.mark.parametrize(
        "changes",
        [{"useMarkovNameGen": "false"}, {"markovSeeds": [None, "Ember"]}, {"markovOrder": 2.7}],
    )
    def test_mistyped_settings_are_400(self, api, project_id, changes):
        response = api.patch(f"/api/projects/{project_id}/settings", json=changes)
        assert response.status_code == 400
        settings = api.get(f"/api/projects/{project_id}").json()["settings"]
        assert settings["useMarkovNameGen"] is False
        assert settings["markovSeeds"] == []
        assert settings["markovOrder"] == 2

    def test_save_move_delete_character(self, api, project_id, character_data):
        saved = api.post(f"/api/projects/{project_id}/characters", json=character_data())
        assert saved.status_code == 201
        character_id = saved.json()["id"]
        folder = api.post(f"/api/projects/{project_id}/folders", json={"name": "Rebels"}).json()
        moved = api.post(
            f"/api/projects/{project_id}/characters/{character_id}/move", json={"folder_id": folder["id"]}
        )
        assert moved.json()["folderId"] == folder["id"]
        api.delete(f"/api/projects/{project_id}/characters/{character_id}")
        assert api.get(f"/api/projects/{project_id}").json()["characters"] == []

    def test_invalid_character_is_400(self, api, project_id):
        response = api.post(f"/api/projects/{project_id}/characters", json={"name": "No details"})
        assert response.status_code == 400


class TestGeneration:
    def test_generate_character(self, api, fake_post, text_response, character_data):
        sheet = {"skills": ["Athletics", "History"], "possibleCharacters": [character_data()]}
        fake_post(text_response(json.dumps(sheet)))
        response = api.post("/api/characters/generate", json={"tags": TAGS})
        assert response.status_code == 200
        assert response.json()["portrait"] == "https://picsum.photos/seed/char-123456/512/768"
        assert api.get("/api/characters/active").json()["name"] == "Thessaly Vane"

    def test_generate_requires_tags(self, api, fake_post):
        fake_post()
        response = api.post("/api/characters/generate", json={"tags": {"genre": ["Fantasy"]}})
        assert response.status_code == 400

    def test_service_failure_is_502(self, api, fake_post, fake_response):
        fake_post(fake_response({"error": {"message": "quota exceeded"}}))
        response = api.post("/api/characters/generate", json={"tags": TAGS})
        assert response.status_code == 502
        assert response.json()["detail"] == "quota exceeded"

    def test_seeds_are_stored_on_project(self, api, project_id, fake_post, text_response):
        fake_post(text_response('["Aerin", "Bryn"]'))
        settings = api.post(f"/api/projects/{project_id}/seeds", json={"tags": {}}).json()
        assert settings["markovSeeds"] == ["Aerin", "Bryn"]

    def test_suggest_tags(self, api, fake_post, text_response):
        fake_post(text_response('{"genre": ["Steampunk"]}'))
        assert api.post("/api/suggest-tags", json={"world_description": "brass"}).json() == {"genre": ["Steampunk"]}

    def test_prompt_and_export(self, api, character_data):
        prompt = api.post("/api/characters/prompt", json=character_data()).json()["prompt"]
        assert prompt.startswith("oil painting silver hair")
        exported = api.post("/api/characters/export", json=character_data())
        assert "thessaly_vane.json" in exported.headers["content-disposition"]
        assert exported.json()["skills"] == ["Athletics", "History"]

    def test_portrait_rejects_size(self, api, character_data):
        response = api.post("/api/characters/portrait", json={"character": character_data(), "size": "8K"})
        assert response.status_code == 400
