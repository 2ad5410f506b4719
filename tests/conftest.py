import copy
import json

import pytest

from charforge.config import ServiceConfig
from charforge.service import CharacterService, GenerationClient


class FakeResponse:
    def __init__(self, payload=None, status_code=200, text=None):
        self._payload = payload
        self.status_code = status_code
        self.text = text if text is not None else json.dumps(payload)

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class RecordingPost:
    """Stands in for ``requests.post`` and replays canned responses."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def __call__(self, url, json=None, headers=None, timeout=None):
        self.calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


CHARACTER = {
    "name": "Thessaly Vane",
    "description": "A wandering cartographer.",
    "characterId": "char-123456",
    "portraitPromptDetails": {
        "illustrAppearance": "silver hair",
        "illustrClothes": "travel cloak",
        "illustrExpressionPosition": "smiling, three-quarter view",
        "illustrSetting": "windy cliff",
        "illustrStylePre": "oil painting",
        "illustrStylePost": "soft light",
    },
    "skills": {"Athletics": 3, "History": 5},
}


@pytest.fixture
def character_data():
    """Return a factory for character payloads with optional overrides."""

    def make(**overrides):
        data = copy.deepcopy(CHARACTER)
        data.update(overrides)
        return data

    return make


@pytest.fixture
def text_response():
    def make(text, status_code=200):
        payload = {"candidates": [{"content": {"parts": [{"text": text}]}}]}
        return FakeResponse(payload, status_code=status_code)

    return make


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def fake_post(monkeypatch):
    def install(*responses):
        recorder = RecordingPost(responses)
        monkeypatch.setattr("charforge.service.requests.post", recorder)
        return recorder

    return install


@pytest.fixture
def service_config():
    return ServiceConfig(
        endpoint="https://example.test",
        text_model="text-model",
        image_model="image-model",
        api_key="test-key",
        timeout=5.0,
        temperature=1.0,
    )


@pytest.fixture
def client(service_config):
    return GenerationClient(service_config, progress=False)


@pytest.fixture
def service(client):
    return CharacterService(client)
