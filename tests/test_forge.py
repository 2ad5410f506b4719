"""Tests for character forging, portraits and export."""

import json

import pytest

from charforge.errors import GenerationError
from charforge.forge import export_character, export_filename, forge_character, render_portrait
from charforge.models import Character, ProjectSettings

TAGS = {"genre": ["Fantasy"], "tone": ["Dark"], "identity": ["Elf"]}


def _sheet(character_data, **overrides):
    return json.dumps({"skills": ["Athletics", "History"], "possibleCharacters": [character_data(**overrides)]})


class TestForgeCharacter:
    def test_requires_three_tags(self, service, fake_post):
        recorder = fake_post()
        with pytest.raises(ValueError, match="at least 3 tags"):
            forge_character(service, {"genre": ["Fantasy"], "tone": ["Dark"]})
        assert recorder.calls == []

    def test_default_tags_count_toward_minimum(self, service, fake_post, text_response, character_data):
        recorder = fake_post(text_response(_sheet(character_data)))
        settings = ProjectSettings(default_tags={"identity": ["Elf"]})
        forge_character(service, {"genre": ["Fantasy"], "tone": ["Dark"]}, settings)
        assert "identity: Elf" in recorder.calls[0]["json"]["contents"][0]["parts"][0]["text"]

    def test_placeholder_portrait(self, service, fake_post, text_response, character_data):
        fake_post(text_response(_sheet(character_data)))
        character = forge_character(service, TAGS)
        assert character.portrait == "https://picsum.photos/seed/char-123456/512/768"

    def test_markov_name_and_locked_styles(self, service, fake_post, text_response, character_data):
        recorder = fake_post(text_response(_sheet(character_data)))
        settings = ProjectSettings(
            use_markov_name_gen=True,
            markov_seeds=["Ember"],
            locked_style_pre="ink sketch",
            locked_style_post="rim light",
        )
        character = forge_character(service, TAGS, settings)
        system = recorder.calls[0]["json"]["systemInstruction"]["parts"][0]["text"]
        assert 'Use the name "Ember"' in system
        assert character.portrait_prompt_details.style_pre == "ink sketch"
        assert character.portrait_prompt_details.style_post == "rim light"

    def test_empty_sheet(self, service, fake_post, text_response):
        fake_post(text_response('{"skills": [], "possibleCharacters": []}'))
        with pytest.raises(GenerationError, match="no character data"):
            forge_character(service, TAGS)


class TestPortrait:
    def test_render_uses_constructed_prompt(self, service, fake_post, fake_response, character_data):
        payload = {"candidates": [{"content": {"parts": [{"inlineData": {"mimeType": "image/png", "data": "AAA"}}]}}]}
        recorder = fake_post(fake_response(payload))
        character = render_portrait(service, Character.from_dict(character_data()), size="2K")
        assert character.portrait == "data:image/png;base64,AAA"
        prompt = recorder.calls[0]["json"]["contents"][0]["parts"][0]["text"]
        assert prompt.startswith("oil painting silver hair")

    def test_render_with_custom_prompt(self, service, fake_post, fake_response, character_data):
        payload = {"candidates": [{"content": {"parts": [{"inlineData": {"data": "AAA"}}]}}]}
        recorder = fake_post(fake_response(payload))
        render_portrait(service, Character.from_dict(character_data()), prompt="a fox in armor")
        assert recorder.calls[0]["json"]["contents"][0]["parts"][0]["text"] == "a fox in armor"

    def test_blank_prompt(self, service, character_data):
        with pytest.raises(ValueError):
            render_portrait(service, Character.from_dict(character_data()), prompt="  ")


class TestExport:
    def test_filename(self):
        assert export_filename("Thessaly  Vane the\tBold") == "thessaly_vane_the_bold.json"

    def test_export_character(self, character_data):
        filename, payload = export_character(Character.from_dict(character_data()))
        assert filename == "thessaly_vane.json"
        assert payload["skills"] == ["Athletics", "History"]
        assert payload["possibleCharacters"][0]["name"] == "Thessaly Vane"
