"""Tests for TOML configuration loading."""

from pathlib import Path

import pytest

from charforge.config import load_config


def _write(tmp_path, text):
    path = tmp_path / "config.toml"
    path.write_text(text, encoding="utf-8")
    return path


class TestDefaults:
    def test_no_file_gives_defaults(self):
        config = load_config(None, environ={})
        assert config.service.text_model == "gemini-2.5-flash"
        assert config.service.api_key is None
        assert config.names.order == 2
        assert config.names.min_length == 4
        assert config.names.max_length == 12
        assert config.names.preview_count == 12
        assert config.storage.path == Path.cwd() / "charforge.db"

    def test_api_key_from_environment(self):
        config = load_config(None, environ={"GEMINI_API_KEY": " env-key "})
        assert config.service.api_key == "env-key"


class TestFile:
    def test_sections_are_read(self, tmp_path):
        path = _write(
            tmp_path,
            """
[service]
endpoint = "http://localhost:9000/"
text_model = "small"
timeout = 12

[names]
order = 3
max_length = 9

[storage]
path = "data/state.db"
""",
        )
        config = load_config(path, environ={})
        assert config.service.endpoint == "http://localhost:9000"
        assert config.service.text_model == "small"
        assert config.service.timeout == 12.0
        assert config.names.order == 3
        assert config.names.max_length == 9
        assert config.names.min_length == 4
        assert config.storage.path == (tmp_path / "data" / "state.db").resolve()

    def test_explicit_key_wins_over_environment(self, tmp_path):
        path = _write(tmp_path, '[service]\napi_key = "file-key"\n')
        config = load_config(path, environ={"GEMINI_API_KEY": "env-key"})
        assert config.service.api_key == "file-key"

    def test_custom_environment_variable(self, tmp_path):
        path = _write(tmp_path, '[service]\napi_key_env = "FORGE_KEY"\n')
        config = load_config(path, environ={"FORGE_KEY": "custom", "GEMINI_API_KEY": "ignored"})
        assert config.service.api_key == "custom"

    def test_memory_storage(self, tmp_path):
        path = _write(tmp_path, '[storage]\npath = ":memory:"\n')
        assert load_config(path, environ={}).storage.path is None

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.toml")

    def test_section_must_be_table(self, tmp_path):
        path = _write(tmp_path, 'names = "nope"\n')
        with pytest.raises(ValueError, match=r"\[names\]"):
            load_config(path, environ={})

    def test_integer_settings_are_checked(self, tmp_path):
        path = _write(tmp_path, '[names]\norder = "two"\n')
        with pytest.raises(ValueError, match="names.order"):
            load_config(path, environ={})

    def test_timeout_must_be_positive(self, tmp_path):
        path = _write(tmp_path, "[service]\ntimeout = 0\n")
        with pytest.raises(ValueError):
            load_config(path, environ={})

    def test_shipped_default_config_loads(self):
        path = Path(__file__).resolve().parents[1] / "config" / "default_config.toml"
        config = load_config(path, environ={})
        assert config.names.preview_count == 12
        assert config.storage.path.name == "charforge.db"
