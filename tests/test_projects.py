"""Tests for project, folder and character management."""

import pytest

from charforge.errors import ProjectNotFoundError
from charforge.models import Character, ProjectSettings
from charforge.projects import ProjectManager, pick_name, preview_names
from charforge.storage import AppState, MemoryStore


@pytest.fixture
def state():
    return AppState(MemoryStore())


@pytest.fixture
def manager(state):
    return ProjectManager(state)


@pytest.fixture
def character(character_data):
    return Character.from_dict(character_data())


class TestProjects:
    def test_starts_with_default_project(self, manager):
        [project] = manager.list_projects()
        assert project.name == "Default Project"
        assert manager.active_id == project.id
        assert manager.active_project() is project

    def test_create_project_becomes_active(self, manager, state):
        project = manager.create_project("  Saga  ")
        assert project.name == "Saga"
        assert manager.active_id == project.id
        assert state.load_active_project_id() == project.id
        assert [p.name for p in state.load_projects()] == ["Default Project", "Saga"]

    def test_create_project_requires_name(self, manager):
        with pytest.raises(ValueError):
            manager.create_project("   ")

    def test_delete_active_project_clears_active(self, manager, state):
        project = manager.create_project("Saga")
        manager.delete_project(project.id)
        assert manager.active_id is None
        assert manager.active_project() is None
        assert state.load_active_project_id() is None

    def test_unknown_project(self, manager):
        with pytest.raises(ProjectNotFoundError):
            manager.get_project("nope")
        with pytest.raises(KeyError):
            manager.delete_project("nope")

    def test_set_active(self, manager):
        first = manager.list_projects()[0]
        manager.create_project("Saga")
        manager.set_active(first.id)
        assert manager.active_id == first.id
        with pytest.raises(ProjectNotFoundError):
            manager.set_active("nope")

    def test_state_is_reloaded(self, manager, state):
        project = manager.create_project("Saga")
        reopened = ProjectManager(state)
        assert reopened.active_id == project.id
        assert reopened.get_project(project.id).name == "Saga"


class TestSettings:
    def test_partial_update(self, manager):
        project = manager.list_projects()[0]
        settings = manager.update_settings(project.id, {"markovSeeds": ["Ember"], "useMarkovNameGen": True})
        assert settings.markov_seeds == ["Ember"]
        assert settings.use_markov_name_gen is True
        assert settings.markov_order == 2

    def test_unknown_key(self, manager):
        project = manager.list_projects()[0]
        with pytest.raises(ValueError, match="bogus"):
            manager.update_settings(project.id, {"bogus": 1})

    def test_apply_style(self, manager):
        project = manager.list_projects()[0]
        settings = manager.apply_style(project.id, "watercolor", "golden hour")
        assert (settings.locked_style_pre, settings.locked_style_post) == ("watercolor", "golden hour")


class TestCharacters:
    def test_save_reuses_long_character_id(self, manager, character):
        project = manager.list_projects()[0]
        saved = manager.save_character(project.id, character)
        assert saved.id == "char-123456"
        assert saved.created_at > 0
        assert project.characters == [saved]

    def test_save_short_id_gets_uuid(self, manager, character):
        project = manager.list_projects()[0]
        character.character_id = "abc"
        saved = manager.save_character(project.id, character)
        assert len(saved.id) == 36

    def test_overwrite_keeps_folder(self, manager, character):
        project = manager.list_projects()[0]
        folder = manager.create_folder(project.id, "Rebels")
        saved = manager.save_character(project.id, character)
        manager.move_character(project.id, saved.id, folder.id)
        character.description = "Revised."
        again = manager.save_character(project.id, character)
        assert again.folder_id == folder.id
        assert len(project.characters) == 1
        assert project.characters[0].description == "Revised."

    def test_delete_character(self, manager, character):
        project = manager.list_projects()[0]
        saved = manager.save_character(project.id, character)
        manager.delete_character(project.id, saved.id)
        assert project.characters == []

    def test_move_to_unknown_folder(self, manager, character):
        project = manager.list_projects()[0]
        saved = manager.save_character(project.id, character)
        with pytest.raises(ValueError):
            manager.move_character(project.id, saved.id, "nope")
        assert manager.move_character(project.id, saved.id, None).folder_id is None

    def test_apply_folder_suggestions(self, manager, character_data):
        project = manager.list_projects()[0]
        first = manager.save_character(project.id, Character.from_dict(character_data(characterId="hero-000001")))
        second = manager.save_character(project.id, Character.from_dict(character_data(characterId="hero-000002")))
        folders = manager.apply_folder_suggestions(
            project.id, {"Empire": [first.id, "ghost"], "Rebels": [second.id]}
        )
        assert [folder.name for folder in folders] == ["Empire", "Rebels"]
        assert project.find_character(first.id).folder_id == folders[0].id
        assert project.find_character(second.id).folder_id == folders[1].id
        assert len(project.folders) == 2


class TestNameHelpers:
    def test_preview_names(self):
        settings = ProjectSettings(markov_seeds=["Ember", "Amber", "Umbra", ""], markov_min_length=3, markov_max_length=8)
        names = preview_names(settings, rng=5)
        assert len(names) == 12

    def test_preview_without_seeds(self):
        assert preview_names(ProjectSettings(markov_seeds=["", "  "])) == []

    def test_pick_name_disabled(self):
        assert pick_name(ProjectSettings(markov_seeds=["Ember"])) is None

    def test_pick_name_without_seeds(self):
        assert pick_name(ProjectSettings(use_markov_name_gen=True)) is None

    def test_pick_name_single_seed(self):
        settings = ProjectSettings(use_markov_name_gen=True, markov_seeds=["Ember"])
        assert pick_name(settings) == "Ember"
