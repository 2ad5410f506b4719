from __future__ import annotations

import random
import threading
import uuid
from dataclasses import fields, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from .errors import ProjectNotFoundError
from .markov_names import MarkovNameGenerator
from .models import Character, Folder, Project, ProjectSettings, SavedCharacter
from .storage import AppState, new_project, now_ms

MIN_REUSABLE_ID_LENGTH = 6
SETTINGS_KEYS = frozenset(ProjectSettings().to_dict())

Rng = Union[random.Random, int, None]


def _usable_seeds(settings: ProjectSettings) -> List[str]:
    return [seed for seed in settings.markov_seeds if seed.strip()]


def preview_names(settings: ProjectSettings, count: int = 12, rng: Rng = None) -> List[str]:
    seeds = _usable_seeds(settings)
    if not seeds:
        return []
    generator = MarkovNameGenerator(seeds, order=settings.markov_order, rng=rng)
    return [generator.generate(settings.markov_min_length, settings.markov_max_length) for _ in range(count)]


def pick_name(settings: ProjectSettings, rng: Rng = None) -> Optional[str]:
    if not settings.use_markov_name_gen:
        return None
    seeds = _usable_seeds(settings)
    if not seeds:
        return None
    generator = MarkovNameGenerator(seeds, order=settings.markov_order, rng=rng)
    return generator.generate(settings.markov_min_length, settings.markov_max_length)


class ProjectManager:
    """Project, folder and saved-character bookkeeping over ``AppState``.

    Every mutation is written back to the store before returning.
    """

    def __init__(self, state: AppState) -> None:
        self._state = state
        self._lock = threading.RLock()
        self._projects: List[Project] = state.load_projects()
        self._active_id = state.load_active_project_id()
        if self._active_id is None and self._projects:
            self._active_id = self._projects[0].id

    def _commit(self) -> None:
        self._state.save_projects(self._projects)
        self._state.save_active_project_id(self._active_id)

    def _find(self, project_id: str) -> Project:
        for project in self._projects:
            if project.id == project_id:
                return project
        raise ProjectNotFoundError(project_id)

    def _touch(self, project: Project) -> None:
        project.updated_at = now_ms()
        self._commit()

    def list_projects(self) -> List[Project]:
        with self._lock:
            return list(self._projects)

    def get_project(self, project_id: str) -> Project:
        with self._lock:
            return self._find(project_id)

    @property
    def active_id(self) -> Optional[str]:
        return self._active_id

    def active_project(self) -> Optional[Project]:
        with self._lock:
            if self._active_id is None:
                return None
            try:
                return self._find(self._active_id)
            except ProjectNotFoundError:
                return None

    def set_active(self, project_id: Optional[str]) -> None:
        with self._lock:
            if project_id is not None:
                self._find(project_id)
            self._active_id = project_id
            self._commit()

    def create_project(self, name: str) -> Project:
        name = name.strip()
        if not name:
            raise ValueError("Project name must not be empty.")
        with self._lock:
            project = new_project(name)
            self._projects.append(project)
            self._active_id = project.id
            self._commit()
            return project

    def delete_project(self, project_id: str) -> None:
        with self._lock:
            project = self._find(project_id)
            self._projects.remove(project)
            if self._active_id == project_id:
                self._active_id = None
            self._commit()

    def update_settings(self, project_id: str, changes: Mapping[str, Any]) -> ProjectSettings:
        unknown = set(changes) - SETTINGS_KEYS
        if unknown:
            raise ValueError(f"Unknown project settings: {', '.join(sorted(unknown))}")
        with self._lock:
            project = self._find(project_id)
            merged = dict(project.settings.to_dict())
            merged.update(changes)
            project.settings = ProjectSettings.from_dict(merged)
            self._touch(project)
            return project.settings

    def apply_style(self, project_id: str, pre: str, post: str) -> ProjectSettings:
        return self.update_settings(project_id, {"lockedStylePre": pre, "lockedStylePost": post})

    def create_folder(self, project_id: str, name: str) -> Folder:
        name = name.strip()
        if not name:
            raise ValueError("Folder name must not be empty.")
        with self._lock:
            project = self._find(project_id)
            folder = Folder(id=str(uuid.uuid4()), name=name)
            project.folders.append(folder)
            self._touch(project)
            return folder

    def save_character(self, project_id: str, character: Character) -> SavedCharacter:
        with self._lock:
            project = self._find(project_id)
            if len(character.character_id) >= MIN_REUSABLE_ID_LENGTH:
                saved_id = character.character_id
            else:
                saved_id = str(uuid.uuid4())
            base = {f.name: getattr(character, f.name) for f in fields(Character)}
            saved = SavedCharacter(**base, id=saved_id, created_at=now_ms())
            for index, existing in enumerate(project.characters):
                if existing.id == saved_id:
                    saved.folder_id = existing.folder_id
                    project.characters[index] = saved
                    break
            else:
                project.characters.append(saved)
            self._touch(project)
            return saved

    def delete_character(self, project_id: str, character_id: str) -> None:
        with self._lock:
            project = self._find(project_id)
            project.characters = [character for character in project.characters if character.id != character_id]
            self._touch(project)

    def move_character(self, project_id: str, character_id: str, folder_id: Optional[str]) -> SavedCharacter:
        with self._lock:
            project = self._find(project_id)
            if folder_id is not None and all(folder.id != folder_id for folder in project.folders):
                raise ValueError(f"Unknown folder: {folder_id}")
            for index, character in enumerate(project.characters):
                if character.id == character_id:
                    moved = replace(character, folder_id=folder_id)
                    project.characters[index] = moved
                    self._touch(project)
                    return moved
            raise ValueError(f"Unknown character: {character_id}")

    def apply_folder_suggestions(self, project_id: str, mapping: Mapping[str, Sequence[str]]) -> List[Folder]:
        with self._lock:
            project = self._find(project_id)
            created: List[Folder] = []
            by_id: Dict[str, int] = {character.id: index for index, character in enumerate(project.characters)}
            for folder_name, character_ids in mapping.items():
                folder = Folder(id=str(uuid.uuid4()), name=folder_name)
                created.append(folder)
                for character_id in character_ids:
                    index = by_id.get(character_id)
                    if index is not None:
                        project.characters[index] = replace(project.characters[index], folder_id=folder.id)
            project.folders.extend(created)
            self._touch(project)
            return created
