"""Key/value persistence for tags, projects and UI state.

Values are JSON-compatible blobs. ``AppState`` layers typed accessors on
top of any ``KeyValueStore`` and falls back to defaults when a stored
blob cannot be read.
"""

from __future__ import annotations

import copy
import json
import sqlite3
import sys
import time
import uuid
from abc import ABC, abstractmethod
from contextlib import closing
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import IMAGE_SIZES, MEMORY_STORAGE
from .errors import InvalidRecordError, StorageError
from .models import Character, Project, ProjectSettings, character_from_dict, tag_mapping

TAGS_KEY = "rpg_forge_tags"
PROJECTS_KEY = "rpg_forge_projects"
ACTIVE_PROJECT_KEY = "rpg_forge_active_project_id"
ACTIVE_CHARACTER_KEY = "rpg_forge_active_char"
UI_STATE_KEY = "rpg_forge_ui_state"

DEFAULT_PROJECT_NAME = "Default Project"


class KeyValueStore(ABC):
    @abstractmethod
    def load(self, key: str) -> Any:
        """Return the stored value, or ``None`` when the key is absent."""

    @abstractmethod
    def save(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        ...

    @abstractmethod
    def clear(self) -> None:
        ...


class MemoryStore(KeyValueStore):
    def __init__(self) -> None:
        self._values: Dict[str, Any] = {}

    def load(self, key: str) -> Any:
        return copy.deepcopy(self._values.get(key))

    def save(self, key: str, value: Any) -> None:
        self._values[key] = copy.deepcopy(value)

    def remove(self, key: str) -> None:
        self._values.pop(key, None)

    def clear(self) -> None:
        self._values.clear()


class SQLiteStore(KeyValueStore):
    def __init__(self, path: str | Path) -> None:
        self.db_path = str(path)
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self._execute("CREATE TABLE IF NOT EXISTS state (key TEXT PRIMARY KEY, value TEXT NOT NULL)")

    def _execute(self, statement: str, params: tuple = ()) -> List[tuple]:
        try:
            with closing(sqlite3.connect(self.db_path)) as conn:
                with conn:
                    return conn.execute(statement, params).fetchall()
        except sqlite3.Error as exc:
            raise StorageError(f"Storage operation failed on {self.db_path}: {exc}") from exc

    def load(self, key: str) -> Any:
        rows = self._execute("SELECT value FROM state WHERE key = ?", (key,))
        if not rows:
            return None
        try:
            return json.loads(rows[0][0])
        except ValueError as exc:
            raise StorageError(f"Stored value for '{key}' is not valid JSON.") from exc

    def save(self, key: str, value: Any) -> None:
        try:
            encoded = json.dumps(value)
        except (TypeError, ValueError) as exc:
            raise StorageError(f"Value for '{key}' is not JSON serialisable: {exc}") from exc
        self._execute(
            "INSERT OR REPLACE INTO state (key, value) VALUES (?, ?)",
            (key, encoded),
        )

    def remove(self, key: str) -> None:
        self._execute("DELETE FROM state WHERE key = ?", (key,))

    def clear(self) -> None:
        self._execute("DELETE FROM state")


def open_store(path: str | Path | None) -> KeyValueStore:
    if path is None or str(path) == MEMORY_STORAGE:
        return MemoryStore()
    return SQLiteStore(path)


def now_ms() -> int:
    return int(time.time() * 1000)


def new_project(name: str, settings: Optional[ProjectSettings] = None) -> Project:
    timestamp = now_ms()
    return Project(
        id=str(uuid.uuid4()),
        name=name,
        created_at=timestamp,
        updated_at=timestamp,
        settings=settings if settings is not None else ProjectSettings(),
    )


@dataclass
class UiState:
    active_tab: str = "forge"
    image_size: str = "1K"
    image_framing: str = "portrait"
    aspect_ratio: str = "3:4"

    def to_dict(self) -> Dict[str, object]:
        return {
            "activeTab": self.active_tab,
            "imageSize": self.image_size,
            "imageFraming": self.image_framing,
            "aspectRatio": self.aspect_ratio,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "UiState":
        if not isinstance(data, dict):
            raise InvalidRecordError("UI state must be an object.")
        defaults = cls()
        image_size = str(data.get("imageSize", defaults.image_size))
        if image_size not in IMAGE_SIZES:
            image_size = defaults.image_size
        return cls(
            active_tab=str(data.get("activeTab", defaults.active_tab)),
            image_size=image_size,
            image_framing=str(data.get("imageFraming", defaults.image_framing)),
            aspect_ratio=str(data.get("aspectRatio", defaults.aspect_ratio)),
        )


def _warn(message: str, exc: Exception) -> None:
    print(f"{message}: {exc}", file=sys.stderr, flush=True)


class AppState:
    def __init__(self, store: KeyValueStore) -> None:
        self.store = store

    def load_tags(self) -> Dict[str, List[str]]:
        try:
            return tag_mapping(self.store.load(TAGS_KEY))
        except (StorageError, InvalidRecordError) as exc:
            _warn("Failed to load persisted tags", exc)
            return {}

    def save_tags(self, tags: Dict[str, List[str]]) -> None:
        self.store.save(TAGS_KEY, {category: list(values) for category, values in tags.items()})

    def load_projects(self) -> List[Project]:
        try:
            saved = self.store.load(PROJECTS_KEY)
            if saved is not None:
                if not isinstance(saved, list):
                    raise InvalidRecordError("projects must be stored as a list.")
                return [Project.from_dict(project) for project in saved]
        except (StorageError, InvalidRecordError) as exc:
            _warn("Failed to load projects", exc)
        return [new_project(DEFAULT_PROJECT_NAME)]

    def save_projects(self, projects: List[Project]) -> None:
        if not projects:
            self.store.remove(PROJECTS_KEY)
            return
        self.store.save(PROJECTS_KEY, [project.to_dict() for project in projects])

    def load_active_project_id(self) -> Optional[str]:
        try:
            saved = self.store.load(ACTIVE_PROJECT_KEY)
        except StorageError as exc:
            _warn("Failed to load active project id", exc)
            return None
        return saved if isinstance(saved, str) and saved else None

    def save_active_project_id(self, project_id: Optional[str]) -> None:
        if project_id:
            self.store.save(ACTIVE_PROJECT_KEY, project_id)
        else:
            self.store.remove(ACTIVE_PROJECT_KEY)

    def load_active_character(self) -> Optional[Character]:
        try:
            saved = self.store.load(ACTIVE_CHARACTER_KEY)
            return character_from_dict(saved) if saved else None
        except (StorageError, InvalidRecordError) as exc:
            _warn("Failed to load persisted character", exc)
            return None

    def save_active_character(self, character: Optional[Character]) -> None:
        if character is not None:
            self.store.save(ACTIVE_CHARACTER_KEY, character.to_dict())
        else:
            self.store.remove(ACTIVE_CHARACTER_KEY)

    def load_ui_state(self) -> UiState:
        try:
            saved = self.store.load(UI_STATE_KEY)
            if saved:
                return UiState.from_dict(saved)
        except (StorageError, InvalidRecordError) as exc:
            _warn("Failed to load UI state", exc)
        return UiState()

    def save_ui_state(self, ui_state: UiState) -> None:
        self.store.save(UI_STATE_KEY, ui_state.to_dict())

    def clear(self) -> None:
        self.store.clear()
