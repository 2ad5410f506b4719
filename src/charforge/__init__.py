"""Character authoring toolkit built around a Markov-chain name generator."""

from .config import load_config
from .errors import (
    CharforgeError,
    GenerationError,
    InvalidRecordError,
    MalformedResponseError,
    ProjectNotFoundError,
    StorageError,
)
from .forge import export_character, forge_character, render_portrait
from .markov_names import MarkovNameGenerator, generate_batch
from .models import Character, CharacterSheet, Folder, PortraitPromptDetails, Project, ProjectSettings, SavedCharacter
from .projects import ProjectManager, pick_name, preview_names
from .service import CharacterService, GenerationClient, construct_image_prompt
from .storage import AppState, MemoryStore, SQLiteStore, open_store

__all__ = [
    "AppState",
    "Character",
    "CharacterService",
    "CharacterSheet",
    "CharforgeError",
    "Folder",
    "GenerationClient",
    "GenerationError",
    "InvalidRecordError",
    "MalformedResponseError",
    "MarkovNameGenerator",
    "MemoryStore",
    "PortraitPromptDetails",
    "Project",
    "ProjectManager",
    "ProjectNotFoundError",
    "ProjectSettings",
    "SQLiteStore",
    "SavedCharacter",
    "StorageError",
    "construct_image_prompt",
    "export_character",
    "forge_character",
    "generate_batch",
    "load_config",
    "open_store",
    "pick_name",
    "preview_names",
    "render_portrait",
]
