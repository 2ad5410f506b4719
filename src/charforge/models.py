from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

from .errors import InvalidRecordError, MalformedResponseError

SKILL_MIN = 1
SKILL_MAX = 5

PORTRAIT_FIELDS = (
    "illustrAppearance",
    "illustrClothes",
    "illustrExpressionPosition",
    "illustrSetting",
)


def _require_mapping(value: Any, context: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise InvalidRecordError(f"{context} must be an object.")
    return value


def _require_str(data: Mapping[str, Any], key: str, context: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise InvalidRecordError(f"{context} is missing string field '{key}'.")
    return value


def _optional_str(data: Mapping[str, Any], key: str, context: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidRecordError(f"{context} field '{key}' must be a string.")
    return value


def _optional_int(data: Mapping[str, Any], key: str, default: int, context: str) -> int:
    value = data.get(key, default)
    if value is None:
        return default
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidRecordError(f"{context} field '{key}' must be an integer.")
    return value


def _optional_bool(data: Mapping[str, Any], key: str, default: bool, context: str) -> bool:
    value = data.get(key, default)
    if value is None:
        return default
    if not isinstance(value, bool):
        raise InvalidRecordError(f"{context} field '{key}' must be a boolean.")
    return value


def _string_list(data: Mapping[str, Any], key: str, context: str) -> List[str]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise InvalidRecordError(f"{context} field '{key}' must be a list.")
    if not all(isinstance(item, str) for item in value):
        raise InvalidRecordError(f"{context} field '{key}' must contain only strings.")
    return list(value)


def _optional_string_list(data: Mapping[str, Any], key: str, context: str) -> List[Optional[str]]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise InvalidRecordError(f"{context} field '{key}' must be a list.")
    if not all(item is None or isinstance(item, str) for item in value):
        raise InvalidRecordError(f"{context} field '{key}' must contain only strings or null.")
    return list(value)


def _tag_mapping(value: Any, context: str) -> Dict[str, List[str]]:
    if value is None:
        return {}
    mapping = _require_mapping(value, context)
    tags: Dict[str, List[str]] = {}
    for category, entries in mapping.items():
        if isinstance(entries, str):
            tags[str(category)] = [entries]
        elif isinstance(entries, list) and all(isinstance(entry, str) for entry in entries):
            tags[str(category)] = list(entries)
        else:
            raise InvalidRecordError(f"{context} entry '{category}' must be a list of tags.")
    return tags


def parse_skill_score(skill: str, value: Any) -> int:
    if isinstance(value, bool):
        raise InvalidRecordError(f"Skill '{skill}' must be an integer score.")
    if isinstance(value, float):
        if not value.is_integer():
            raise InvalidRecordError(f"Skill '{skill}' must be an integer score.")
        value = int(value)
    if not isinstance(value, int):
        raise InvalidRecordError(f"Skill '{skill}' must be an integer score.")
    return min(max(value, SKILL_MIN), SKILL_MAX)


@dataclass
class PortraitPromptDetails:
    appearance: str
    clothes: str
    expression_position: str
    setting: str
    style_pre: Optional[str] = None
    style_post: Optional[str] = None

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "illustrAppearance": self.appearance,
            "illustrClothes": self.clothes,
            "illustrExpressionPosition": self.expression_position,
            "illustrSetting": self.setting,
        }
        if self.style_pre is not None:
            payload["illustrStylePre"] = self.style_pre
        if self.style_post is not None:
            payload["illustrStylePost"] = self.style_post
        return payload

    @classmethod
    def from_dict(cls, data: Any) -> "PortraitPromptDetails":
        context = "portraitPromptDetails"
        mapping = _require_mapping(data, context)
        return cls(
            appearance=_require_str(mapping, "illustrAppearance", context),
            clothes=_require_str(mapping, "illustrClothes", context),
            expression_position=_require_str(mapping, "illustrExpressionPosition", context),
            setting=_require_str(mapping, "illustrSetting", context),
            style_pre=_optional_str(mapping, "illustrStylePre", context),
            style_post=_optional_str(mapping, "illustrStylePost", context),
        )


@dataclass
class Character:
    name: str
    description: str
    portrait_prompt_details: PortraitPromptDetails
    skills: Dict[str, int]
    character_id: str = ""
    portrait: Optional[str] = None
    full_size_portrait: Optional[str] = None
    portrait_options: List[Optional[str]] = field(default_factory=list)
    full_size_portrait_options: List[Optional[str]] = field(default_factory=list)
    current_portrait_index: int = 0
    initial_tracked_item_values: List[Any] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "name": self.name,
            "description": self.description,
            "portraitPromptDetails": self.portrait_prompt_details.to_dict(),
            "portraitOptions": list(self.portrait_options),
            "fullSizePortraitOptions": list(self.full_size_portrait_options),
            "currentPortraitIndex": self.current_portrait_index,
            "characterId": self.character_id,
            "skills": dict(self.skills),
            "initialTrackedItemValues": list(self.initial_tracked_item_values),
        }
        if self.portrait is not None:
            payload["portrait"] = self.portrait
        if self.full_size_portrait is not None:
            payload["fullSizePortrait"] = self.full_size_portrait
        return payload

    @staticmethod
    def _fields_from(data: Any, context: str) -> Dict[str, Any]:
        mapping = _require_mapping(data, context)
        skills_raw = _require_mapping(mapping.get("skills"), f"{context}.skills")
        tracked = mapping.get("initialTrackedItemValues") or []
        if not isinstance(tracked, list):
            raise InvalidRecordError(f"{context} field 'initialTrackedItemValues' must be a list.")
        return {
            "name": _require_str(mapping, "name", context),
            "description": _require_str(mapping, "description", context),
            "portrait_prompt_details": PortraitPromptDetails.from_dict(mapping.get("portraitPromptDetails")),
            "skills": {str(skill): parse_skill_score(str(skill), score) for skill, score in skills_raw.items()},
            "character_id": _optional_str(mapping, "characterId", context) or "",
            "portrait": _optional_str(mapping, "portrait", context),
            "full_size_portrait": _optional_str(mapping, "fullSizePortrait", context),
            "portrait_options": _optional_string_list(mapping, "portraitOptions", context),
            "full_size_portrait_options": _optional_string_list(mapping, "fullSizePortraitOptions", context),
            "current_portrait_index": _optional_int(mapping, "currentPortraitIndex", 0, context),
            "initial_tracked_item_values": list(tracked),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Character":
        return cls(**cls._fields_from(data, "character"))


@dataclass
class SavedCharacter(Character):
    id: str = ""
    folder_id: Optional[str] = None
    created_at: int = 0

    def to_dict(self) -> Dict[str, object]:
        payload = super().to_dict()
        payload["id"] = self.id
        payload["createdAt"] = self.created_at
        if self.folder_id is not None:
            payload["folderId"] = self.folder_id
        return payload

    @classmethod
    def from_dict(cls, data: Any) -> "SavedCharacter":
        context = "saved character"
        fields = cls._fields_from(data, context)
        return cls(
            **fields,
            id=_require_str(data, "id", context),
            folder_id=_optional_str(data, "folderId", context),
            created_at=_optional_int(data, "createdAt", 0, context),
        )


@dataclass
class Folder:
    id: str
    name: str

    def to_dict(self) -> Dict[str, object]:
        return {"id": self.id, "name": self.name}

    @classmethod
    def from_dict(cls, data: Any) -> "Folder":
        mapping = _require_mapping(data, "folder")
        return cls(id=_require_str(mapping, "id", "folder"), name=_require_str(mapping, "name", "folder"))


@dataclass
class ImageGenerationRule:
    target: str
    instruction: str

    def to_dict(self) -> Dict[str, object]:
        return {"target": self.target, "instruction": self.instruction}

    @classmethod
    def from_dict(cls, data: Any) -> "ImageGenerationRule":
        mapping = _require_mapping(data, "image generation rule")
        return cls(
            target=_require_str(mapping, "target", "image generation rule"),
            instruction=_require_str(mapping, "instruction", "image generation rule"),
        )


@dataclass
class ProjectSettings:
    locked_style_pre: str = ""
    locked_style_post: str = ""
    use_markov_name_gen: bool = False
    markov_seeds: List[str] = field(default_factory=list)
    markov_order: int = 2
    markov_min_length: int = 4
    markov_max_length: int = 12
    naming_convention: str = ""
    image_generation_rules: List[ImageGenerationRule] = field(default_factory=list)
    default_tags: Dict[str, List[str]] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            "lockedStylePre": self.locked_style_pre,
            "lockedStylePost": self.locked_style_post,
            "useMarkovNameGen": self.use_markov_name_gen,
            "markovSeeds": list(self.markov_seeds),
            "markovOrder": self.markov_order,
            "markovMinLength": self.markov_min_length,
            "markovMaxLength": self.markov_max_length,
            "namingConvention": self.naming_convention,
            "imageGenerationRules": [rule.to_dict() for rule in self.image_generation_rules],
            "defaultTags": {category: list(tags) for category, tags in self.default_tags.items()},
        }

    @classmethod
    def from_dict(cls, data: Any) -> "ProjectSettings":
        context = "settings"
        if data is None:
            return cls()
        mapping = _require_mapping(data, context)
        defaults = cls()
        rules_raw = mapping.get("imageGenerationRules") or []
        if not isinstance(rules_raw, list):
            raise InvalidRecordError("settings field 'imageGenerationRules' must be a list.")
        return cls(
            locked_style_pre=_optional_str(mapping, "lockedStylePre", context) or "",
            locked_style_post=_optional_str(mapping, "lockedStylePost", context) or "",
            use_markov_name_gen=_optional_bool(mapping, "useMarkovNameGen", defaults.use_markov_name_gen, context),
            markov_seeds=_string_list(mapping, "markovSeeds", context),
            markov_order=_optional_int(mapping, "markovOrder", defaults.markov_order, context),
            markov_min_length=_optional_int(mapping, "markovMinLength", defaults.markov_min_length, context),
            markov_max_length=_optional_int(mapping, "markovMaxLength", defaults.markov_max_length, context),
            naming_convention=_optional_str(mapping, "namingConvention", context) or "",
            image_generation_rules=[ImageGenerationRule.from_dict(rule) for rule in rules_raw],
            default_tags=_tag_mapping(mapping.get("defaultTags"), "settings.defaultTags"),
        )


@dataclass
class Project:
    id: str
    name: str
    created_at: int
    updated_at: int
    folders: List[Folder] = field(default_factory=list)
    characters: List[SavedCharacter] = field(default_factory=list)
    settings: ProjectSettings = field(default_factory=ProjectSettings)

    def find_character(self, character_id: str) -> Optional[SavedCharacter]:
        for character in self.characters:
            if character.id == character_id:
                return character
        return None

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "name": self.name,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "folders": [folder.to_dict() for folder in self.folders],
            "characters": [character.to_dict() for character in self.characters],
            "settings": self.settings.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "Project":
        context = "project"
        mapping = _require_mapping(data, context)
        folders_raw = mapping.get("folders") or []
        characters_raw = mapping.get("characters") or []
        if not isinstance(folders_raw, list) or not isinstance(characters_raw, list):
            raise InvalidRecordError("project folders and characters must be lists.")
        return cls(
            id=_require_str(mapping, "id", context),
            name=_require_str(mapping, "name", context),
            created_at=_optional_int(mapping, "createdAt", 0, context),
            updated_at=_optional_int(mapping, "updatedAt", 0, context),
            folders=[Folder.from_dict(folder) for folder in folders_raw],
            characters=[SavedCharacter.from_dict(character) for character in characters_raw],
            settings=ProjectSettings.from_dict(mapping.get("settings")),
        )


@dataclass
class CharacterSheet:
    skills: List[str]
    possible_characters: List[Character]

    def to_dict(self) -> Dict[str, object]:
        return {
            "skills": list(self.skills),
            "possibleCharacters": [character.to_dict() for character in self.possible_characters],
        }

    @classmethod
    def from_dict(cls, data: Any) -> "CharacterSheet":
        mapping = _require_mapping(data, "response")
        skills = mapping.get("skills")
        characters = mapping.get("possibleCharacters")
        if not isinstance(skills, list):
            raise InvalidRecordError("response is missing list field 'skills'.")
        if not isinstance(characters, list):
            raise InvalidRecordError("response is missing list field 'possibleCharacters'.")
        return cls(
            skills=[str(skill) for skill in skills],
            possible_characters=[Character.from_dict(character) for character in characters],
        )


def parse_character_sheet(data: Any) -> CharacterSheet:
    try:
        return CharacterSheet.from_dict(data)
    except InvalidRecordError as exc:
        raise MalformedResponseError(f"Character response did not match the expected shape: {exc}") from exc


def character_from_dict(data: Any) -> Character:
    """Decode either a saved or an unsaved character record."""
    if isinstance(data, Mapping) and "id" in data:
        return SavedCharacter.from_dict(data)
    return Character.from_dict(data)


def tag_mapping(value: Any) -> Dict[str, List[str]]:
    return _tag_mapping(value, "tags")


def merge_tags(primary: Mapping[str, Sequence[str]], extra: Mapping[str, Sequence[str]]) -> Dict[str, List[str]]:
    merged: Dict[str, List[str]] = {category: list(tags) for category, tags in primary.items()}
    for category, tags in extra.items():
        bucket = merged.setdefault(category, [])
        for tag in tags:
            if tag not in bucket:
                bucket.append(tag)
    return merged
