from __future__ import annotations

import re
from dataclasses import replace
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .categories import MIN_TAGS_FOR_GENERATION, count_tags
from .errors import GenerationError
from .models import Character, CharacterSheet, ProjectSettings, merge_tags
from .projects import Rng, pick_name
from .service import CharacterService, construct_image_prompt

PLACEHOLDER_PORTRAIT = "https://picsum.photos/seed/{character_id}/512/768"


def forge_character(
    service: CharacterService,
    tags: Mapping[str, Sequence[str]],
    settings: Optional[ProjectSettings] = None,
    rng: Rng = None,
) -> Character:
    settings = settings if settings is not None else ProjectSettings()
    effective_tags: Dict[str, List[str]] = merge_tags(tags, settings.default_tags)
    if count_tags(effective_tags) < MIN_TAGS_FOR_GENERATION:
        raise ValueError(f"Please select at least {MIN_TAGS_FOR_GENERATION} tags to guide the generation.")

    fixed_name = pick_name(settings, rng=rng)
    sheet = service.generate_character(
        effective_tags,
        fixed_name=fixed_name,
        fixed_style_pre=settings.locked_style_pre or None,
        fixed_style_post=settings.locked_style_post or None,
        naming_convention=settings.naming_convention or None,
    )
    if not sheet.possible_characters:
        raise GenerationError("AI returned no character data. Please try again.")
    character = sheet.possible_characters[0]
    return replace(character, portrait=PLACEHOLDER_PORTRAIT.format(character_id=character.character_id))


def render_portrait(
    service: CharacterService,
    character: Character,
    size: str = "1K",
    prompt: Optional[str] = None,
    aspect_ratio: str = "3:4",
) -> Character:
    text = prompt if prompt is not None else construct_image_prompt(character.portrait_prompt_details)
    if not text.strip():
        raise ValueError("Image prompt must not be empty.")
    image = service.client.generate_image(text, size=size, aspect_ratio=aspect_ratio)
    return replace(character, portrait=image)


def export_filename(name: str) -> str:
    return re.sub(r"\s+", "_", name).lower() + ".json"


def export_character(character: Character) -> Tuple[str, Dict[str, object]]:
    sheet = CharacterSheet(skills=list(character.skills), possible_characters=[character])
    return export_filename(character.name), sheet.to_dict()
