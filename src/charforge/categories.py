from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Sequence, Tuple

MIN_TAGS_FOR_GENERATION = 3

SKILLS_CATEGORY = "skills"
DESCRIPTION_ELEMENTS_CATEGORY = "description_elements"


@dataclass(frozen=True)
class CategoryDefinition:
    id: str
    description: str
    suggested_tags: Tuple[str, ...]

    def to_dict(self) -> Dict[str, object]:
        return {"id": self.id, "description": self.description, "suggestedTags": list(self.suggested_tags)}


CATEGORY_DEFINITIONS: Tuple[CategoryDefinition, ...] = (
    CategoryDefinition(
        id="source",
        description="Indicates the source material the character comes from.",
        suggested_tags=("Original Character", "Genshin Impact", "Star Wars", "Cyberpunk 2077", "Elden Ring", "Marvel Universe"),
    ),
    CategoryDefinition(
        id="identity",
        description="Describes the character's fundamental, unchangeable nature.",
        suggested_tags=("Female", "Male", "Human", "Elf", "Demon", "Android", "Vampire", "Dragonborn"),
    ),
    CategoryDefinition(
        id="appearance",
        description="Specific details about the character's physical look.",
        suggested_tags=("Petite", "Tall", "Muscular", "Goth", "Cybernetic", "Tattoos", "Glasses", "Long Hair", "Short Hair"),
    ),
    CategoryDefinition(
        id="personality",
        description="Defines the character's inner world, temperament, and how they behave.",
        suggested_tags=("Shy", "Kind", "Cold", "Motherly", "Bratty", "Stoic", "Energetic"),
    ),
    CategoryDefinition(
        id="role",
        description="Defines the character's relationship to the user.",
        suggested_tags=("Teacher", "Bully", "Rival", "Childhood Friend", "Boss", "Servant", "Enemy Commander"),
    ),
    CategoryDefinition(
        id="genre",
        description="Establishes the setting and the 'rules' of the character's world.",
        suggested_tags=("Fantasy", "Sci-Fi", "Modern Day", "Post-Apocalyptic", "Steampunk", "Cyberpunk", "Historical"),
    ),
    CategoryDefinition(
        id="tone",
        description="Defines the emotional atmosphere and writing style of the roleplay.",
        suggested_tags=("Romance", "Horror", "Wholesome", "Dark", "Comedic", "Dramatic", "Slow Burn"),
    ),
    CategoryDefinition(
        id="dynamic",
        description="Describes a plot progression or a change in the relationship.",
        suggested_tags=("Enemies to Lovers", "Transformation", "Corruption", "Redemption", "Secret Relationship", "Forced Proximity"),
    ),
    CategoryDefinition(
        id=SKILLS_CATEGORY,
        description="Select specific skills for the character. If left empty, the standard D&D 5e skill list will be used.",
        suggested_tags=("Swordsmanship", "Hacking", "Cooking", "Magic", "Stealth", "Diplomacy", "Medicine", "Marksmanship", "Engineering", "Performance"),
    ),
    CategoryDefinition(
        id=DESCRIPTION_ELEMENTS_CATEGORY,
        description="Controls details generated inside the 'description' field. Use format 'Name: type' (e.g., 'Age: single value', 'History: text block 2p').",
        suggested_tags=(
            "Age: single value",
            "Height: single value",
            "Personality Summary: text block 3s",
            "Appearance Detail: text block 1p",
            "Backstory: text block 3p",
            "Secret: text block 1s",
            "Clothing Style: text block 2s",
        ),
    ),
    CategoryDefinition(
        id="meta",
        description="Technical tags describing the card itself or conditions.",
        suggested_tags=("SFW", "Roleplay", "MalePOV", "FemalePOV", "AnyPOV"),
    ),
)

CATEGORY_IDS = tuple(category.id for category in CATEGORY_DEFINITIONS)

DEFAULT_SKILL_KEYS: Tuple[str, ...] = (
    "Acrobatics",
    "Animal Handling",
    "Arcana",
    "Athletics",
    "Deception",
    "History",
    "Insight",
    "Intimidation",
    "Investigation",
    "Medicine",
    "Nature",
    "Perception",
    "Performance",
    "Persuasion",
    "Religion",
    "Sleight of Hand",
    "Stealth",
    "Survival",
)


def count_tags(tags: Mapping[str, Sequence[str]]) -> int:
    return sum(len(values) for values in tags.values())


def toggle_tag(tags: Mapping[str, Sequence[str]], category: str, tag: str) -> Dict[str, List[str]]:
    updated = {key: list(values) for key, values in tags.items()}
    current = updated.get(category, [])
    if tag in current:
        updated[category] = [value for value in current if value != tag]
    else:
        updated[category] = current + [tag]
    return updated


def active_skills(tags: Mapping[str, Sequence[str]]) -> List[str]:
    selected = list(tags.get(SKILLS_CATEGORY, ()))
    return selected if selected else list(DEFAULT_SKILL_KEYS)
