from __future__ import annotations

from dataclasses import replace
import json
import sys
import threading
import time
import uuid
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import requests

from .categories import CATEGORY_IDS, DESCRIPTION_ELEMENTS_CATEGORY, active_skills
from .config import IMAGE_SIZES, ServiceConfig
from .errors import GenerationError, MalformedResponseError
from .models import Character, CharacterSheet, PortraitPromptDetails, parse_character_sheet

MAX_IMAGE_PROMPT_LENGTH = 2000
STYLE_SAMPLE_SIZE = 10
SEED_NAME_COUNT = 60


def clean_and_parse_json(text: str) -> Any:
    clean = text.strip()
    if clean.startswith("```json"):
        clean = clean[len("```json"):]
    elif clean.startswith("```"):
        clean = clean[3:]
    if clean.endswith("```"):
        clean = clean[:-3]
    return json.loads(clean.strip())


def construct_image_prompt(details: PortraitPromptDetails) -> str:
    parts = [
        details.style_pre,
        details.appearance,
        details.clothes,
        details.expression_position,
        details.setting,
        details.style_post,
    ]
    prompt = " ".join(part for part in parts if part and part.strip())
    return prompt[:MAX_IMAGE_PROMPT_LENGTH]


def _warn(message: str) -> None:
    print(message, file=sys.stderr, flush=True)


class GenerationClient:
    """Thin client for the Gemini ``generateContent`` REST endpoint."""

    def __init__(self, config: ServiceConfig, progress: bool = True) -> None:
        self._endpoint = config.endpoint.rstrip("/")
        self._text_model = config.text_model
        self._image_model = config.image_model
        self._api_key = config.api_key
        self._timeout = config.timeout
        self._temperature = config.temperature
        self._progress = progress

    def _url(self, model: str) -> str:
        return f"{self._endpoint}/v1beta/models/{model}:generateContent"

    def _post(self, model: str, payload: Mapping[str, Any]) -> Mapping[str, Any]:
        if not self._api_key:
            raise GenerationError("Gemini API key is not configured.")
        stop_event = threading.Event()
        last_message = ""

        def emit(message: str) -> None:
            nonlocal last_message
            last_message = message
            print(message, file=sys.stderr, end="\r", flush=True)

        def ticker() -> None:
            remaining = max(int(self._timeout), 1)
            while not stop_event.is_set() and remaining >= 0:
                emit(f"Waiting for {model} response... {remaining:3d}s remaining")
                stop_event.wait(1)
                remaining -= 1
            if not stop_event.is_set():
                emit(f"Waiting for {model} response... still working, please stand by")

        start_time = time.time()
        ticker_thread: Optional[threading.Thread] = None
        if self._progress:
            ticker_thread = threading.Thread(target=ticker, daemon=True)
            ticker_thread.start()
        success = False
        try:
            try:
                response = requests.post(
                    self._url(model),
                    json=payload,
                    headers={"x-goog-api-key": self._api_key},
                    timeout=self._timeout,
                )
            except requests.RequestException as exc:
                raise GenerationError(f"Generation request failed: {exc}") from exc
            if response.status_code >= 400:
                raise GenerationError(f"Generation request returned status {response.status_code}: {response.text}")
            try:
                data = response.json()
            except ValueError as exc:
                raise MalformedResponseError(f"Malformed response from generation service: {response.text}") from exc
            if not isinstance(data, Mapping):
                raise MalformedResponseError("Generation service returned a non-object payload.")
            error = data.get("error")
            if error:
                message = error.get("message") if isinstance(error, Mapping) else None
                raise GenerationError(str(message or error))
            success = True
        finally:
            stop_event.set()
            if ticker_thread is not None:
                ticker_thread.join()
                if last_message:
                    print(" " * len(last_message), file=sys.stderr, end="\r", flush=True)
                duration = time.time() - start_time
                summary = (
                    f"{model} response received in {duration:.1f}s"
                    if success
                    else f"{model} request ended after {duration:.1f}s"
                )
                print(summary, file=sys.stderr, flush=True)
        return data

    @staticmethod
    def _parts(data: Mapping[str, Any]) -> List[Mapping[str, Any]]:
        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            raise MalformedResponseError("No candidates in generation response.")
        first = candidates[0]
        content = first.get("content") if isinstance(first, Mapping) else None
        parts = content.get("parts") if isinstance(content, Mapping) else None
        if not isinstance(parts, list):
            raise MalformedResponseError("No content parts in generation response.")
        return [part for part in parts if isinstance(part, Mapping)]

    def generate_text(
        self,
        prompt: str,
        system: Optional[str] = None,
        json_mode: bool = True,
        schema: Optional[Mapping[str, Any]] = None,
        temperature: Optional[float] = None,
    ) -> str:
        generation_config: Dict[str, Any] = {
            "temperature": self._temperature if temperature is None else temperature,
        }
        if json_mode:
            generation_config["responseMimeType"] = "application/json"
        if schema is not None:
            generation_config["responseSchema"] = dict(schema)
        payload: Dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt.strip()}]}],
            "generationConfig": generation_config,
        }
        if system and system.strip():
            payload["systemInstruction"] = {"parts": [{"text": system.strip()}]}
        data = self._post(self._text_model, payload)
        text = "".join(str(part.get("text") or "") for part in self._parts(data))
        if not text.strip():
            raise GenerationError("No text returned from generation service.")
        return text.strip()

    def generate_image(self, prompt: str, size: str = "1K", aspect_ratio: str = "3:4") -> str:
        if size not in IMAGE_SIZES:
            raise ValueError(f"Unsupported image size '{size}'; expected one of {', '.join(IMAGE_SIZES)}.")
        payload = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseModalities": ["IMAGE"],
                "imageConfig": {"aspectRatio": aspect_ratio, "imageSize": size},
            },
        }
        data = self._post(self._image_model, payload)
        for part in self._parts(data):
            inline = part.get("inlineData")
            if isinstance(inline, Mapping) and inline.get("data"):
                mime_type = inline.get("mimeType") or "image/png"
                return f"data:{mime_type};base64,{inline['data']}"
        raise GenerationError("No image data found in generation response.")


def _tag_lines(tags: Mapping[str, Sequence[str]]) -> str:
    return "\n".join(f"{category}: {', '.join(values)}" for category, values in tags.items() if values)


def _description_instruction(elements: Sequence[str]) -> str:
    if not elements:
        return (
            "The 'description' field is an immersive summary of appearance, personality and background, "
            "organised into sections headed by an emoji and a label and separated by blank lines."
        )
    lines = "\n".join(f"- {element}" for element in elements)
    return (
        "The 'description' field must combine exactly these elements, each headed by an emoji and its label "
        "and separated by blank lines:\n"
        f"{lines}\n"
        "'single value' means one value on the header line; 'text block Ns' means N sentences; "
        "'text block Np' means N paragraphs."
    )


def _character_schema(skills: Sequence[str]) -> Dict[str, Any]:
    text = {"type": "STRING"}
    return {
        "type": "OBJECT",
        "properties": {
            "skills": {"type": "ARRAY", "items": text},
            "possibleCharacters": {
                "type": "ARRAY",
                "items": {
                    "type": "OBJECT",
                    "properties": {
                        "name": text,
                        "description": text,
                        "characterId": text,
                        "portraitPromptDetails": {
                            "type": "OBJECT",
                            "properties": {
                                "illustrClothes": text,
                                "illustrSetting": text,
                                "illustrAppearance": text,
                                "illustrExpressionPosition": text,
                                "illustrStylePre": text,
                                "illustrStylePost": text,
                            },
                            "required": [
                                "illustrAppearance",
                                "illustrClothes",
                                "illustrExpressionPosition",
                                "illustrSetting",
                            ],
                        },
                        "skills": {
                            "type": "OBJECT",
                            "properties": {skill: {"type": "INTEGER"} for skill in skills},
                            "required": list(skills),
                        },
                    },
                    "required": ["name", "description", "portraitPromptDetails", "skills", "characterId"],
                },
            },
        },
        "required": ["possibleCharacters", "skills"],
    }


class CharacterService:
    def __init__(self, client: GenerationClient) -> None:
        self._client = client

    @property
    def client(self) -> GenerationClient:
        return self._client

    def _parse_optional(self, text: str, what: str) -> Any:
        try:
            return clean_and_parse_json(text)
        except ValueError as exc:
            _warn(f"Failed to parse {what}: {exc}")
            return None

    def generate_character(
        self,
        tags: Mapping[str, Sequence[str]],
        fixed_name: Optional[str] = None,
        fixed_style_pre: Optional[str] = None,
        fixed_style_post: Optional[str] = None,
        naming_convention: Optional[str] = None,
    ) -> CharacterSheet:
        skills = active_skills(tags)
        if fixed_name:
            name_instruction = f'Use the name "{fixed_name}" for the character and fit the details to it.'
        elif naming_convention:
            name_instruction = f"Generate a unique name following this naming convention: {naming_convention}."
        else:
            name_instruction = "Generate a unique, creative name fitting the genre and source tags."
        style_pre = (
            f"Set 'illustrStylePre' to EXACTLY: \"{fixed_style_pre}\"."
            if fixed_style_pre
            else "Fill 'illustrStylePre' with high priority style keywords."
        )
        style_post = (
            f"Set 'illustrStylePost' to EXACTLY: \"{fixed_style_post}\"."
            if fixed_style_post
            else "Fill 'illustrStylePost' with lighting and detail keywords."
        )
        system = "\n".join(
            [
                "You are an expert RPG character designer. Create a unique character from the user's tags.",
                name_instruction,
                f"The 'skills' object must use exactly these keys: {', '.join(skills)}.",
                "Skill values are integers from 1 (novice) to 5 (legendary).",
                "'portraitPromptDetails' describes the portrait for an image generator.",
                f"- {style_pre}",
                f"- {style_post}",
                _description_instruction(tags.get(DESCRIPTION_ELEMENTS_CATEGORY, ())),
            ]
        )
        prompt = f"Generate a character based on these tags:\n{_tag_lines(tags)}"
        text = self._client.generate_text(prompt, system=system, schema=_character_schema(skills))
        try:
            data = clean_and_parse_json(text)
        except ValueError as exc:
            raise MalformedResponseError(f"Character response is not valid JSON: {exc}") from exc
        sheet = parse_character_sheet(data)

        characters: List[Character] = []
        for character in sheet.possible_characters:
            details = character.portrait_prompt_details
            if fixed_style_pre:
                details = replace(details, style_pre=fixed_style_pre)
            if fixed_style_post:
                details = replace(details, style_post=fixed_style_post)
            characters.append(
                replace(
                    character,
                    portrait_prompt_details=details,
                    character_id=character.character_id or str(uuid.uuid4()),
                )
            )
        return CharacterSheet(skills=sheet.skills, possible_characters=characters)

    def generate_seed_names(
        self,
        tags: Mapping[str, Sequence[str]],
        naming_convention: Optional[str] = None,
    ) -> List[str]:
        source = ", ".join(tags.get("source", ()))
        identity = ", ".join(tags.get("identity", ()))
        genre = ", ".join(tags.get("genre", ()))
        prompt = f"Generate a JSON array of {SEED_NAME_COUNT} unique, distinct names"
        if naming_convention:
            prompt += f" following this naming convention: {naming_convention}."
        elif source and source != "Original Character":
            prompt += (
                f' based on the lore, linguistics and naming conventions of "{source}". '
                "Include minor characters, locations or deities that make good roots for a Markov chain."
            )
        elif identity:
            prompt += f" suitable for a {identity} character in a {genre or 'generic'} setting, linguistically consistent."
        else:
            prompt += " suitable for a generic RPG character."
        prompt += " Return ONLY the JSON array of strings."
        parsed = self._parse_optional(self._client.generate_text(prompt), "seed names")
        if not isinstance(parsed, list):
            return []
        return [str(name).strip() for name in parsed if isinstance(name, str) and name.strip()]

    def analyze_project_style(self, characters: Sequence[Character]) -> Tuple[str, str]:
        if not characters:
            return "", ""
        examples = "\n---\n".join(
            f"Character: {character.name}\n"
            f"Style Pre: {character.portrait_prompt_details.style_pre or ''}\n"
            f"Style Post: {character.portrait_prompt_details.style_post or ''}"
            for character in characters[:STYLE_SAMPLE_SIZE]
        )
        prompt = (
            f"Analyze the art styles of these characters:\n{examples}\n\n"
            "Identify the common visual themes, art mediums and lighting styles. "
            "Synthesize a single unified 'pre' (medium, art style) and 'post' (rendering details, lighting). "
            'Return JSON: { "pre": "...", "post": "..." }'
        )
        parsed = self._parse_optional(self._client.generate_text(prompt), "style analysis")
        if not isinstance(parsed, Mapping):
            return "", ""
        return str(parsed.get("pre") or ""), str(parsed.get("post") or "")

    def suggest_folders(self, characters: Sequence[Any]) -> Dict[str, List[str]]:
        entries = [
            {
                "id": getattr(character, "id", None) or character.character_id,
                "name": character.name,
                "desc": character.description[:100],
            }
            for character in characters
        ]
        prompt = (
            "Organize these characters into logical folders based on their likely faction, location, or team.\n"
            f"Characters: {json.dumps(entries)}\n\n"
            "Return a JSON object where keys are folder names and values are arrays of character IDs. "
            "Create 3-5 groups max."
        )
        parsed = self._parse_optional(self._client.generate_text(prompt), "folder suggestions")
        if not isinstance(parsed, Mapping):
            return {}
        return {
            str(folder): [str(item) for item in ids]
            for folder, ids in parsed.items()
            if isinstance(ids, list)
        }

    def suggest_tags(self, world_description: str) -> Dict[str, List[str]]:
        description = world_description.strip()
        if not description:
            return {}
        prompt = (
            f"Suggest character tags for this world:\n{description}\n\n"
            f"Return a JSON object whose keys are among: {', '.join(CATEGORY_IDS)}; "
            "each value is an array of short tags."
        )
        parsed = self._parse_optional(self._client.generate_text(prompt), "tag suggestions")
        if not isinstance(parsed, Mapping):
            return {}
        suggestions: Dict[str, List[str]] = {}
        for category, values in parsed.items():
            if category not in CATEGORY_IDS or not isinstance(values, list):
                continue
            cleaned = [str(value).strip() for value in values if isinstance(value, str) and value.strip()]
            if cleaned:
                suggestions[category] = cleaned
        return suggestions
