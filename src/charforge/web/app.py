from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
import uvicorn

from ..categories import CATEGORY_DEFINITIONS, toggle_tag
from ..config import IMAGE_SIZES, Config, load_config
from ..errors import GenerationError, InvalidRecordError, ProjectNotFoundError
from ..forge import export_character, forge_character, render_portrait
from ..markov_names import generate_batch
from ..models import Character, tag_mapping
from ..projects import ProjectManager, preview_names
from ..service import CharacterService, GenerationClient, construct_image_prompt
from ..storage import AppState, KeyValueStore, UiState, open_store


class NamesRequest(BaseModel):
    seeds: List[str]
    order: Optional[int] = None
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    count: Optional[int] = Field(default=None, ge=0, le=200)


class NameRequest(BaseModel):
    name: str


class ToggleTagRequest(BaseModel):
    category: str
    tag: str


class GenerateRequest(BaseModel):
    tags: Dict[str, List[str]] = Field(default_factory=dict)
    project_id: Optional[str] = None


class SeedsRequest(BaseModel):
    tags: Dict[str, List[str]] = Field(default_factory=dict)
    naming_convention: Optional[str] = None


class SuggestTagsRequest(BaseModel):
    world_description: str


class PortraitRequest(BaseModel):
    character: Dict[str, Any]
    size: str = "1K"
    aspect_ratio: str = "3:4"
    prompt: Optional[str] = None


class MoveRequest(BaseModel):
    folder_id: Optional[str] = None


class AppServices:
    def __init__(self, config: Config, store: Optional[KeyValueStore] = None, service: Optional[CharacterService] = None) -> None:
        self.config = config
        self.state = AppState(store if store is not None else open_store(config.storage.path))
        self.projects = ProjectManager(self.state)
        self._service = service

    @property
    def service(self) -> CharacterService:
        if self._service is None:
            self._service = CharacterService(GenerationClient(self.config.service, progress=False))
        return self._service


def _character(payload: Dict[str, Any]) -> Character:
    try:
        return Character.from_dict(payload)
    except InvalidRecordError as exc:
        raise ValueError(str(exc)) from exc


def create_app(config: Config, store: Optional[KeyValueStore] = None, service: Optional[CharacterService] = None) -> FastAPI:
    services = AppServices(config, store=store, service=service)

    app = FastAPI(title="Character Forge", version="0.1.0")
    app.state.services = services

    @app.exception_handler(ProjectNotFoundError)
    async def project_not_found(_: Request, exc: ProjectNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def invalid_request(_: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(GenerationError)
    async def generation_failed(_: Request, exc: GenerationError) -> JSONResponse:
        return JSONResponse(status_code=502, content={"detail": str(exc)})

    @app.get("/api/categories")
    async def get_categories() -> JSONResponse:
        return JSONResponse([category.to_dict() for category in CATEGORY_DEFINITIONS])

    @app.get("/api/tags")
    async def get_tags() -> JSONResponse:
        return JSONResponse(services.state.load_tags())

    @app.put("/api/tags")
    async def put_tags(tags: Dict[str, List[str]]) -> JSONResponse:
        cleaned = tag_mapping(tags)
        services.state.save_tags(cleaned)
        return JSONResponse(cleaned)

    @app.post("/api/tags/toggle")
    async def post_toggle_tag(body: ToggleTagRequest) -> JSONResponse:
        updated = toggle_tag(services.state.load_tags(), body.category, body.tag)
        services.state.save_tags(updated)
        return JSONResponse(updated)

    @app.get("/api/ui-state")
    async def get_ui_state() -> JSONResponse:
        return JSONResponse(services.state.load_ui_state().to_dict())

    @app.put("/api/ui-state")
    async def put_ui_state(body: Dict[str, Any]) -> JSONResponse:
        ui_state = UiState.from_dict(body)
        services.state.save_ui_state(ui_state)
        return JSONResponse(ui_state.to_dict())

    @app.post("/api/names")
    async def post_names(body: NamesRequest) -> JSONResponse:
        defaults = services.config.names
        names = generate_batch(
            body.seeds,
            order=body.order if body.order is not None else defaults.order,
            min_length=body.min_length if body.min_length is not None else defaults.min_length,
            max_length=body.max_length if body.max_length is not None else defaults.max_length,
            count=body.count if body.count is not None else defaults.preview_count,
        )
        return JSONResponse({"names": names})

    @app.get("/api/projects")
    async def get_projects() -> JSONResponse:
        return JSONResponse(
            {
                "activeProjectId": services.projects.active_id,
                "projects": [project.to_dict() for project in services.projects.list_projects()],
            }
        )

    @app.post("/api/projects", status_code=201)
    async def post_project(body: NameRequest) -> JSONResponse:
        project = services.projects.create_project(body.name)
        return JSONResponse(project.to_dict(), status_code=201)

    @app.get("/api/projects/{project_id}")
    async def get_project(project_id: str) -> JSONResponse:
        return JSONResponse(services.projects.get_project(project_id).to_dict())

    @app.delete("/api/projects/{project_id}")
    async def delete_project(project_id: str) -> JSONResponse:
        services.projects.delete_project(project_id)
        return JSONResponse({"deleted": project_id})

    @app.post("/api/projects/{project_id}/activate")
    async def activate_project(project_id: str) -> JSONResponse:
        services.projects.set_active(project_id)
        return JSONResponse({"activeProjectId": project_id})

    @app.patch("/api/projects/{project_id}/settings")
    async def patch_settings(project_id: str, changes: Dict[str, Any]) -> JSONResponse:
        settings = services.projects.update_settings(project_id, changes)
        return JSONResponse(settings.to_dict())

    @app.post("/api/projects/{project_id}/folders", status_code=201)
    async def post_folder(project_id: str, body: NameRequest) -> JSONResponse:
        folder = services.projects.create_folder(project_id, body.name)
        return JSONResponse(folder.to_dict(), status_code=201)

    @app.get("/api/projects/{project_id}/names")
    async def get_project_names(
        project_id: str, count: Optional[int] = Query(default=None, ge=0, le=200)
    ) -> JSONResponse:
        settings = services.projects.get_project(project_id).settings
        names = preview_names(settings, count=count if count is not None else services.config.names.preview_count)
        return JSONResponse({"names": names})

    @app.post("/api/projects/{project_id}/characters", status_code=201)
    async def post_character(project_id: str, body: Dict[str, Any]) -> JSONResponse:
        saved = services.projects.save_character(project_id, _character(body))
        return JSONResponse(saved.to_dict(), status_code=201)

    @app.delete("/api/projects/{project_id}/characters/{character_id}")
    async def delete_character(project_id: str, character_id: str) -> JSONResponse:
        services.projects.delete_character(project_id, character_id)
        return JSONResponse({"deleted": character_id})

    @app.post("/api/projects/{project_id}/characters/{character_id}/move")
    async def move_character(project_id: str, character_id: str, body: MoveRequest) -> JSONResponse:
        moved = services.projects.move_character(project_id, character_id, body.folder_id)
        return JSONResponse(moved.to_dict())

    # Endpoints below call the remote service; plain ``def`` keeps them off the event loop.

    @app.post("/api/projects/{project_id}/seeds")
    def post_project_seeds(project_id: str, body: SeedsRequest) -> JSONResponse:
        settings = services.projects.get_project(project_id).settings
        convention = body.naming_convention or settings.naming_convention or None
        seeds = services.service.generate_seed_names(body.tags, naming_convention=convention)
        updated = services.projects.update_settings(project_id, {"markovSeeds": seeds})
        return JSONResponse(updated.to_dict())

    @app.post("/api/projects/{project_id}/analyze-style")
    def post_analyze_style(project_id: str) -> JSONResponse:
        project = services.projects.get_project(project_id)
        if not project.characters:
            return JSONResponse(project.settings.to_dict())
        pre, post = services.service.analyze_project_style(project.characters)
        return JSONResponse(services.projects.apply_style(project_id, pre, post).to_dict())

    @app.post("/api/projects/{project_id}/organize")
    def post_organize(project_id: str) -> JSONResponse:
        project = services.projects.get_project(project_id)
        if not project.characters:
            return JSONResponse({"folders": []})
        mapping = services.service.suggest_folders(project.characters)
        folders = services.projects.apply_folder_suggestions(project_id, mapping)
        return JSONResponse({"folders": [folder.to_dict() for folder in folders]})

    @app.post("/api/suggest-tags")
    def post_suggest_tags(body: SuggestTagsRequest) -> JSONResponse:
        return JSONResponse(services.service.suggest_tags(body.world_description))

    @app.post("/api/characters/generate")
    def post_generate(body: GenerateRequest) -> JSONResponse:
        settings = None
        if body.project_id is not None:
            settings = services.projects.get_project(body.project_id).settings
        character = forge_character(services.service, body.tags, settings)
        services.state.save_active_character(character)
        return JSONResponse(character.to_dict())

    @app.post("/api/characters/prompt")
    async def post_prompt(body: Dict[str, Any]) -> JSONResponse:
        return JSONResponse({"prompt": construct_image_prompt(_character(body).portrait_prompt_details)})

    @app.post("/api/characters/portrait")
    def post_portrait(body: PortraitRequest) -> JSONResponse:
        if body.size not in IMAGE_SIZES:
            raise ValueError(f"Unsupported image size '{body.size}'.")
        character = render_portrait(
            services.service,
            _character(body.character),
            size=body.size,
            prompt=body.prompt,
            aspect_ratio=body.aspect_ratio,
        )
        services.state.save_active_character(character)
        return JSONResponse(character.to_dict())

    @app.get("/api/characters/active")
    async def get_active_character() -> JSONResponse:
        character = services.state.load_active_character()
        return JSONResponse(character.to_dict() if character is not None else None)

    @app.post("/api/characters/export")
    async def post_export(body: Dict[str, Any]) -> JSONResponse:
        filename, payload = export_character(_character(body))
        return JSONResponse(payload, headers={"Content-Disposition": f'attachment; filename="{filename}"'})

    return app


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Run the character forge API server.")
    parser.add_argument("--config", type=Path, default=None, help="Path to a TOML config file.")
    parser.add_argument("--host", default="127.0.0.1", help="Host interface to bind.")
    parser.add_argument("--port", type=int, default=8000, help="Port to listen on.")
    args = parser.parse_args(argv)

    config = load_config(args.config.resolve() if args.config is not None else None)
    app = create_app(config)
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
