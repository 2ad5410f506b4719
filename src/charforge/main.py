from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .config import IMAGE_SIZES, Config, load_config
from .errors import CharforgeError
from .forge import export_character, forge_character, render_portrait
from .markov_names import FANTASY_SEEDS, generate_batch
from .models import Project
from .projects import ProjectManager
from .service import CharacterService, GenerationClient
from .storage import AppState, open_store


def _parse_tags(values: Optional[Sequence[str]]) -> Dict[str, List[str]]:
    tags: Dict[str, List[str]] = {}
    for value in values or ():
        category, sep, tag = value.partition("=")
        if not sep or not category.strip() or not tag.strip():
            raise ValueError(f"Tags must look like category=tag, got '{value}'.")
        bucket = tags.setdefault(category.strip(), [])
        if tag.strip() not in bucket:
            bucket.append(tag.strip())
    return tags


def _read_seeds(args: argparse.Namespace) -> List[str]:
    seeds: List[str] = list(args.seeds or [])
    if args.seeds_file is not None:
        seeds.extend(args.seeds_file.read_text(encoding="utf-8").splitlines())
    return seeds or list(FANTASY_SEEDS)


def _manager(config: Config) -> ProjectManager:
    return ProjectManager(AppState(open_store(config.storage.path)))


def _service(config: Config) -> CharacterService:
    return CharacterService(GenerationClient(config.service))


def _emit(payload: object, fmt: str, text_lines: Sequence[str]) -> None:
    if fmt == "json":
        print(json.dumps(payload, indent=2, ensure_ascii=False))
    else:
        for line in text_lines:
            print(line)


def _project_lines(project: Project, active_id: Optional[str]) -> List[str]:
    marker = "*" if project.id == active_id else " "
    lines = [f"{marker} {project.name} ({project.id})"]
    folder_names = {folder.id: folder.name for folder in project.folders}
    for folder in project.folders:
        lines.append(f"    [{folder.name}]")
    for character in project.characters:
        folder = folder_names.get(character.folder_id or "", "-")
        lines.append(f"    - {character.name} ({folder})")
    return lines


def _cmd_names(args: argparse.Namespace, config: Config) -> int:
    order = args.order if args.order is not None else config.names.order
    min_length = args.min_length if args.min_length is not None else config.names.min_length
    max_length = args.max_length if args.max_length is not None else config.names.max_length
    count = args.count if args.count is not None else config.names.preview_count
    names = generate_batch(_read_seeds(args), order, min_length, max_length, count=count, rng=args.seed)
    _emit(names, args.format, names)
    return 0


def _cmd_seeds(args: argparse.Namespace, config: Config) -> int:
    tags = _parse_tags(args.tag)
    manager = _manager(config) if args.project else None
    convention = args.naming_convention
    if manager is not None and convention is None:
        convention = manager.get_project(args.project).settings.naming_convention or None
    seeds = _service(config).generate_seed_names(tags, naming_convention=convention)
    if manager is not None:
        manager.update_settings(args.project, {"markovSeeds": seeds})
    _emit(seeds, args.format, seeds)
    return 0


def _cmd_character(args: argparse.Namespace, config: Config) -> int:
    tags = _parse_tags(args.tag)
    manager = _manager(config) if args.project else None
    settings = manager.get_project(args.project).settings if manager is not None else None
    service = _service(config)
    character = forge_character(service, tags, settings)
    if args.portrait:
        character = render_portrait(service, character, size=args.size)
    if manager is not None and args.save:
        character = manager.save_character(args.project, character)
    filename, payload = export_character(character)
    if args.output is not None:
        target = args.output / filename if args.output.is_dir() else args.output
        target.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
        print(f"Wrote {target}", file=sys.stderr)
    lines = [character.name, "", character.description, ""]
    lines.extend(f"{skill}: {score}" for skill, score in character.skills.items())
    _emit(payload, args.format, lines)
    return 0


def _cmd_projects(args: argparse.Namespace, config: Config) -> int:
    manager = _manager(config)
    if args.action == "create":
        project = manager.create_project(args.name)
        _emit(project.to_dict(), args.format, [f"Created {project.name} ({project.id})"])
    elif args.action == "delete":
        manager.delete_project(args.project)
        _emit({"deleted": args.project}, args.format, [f"Deleted {args.project}"])
    elif args.action == "folder":
        folder = manager.create_folder(args.project, args.name)
        _emit(folder.to_dict(), args.format, [f"Created folder {folder.name} ({folder.id})"])
    elif args.action == "activate":
        manager.set_active(args.project)
        _emit({"active": args.project}, args.format, [f"Active project is now {args.project}"])
    else:
        projects = manager.list_projects()
        lines: List[str] = []
        for project in projects:
            lines.extend(_project_lines(project, manager.active_id))
        _emit([project.to_dict() for project in projects], args.format, lines)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Forge RPG characters and procedural names.")
    parser.add_argument("--config", type=Path, default=None, help="Path to a TOML config file.")
    parser.add_argument("--format", choices=("json", "text"), default="text", help="Choose the output format.")
    sub = parser.add_subparsers(dest="command", required=True)

    names = sub.add_parser("names", help="Generate names offline from seed names.")
    names.add_argument("--seeds", nargs="*", help="Seed names used as training data.")
    names.add_argument("--seeds-file", type=Path, default=None, help="File with one seed name per line.")
    names.add_argument("--order", type=int, default=None, help="Markov chain order (1-4).")
    names.add_argument("--min-length", type=int, default=None, help="Minimum name length.")
    names.add_argument("--max-length", type=int, default=None, help="Maximum name length.")
    names.add_argument("--count", type=int, default=None, help="How many names to generate.")
    names.add_argument("--seed", type=int, default=None, help="Random seed for reproducible output.")
    names.set_defaults(handler=_cmd_names)

    seeds = sub.add_parser("seeds", help="Ask the generation service for seed names.")
    seeds.add_argument("--tag", action="append", help="Tag as category=value (repeatable).")
    seeds.add_argument("--naming-convention", default=None, help="Naming style to follow.")
    seeds.add_argument("--project", default=None, help="Store the seeds on this project.")
    seeds.set_defaults(handler=_cmd_seeds)

    character = sub.add_parser("character", help="Generate a character sheet.")
    character.add_argument("--tag", action="append", help="Tag as category=value (repeatable).")
    character.add_argument("--project", default=None, help="Use this project's settings.")
    character.add_argument("--save", action="store_true", help="Save the character to --project.")
    character.add_argument("--portrait", action="store_true", help="Also render a portrait.")
    character.add_argument("--size", choices=IMAGE_SIZES, default="1K", help="Portrait size.")
    character.add_argument("--output", type=Path, default=None, help="Write the export JSON here.")
    character.set_defaults(handler=_cmd_character)

    projects = sub.add_parser("projects", help="Manage projects and folders.")
    projects.add_argument("action", choices=("list", "create", "delete", "folder", "activate"), nargs="?", default="list")
    projects.add_argument("--project", default=None, help="Project id for delete/folder/activate.")
    projects.add_argument("--name", default=None, help="Name for create/folder.")
    projects.set_defaults(handler=_cmd_projects)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if getattr(args, "action", None) in {"delete", "folder", "activate"} and not args.project:
        parser.error(f"projects {args.action} requires --project")
    if getattr(args, "action", None) in {"create", "folder"} and not args.name:
        parser.error(f"projects {args.action} requires --name")
    if args.command == "character" and args.save and not args.project:
        parser.error("--save requires --project")

    try:
        config = load_config(args.config)
        return args.handler(args, config)
    except (CharforgeError, ValueError, FileNotFoundError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
