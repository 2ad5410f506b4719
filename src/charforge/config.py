from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

try:  # Python 3.11+
    import tomllib
except ModuleNotFoundError:  # pragma: no cover - fallback for 3.10
    import tomli as tomllib  # type: ignore[no-redef]

MEMORY_STORAGE = ":memory:"
IMAGE_SIZES = ("1K", "2K", "4K")


@dataclass(frozen=True)
class ServiceConfig:
    endpoint: str
    text_model: str
    image_model: str
    api_key: Optional[str]
    timeout: float
    temperature: float


@dataclass(frozen=True)
class NamesConfig:
    order: int
    min_length: int
    max_length: int
    preview_count: int


@dataclass(frozen=True)
class StorageConfig:
    path: Optional[Path]


@dataclass(frozen=True)
class Config:
    service: ServiceConfig
    names: NamesConfig
    storage: StorageConfig


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = raw.get(name, {})
    if section is None:
        return {}
    if not isinstance(section, Mapping):
        raise ValueError(f"[{name}] must be a table if provided.")
    return section


def _int_setting(section: Mapping[str, Any], table: str, key: str, default: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{table}.{key} must be an integer.")
    return value


def _resolve_api_key(service_raw: Mapping[str, Any], environ: Mapping[str, str]) -> Optional[str]:
    explicit = service_raw.get("api_key")
    if isinstance(explicit, str) and explicit.strip():
        return explicit.strip()
    env_name = str(service_raw.get("api_key_env", "GEMINI_API_KEY"))
    from_env = environ.get(env_name, "").strip()
    return from_env or None


def _resolve_storage(storage_raw: Mapping[str, Any], base_dir: Path) -> Optional[Path]:
    value = storage_raw.get("path", "charforge.db")
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ValueError("storage.path must be a non-empty string.")
    if value.strip() == MEMORY_STORAGE:
        return None
    path = Path(os.path.expanduser(value.strip()))
    if not path.is_absolute():
        path = (base_dir / path).resolve()
    return path


def parse_config(raw: Mapping[str, Any], base_dir: Path, environ: Optional[Mapping[str, str]] = None) -> Config:
    env = os.environ if environ is None else environ

    service_raw = _section(raw, "service")
    timeout = float(service_raw.get("timeout", 90))
    if timeout <= 0:
        raise ValueError("service.timeout must be positive.")
    service = ServiceConfig(
        endpoint=str(service_raw.get("endpoint", "https://generativelanguage.googleapis.com")).rstrip("/"),
        text_model=str(service_raw.get("text_model", "gemini-2.5-flash")),
        image_model=str(service_raw.get("image_model", "gemini-3-pro-image-preview")),
        api_key=_resolve_api_key(service_raw, env),
        timeout=timeout,
        temperature=float(service_raw.get("temperature", 1.0)),
    )

    names_raw = _section(raw, "names")
    names = NamesConfig(
        order=_int_setting(names_raw, "names", "order", 2),
        min_length=_int_setting(names_raw, "names", "min_length", 4),
        max_length=_int_setting(names_raw, "names", "max_length", 12),
        preview_count=max(1, _int_setting(names_raw, "names", "preview_count", 12)),
    )

    storage = StorageConfig(path=_resolve_storage(_section(raw, "storage"), base_dir))
    return Config(service=service, names=names, storage=storage)


def load_config(path: str | Path | None = None, environ: Optional[Mapping[str, str]] = None) -> Config:
    if path is None:
        return parse_config({}, Path.cwd(), environ)
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")
    with config_path.open("rb") as handle:
        raw = tomllib.load(handle)
    return parse_config(raw, config_path.resolve().parent, environ)
