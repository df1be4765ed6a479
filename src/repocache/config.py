"""Configuration loader for REST-backed repositories."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

import yaml
from jsonschema import Draft7Validator

from .errors import ConfigError
from .factory import RepositoryFactory
from .resource import RequestQueue, RestResource

REPOSITORY_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "collection_url": {"type": "string"},
        "collection_key_names": {
            "type": "array",
            "items": {"type": "string", "minLength": 1},
            "maxItems": 4,
        },
        "item_url": {"type": "string"},
        "item_key_name": {"type": "string", "minLength": 1},
        "search_url": {"type": "string"},
        "compare_key_name": {"type": "string", "minLength": 1},
        "no_cache": {"type": "boolean"},
        "uses_save_for_new_item": {"type": "boolean"},
    },
    "dependencies": {"item_url": ["item_key_name"]},
}

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["repositories"],
    "properties": {
        "base_url": {"type": "string"},
        "api_key": {"type": ["string", "null"]},
        "timeout": {"type": "integer", "minimum": 1},
        "no_cache": {"type": "boolean"},
        "repositories": {
            "type": "object",
            "additionalProperties": REPOSITORY_SCHEMA,
        },
    },
}

_validator = Draft7Validator(CONFIG_SCHEMA)


def validate_config(payload: Dict[str, Any]) -> None:
    errors = sorted(_validator.iter_errors(payload), key=lambda e: [str(p) for p in e.path])
    if errors:
        messages = ", ".join(
            f"{'.'.join(str(p) for p in error.path) or '<root>'}: {error.message}" for error in errors
        )
        raise ConfigError(f"repository config validation failed: {messages}")


@dataclass(frozen=True)
class RepositorySettings:
    name: str
    collection_url: Optional[str] = None
    collection_key_names: tuple = ()
    item_url: Optional[str] = None
    item_key_name: Optional[str] = None
    search_url: Optional[str] = None
    compare_key_name: Optional[str] = None
    no_cache: bool = False
    uses_save_for_new_item: bool = False


@dataclass(frozen=True)
class RepoCacheConfig:
    base_url: str
    api_key: Optional[str]
    timeout: int
    repositories: Dict[str, RepositorySettings] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RepoCacheConfig":
        global_no_cache = bool(data.get("no_cache", False))
        repositories = {}
        for name, repo in (data.get("repositories") or {}).items():
            repo = repo or {}
            repositories[name] = RepositorySettings(
                name=name,
                collection_url=repo.get("collection_url"),
                collection_key_names=tuple(repo.get("collection_key_names", ())),
                item_url=repo.get("item_url"),
                item_key_name=repo.get("item_key_name"),
                search_url=repo.get("search_url"),
                compare_key_name=repo.get("compare_key_name"),
                no_cache=global_no_cache or bool(repo.get("no_cache", False)),
                uses_save_for_new_item=bool(repo.get("uses_save_for_new_item", False)),
            )
        return cls(
            base_url=data.get("base_url", ""),
            api_key=data.get("api_key"),
            timeout=int(data.get("timeout", RestResource.DEFAULT_TIMEOUT)),
            repositories=repositories,
        )


ENV_MAP = {
    "base_url": "REPOCACHE_BASE_URL",
    "api_key": "REPOCACHE_API_KEY",
    "timeout": "REPOCACHE_TIMEOUT",
    "no_cache": "REPOCACHE_NO_CACHE",
}


def load_yaml(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def merge_env_overrides(config_data: Dict[str, Any]) -> Dict[str, Any]:
    merged = json.loads(json.dumps(config_data))  # deep copy via json

    for key, env_name in ENV_MAP.items():
        if env_name not in os.environ:
            continue
        value: Any = os.environ[env_name]
        if key == "timeout":
            value = int(value)
        elif key == "no_cache":
            value = value.strip().lower() in {"1", "true", "yes", "on"}
        merged[key] = value

    return merged


def load_config(config_path: str | Path = "config/repositories.defaults.yml") -> RepoCacheConfig:
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    data = load_yaml(path)
    data = merge_env_overrides(data)
    validate_config(data)
    return RepoCacheConfig.from_dict(data)


def build_repositories(
    config: RepoCacheConfig,
    factory: Optional[RepositoryFactory] = None,
    decorators: Optional[Mapping[str, Mapping[str, Callable]]] = None,
    queue: Optional[RequestQueue] = None,
) -> RepositoryFactory:
    """
    Register one repository per configured entry. All resources share one
    request queue. ``decorators`` maps a repository name to its
    collection_key_decorator / item_key_decorator / item_decorator.
    """
    factory = factory or RepositoryFactory()
    queue = queue if queue is not None else RequestQueue()
    decorators = decorators or {}

    def resource(url: Optional[str]) -> Optional[RestResource]:
        if not url:
            return None
        return RestResource(url, base_url=config.base_url, api_key=config.api_key,
                            timeout=config.timeout, queue=queue)

    for name, settings in config.repositories.items():
        options: Dict[str, Any] = {
            "collection_resource": resource(settings.collection_url),
            "collection_key_names": list(settings.collection_key_names),
            "item_resource": resource(settings.item_url),
            "item_key_name": settings.item_key_name,
            "search_resource": resource(settings.search_url),
            "compare_key_name": settings.compare_key_name,
            "no_cache": settings.no_cache,
            "uses_save_for_new_item": settings.uses_save_for_new_item,
        }
        options.update(decorators.get(name, {}))
        factory.create(name, options)

    return factory
