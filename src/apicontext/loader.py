"""Load a normalized collection (the import layer output) from disk."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Union

import yaml
from pydantic import ValidationError

from src.apicontext.models import ChatMessage, Collection, coerce_history
from src.utils.logger import get_logger

logger = get_logger("loader")

_JSON_SUFFIXES = {".json"}
_YAML_SUFFIXES = {".yaml", ".yml"}


def _read_structured(path: Path) -> Any:
    suffix = path.suffix.lower()
    if suffix not in _JSON_SUFFIXES | _YAML_SUFFIXES:
        raise ValueError(f"Unsupported file type '{suffix}' for {path} (expected .json, .yaml or .yml)")
    try:
        with open(path, encoding="utf-8") as f:
            if suffix in _JSON_SUFFIXES:
                return json.load(f)
            return yaml.safe_load(f)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ValueError(f"Could not parse {path}: {e}") from e


def load_collection(path: Union[str, Path]) -> Collection:
    """Read and validate a collection file.

    Raises FileNotFoundError for a missing file and ValueError for an
    unsupported extension, a parse error or a schema violation.
    """
    path = Path(path)
    raw = _read_structured(path)
    try:
        collection = Collection.model_validate(raw)
    except ValidationError as e:
        raise ValueError(f"Invalid collection in {path}: {e}") from e
    logger.info(f"📂 Loaded '{collection.title}' with {len(collection.endpoints)} endpoints from {path}")
    return collection


def load_history(path: Union[str, Path]) -> list[ChatMessage]:
    """Read a conversation history file: a list of ``{role, content}`` mappings."""
    path = Path(path)
    raw = _read_structured(path) or []
    if not isinstance(raw, list):
        raise ValueError(f"History in {path} must be a list of messages")
    try:
        return coerce_history(raw)
    except ValidationError as e:
        raise ValueError(f"Invalid history in {path}: {e}") from e
