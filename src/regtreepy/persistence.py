"""JSON persistence for trained regression trees.

Models are written through their structural ``to_dict`` form: tagged nodes,
splits, leaf models and encoders, plus a format version.  Nothing is
pickled, so a file can only ever rebuild a prediction tree.
"""
from __future__ import annotations

import json
import os
from typing import Any, Dict, Final, Union

from .exceptions import ModelFormatError
from .tree import RegressionTree

__all__ = ["FORMAT_VERSION", "dump_model", "load_model", "dumps", "loads", "save", "load"]

FORMAT_VERSION: Final[int] = 1


def dump_model(model: RegressionTree) -> Dict[str, Any]:
    """Return a JSON-compatible dict describing ``model``."""
    return {"format_version": FORMAT_VERSION, "model": model.to_dict()}


def load_model(data: Dict[str, Any]) -> RegressionTree:
    """Rebuild a model from :func:`dump_model` output.

    Raises:
        ModelFormatError: If the version is unsupported or a field is missing
            or carries an unknown tag.
    """
    if not isinstance(data, dict):
        raise ModelFormatError("Serialized model must be a mapping")
    version = data.get("format_version")
    if version != FORMAT_VERSION:
        raise ModelFormatError(f"Unsupported format version {version!r}")
    if "model" not in data:
        raise ModelFormatError("Serialized model has no 'model' entry")
    return RegressionTree.from_dict(data["model"])


def dumps(model: RegressionTree, **kwargs: Any) -> str:
    return json.dumps(dump_model(model), **kwargs)


def loads(text: str) -> RegressionTree:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ModelFormatError(f"Invalid JSON: {e}") from e
    return load_model(data)


def save(model: RegressionTree, path: Union[str, os.PathLike]) -> None:
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(dump_model(model), fh)


def load(path: Union[str, os.PathLike]) -> RegressionTree:
    with open(path, encoding="utf-8") as fh:
        return loads(fh.read())
