"""Firestore serialization helpers.

Handles conversion between Python snake_case and Firestore camelCase.
"""

import re
from collections.abc import Callable
from enum import Enum
from typing import Any, TypeVar

from pydantic import BaseModel

ModelT = TypeVar("ModelT", bound=BaseModel)


def to_camel(string: str) -> str:
    """Convert snake_case to camelCase."""
    components = string.split("_")
    return components[0] + "".join(x.title() for x in components[1:])


def to_snake(string: str) -> str:
    """Convert camelCase to snake_case."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", string).lower()


def model_to_firestore(model: BaseModel, exclude: set[str] | None = None) -> dict[str, Any]:
    """Convert a pydantic model to Firestore document format.

    - Converts field names (nested ones included) from snake_case to camelCase
    - Leaves datetimes as-is, the Firestore client stores them as timestamps
    - Converts enums to their string values
    """
    data = model.model_dump(mode="python", exclude=exclude)
    return to_firestore(data)


def to_firestore(data: dict[str, Any]) -> dict[str, Any]:
    """Convert a plain snake_case dict to camelCase document fields."""
    return _convert_keys(data, to_camel)


def firestore_to_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Convert Firestore document to snake_case dict for pydantic parsing."""
    return _convert_keys(data, to_snake)


def document_to_model(
    model_cls: type[ModelT], data: dict[str, Any], doc_id: str | None = None
) -> ModelT:
    """Parse a Firestore document into ``model_cls``.

    The document id is not part of the stored fields; pass it to populate
    the model's ``id`` field.
    """
    fields = firestore_to_dict(data)
    if doc_id is not None:
        fields["id"] = doc_id
    return model_cls.model_validate(fields)


def _convert_keys(value: Any, convert: Callable[[str], str]) -> Any:
    if isinstance(value, dict):
        return {convert(key): _convert_keys(item, convert) for key, item in value.items()}
    if isinstance(value, list):
        return [_convert_keys(item, convert) for item in value]
    if isinstance(value, Enum):
        return value.value
    return value
