# stepflow/core/codec/serde.py
from __future__ import annotations
from typing import (
    Any,
    Dict,
    List,
    Optional,
    Union,
    Mapping,
    Sequence,
    cast,
)
import datetime as dt
import json
import dataclasses
from pydantic import BaseModel


Json = Union[None, bool, int, float, str, List['Json'], Dict[str, 'Json']]
"""
Union type for JSON-serializable values.
"""


class SerializationError(Exception):
    """
    Raised when a value cannot be serialized to JSON.
    """

    pass


def to_jsonable(value: Any) -> Json:
    """
    Convert a job return value or workflow input to plain JSON data.

    Pydantic models and dataclasses are flattened to their field data,
    date/time values to ISO-8601 strings. Payloads are read back by jobs and
    humans, not rehydrated into their original types.

    Args:
        value: The value to convert to JSON.

    Returns:
        A JSON-serializable value. For more information, see `Json` Union type.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value

    # datetime.datetime is a subclass of datetime.date, isoformat covers both
    if isinstance(value, (dt.datetime, dt.date, dt.time)):
        return value.isoformat()

    if isinstance(value, BaseModel):
        return cast(Json, value.model_dump(mode='json'))

    # Field-by-field conversion instead of asdict() so nested models are handled
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            field.name: to_jsonable(getattr(value, field.name))
            for field in dataclasses.fields(value)
        }

    if isinstance(value, Mapping):
        mapping = cast(Mapping[object, object], value)
        return {str(key): to_jsonable(item) for key, item in mapping.items()}

    if isinstance(value, (set, frozenset)):
        return [to_jsonable(item) for item in cast(set[object], value)]

    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        seq = cast(Sequence[object], value)
        return [to_jsonable(item) for item in seq]

    raise SerializationError(f'Cannot serialize value of type {type(value).__name__}')


def dumps_json(value: Any) -> str:
    """
    Serialize a value to JSON string.

    Args:
        value: The value to serialize.

    Returns:
        A JSON string.

    Raises:
        SerializationError: If the value (or a nested value) is not representable.
    """
    try:
        return json.dumps(
            to_jsonable(value),
            ensure_ascii=False,
            separators=(',', ':'),
            allow_nan=False,  # Prevent NaN values in JSON
        )
    except ValueError as e:
        raise SerializationError(str(e)) from e


def loads_json(s: Optional[str]) -> Json:
    """
    Deserialize a JSON string to a JSON value.

    Args:
        s: The JSON string to deserialize.

    Returns:
        A JSON value, or None for an empty/missing string.
    """
    return json.loads(s) if s else None
