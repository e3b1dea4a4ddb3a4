"""Serialization of request bodies and query parameters, and unwrapping of API responses."""

import dataclasses
import json
from datetime import date, datetime
from typing import Any, Dict, Mapping, Optional, Type, Union

ENVELOPED_KEY = "data"


def serialize_body(body: Any) -> Any:
    """Convert a request body into JSON-compatible data.

    Supports:
    - None, dict, list, tuple, primitives (passed through, containers recursively)
    - date and datetime (ISO 8601 strings)
    - dataclass instances
    - Pydantic v2 models (model_dump) and objects with to_json() or to_dict() (duck typing)

    Raises:
        TypeError: If a value cannot be serialized
    """
    if body is None:
        return None
    if isinstance(body, (str, int, float, bool)):
        return body
    if isinstance(body, bytes):
        raise ValueError("bytes data is not supported inside a structured body")
    if isinstance(body, (datetime, date)):
        return body.isoformat()
    if isinstance(body, Mapping):
        return {k: serialize_body(v) for k, v in body.items()}
    if isinstance(body, (list, tuple)):
        return [serialize_body(item) for item in body]
    if dataclasses.is_dataclass(body) and not isinstance(body, type):
        return serialize_body(dataclasses.asdict(body))
    if hasattr(body, "model_dump") and callable(body.model_dump):  # Pydantic v2
        return serialize_body(body.model_dump())
    if hasattr(body, "to_json") and callable(body.to_json):
        return serialize_body(body.to_json())
    if hasattr(body, "to_dict") and callable(body.to_dict):
        return serialize_body(body.to_dict())
    raise TypeError(f"Cannot serialize value of type {type(body).__name__}")


def dumps(value: Any) -> str:
    """Compact JSON text, matching what browsers produce with JSON.stringify."""
    return json.dumps(serialize_body(value), separators=(",", ":"), ensure_ascii=False)


def encode_body(body: Any) -> Optional[Union[str, bytes]]:
    """Encode a non-multipart request body. Strings and bytes are sent as given."""
    if body is None:
        return None
    if isinstance(body, (str, bytes)):
        return body
    return dumps(body)


def stringify_params(params: Optional[Mapping[str, Any]]) -> Dict[str, str]:
    """Flatten query parameters to strings, dropping absent values."""
    if not params:
        return {}
    flat = {}
    for key, value in params.items():
        if value is None:
            continue
        if isinstance(value, bool):
            flat[key] = "true" if value else "false"
        elif isinstance(value, (str, int, float)):
            flat[key] = str(value)
        else:
            flat[key] = dumps(value)
    return flat


def unwrap(
    response: Any,
    cls: Optional[Type] = None,
    enveloped_key: Optional[str] = ENVELOPED_KEY,
) -> Any:
    """Extract the payload of a ``{success, message, data}`` response.

    Args:
        response: Response object (with .json() method) or already parsed dict
        cls: Optional class to build from the payload, via model_validate() or from_dict()
        enveloped_key: Key holding the payload. Set to None to use the whole body.

    Raises:
        ValueError: If enveloped_key is specified but not found in the response
    """
    try:
        body = response.json()
    except AttributeError:
        body = response

    if enveloped_key is not None:
        if not isinstance(body, dict) or enveloped_key not in body:
            keys = list(body.keys()) if isinstance(body, dict) else type(body).__name__
            raise ValueError(f"Expected enveloped key '{enveloped_key}' not found in response. Found: {keys}")
        data = body[enveloped_key]
    else:
        data = body

    if cls is None or data is None:
        return data
    if hasattr(cls, "model_validate") and callable(cls.model_validate):  # Pydantic v2
        return cls.model_validate(data)
    if hasattr(cls, "from_dict") and callable(cls.from_dict):
        return cls.from_dict(data)
    raise TypeError(f"Cannot deserialize to {cls.__name__}. Class must have model_validate() or from_dict().")
