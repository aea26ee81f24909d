"""Conversion between plain Python values and Firestore REST ``Value`` objects."""

from __future__ import annotations

import re
from datetime import date, datetime
from typing import Any, Dict, Iterable, Mapping

from datetime_utils import parse_rfc3339, to_rfc3339_utc

_SIMPLE_SEGMENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def encode_value(value: Any) -> Dict[str, Any]:
    if value is None:
        return {"nullValue": None}
    if isinstance(value, bool):
        return {"booleanValue": value}
    if isinstance(value, int):
        # int64 travels as a decimal string
        return {"integerValue": str(value)}
    if isinstance(value, float):
        return {"doubleValue": value}
    if isinstance(value, str):
        return {"stringValue": value}
    if isinstance(value, datetime):
        return {"timestampValue": to_rfc3339_utc(value)}
    if isinstance(value, date):
        return {"stringValue": value.isoformat()}
    if isinstance(value, Mapping):
        return {"mapValue": {"fields": encode_fields(value)}}
    if isinstance(value, (list, tuple)):
        return {"arrayValue": {"values": [encode_value(v) for v in value]}}
    raise TypeError(f"Unsupported field value of type {type(value).__name__}")


def encode_fields(data: Mapping[str, Any]) -> Dict[str, Dict[str, Any]]:
    return {str(key): encode_value(value) for key, value in data.items()}


def decode_value(value: Mapping[str, Any]) -> Any:
    if "nullValue" in value:
        return None
    if "booleanValue" in value:
        return bool(value["booleanValue"])
    if "integerValue" in value:
        return int(value["integerValue"])
    if "doubleValue" in value:
        return float(value["doubleValue"])
    if "stringValue" in value:
        return value["stringValue"]
    if "timestampValue" in value:
        return parse_rfc3339(value["timestampValue"])
    if "mapValue" in value:
        return decode_fields(value["mapValue"].get("fields") or {})
    if "arrayValue" in value:
        return [decode_value(v) for v in value["arrayValue"].get("values") or []]
    if "geoPointValue" in value:
        return dict(value["geoPointValue"])
    if "referenceValue" in value:
        return value["referenceValue"]
    return None


def decode_fields(fields: Mapping[str, Mapping[str, Any]]) -> Dict[str, Any]:
    return {key: decode_value(value) for key, value in fields.items()}


def field_path(*segments: str) -> str:
    """Join segments into a Firestore field path, quoting where required."""

    parts = []
    for segment in segments:
        if _SIMPLE_SEGMENT_RE.match(segment):
            parts.append(segment)
        else:
            escaped = segment.replace("\\", "\\\\").replace("`", "\\`")
            parts.append(f"`{escaped}`")
    return ".".join(parts)


def document_id(name: str) -> str:
    """Last path segment of a full document resource name."""

    return name.rsplit("/", 1)[-1]


def top_level_paths(keys: Iterable[str]) -> list[str]:
    return [field_path(key) for key in keys]


__all__ = [
    "decode_fields",
    "decode_value",
    "document_id",
    "encode_fields",
    "encode_value",
    "field_path",
    "top_level_paths",
]
