from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .errors import UpstreamDataError

T = TypeVar("T", bound=BaseModel)


def _dump(payload: Any) -> str:
    try:
        return json.dumps(payload, ensure_ascii=False)
    except (TypeError, ValueError):
        return repr(payload)


def unwrap_envelope(payload: Any, *, context: str = "request") -> Any:
    """
    Unwraps the legacy `{status: "success", data: "<json string>"}` envelope.

    The `data` member is itself JSON-encoded and is decoded a second time.
    Replies without `data` (some POST verbs) return the envelope unchanged.
    """
    if not isinstance(payload, dict):
        raise UpstreamDataError(
            f"{context}: expected a JSON object envelope, got {type(payload).__name__}",
            response_excerpt=_dump(payload),
        )

    status = payload.get("status")
    if status != "success":
        raise UpstreamDataError(
            f"{context}: upstream reported status {status!r}",
            response_excerpt=_dump(payload),
        )

    data = payload.get("data")
    if data is None or data == "":
        return payload
    if not isinstance(data, str):
        return data

    try:
        return json.loads(data)
    except ValueError as exc:
        raise UpstreamDataError(
            f"{context}: envelope data is not valid JSON",
            response_excerpt=data,
        ) from exc


def records_of(payload: Any, key: str) -> List[Dict[str, Any]]:
    """
    Extract a record collection in server order.
    ZenTao returns collections as id-keyed objects (`{"12": {...}}`) and
    occasionally as plain arrays; empty collections may come back as `[]`.
    """
    if not isinstance(payload, dict):
        raise UpstreamDataError(
            f"Expected an object containing '{key}'", response_excerpt=_dump(payload)
        )
    raw = payload.get(key)
    if raw is None:
        return []
    if isinstance(raw, dict):
        values = list(raw.values())
    elif isinstance(raw, list):
        values = raw
    else:
        raise UpstreamDataError(
            f"Expected '{key}' to be an object or list", response_excerpt=_dump(raw)
        )
    return [v for v in values if isinstance(v, dict)]


def require_object(payload: Any, key: str) -> Dict[str, Any]:
    """Return payload[key] as a dict or raise UpstreamDataError."""
    value = payload.get(key) if isinstance(payload, dict) else None
    if not isinstance(value, dict):
        raise UpstreamDataError(
            f"Expected object '{key}' in response", response_excerpt=_dump(payload)
        )
    return value


def optional_name(payload: Any, key: str) -> Optional[str]:
    """payload[key]['name'] when present (e.g. the `product` sidecar of views)."""
    value = payload.get(key) if isinstance(payload, dict) else None
    if isinstance(value, dict):
        name = value.get("name")
        return name if isinstance(name, str) and name else None
    return None


def parse_record(model: Type[T], raw: Dict[str, Any]) -> T:
    try:
        return model.model_validate(raw)
    except ValidationError as exc:
        raise UpstreamDataError(
            f"Response did not match model {model.__name__}: {exc}",
            response_excerpt=_dump(raw),
        ) from exc


def parse_records(model: Type[T], records: Iterable[Dict[str, Any]]) -> List[T]:
    return [parse_record(model, r) for r in records]


__all__ = [
    "unwrap_envelope",
    "records_of",
    "require_object",
    "optional_name",
    "parse_record",
    "parse_records",
]
