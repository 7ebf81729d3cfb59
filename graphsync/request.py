from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Sequence
from urllib.parse import urlencode

from .errors import ParseError


@dataclass
class TransportRequest:
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    body: str | None = None


def _json_default(value: Any) -> Any:
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    return str(value)


def canonical_json(value: Any) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=_json_default)


def request_fingerprint(url: str, filters: Mapping[str, Any] | None, extra: Mapping[str, Any] | None) -> str:
    """Stable serialization of ``{url, filters, **extra}`` used for request dedup."""
    payload: Dict[str, Any] = {"url": url, "filters": dict(filters or {})}
    payload.update(extra or {})
    return canonical_json(payload)


def _query_value(value: Any) -> str:
    if isinstance(value, (set, frozenset)):
        value = sorted(value, key=str)
    if isinstance(value, (list, tuple)):
        return ",".join(str(item) for item in value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def append_query_params(base_url: str, params: Mapping[str, Any]) -> str:
    pairs = [(key, _query_value(value)) for key, value in params.items() if value is not None]
    if not pairs:
        return base_url
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urlencode(pairs, safe=',')}"


def build_default_request(
    method: str,
    url: str,
    headers: Mapping[str, str],
    filter_params: Mapping[str, Any],
    extra: Mapping[str, Any],
) -> TransportRequest:
    params = {**filter_params, **{key: value for key, value in extra.items() if value is not None}}
    if method == "POST":
        merged = {"Content-Type": "application/json", **headers}
        body = json.dumps(params, default=_json_default)
        return TransportRequest(method="POST", url=url, headers=merged, body=body)
    return TransportRequest(method="GET", url=append_query_params(url, params), headers=dict(headers))


def coerce_request(value: Any, default_url: str) -> TransportRequest:
    """Normalise the result of a ``build_request`` override."""
    if isinstance(value, TransportRequest):
        return value
    if not isinstance(value, Mapping):
        raise TypeError(f"build_request must return a TransportRequest or mapping, got {type(value).__name__}")
    body = value.get("body")
    if body is None and "json" in value:
        body = json.dumps(value["json"], default=_json_default)
    elif body is not None and not isinstance(body, str):
        body = json.dumps(body, default=_json_default)
    return TransportRequest(
        method=str(value.get("method") or "GET").upper(),
        url=value.get("url") or default_url,
        headers=dict(value.get("headers") or {}),
        body=body,
    )


def decode_body(text: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise ParseError(f"Response body is not valid JSON: {exc}") from exc


def coerce_graph_data(value: Any) -> Dict[str, list]:
    """Check a parsed payload has the ``{nodes, links}`` shape and copy it out."""
    if not isinstance(value, Mapping):
        raise ParseError(f"Expected graph data mapping, got {type(value).__name__}")
    result: Dict[str, list] = {}
    for name in ("nodes", "links"):
        items = value.get(name)
        if items is None:
            continue
        if isinstance(items, (str, bytes)) or not isinstance(items, Sequence):
            raise ParseError(f"graph data field {name!r} must be a list")
        result[name] = list(items)
    return result


__all__ = [
    "TransportRequest",
    "canonical_json",
    "request_fingerprint",
    "append_query_params",
    "build_default_request",
    "coerce_request",
    "decode_body",
    "coerce_graph_data",
]
