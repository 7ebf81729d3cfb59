from __future__ import annotations

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

import yaml

from .errors import ConfigError

HeaderSupplier = Callable[[], Mapping[str, str]]
UrlResolver = Callable[[Dict[str, Any]], str]

SUPPORTED_METHODS = {"GET", "POST"}


@dataclass
class CacheOptions:
    max_age: Optional[float] = None
    max_nodes: Optional[int] = None
    max_links: Optional[int] = None
    node_id_field: str = "id"
    link_id_field: Union[str, Callable[[Mapping[str, Any]], Any], None] = None

    def __post_init__(self) -> None:
        for name in ("max_age", "max_nodes", "max_links"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ConfigError(f"cache option {name} must be >= 0, got {value}")
        if not self.node_id_field:
            raise ConfigError("cache option node_id_field must be a non-empty string")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "CacheOptions":
        data = dict(data or {})
        unknown = set(data) - {"max_age", "max_nodes", "max_links", "node_id_field", "link_id_field"}
        if unknown:
            raise ConfigError(f"Unknown cache options: {', '.join(sorted(unknown))}")
        return cls(**data)


@dataclass
class LoaderConfig:
    """Everything the orchestrator needs to know about one data source.

    ``url`` may be a string or a callable receiving the request parameters
    (``filters`` plus any scoped parameters such as ``nodeIds``/``cursor``).
    The remaining callables are optional overrides; each one is resolved once
    per request by the helpers below.
    """

    url: Union[str, UrlResolver]
    method: str = "GET"
    headers: Union[Mapping[str, str], HeaderSupplier, None] = None
    build_request: Optional[Callable[[Dict[str, Any]], Any]] = None
    parse_response: Optional[Callable[[Any], Any]] = None
    filters: Optional[Dict[str, Any]] = None
    build_filter_params: Optional[Callable[[Dict[str, Any]], Mapping[str, Any]]] = None
    expand_on_node_click: bool = False
    fetch_neighbors: Optional[Callable[[Any], Awaitable[Any]]] = None
    poll_interval: int = 0
    cache_options: CacheOptions = field(default_factory=CacheOptions)
    on_load_start: Optional[Callable[[], Any]] = None
    on_load_complete: Optional[Callable[[Dict[str, Any]], Any]] = None
    on_load_error: Optional[Callable[[Exception], Any]] = None
    on_data_merge: Optional[Callable[[Dict[str, Any], Dict[str, Any]], Any]] = None
    on_node_click: Optional[Callable[[Any, Any], Any]] = None

    def __post_init__(self) -> None:
        if not self.url:
            raise ConfigError("loader url is required")
        self.method = str(self.method or "GET").upper()
        if self.method not in SUPPORTED_METHODS:
            raise ConfigError(f"Unsupported method {self.method!r}; expected GET or POST")
        if self.poll_interval is None:
            self.poll_interval = 0
        if self.poll_interval < 0:
            raise ConfigError(f"poll_interval must be >= 0, got {self.poll_interval}")
        if isinstance(self.cache_options, Mapping):
            self.cache_options = CacheOptions.from_dict(self.cache_options)

    def resolve_url(self, params: Dict[str, Any]) -> str:
        if callable(self.url):
            return self.url(params)
        return self.url

    def resolve_headers(self) -> Dict[str, str]:
        if callable(self.headers):
            return dict(self.headers() or {})
        return dict(self.headers or {})

    def filter_params(self, filters: Dict[str, Any] | None) -> Dict[str, Any]:
        filters = filters or {}
        if self.build_filter_params is not None:
            return dict(self.build_filter_params(filters) or {})
        return dict(filters)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], **hooks: Any) -> "LoaderConfig":
        """Build a config from the declarative (YAML) fields plus Python callables."""
        payload = copy.deepcopy(dict(data))
        payload["cache_options"] = CacheOptions.from_dict(payload.get("cache_options"))
        payload.update(hooks)
        try:
            return cls(**payload)
        except TypeError as exc:
            raise ConfigError(str(exc)) from exc


def load_config(config_path: Path) -> Dict[str, Any]:
    from .schema import validate_config

    try:
        text = Path(config_path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read config {config_path}: {exc}") from exc
    try:
        config = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse config: {exc}") from exc
    validate_config(config)
    return config


__all__ = ["CacheOptions", "LoaderConfig", "load_config", "SUPPORTED_METHODS"]
