from __future__ import annotations

from typing import Any, Dict

from jsonschema import Draft202012Validator

from .errors import ConfigError

_POSITIVE_OR_NULL = {"type": ["number", "null"], "minimum": 0}

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "type": "object",
    "required": ["loader"],
    "properties": {
        "loader": {
            "type": "object",
            "required": ["url"],
            "additionalProperties": False,
            "properties": {
                "url": {"type": "string", "minLength": 1},
                "method": {"enum": ["GET", "POST", "get", "post"]},
                "headers": {"type": "object", "additionalProperties": {"type": "string"}},
                "filters": {"type": "object"},
                "expand_on_node_click": {"type": "boolean"},
                "poll_interval": {"type": "integer", "minimum": 0},
                "cache_options": {
                    "type": "object",
                    "additionalProperties": False,
                    "properties": {
                        "max_age": _POSITIVE_OR_NULL,
                        "max_nodes": {"type": ["integer", "null"], "minimum": 0},
                        "max_links": {"type": ["integer", "null"], "minimum": 0},
                        "node_id_field": {"type": "string", "minLength": 1},
                        "link_id_field": {"type": "string", "minLength": 1},
                    },
                },
            },
        },
        "output_dir": {"type": "string"},
        "logs_dir": {"type": "string"},
    },
}

Draft202012Validator.check_schema(CONFIG_SCHEMA)
_VALIDATOR = Draft202012Validator(CONFIG_SCHEMA)


def validate_config(config: Any) -> None:
    errors = sorted(_VALIDATOR.iter_errors(config), key=lambda err: [str(part) for part in err.path])
    if errors:
        details = "; ".join(
            f"{'/'.join(str(part) for part in err.path) or '<root>'}: {err.message}" for err in errors
        )
        raise ConfigError(f"Invalid config: {details}")


__all__ = ["CONFIG_SCHEMA", "validate_config"]
