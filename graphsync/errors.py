from __future__ import annotations


class GraphSyncError(Exception):
    """Base class for errors raised by the loader."""


class ConfigError(GraphSyncError, ValueError):
    """Invalid loader or cache configuration."""


class TransportError(GraphSyncError):
    """Non-success status, network failure or a request that could not be built."""

    def __init__(self, message: str, status: int | None = None, url: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.url = url


class ParseError(GraphSyncError):
    """Malformed payload, or a parser/merge override that failed."""


__all__ = ["GraphSyncError", "ConfigError", "TransportError", "ParseError"]
