"""Client-side graph data synchronisation: a TTL/LRU graph store and the fetch orchestrator that feeds it."""

from .config import CacheOptions, LoaderConfig, load_config
from .errors import ConfigError, GraphSyncError, ParseError, TransportError
from .orchestrator import FetchOrchestrator, LoaderState, LoadOutcome
from .request import TransportRequest
from .store import GraphStore
from .transport import AiohttpTransport, Transport

__all__ = [
    "AiohttpTransport",
    "CacheOptions",
    "ConfigError",
    "FetchOrchestrator",
    "GraphStore",
    "GraphSyncError",
    "LoadOutcome",
    "LoaderConfig",
    "LoaderState",
    "ParseError",
    "Transport",
    "TransportError",
    "TransportRequest",
    "load_config",
]
