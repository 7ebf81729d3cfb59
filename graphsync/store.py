from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Iterable, List, Mapping, Optional, Set

from .config import CacheOptions
from .utils.time import now_ms

logger = logging.getLogger(__name__)

GraphData = Dict[str, List[Any]]


def resolve_id(value: Any) -> Any:
    """Return the id carried by a link endpoint, which may be a raw id or a node record."""
    if isinstance(value, Mapping):
        return value.get("id")
    if value is not None and hasattr(value, "id"):
        return getattr(value, "id")
    return value


def default_link_key(link: Mapping[str, Any]) -> str | None:
    source = resolve_id(link.get("source"))
    target = resolve_id(link.get("target"))
    if source is None or target is None:
        return None
    return f"{source}::{target}"


@dataclass
class NodeEntry:
    id: Hashable
    payload: Any
    fetched_at: float
    accessed_at: float


@dataclass
class LinkEntry:
    key: Hashable
    payload: Any
    fetched_at: float
    accessed_at: float


@dataclass
class RequestRecord:
    fingerprint: str
    fetched_at: float


class GraphStore:
    """Deduplicated node/link store with per-entry freshness and recency.

    Nodes are keyed by ``node_id_field`` and links by a composite key. Every
    entry ages against the single ``max_age`` and is dropped lazily when a read
    finds it stale. When a batch insert pushes a collection over its bound the
    least recently *accessed* entries are evicted, where reading an entry out in
    a snapshot counts as an access.
    """

    def __init__(
        self,
        options: CacheOptions | Mapping[str, Any] | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if options is None:
            options = CacheOptions()
        elif not isinstance(options, CacheOptions):
            options = CacheOptions.from_dict(options)
        self.options = options
        self._clock = clock or now_ms
        self._node_id_field = options.node_id_field
        self._link_key = self._build_link_key(options.link_id_field)
        self._nodes: Dict[Hashable, NodeEntry] = {}
        self._links: Dict[Hashable, LinkEntry] = {}
        self._expanded: Set[Hashable] = set()
        self._requests: Dict[str, RequestRecord] = {}

    @staticmethod
    def _build_link_key(link_id_field: Any) -> Callable[[Mapping[str, Any]], Any]:
        if callable(link_id_field):
            return link_id_field
        if isinstance(link_id_field, str):
            return lambda link: link.get(link_id_field)
        return default_link_key

    # nodes

    def has_node(self, node_id: Hashable) -> bool:
        entry = self._nodes.get(node_id)
        if entry is None:
            return False
        if self._is_stale(entry.fetched_at):
            del self._nodes[node_id]
            return False
        return True

    def add_nodes(self, nodes: Iterable[Any]) -> None:
        now = self._clock()
        for node in nodes or ():
            if not isinstance(node, Mapping):
                continue
            node_id = node.get(self._node_id_field)
            if node_id is None:
                continue
            try:
                self._nodes[node_id] = NodeEntry(node_id, node, now, now)
            except TypeError:
                # unhashable id
                continue
        self._evict(self._nodes, self.options.max_nodes, "nodes")

    # links

    def has_link(self, source: Any, target: Any) -> bool:
        key = f"{resolve_id(source)}::{resolve_id(target)}"
        entry = self._links.get(key)
        if entry is None:
            return False
        if self._is_stale(entry.fetched_at):
            del self._links[key]
            return False
        return True

    def add_links(self, links: Iterable[Any]) -> None:
        now = self._clock()
        for link in links or ():
            if not isinstance(link, Mapping):
                continue
            key = self._link_key(link)
            if key is None:
                continue
            try:
                self._links[key] = LinkEntry(key, link, now, now)
            except TypeError:
                continue
        self._evict(self._links, self.options.max_links, "links")

    # expansion

    def has_neighbors_expanded(self, node_id: Hashable) -> bool:
        return node_id in self._expanded

    def mark_neighbors_expanded(self, node_id: Hashable) -> None:
        self._expanded.add(node_id)

    # request memo

    def has_completed_request(self, fingerprint: str) -> bool:
        return fingerprint in self._requests

    def is_request_stale(self, fingerprint: str) -> bool:
        record = self._requests.get(fingerprint)
        if record is None:
            return True
        return self._is_stale(record.fetched_at)

    def mark_request_completed(self, fingerprint: str) -> None:
        self._requests[fingerprint] = RequestRecord(fingerprint, self._clock())

    # merge and materialise

    def merge(self, graph_data: Mapping[str, Any] | None) -> None:
        if not isinstance(graph_data, Mapping):
            return
        nodes = graph_data.get("nodes")
        links = graph_data.get("links")
        if nodes:
            self.add_nodes(nodes)
        if links:
            self.add_links(links)

    def snapshot(self) -> GraphData:
        """Fresh nodes and links; touches every returned entry and drops stale ones."""
        now = self._clock()
        return {
            "nodes": self._collect(self._nodes, now),
            "links": self._collect(self._links, now),
        }

    def clear(self) -> None:
        self._nodes = {}
        self._links = {}
        self._expanded = set()
        self._requests = {}

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    @property
    def link_count(self) -> int:
        return len(self._links)

    # internals

    def _is_stale(self, fetched_at: float) -> bool:
        max_age = self.options.max_age
        if max_age is None:
            return False
        return (self._clock() - fetched_at) > max_age

    def _collect(self, entries: Dict[Hashable, Any], now: float) -> List[Any]:
        fresh: List[Any] = []
        for key, entry in list(entries.items()):
            if self._is_stale(entry.fetched_at):
                del entries[key]
                continue
            entry.accessed_at = now
            fresh.append(entry.payload)
        return fresh

    def _evict(self, entries: Dict[Hashable, Any], limit: Optional[int], label: str) -> None:
        if limit is None or len(entries) <= limit:
            return
        surplus = len(entries) - limit
        oldest = heapq.nsmallest(surplus, entries.items(), key=lambda item: item[1].accessed_at)
        for key, _ in oldest:
            del entries[key]
        logger.debug("store-evicted", extra={"collection": label, "evicted": surplus, "limit": limit})


__all__ = [
    "GraphStore",
    "GraphData",
    "NodeEntry",
    "LinkEntry",
    "RequestRecord",
    "resolve_id",
    "default_link_key",
]
