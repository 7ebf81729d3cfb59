from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Mapping, Optional, Set

from .config import LoaderConfig
from .errors import GraphSyncError, ParseError, TransportError
from .request import (
    TransportRequest,
    build_default_request,
    canonical_json,
    coerce_graph_data,
    coerce_request,
    request_fingerprint,
)
from .scheduler.loop import PollLoop, Sleep
from .store import GraphData, GraphStore
from .transport import AiohttpTransport, Transport

logger = logging.getLogger(__name__)


class LoaderState(str, enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


class LoadOutcome(str, enum.Enum):
    COMPLETED = "completed"
    SKIPPED = "skipped"
    SUPERSEDED = "superseded"
    FAILED = "failed"


def _empty() -> GraphData:
    return {"nodes": [], "links": []}


def _chained(error: GraphSyncError, cause: BaseException) -> GraphSyncError:
    error.__cause__ = cause
    return error


@dataclass
class _InFlight:
    generation: int
    call: asyncio.Future


class FetchOrchestrator:
    """Drives the request lifecycle for one data source and owns its store.

    Loads are fingerprinted and skipped while an identical completed request is
    still fresh. Every dispatched request bumps a generation counter; a result
    is merged only if its generation is still current when it arrives, so a
    later request always wins regardless of completion order. The superseded
    call is also cancelled, but nothing depends on that working.
    """

    def __init__(
        self,
        config: LoaderConfig,
        transport: Transport | None = None,
        graph_data: Mapping[str, Any] | None = None,
        clock: Callable[[], float] | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        self.config = config
        self._transport: Transport = transport or AiohttpTransport()
        self._store = GraphStore(config.cache_options, clock=clock)
        self._sleep = sleep
        self.graph_data = graph_data

        self._filters: Dict[str, Any] = dict(config.filters or {})
        self._filter_key = canonical_json(self._filters)
        self._filter_epoch = 0

        self._generation = 0
        self._inflight: Optional[_InFlight] = None
        self._expanding: Set[Hashable] = set()
        self._poller: Optional[PollLoop] = None

        self._state = LoaderState.IDLE
        self._loading = False
        self._error: Optional[Exception] = None
        self._loaded_data: GraphData = _empty()

    # lifecycle

    async def start(self) -> LoadOutcome:
        outcome = await self._load()
        interval = self.config.poll_interval or 0
        if interval > 0 and self._poller is None:
            self._poller = PollLoop(interval / 1000.0, name=self._poll_name(), sleep=self._sleep)
            self._poller.start(self._poll)
        return outcome

    async def close(self) -> None:
        if self._poller is not None:
            await self._poller.stop()
            self._poller = None
        self._generation += 1
        self._cancel_inflight()
        self._loading = False
        await self._transport.close()

    async def __aenter__(self) -> "FetchOrchestrator":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # observable state

    @property
    def store(self) -> GraphStore:
        return self._store

    @property
    def state(self) -> LoaderState:
        return self._state

    @property
    def filters(self) -> Dict[str, Any]:
        return dict(self._filters)

    @property
    def loaded_data(self) -> GraphData:
        return self._loaded_data

    def visible_data(self) -> Any:
        """What a renderer should draw: a directly supplied snapshot always wins."""
        if self.graph_data is not None:
            return self.graph_data
        return self._loaded_data

    # control surface

    async def load_more(self, params: Mapping[str, Any] | None = None) -> LoadOutcome:
        return await self._load(params)

    async def load_neighbors(self, node_id: Hashable) -> bool:
        self._expanding.add(node_id)
        return await self._expand(node_id)

    def clear_cache(self) -> None:
        self._store.clear()
        self._loaded_data = _empty()

    def get_loaded_data(self) -> GraphData:
        return self._store.snapshot()

    def is_loading(self) -> bool:
        return self._loading

    def get_error(self) -> Optional[Exception]:
        return self._error

    async def set_filters(self, filters: Mapping[str, Any] | None) -> LoadOutcome:
        new_filters = dict(filters or {})
        key = canonical_json(new_filters)
        if key != self._filter_key:
            # results from the previous filter set must never stay visible
            self._store.clear()
            self._loaded_data = _empty()
            self._filter_epoch += 1
            logger.info("filters-changed", extra={"filters": key, "previous": self._filter_key})
        self._filters = new_filters
        self._filter_key = key
        return await self._load()

    def handle_node_click(self, node: Any, event: Any = None) -> Optional[asyncio.Task]:
        """Renderer hook for node activation; schedules a neighbor expansion if due."""
        task = None
        if self.config.expand_on_node_click and isinstance(node, Mapping):
            node_id = node.get(self.config.cache_options.node_id_field)
            if (
                node_id is not None
                and node_id not in self._expanding
                and not self._store.has_neighbors_expanded(node_id)
            ):
                self._expanding.add(node_id)
                task = asyncio.ensure_future(self._expand(node_id))
        if self.config.on_node_click is not None:
            self.config.on_node_click(node, event)
        return task

    # internals

    def _poll_name(self) -> str:
        return self.config.url if isinstance(self.config.url, str) else "poll"

    async def _poll(self) -> LoadOutcome:
        return await self._load(force=True)

    def _cancel_inflight(self) -> None:
        inflight, self._inflight = self._inflight, None
        if inflight is not None and not inflight.call.done():
            inflight.call.cancel()

    def _build_request(self, url: str, params: Dict[str, Any], extra: Dict[str, Any]) -> TransportRequest:
        if self.config.build_request is not None:
            return coerce_request(self.config.build_request(params), url)
        return build_default_request(
            self.config.method,
            url,
            self.config.resolve_headers(),
            self.config.filter_params(self._filters),
            extra,
        )

    def _parse(self, raw: Any) -> Dict[str, list]:
        if self.config.parse_response is not None:
            try:
                raw = self.config.parse_response(raw)
            except Exception as exc:  # pylint: disable=broad-except
                raise ParseError(f"parse_response failed: {exc}") from exc
        return coerce_graph_data(raw)

    def _apply(self, parsed: Dict[str, list]) -> None:
        if self.config.on_data_merge is None:
            self._store.merge(parsed)
            return
        try:
            merged = self.config.on_data_merge(self._store.snapshot(), parsed)
        except Exception as exc:  # pylint: disable=broad-except
            raise ParseError(f"on_data_merge failed: {exc}") from exc
        merged = coerce_graph_data(merged)
        self._store.clear()
        self._store.merge(merged)

    def _begin(self) -> int:
        self._generation += 1
        self._cancel_inflight()
        self._loading = True
        self._state = LoaderState.LOADING
        if self.config.on_load_start is not None:
            self.config.on_load_start()
        return self._generation

    async def _load(self, extra: Mapping[str, Any] | None = None, *, force: bool = False) -> LoadOutcome:
        extra = {key: value for key, value in dict(extra or {}).items() if value is not None}
        params = {"filters": dict(self._filters), **extra}
        try:
            url = self.config.resolve_url(params)
        except Exception as exc:  # pylint: disable=broad-except
            self._begin()
            self._fail(_chained(TransportError(f"url resolver failed: {exc}"), exc))
            return LoadOutcome.FAILED

        fingerprint = request_fingerprint(url, self._filters, extra)
        if (
            not force
            and self._store.has_completed_request(fingerprint)
            and not self._store.is_request_stale(fingerprint)
        ):
            logger.debug("request-skipped", extra={"fingerprint": fingerprint})
            return LoadOutcome.SKIPPED

        generation = self._begin()
        try:
            try:
                request = self._build_request(url, params, extra)
            except Exception as exc:  # pylint: disable=broad-except
                raise TransportError(f"request construction failed: {exc}", url=url) from exc
            call = asyncio.ensure_future(self._transport.send(request))
            self._inflight = _InFlight(generation, call)
            try:
                raw = await call
            except asyncio.CancelledError:
                if generation != self._generation:
                    return self._superseded(generation, fingerprint)
                # the caller abandoned this load; nothing newer owns the flag
                self._loading = False
                self._state = LoaderState.IDLE
                raise
            if generation != self._generation:
                return self._superseded(generation, fingerprint)
            self._apply(self._parse(raw))
        except GraphSyncError as exc:
            if generation != self._generation:
                return self._superseded(generation, fingerprint)
            self._fail(exc, fingerprint)
            return LoadOutcome.FAILED
        except Exception as exc:  # pylint: disable=broad-except
            if generation != self._generation:
                return self._superseded(generation, fingerprint)
            self._fail(_chained(TransportError(f"load failed: {exc!r}"), exc), fingerprint)
            return LoadOutcome.FAILED
        finally:
            if self._inflight is not None and self._inflight.generation == generation:
                self._inflight = None

        self._store.mark_request_completed(fingerprint)
        self._complete()
        logger.info(
            "load-complete",
            extra={
                "fingerprint": fingerprint,
                "generation": generation,
                "nodes": len(self._loaded_data["nodes"]),
                "links": len(self._loaded_data["links"]),
            },
        )
        if self.config.on_load_complete is not None:
            self.config.on_load_complete(self._loaded_data)
        return LoadOutcome.COMPLETED

    def _superseded(self, generation: int, fingerprint: str) -> LoadOutcome:
        logger.debug(
            "request-superseded",
            extra={"fingerprint": fingerprint, "generation": generation, "current": self._generation},
        )
        return LoadOutcome.SUPERSEDED

    def _complete(self) -> None:
        self._loaded_data = self._store.snapshot()
        self._error = None
        self._loading = False
        self._state = LoaderState.LOADED

    def _fail(self, exc: Exception, fingerprint: str | None = None) -> None:
        self._error = exc
        self._loading = False
        self._state = LoaderState.FAILED
        logger.warning(
            "load-error",
            extra={
                "fingerprint": fingerprint,
                "error": str(exc),
                "error_type": exc.__class__.__name__,
                "status": getattr(exc, "status", None),
            },
        )
        if self.config.on_load_error is not None:
            self.config.on_load_error(exc)

    async def _expand(self, node_id: Hashable) -> bool:
        """Fetch and merge one node's neighborhood; the caller has already marked it in flight."""
        epoch = self._filter_epoch
        try:
            if self.config.fetch_neighbors is None:
                outcome = await self._load({"nodeIds": [node_id]})
                if outcome in (LoadOutcome.COMPLETED, LoadOutcome.SKIPPED):
                    self._store.mark_neighbors_expanded(node_id)
                    return True
                return False
            try:
                data = await self.config.fetch_neighbors(node_id)
                if epoch != self._filter_epoch:
                    logger.debug("expansion-discarded", extra={"node_id": str(node_id)})
                    return False
                self._store.merge(coerce_graph_data(data))
            except Exception as exc:  # pylint: disable=broad-except
                if epoch != self._filter_epoch:
                    return False
                if not isinstance(exc, GraphSyncError):
                    exc = _chained(TransportError(f"fetch_neighbors failed for {node_id!r}: {exc}"), exc)
                self._fail(exc)
                return False
            self._store.mark_neighbors_expanded(node_id)
            self._loaded_data = self._store.snapshot()
            logger.info(
                "neighbors-expanded",
                extra={
                    "node_id": str(node_id),
                    "nodes": len(self._loaded_data["nodes"]),
                    "links": len(self._loaded_data["links"]),
                },
            )
            return True
        finally:
            self._expanding.discard(node_id)


__all__ = ["FetchOrchestrator", "LoaderState", "LoadOutcome"]
