from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Protocol

import aiohttp

from .errors import TransportError
from .request import TransportRequest, decode_body

logger = logging.getLogger(__name__)


class Transport(Protocol):
    async def send(self, request: TransportRequest) -> Any:
        """Issue the request and return the decoded response body."""

    async def close(self) -> None:
        ...


class AiohttpTransport:
    """Default transport: one lazily created ``aiohttp.ClientSession``.

    No timeout is applied unless ``session_timeout`` is given. Cancelling the
    task awaiting :meth:`send` aborts the underlying HTTP request.
    """

    def __init__(self, session_timeout: float | None = None, connector_limit: int = 64) -> None:
        self._session_timeout = session_timeout
        self._connector_limit = connector_limit
        self._session: Optional[aiohttp.ClientSession] = None

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._session and not self._session.closed:
            return self._session
        timeout = aiohttp.ClientTimeout(total=self._session_timeout)
        connector = aiohttp.TCPConnector(limit=self._connector_limit, ttl_dns_cache=300)
        self._session = aiohttp.ClientSession(timeout=timeout, connector=connector)
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()

    async def send(self, request: TransportRequest) -> Any:
        session = await self._ensure_session()
        start = asyncio.get_running_loop().time()
        try:
            async with session.request(
                request.method, request.url, headers=request.headers, data=request.body
            ) as resp:
                text = await resp.text(errors="replace")
                if not 200 <= resp.status < 300:
                    raise TransportError(
                        f"HTTP {resp.status}: {resp.reason}", status=resp.status, url=request.url
                    )
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning(
                "request-failed",
                extra={"url": request.url, "method": request.method, "error": str(exc)},
            )
            raise TransportError(str(exc) or exc.__class__.__name__, url=request.url) from exc
        latency_ms = (asyncio.get_running_loop().time() - start) * 1000
        logger.debug(
            "request-done",
            extra={
                "url": request.url,
                "method": request.method,
                "status": resp.status,
                "bytes_in": len(text.encode("utf-8")),
                "latency_ms": round(latency_ms, 2),
            },
        )
        return decode_body(text)


__all__ = ["Transport", "AiohttpTransport"]
