import asyncio
import json

import pytest
from aiohttp import test_utils, web

from graphsync.config import LoaderConfig
from graphsync.errors import ParseError, TransportError
from graphsync.orchestrator import FetchOrchestrator, LoaderState, LoadOutcome
from graphsync.request import TransportRequest
from graphsync.transport import AiohttpTransport


async def graph(request):
    return web.json_response({"nodes": [{"id": request.query.get("type", "none")}], "links": []})


async def echo(request):
    body = await request.json()
    return web.json_response({"nodes": [body], "links": [], "content_type": request.content_type})


async def broken(request):
    return web.Response(status=500, text="upstream exploded")


async def html(request):
    return web.Response(text="<html>maintenance</html>", content_type="text/html")


async def slow(request):
    await asyncio.sleep(1)
    return web.json_response({"nodes": [], "links": []})


def make_app():
    app = web.Application()
    app.router.add_get("/graph", graph)
    app.router.add_post("/graph", echo)
    app.router.add_get("/broken", broken)
    app.router.add_get("/html", html)
    app.router.add_get("/slow", slow)
    return app


def run_against_server(scenario):
    async def wrapper():
        server = test_utils.TestServer(make_app())
        await server.start_server()
        transport = AiohttpTransport(session_timeout=5)
        try:
            return await scenario(transport, server)
        finally:
            await transport.close()
            await server.close()

    return asyncio.run(wrapper())


def test_get_returns_decoded_body():
    async def scenario(transport, server):
        url = str(server.make_url("/graph")) + "?type=person"
        return await transport.send(TransportRequest(method="GET", url=url))

    assert run_against_server(scenario) == {"nodes": [{"id": "person"}], "links": []}


def test_post_sends_json_body():
    async def scenario(transport, server):
        request = TransportRequest(
            method="POST",
            url=str(server.make_url("/graph")),
            headers={"Content-Type": "application/json"},
            body=json.dumps({"nodeIds": ["a"]}),
        )
        return await transport.send(request)

    result = run_against_server(scenario)
    assert result["nodes"] == [{"nodeIds": ["a"]}]
    assert result["content_type"] == "application/json"


def test_error_status_raises_transport_error():
    async def scenario(transport, server):
        url = str(server.make_url("/broken"))
        with pytest.raises(TransportError) as excinfo:
            await transport.send(TransportRequest(method="GET", url=url))
        return excinfo.value, url

    error, url = run_against_server(scenario)
    assert error.status == 500
    assert error.url == url


def test_non_json_body_raises_parse_error():
    async def scenario(transport, server):
        with pytest.raises(ParseError):
            await transport.send(TransportRequest(method="GET", url=str(server.make_url("/html"))))

    run_against_server(scenario)


def test_connection_failure_raises_transport_error():
    async def scenario():
        server = test_utils.TestServer(make_app())
        await server.start_server()
        url = str(server.make_url("/graph"))
        await server.close()
        transport = AiohttpTransport()
        try:
            with pytest.raises(TransportError) as excinfo:
                await transport.send(TransportRequest(method="GET", url=url))
        finally:
            await transport.close()
        return excinfo.value

    error = asyncio.run(scenario())
    assert error.status is None
    assert error.__cause__ is not None


def test_session_timeout_raises_transport_error():
    async def scenario(transport, server):
        quick = AiohttpTransport(session_timeout=0.2)
        try:
            with pytest.raises(TransportError) as excinfo:
                await quick.send(TransportRequest(method="GET", url=str(server.make_url("/slow"))))
        finally:
            await quick.close()
        return excinfo.value

    error = run_against_server(scenario)
    assert error.status is None
    assert isinstance(error.__cause__, asyncio.TimeoutError)


def test_orchestrator_recovers_from_transport_timeout():
    errors = []

    async def scenario(transport, server):
        config = LoaderConfig(url=str(server.make_url("/slow")), on_load_error=errors.append)
        orchestrator = FetchOrchestrator(config, transport=AiohttpTransport(session_timeout=0.2))
        async with orchestrator:
            outcome = await orchestrator.start()
            return outcome, orchestrator.is_loading(), orchestrator.state

    outcome, loading, state = run_against_server(scenario)
    assert outcome is LoadOutcome.FAILED
    assert loading is False
    assert state is LoaderState.FAILED
    assert len(errors) == 1
    assert isinstance(errors[0], TransportError)
