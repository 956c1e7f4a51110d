import asyncio
from datetime import datetime, timezone
from pathlib import Path

import httpx
import pytest

from catalog.fetch.fetcher import fetch_with_retries
from catalog.fetch.store import ObjectStoreError, open_object_store, parse_list_response
from catalog.observability.metrics import MetricsRegistry
from catalog.orchestrator.settings import StoreSettings

FIXTURES = Path(__file__).parent / "fixtures" / "s3"


def _settings(**overrides):
    values = {
        "endpoint": "https://s3.example.org",
        "bucket": "datasets",
        "max_keys": 2,
        "retry_attempts": 3,
        "retry_backoff_seconds": 0,
    }
    values.update(overrides)
    return StoreSettings(**values)


def test_parse_list_response_reads_contents():
    objects, token = parse_list_response((FIXTURES / "list_page1.xml").read_text(encoding="utf-8"))
    assert token == "token-2"
    assert [obj.key for obj in objects] == [
        "climate/sea/sea_level.metadata.json",
        "climate/sea/sea_level.csv",
    ]
    first = objects[0]
    assert first.size == 1024
    assert first.etag == "abc123"
    assert first.last_modified == datetime(2023, 10, 1, 12, tzinfo=timezone.utc)
    assert first.is_metadata and not objects[1].is_metadata


def test_parse_list_response_rejects_other_documents():
    with pytest.raises(ObjectStoreError):
        parse_list_response("<Error><Code>NoSuchBucket</Code></Error>")


def test_list_objects_follows_continuation_tokens():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(dict(request.url.params))
        page = "list_page2.xml" if request.url.params.get("continuation-token") else "list_page1.xml"
        return httpx.Response(200, text=(FIXTURES / page).read_text(encoding="utf-8"))

    async def _run():
        metrics = MetricsRegistry()
        async with open_object_store(
            _settings(), metrics=metrics, transport=httpx.MockTransport(handler)
        ) as store:
            objects = await store.list_objects()
        return objects, metrics

    objects, metrics = asyncio.run(_run())
    assert len(objects) == 3
    assert objects[2].key == "land/cover/graph.metadata.json"
    assert objects[2].last_modified is None
    assert seen[0] == {"list-type": "2", "max-keys": "2"}
    assert seen[1]["continuation-token"] == "token-2"
    assert metrics.get("list_pages") == 2
    assert metrics.get("objects_listed") == 3


def test_list_objects_raises_on_forbidden():
    def handler(request):
        return httpx.Response(403, text="<Error><Code>AccessDenied</Code></Error>")

    async def _run():
        async with open_object_store(_settings(), transport=httpx.MockTransport(handler)) as store:
            await store.list_objects()

    with pytest.raises(ObjectStoreError) as excinfo:
        asyncio.run(_run())
    assert excinfo.value.status == 403


def test_get_object_returns_text_and_errors():
    def handler(request):
        if request.url.path == "/datasets/climate/a b.metadata.json":
            return httpx.Response(200, text='{"name": "A"}')
        return httpx.Response(404, text="missing")

    async def _run():
        async with open_object_store(_settings(), transport=httpx.MockTransport(handler)) as store:
            body = await store.get_object("climate/a b.metadata.json")
            with pytest.raises(ObjectStoreError) as excinfo:
                await store.get_object("climate/missing.metadata.json")
        return body, excinfo.value

    body, error = asyncio.run(_run())
    assert body == '{"name": "A"}'
    assert error.key == "climate/missing.metadata.json"
    assert error.status == 404


def test_fetch_with_retries_recovers_from_server_errors():
    calls = {"count": 0}

    def handler(request):
        calls["count"] += 1
        if calls["count"] < 3:
            return httpx.Response(503)
        return httpx.Response(200, text="ok")

    async def _run():
        metrics = MetricsRegistry()
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            response = await fetch_with_retries(
                client, "https://s3.example.org/x", metrics=metrics, attempts=3, backoff=0
            )
        return response, metrics

    response, metrics = asyncio.run(_run())
    assert response.status_code == 200
    assert metrics.get("retries") == 2


def test_fetch_with_retries_raises_transport_errors():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            await fetch_with_retries(
                client, "https://s3.example.org/x", metrics=MetricsRegistry(), attempts=2, backoff=0
            )

    with pytest.raises(httpx.ConnectError):
        asyncio.run(_run())
