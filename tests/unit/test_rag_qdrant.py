"""Unit tests for the Qdrant RAG client against a mocked HTTP transport."""

import asyncio
import json

import httpx
import pytest

from shared.clients.rag.models.TextChunk import TextChunk, make_chunk_id
from shared.clients.rag.qdrant.RAGClientQdrant import RAGClientQdrant
from shared.exceptions import AuthorizationError, ConfigurationError, NeedsIngestionError, TransientRemoteError


class Recorder:
    """MockTransport handler that answers from a route table and records every request."""

    def __init__(self, routes):
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        answer = self.routes[(request.method, request.url.path)]
        return answer(request) if callable(answer) else answer

    def bodies(self, method: str, path: str) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.method == method and r.url.path == path]


@pytest.fixture
def qdrant_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RAG_QDRANT_BASE_URL", "http://qdrant:6333")
    monkeypatch.setenv("RAG_QDRANT_COLLECTION", "docs")
    monkeypatch.setenv("RAG_QDRANT_API_KEY", "secret")


def run_with_client(helper_config, recorder: Recorder, action):
    async def scenario():
        client = RAGClientQdrant(helper_config, transport=httpx.MockTransport(recorder))
        await client.boot()
        try:
            return await action(client)
        finally:
            await client.close()

    return asyncio.run(scenario())


def exists(value: bool) -> httpx.Response:
    return httpx.Response(200, json={"result": {"exists": value}})


def make_chunk(reference: str, index: int, tenant: str = "t1", group: str = "g1") -> TextChunk:
    return TextChunk(
        id=make_chunk_id(tenant, group, reference, index),
        document_reference=reference,
        source_reference="src",
        content=f"chunk {index}",
        embedding=[0.1, 0.2, 0.3, 0.4],
        path=reference.split(":", 1)[1],
        tenant_id=tenant,
        group_id=group,
    )


def test_search_before_collection_exists_needs_ingestion(helper_config, qdrant_env) -> None:
    recorder = Recorder({("GET", "/collections/docs/exists"): exists(False)})
    with pytest.raises(NeedsIngestionError):
        run_with_client(helper_config, recorder, lambda c: c.do_search([0.1] * 4, "t1", "g1"))
    assert all(r.url.path != "/collections/docs/points/search" for r in recorder.requests)


def test_search_on_deleted_collection_needs_ingestion(helper_config, qdrant_env) -> None:
    recorder = Recorder({
        ("GET", "/collections/docs/exists"): exists(True),
        ("POST", "/collections/docs/points/search"): httpx.Response(404, json={"status": {"error": "Not found"}}),
    })
    with pytest.raises(NeedsIngestionError):
        run_with_client(helper_config, recorder, lambda c: c.do_search([0.1] * 4, "t1", "g1"))


def test_search_filters_by_tenant_and_group(helper_config, qdrant_env) -> None:
    chunk = make_chunk("src:a.txt", 0)
    recorder = Recorder({
        ("GET", "/collections/docs/exists"): exists(True),
        ("POST", "/collections/docs/points/search"): httpx.Response(200, json={"result": [
            {"id": chunk.id, "score": 0.9, "payload": chunk.to_payload()},
            # a foreign hit must never be returned
            {"id": "foreign", "score": 0.8, "payload": make_chunk("src:b.txt", 0, tenant="t2").to_payload()},
        ]}),
    })
    hits = run_with_client(helper_config, recorder, lambda c: c.do_search([0.1] * 4, "t1", "g1", k=2))
    assert [hit.id for hit in hits] == [chunk.id]
    assert hits[0].score == 0.9

    body = recorder.bodies("POST", "/collections/docs/points/search")[0]
    assert body["limit"] == 2
    assert {"key": "TenantID", "match": {"value": "t1"}} in body["filter"]["must"]
    assert {"key": "GroupID", "match": {"value": "g1"}} in body["filter"]["must"]


def test_create_index_is_idempotent_and_marks_tenant_field(helper_config, qdrant_env) -> None:
    recorder = Recorder({
        ("GET", "/collections/docs/exists"): exists(False),
        ("PUT", "/collections/docs"): httpx.Response(200, json={"result": True}),
        ("PUT", "/collections/docs/index"): httpx.Response(200, json={"result": {}}),
    })

    async def create_twice(client):
        await client.do_create_index()
        await client.do_create_index()

    run_with_client(helper_config, recorder, create_twice)
    created = recorder.bodies("PUT", "/collections/docs")
    assert len(created) == 1
    assert created[0]["vectors"] == {"size": 4, "distance": "Cosine"}
    indexes = recorder.bodies("PUT", "/collections/docs/index")
    assert {"field_name": "TenantID", "field_schema": {"type": "keyword", "is_tenant": True}} in indexes


def test_upsert_sends_points_with_payload(helper_config, qdrant_env) -> None:
    recorder = Recorder({("PUT", "/collections/docs/points"): httpx.Response(200, json={"result": {}})})
    chunks = [make_chunk("src:a.txt", 0), make_chunk("src:a.txt", 1)]
    run_with_client(helper_config, recorder, lambda c: c.do_upsert_chunks(chunks))

    request = recorder.requests[0]
    assert request.url.params["wait"] == "true"
    assert request.headers["api-key"] == "secret"
    points = json.loads(request.content)["points"]
    assert [p["id"] for p in points] == [chunks[0].id, chunks[1].id]
    assert points[0]["payload"]["DocumentReference"] == "src:a.txt"


def test_upsert_rejects_unscoped_chunks(helper_config, qdrant_env) -> None:
    recorder = Recorder({})
    chunk = make_chunk("src:a.txt", 0).model_copy(update={"tenant_id": ""})
    with pytest.raises(ValueError):
        run_with_client(helper_config, recorder, lambda c: c.do_upsert_chunks([chunk]))
    assert recorder.requests == []


def test_reference_listing_follows_cursor(helper_config, qdrant_env) -> None:
    pages = iter([
        httpx.Response(200, json={"result": {"points": [
            {"id": "1", "payload": {"DocumentReference": "src:a.txt"}},
            {"id": "2", "payload": {"DocumentReference": "src:a.txt"}},
        ], "next_page_offset": "3"}}),
        httpx.Response(200, json={"result": {"points": [
            {"id": "3", "payload": {"DocumentReference": "src:b.txt"}},
        ], "next_page_offset": None}}),
    ])
    recorder = Recorder({
        ("GET", "/collections/docs/exists"): exists(True),
        ("POST", "/collections/docs/points/scroll"): lambda request: next(pages),
    })

    async def collect(client):
        return [entry async for entry in client.iter_document_references("src", "t1", "g1")]

    entries = run_with_client(helper_config, recorder, collect)
    assert [(e.id, e.document_reference) for e in entries] == [("1", "src:a.txt"), ("2", "src:a.txt"), ("3", "src:b.txt")]
    bodies = recorder.bodies("POST", "/collections/docs/points/scroll")
    assert "offset" not in bodies[0]
    assert bodies[1]["offset"] == "3"
    assert {"key": "SourceReference", "match": {"value": "src"}} in bodies[0]["filter"]["must"]


def test_delete_on_missing_collection_is_not_an_error(helper_config, qdrant_env) -> None:
    recorder = Recorder({
        ("GET", "/collections/docs/exists"): exists(True),
        ("POST", "/collections/docs/points/delete"): httpx.Response(404),
    })
    run_with_client(helper_config, recorder, lambda c: c.do_delete_by_ids(["1", "2"]))


def test_authorization_failure_is_not_retried(helper_config, qdrant_env) -> None:
    recorder = Recorder({("GET", "/collections/docs/exists"): httpx.Response(403)})
    with pytest.raises(AuthorizationError) as excinfo:
        run_with_client(helper_config, recorder, lambda c: c.do_index_exists())
    assert len(recorder.requests) == 1
    assert excinfo.value.status_code == 403
    assert excinfo.value.engine == "qdrant"


def test_transient_status_is_retried(helper_config, qdrant_env) -> None:
    answers = iter([httpx.Response(503), httpx.Response(429), exists(True)])
    recorder = Recorder({("GET", "/collections/docs/exists"): lambda request: next(answers)})
    assert run_with_client(helper_config, recorder, lambda c: c.do_index_exists()) is True
    assert len(recorder.requests) == 3


def test_persistent_outage_surfaces_transient_error(helper_config, qdrant_env) -> None:
    recorder = Recorder({("GET", "/collections/docs/exists"): httpx.Response(502)})
    with pytest.raises(TransientRemoteError):
        run_with_client(helper_config, recorder, lambda c: c.do_index_exists())
    assert len(recorder.requests) == 3


def test_request_before_boot_is_a_configuration_error(helper_config, qdrant_env) -> None:
    client = RAGClientQdrant(helper_config, transport=httpx.MockTransport(Recorder({})))
    with pytest.raises(ConfigurationError):
        asyncio.run(client.do_index_exists())


def test_delete_all_sends_tenant_filter_only(helper_config, qdrant_env) -> None:
    recorder = Recorder({
        ("GET", "/collections/docs/exists"): exists(True),
        ("POST", "/collections/docs/points/delete"): httpx.Response(200, json={"result": {}}),
    })
    run_with_client(helper_config, recorder, lambda c: c.do_delete_all("t1"))
    assert recorder.bodies("POST", "/collections/docs/points/delete") == [
        {"filter": {"must": [{"key": "TenantID", "match": {"value": "t1"}}]}}
    ]


def test_delete_all_on_missing_collection_sends_nothing(helper_config, qdrant_env) -> None:
    recorder = Recorder({("GET", "/collections/docs/exists"): exists(False)})
    run_with_client(helper_config, recorder, lambda c: c.do_delete_all("t1"))
    assert [r.url.path for r in recorder.requests] == ["/collections/docs/exists"]
