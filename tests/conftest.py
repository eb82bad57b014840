"""Shared pytest fixtures and in-memory fakes for the ingestion pipeline."""

import asyncio
import logging
import math
from typing import AsyncIterator

import pytest

from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.Scroll import ScrollResult
from shared.clients.rag.models.TextChunk import TextChunk
from shared.doctypes.DocumentTypeRegistry import DocumentTypeRegistry
from shared.exceptions import RemoteRequestError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig, IngestionSettings
from shared.models.ingestion import DocumentInfo
from shared.sources.DocumentSourceInterface import DocumentSourceInterface
from shared.tracking.ChangeTracker import ChangeTracker

VECTOR_SIZE = 4


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


class InMemoryRAGClient(RAGClientInterface):
    """RAG backend that keeps points in a dict. Filters are exact payload matches."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self.created = False
        self.points: dict[str, TextChunk] = {}
        self.fail_upsert_for: set[str] = set()
        self.upsert_calls = 0

    def _get_engine_name(self) -> str:
        return "Memory"

    def _get_required_config(self) -> list[EnvConfig]:
        return []

    def _get_auth_header(self) -> dict:
        return {}

    def _get_base_url(self) -> str:
        return "memory://"

    def _get_endpoint_healthcheck(self) -> str:
        return ""

    async def _do_check_index_exists(self) -> bool:
        return self.created

    async def _do_create_index(self) -> None:
        self.created = True

    async def _do_upsert_batch(self, chunks: list[TextChunk]) -> None:
        self.upsert_calls += 1
        for chunk in chunks:
            if chunk.document_reference in self.fail_upsert_for:
                raise RemoteRequestError(f"upsert rejected for {chunk.document_reference}", status_code=400)
        for chunk in chunks:
            self.points[chunk.id] = chunk

    async def _do_delete_batch(self, ids: list[str]) -> None:
        for chunk_id in ids:
            self.points.pop(chunk_id, None)

    async def _do_delete_by_filter(self, filters: dict[str, str]) -> None:
        for chunk_id in [c.id for c in self.points.values() if self._matches(c, filters)]:
            del self.points[chunk_id]

    async def _do_scroll_page(self, filters: dict[str, str], limit: int, offset: str | int | None = None) -> ScrollResult:
        matching = sorted((c for c in self.points.values() if self._matches(c, filters)), key=lambda c: c.id)
        start = int(offset or 0)
        page = matching[start: start + limit]
        next_offset = start + limit if start + limit < len(matching) else None
        return ScrollResult(
            result=[{"id": c.id, "payload": c.to_payload()} for c in page],
            next_page_offset=next_offset,
        )

    async def _do_vector_search(self, embedding: list[float], filters: dict[str, str], k: int) -> list[TextChunk]:
        hits = [
            c.model_copy(update={"score": _cosine(embedding, c.embedding)})
            for c in self.points.values()
            if self._matches(c, filters)
        ]
        hits.sort(key=lambda c: c.score, reverse=True)
        return hits[:k]

    def chunks_of(self, document_reference: str) -> list[TextChunk]:
        return [c for c in self.points.values() if c.document_reference == document_reference]

    @staticmethod
    def _matches(chunk: TextChunk, filters: dict[str, str]) -> bool:
        payload = chunk.to_payload()
        return all(payload.get(key) == value for key, value in filters.items())


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


def fake_vector(text: str) -> list[float]:
    """Deterministic, non-zero vector derived from the text."""
    counts = [1.0] * VECTOR_SIZE
    for char in text:
        counts[ord(char) % VECTOR_SIZE] += 1.0
    return counts


class FakeEmbedder:
    """Stands in for an EmbedClientInterface. Counts the texts it embedded."""

    def __init__(self) -> None:
        self.embedded: list[str] = []

    async def do_embed(self, texts: list[str] | str) -> list[list[float]]:
        texts = [texts] if isinstance(texts, str) else texts
        self.embedded.extend(texts)
        return [fake_vector(text) for text in texts]


class InMemorySource(DocumentSourceInterface):
    """Document source backed by a {path: bytes} dict that tests mutate between passes."""

    def __init__(self, helper_config: HelperConfig, reference: str, files: dict[str, bytes] | None = None):
        self._reference = reference
        self.files: dict[str, bytes] = dict(files or {})
        self.fail_after: int | None = None
        self.unreadable: set[str] = set()
        super().__init__(helper_config=helper_config)

    def _get_engine_name(self) -> str:
        return "Memory"

    def _get_required_config(self) -> list[EnvConfig]:
        return []

    def get_reference(self) -> str:
        return self._reference

    def get_description(self) -> str:
        return "in-memory test source"

    async def iter_documents(self, cancel_event: asyncio.Event | None = None) -> AsyncIterator[DocumentInfo]:
        for position, (path, content) in enumerate(sorted(self.files.items())):
            if self.fail_after is not None and position >= self.fail_after:
                raise OSError("source went away")
            if cancel_event is not None and cancel_event.is_set():
                return
            unreadable = path in self.unreadable
            yield DocumentInfo(
                source_reference=self._reference,
                content=b"" if unreadable else content,
                read_error="permission denied" if unreadable else None,
                doc_type=path.rsplit(".", 1)[-1],
                path=path,
            )


@pytest.fixture
def helper_config(monkeypatch: pytest.MonkeyPatch) -> HelperConfig:
    monkeypatch.setenv("EMBED_VECTOR_SIZE", str(VECTOR_SIZE))
    monkeypatch.setenv("RETRY_MAX_ATTEMPTS", "3")
    monkeypatch.setenv("RETRY_BASE_DELAY", "0.0")
    monkeypatch.setenv("RETRY_TIMEOUT", "5.0")
    return HelperConfig(logger=logging.getLogger("index_sync.tests"))


@pytest.fixture
def settings() -> IngestionSettings:
    return IngestionSettings(
        tenant_id="tenant-a",
        group_id="group-1",
        vector_size=VECTOR_SIZE,
        chunk_max_size=40,
        chunk_overlap=0.0,
        concurrency=2,
        queue_size=2,
    )


@pytest.fixture
def tracker(helper_config: HelperConfig) -> ChangeTracker:
    # same scope as the settings fixture
    tracker = ChangeTracker(helper_config, db_url="sqlite://", tenant_id="tenant-a", group_id="group-1")
    yield tracker
    tracker.close()


@pytest.fixture
def rag_client(helper_config: HelperConfig) -> InMemoryRAGClient:
    return InMemoryRAGClient(helper_config)


@pytest.fixture
def embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def doc_types(helper_config: HelperConfig) -> DocumentTypeRegistry:
    return DocumentTypeRegistry(helper_config)
