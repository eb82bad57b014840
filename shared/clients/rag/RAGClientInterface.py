from abc import abstractmethod
from typing import AsyncIterator

import httpx

from shared.clients.ClientInterface import ClientInterface
from shared.clients.rag.models.Scroll import DocumentReferenceEntry, ScrollResult
from shared.clients.rag.models.TextChunk import (
    FIELD_DOCUMENT_REFERENCE,
    FIELD_GROUP_ID,
    FIELD_SOURCE_REFERENCE,
    FIELD_TENANT_ID,
    TextChunk,
)
from shared.exceptions import NeedsIngestionError
from shared.helper.HelperConfig import HelperConfig


class RAGClientInterface(ClientInterface):
    """Vector store capability shared by every RAG backend.

    The public do_* operations hold the behaviour every backend must share
    (idempotent index creation, tenant scoping, batching, pagination,
    NeedsIngestion signalling). Subclasses only implement the backend
    primitives declared below. Filters passed to the primitives are plain
    {payload field: exact value} dicts.
    """

    def __init__(self, helper_config: HelperConfig, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(helper_config=helper_config, transport=transport)
        self.vector_size = int(helper_config.get_number_val("EMBED_VECTOR_SIZE", default=1536))
        self.upsert_batch_size = int(helper_config.get_number_val("RAG_UPSERT_BATCH_SIZE", default=100))
        self.page_size = int(helper_config.get_number_val("RAG_PAGE_SIZE", default=1000))
        self._index_exists = False

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        """
        Returns the type of the client. E.g. "rag"
        """
        return "rag"

    ##########################################
    ########### BACKEND PRIMITIVES ###########
    ##########################################

    @abstractmethod
    async def _do_check_index_exists(self) -> bool:
        """Ask the backend whether the collection/index exists."""
        pass

    @abstractmethod
    async def _do_create_index(self) -> None:
        """Create the collection/index with the fixed vector size, cosine distance
        and filterable scoping fields. Must tolerate "already exists"."""
        pass

    @abstractmethod
    async def _do_upsert_batch(self, chunks: list[TextChunk]) -> None:
        """Write or overwrite a batch of chunks by ID."""
        pass

    @abstractmethod
    async def _do_delete_batch(self, ids: list[str]) -> None:
        """Delete a batch of chunk IDs. Must tolerate absent IDs."""
        pass

    @abstractmethod
    async def _do_delete_by_filter(self, filters: dict[str, str]) -> None:
        """Delete every chunk matching all of the given exact-match filters."""
        pass

    @abstractmethod
    async def _do_scroll_page(self, filters: dict[str, str], limit: int, offset: str | int | None = None) -> ScrollResult:
        """Fetch one page of chunks matching the filters.

        Returns:
            ScrollResult: result holds dicts with "id" and "payload" keys;
                next_page_offset is None on the last page.
        """
        pass

    @abstractmethod
    async def _do_vector_search(self, embedding: list[float], filters: dict[str, str], k: int) -> list[TextChunk]:
        """Top-k cosine search restricted to the filters.

        Raises:
            NeedsIngestionError: If the backend reports a missing index.
        """
        pass

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_index_exists(self) -> bool:
        """Check whether the index exists. A positive answer is cached."""
        if self._index_exists:
            return True
        self._index_exists = await self._do_check_index_exists()
        return self._index_exists

    async def do_create_index(self) -> None:
        """Create the index if it does not exist yet. Idempotent."""
        if await self.do_index_exists():
            self.logging.debug("Index on %s already exists.", self.get_engine_name())
            return
        self.logging.info(
            "Creating index on %s (vector size %d, cosine).", self.get_engine_name(), self.vector_size
        )
        await self._do_create_index()
        self._index_exists = True

    async def do_upsert_chunks(self, chunks: list[TextChunk]) -> None:
        """Upsert chunks by ID in batches.

        Args:
            chunks (list[TextChunk]): Chunks with embeddings and tenant/group scope.

        Raises:
            ValueError: If a chunk has no tenant/group scope or a wrong vector size.
        """
        if not chunks:
            return
        for chunk in chunks:
            # security invariant: nothing unscoped may reach the index
            if not chunk.tenant_id or not chunk.group_id:
                raise ValueError(f"Chunk {chunk.id} of '{chunk.document_reference}' is missing tenant/group scope.")
            if len(chunk.embedding) != self.vector_size:
                raise ValueError(
                    f"Chunk {chunk.id} has embedding size {len(chunk.embedding)}, expected {self.vector_size}."
                )

        for batch_start in range(0, len(chunks), self.upsert_batch_size):
            batch = chunks[batch_start: batch_start + self.upsert_batch_size]
            await self._do_upsert_batch(batch)
        self.logging.debug("Upserted %d chunk(s) into %s.", len(chunks), self.get_engine_name())

    async def do_delete_by_ids(self, ids: list[str]) -> None:
        """Delete chunks by ID. Absent IDs and a missing index are not errors."""
        if not ids:
            return
        if not await self.do_index_exists():
            return
        for batch_start in range(0, len(ids), self.upsert_batch_size):
            await self._do_delete_batch(ids[batch_start: batch_start + self.upsert_batch_size])
        self.logging.debug("Deleted %d chunk(s) from %s.", len(ids), self.get_engine_name())

    async def iter_document_references(
        self, source_reference: str, tenant_id: str, group_id: str
    ) -> AsyncIterator[DocumentReferenceEntry]:
        """Lazily list (chunk id, document reference) pairs of one source.

        Pages are fetched on demand by following the backend cursor. Iterating
        again restarts from the first page. Yields nothing if the index does
        not exist.
        """
        async for entry in self._iter_by_filter({
            FIELD_SOURCE_REFERENCE: source_reference,
            FIELD_TENANT_ID: tenant_id,
            FIELD_GROUP_ID: group_id,
        }):
            yield entry

    async def do_get_document_reference(self, document_reference: str, tenant_id: str, group_id: str) -> list[DocumentReferenceEntry]:
        """Return every chunk entry of a single document."""
        return [entry async for entry in self._iter_by_filter({
            FIELD_DOCUMENT_REFERENCE: document_reference,
            FIELD_TENANT_ID: tenant_id,
            FIELD_GROUP_ID: group_id,
        })]

    async def do_search(self, embedding: list[float], tenant_id: str, group_id: str, k: int = 3) -> list[TextChunk]:
        """Top-k similarity search restricted to one tenant and group.

        Raises:
            NeedsIngestionError: If the index has never been created.
        """
        if not await self.do_index_exists():
            raise NeedsIngestionError(
                "You need to perform ingestion before querying so that there are documents available for context."
            )
        hits = await self._do_vector_search(
            embedding,
            {FIELD_TENANT_ID: tenant_id, FIELD_GROUP_ID: group_id},
            k,
        )
        # scope is enforced by the backend filter; drop anything that slipped through
        return [hit for hit in hits if hit.tenant_id == tenant_id and hit.group_id == group_id]

    async def do_delete_all(self, tenant_id: str) -> None:
        """Purge every chunk of a tenant. A missing index is not an error."""
        if not await self.do_index_exists():
            return
        self.logging.info("Deleting all chunks of tenant '%s' from %s.", tenant_id, self.get_engine_name())
        await self._do_delete_by_filter({FIELD_TENANT_ID: tenant_id})

    ##########################################
    ############### HELPERS ##################
    ##########################################

    async def _iter_by_filter(self, filters: dict[str, str]) -> AsyncIterator[DocumentReferenceEntry]:
        if not await self.do_index_exists():
            return
        offset: str | int | None = None
        page = 1
        while True:
            page_result = await self._do_scroll_page(filters, limit=self.page_size, offset=offset)
            for point in page_result.result:
                payload = point.get("payload") or {}
                yield DocumentReferenceEntry(
                    id=str(point.get("id")),
                    document_reference=str(payload.get(FIELD_DOCUMENT_REFERENCE, "")),
                )
            self.logging.debug(
                "Fetched reference page %d (%d entries) from %s", page, len(page_result.result), self.get_engine_name()
            )
            offset = page_result.next_page_offset
            if offset is None:
                break
            page += 1
