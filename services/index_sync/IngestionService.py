"""Ingestion service.

Enumerates a document source, classifies every document against the change
tracker and runs extraction, chunking, embedding and upload only for new or
modified content. After a complete scan, documents that disappeared from the
source are removed from the vector store and from the change tracker.

Per document the order is always: upload chunks, delete surplus chunks,
commit hash. A crash in between leaves the hash uncommitted, so the next pass
redoes the work instead of skipping it.
"""

import asyncio
from typing import Iterable

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.Scroll import DocumentReferenceEntry
from shared.clients.rag.models.TextChunk import TextChunk, make_chunk_id
from shared.doctypes.DocumentTypeRegistry import DocumentTypeRegistry
from shared.exceptions import AuthorizationError, ConfigurationError, UnsupportedDocumentTypeError
from shared.helper.HelperConfig import HelperConfig
from shared.helper.TextChunker import TextChunker
from shared.models.config import IngestionSettings
from shared.models.ingestion import (
    ChangeKind,
    DocumentError,
    DocumentInfo,
    IngestionProgress,
    IngestionResult,
    ProgressSink,
    make_reference_prefix,
)
from shared.sources.DocumentSourceInterface import DocumentSourceInterface
from shared.tracking.ChangeTracker import ChangeTracker, compute_content_hash

# failures that affect every document equally abort the pass
_FATAL_ERRORS = (AuthorizationError, ConfigurationError)


async def _gather_or_cancel(*coros) -> list:
    """Run coroutines concurrently. On the first error cancel and await the rest, then re-raise."""
    tasks = [asyncio.ensure_future(coro) for coro in coros]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class IngestionService:
    """Orchestrates ingestion from document sources into the RAG backends."""

    def __init__(
        self,
        helper_config: HelperConfig,
        settings: IngestionSettings,
        rag_clients: list[RAGClientInterface],
        embed_client: EmbedClientInterface,
        tracker: ChangeTracker,
        doc_types: DocumentTypeRegistry,
        chunker: TextChunker | None = None,
    ) -> None:
        if not rag_clients:
            raise ConfigurationError("IngestionService needs at least one RAG client.")
        self.logging = helper_config.get_logger()
        self._settings = settings
        self._rag_clients = rag_clients
        self._embed_client = embed_client
        self._tracker = tracker.scoped(settings.tenant_id, settings.group_id)
        self._doc_types = doc_types
        self._chunker = chunker or TextChunker(settings.chunk_max_size, settings.chunk_overlap)

    ##########################################
    ############### CORE INGEST ##############
    ##########################################

    async def do_full_ingest(
        self,
        sources: list[DocumentSourceInterface],
        progress: ProgressSink | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> list[IngestionResult]:
        """Ingest all sources concurrently.

        If one source raises, the passes of all other sources are cancelled and
        awaited before the error propagates, so no pass outlives the call.
        """
        self.logging.info("Starting full ingest of %d source(s)...", len(sources))
        return await _gather_or_cancel(
            *[self.do_ingest(source, progress=progress, cancel_event=cancel_event) for source in sources]
        )

    async def do_ingest(
        self,
        source: DocumentSourceInterface,
        progress: ProgressSink | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> IngestionResult:
        """Run one full ingestion pass over a document source.

        One producer enumerates the source into a bounded queue, a fixed number
        of workers drain it. Failures of single documents are logged and
        recorded in the result; the scan continues. Deletions are reconciled
        only when the enumeration completed and the pass was not cancelled.

        Args:
            source (DocumentSourceInterface): The source to ingest.
            progress (ProgressSink | None): Receives an update after every document.
            cancel_event (asyncio.Event | None): Stops the pass between documents once set.

        Returns:
            IngestionResult: Counts per change kind, errors and the cancel flag.

        Raises:
            AuthorizationError: If a backend rejects the credentials.
            ConfigurationError: If a backend reports a configuration problem.
        """
        cancel_event = cancel_event or asyncio.Event()
        # set on fatal errors; the caller's event is never touched
        stop_event = asyncio.Event()

        def stopped() -> bool:
            return stop_event.is_set() or cancel_event.is_set()

        source_reference = source.get_reference()
        result = IngestionResult(source_reference=source_reference)
        self.logging.info("Ingesting source '%s' (%s)", source_reference, source.get_description())

        for rag_client in self._rag_clients:
            await rag_client.do_create_index()

        queue: asyncio.Queue[DocumentInfo | None] = asyncio.Queue(maxsize=self._settings.queue_size)
        observed: set[str] = set()
        enumeration_done = False
        enumeration_failed = False
        fatal_error: Exception | None = None
        processed = 0

        async def produce() -> None:
            nonlocal enumeration_done, enumeration_failed
            try:
                async for doc in source.iter_documents(cancel_event):
                    observed.add(doc.document_reference)
                    await queue.put(doc)
                    if stopped():
                        break
            except Exception as e:
                enumeration_failed = True
                self.logging.error("Enumerating source '%s' failed: %s. Deletions will not be reconciled.", source_reference, e)
            # not reached on cancellation, the workers are cancelled as well
            enumeration_done = True
            for _ in range(self._settings.concurrency):
                await queue.put(None)

        async def consume() -> None:
            nonlocal processed, fatal_error
            while True:
                doc = await queue.get()
                if doc is None:
                    return
                # drain without processing once stopped
                if stopped():
                    continue
                try:
                    kind = await self._process_document(doc, result)
                except _FATAL_ERRORS as e:
                    # keep draining so the producer never blocks on a full queue
                    fatal_error = fatal_error or e
                    stop_event.set()
                    continue
                processed += 1
                if progress is not None:
                    progress(IngestionProgress(
                        processed_count=processed,
                        total_count=len(observed) if enumeration_done else None,
                        current_reference=doc.document_reference,
                        message=kind.value if kind else "failed",
                    ))

        await _gather_or_cancel(produce(), *[consume() for _ in range(self._settings.concurrency)])
        if fatal_error is not None:
            raise fatal_error

        if cancel_event.is_set():
            result.cancelled = True
            self.logging.warning("Ingestion of '%s' cancelled after %d document(s).", source_reference, processed)
        elif not enumeration_failed:
            result.deleted = await self.do_reconcile(source_reference, observed, cancel_event, progress)

        self.logging.info(
            "Ingestion complete for '%s': %d new, %d modified, %d unchanged, %d failed, %d deleted.",
            source_reference, result.new, result.modified, result.unchanged, result.failed, result.deleted,
        )
        return result

    async def do_index_batch(self, chunks: list[TextChunk], cancel_event: asyncio.Event | None = None) -> None:
        """Upload already embedded chunks directly, without change tracking.

        Raises:
            ValueError: If a chunk is unscoped or has the wrong vector size.
        """
        if cancel_event is not None and cancel_event.is_set():
            return
        for rag_client in self._rag_clients:
            await rag_client.do_create_index()
            await rag_client.do_upsert_chunks(chunks)

    ##########################################
    ############ DOCUMENT INGEST #############
    ##########################################

    async def _process_document(self, doc: DocumentInfo, result: IngestionResult) -> ChangeKind | None:
        """Classify one document and index it if it changed.

        Returns:
            ChangeKind | None: The classification, or None if the document failed.
        """
        reference = doc.document_reference
        if doc.read_error is not None:
            # listed but unreadable: keep the previous index state and retry next pass
            self._record_failure(result, reference, doc.read_error)
            return None
        try:
            content_hash = compute_content_hash(doc.content)
            kind = await self._tracker.classify(reference, content_hash)
            if kind == ChangeKind.UNCHANGED:
                self.logging.debug("Skipping unchanged document '%s'.", reference)
                result.unchanged += 1
                return kind

            chunk_count = await self._index_document(doc)
            await self._tracker.commit(reference, content_hash)
        except _FATAL_ERRORS:
            raise
        except Exception as e:
            self._record_failure(result, reference, str(e))
            return None

        if kind == ChangeKind.NEW:
            result.new += 1
        else:
            result.modified += 1
        self.logging.info("Indexed %s document '%s': %d chunk(s).", kind.value, reference, chunk_count)
        return kind

    def _record_failure(self, result: IngestionResult, reference: str, error: str) -> None:
        self.logging.error("Ingesting document '%s' failed: %s", reference, error)
        result.failed += 1
        result.errors.append(DocumentError(document_reference=reference, error=error))

    async def _index_document(self, doc: DocumentInfo) -> int:
        """Extract, chunk, embed and upload a document, then drop its surplus chunks.

        Returns:
            int: The number of chunks now stored for the document.
        """
        reference = doc.document_reference
        try:
            text = self._doc_types.get_text(doc.doc_type, doc.content)
        except UnsupportedDocumentTypeError as e:
            self.logging.debug("%s Indexing '%s' as empty.", e, reference)
            text = ""

        segments = self._chunker.split(text)
        chunks: list[TextChunk] = []
        if segments:
            vectors = await self._embed_client.do_embed(segments)
            chunks = [
                TextChunk(
                    id=make_chunk_id(self._settings.tenant_id, self._settings.group_id, reference, index),
                    document_reference=reference,
                    source_reference=doc.source_reference,
                    content=segment,
                    embedding=vector,
                    path=doc.path,
                    tenant_id=self._settings.tenant_id,
                    group_id=self._settings.group_id,
                )
                for index, (segment, vector) in enumerate(zip(segments, vectors))
            ]

        keep = {chunk.id for chunk in chunks}
        for rag_client in self._rag_clients:
            await rag_client.do_upsert_chunks(chunks)
            existing = await rag_client.do_get_document_reference(
                reference, self._settings.tenant_id, self._settings.group_id
            )
            surplus = [entry.id for entry in existing if entry.id not in keep]
            if surplus:
                self.logging.debug("Removing %d surplus chunk(s) of '%s'.", len(surplus), reference)
                await rag_client.do_delete_by_ids(surplus)
        return len(chunks)

    ##########################################
    ############# RECONCILIATION #############
    ##########################################

    async def do_reconcile(
        self,
        source_reference: str,
        current_references: Iterable[str],
        cancel_event: asyncio.Event | None = None,
        progress: ProgressSink | None = None,
    ) -> int:
        """Remove every document of a source that is not in current_references.

        The stale set is the union of the tracked and the indexed references of
        the source, minus the current ones. Chunks are deleted from every RAG
        backend before the tracker records are pruned.

        Args:
            source_reference (str): Reference of the source to reconcile.
            current_references (Iterable[str]): Document references that still exist.
            cancel_event (asyncio.Event | None): Aborts before any deletion once set.
            progress (ProgressSink | None): Receives one "deleted" update per removed reference.

        Returns:
            int: Number of document references removed.
        """
        current = set(current_references)
        prefix = make_reference_prefix(source_reference)
        tracked = await self._tracker.list_references(prefix)

        indexed: dict[int, list[DocumentReferenceEntry]] = {}
        for position, rag_client in enumerate(self._rag_clients):
            indexed[position] = [
                entry async for entry in rag_client.iter_document_references(
                    source_reference, self._settings.tenant_id, self._settings.group_id
                )
            ]
        if cancel_event is not None and cancel_event.is_set():
            return 0

        indexed_refs = {entry.document_reference for entries in indexed.values() for entry in entries}
        stale = (tracked | indexed_refs) - current
        if not stale:
            self.logging.info("Reconcile '%s': no deleted documents found.", source_reference)
            return 0

        self.logging.info("Reconcile '%s': removing %d deleted document(s).", source_reference, len(stale))
        for position, rag_client in enumerate(self._rag_clients):
            await rag_client.do_delete_by_ids(
                [entry.id for entry in indexed[position] if entry.document_reference in stale]
            )
        await self._tracker.prune(prefix, current)
        if progress is not None:
            for position, reference in enumerate(sorted(stale), start=1):
                progress(IngestionProgress(
                    processed_count=position,
                    total_count=len(stale),
                    current_reference=reference,
                    message=ChangeKind.DELETED.value,
                ))
        return len(stale)

    async def do_remove_documents(self, references: list[str]) -> int:
        """Remove specific documents from every RAG backend and from the tracker.

        Absent documents are ignored.

        Returns:
            int: Number of tracker records removed.
        """
        for rag_client in self._rag_clients:
            for reference in references:
                entries = await rag_client.do_get_document_reference(
                    reference, self._settings.tenant_id, self._settings.group_id
                )
                await rag_client.do_delete_by_ids([entry.id for entry in entries])
        removed = await self._tracker.remove(references)
        self.logging.info("Removed %d document(s) on request.", len(references))
        return removed

    @property
    def tenant_id(self) -> str:
        return self._settings.tenant_id

    async def do_purge_tenant(self) -> int:
        """Delete every chunk of the configured tenant from every RAG backend, then its hash records.

        Returns:
            int: Number of tracker records removed.
        """
        tenant_id = self._settings.tenant_id
        for rag_client in self._rag_clients:
            await rag_client.do_delete_all(tenant_id)
        removed = await self._tracker.remove_tenant()
        self.logging.warning("Purged tenant '%s': %d tracked document(s) removed.", tenant_id, removed)
        return removed
