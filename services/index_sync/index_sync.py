"""Index sync runner entry point.

Runs one full ingestion pass over every configured document source into
every configured RAG backend, then exits.

Usage:
    python -m services.index_sync.index_sync
"""

import asyncio

from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.doctypes.DocumentTypeRegistry import DocumentTypeRegistry
from shared.exceptions import AuthorizationError, IndexSyncError
from shared.helper.HelperConfig import HelperConfig
from shared.logging.logging_setup import setup_logging
from shared.models.config import IngestionSettings
from shared.models.ingestion import IngestionProgress
from shared.sources.DocumentSourceManager import DocumentSourceManager
from shared.tracking.ChangeTracker import ChangeTracker
from services.index_sync.IngestionService import IngestionService


async def boot_clients(
    embed_client: EmbedClientInterface,
    rag_clients: list[RAGClientInterface],
    logger,
) -> list[RAGClientInterface]:
    """Boot the embed client and every RAG client.

    The embed client is required. RAG clients that fail to boot are skipped,
    but at least one has to come up.

    Returns:
        list[RAGClientInterface]: The booted RAG clients.

    Raises:
        IndexSyncError: If the embed client or all RAG clients fail to boot.
    """
    await embed_client.boot()
    await embed_client.do_healthcheck()
    await embed_client.do_verify_vector_size()

    booted: list[RAGClientInterface] = []
    for rag_client in rag_clients:
        try:
            await rag_client.boot()
            await rag_client.do_healthcheck()
            booted.append(rag_client)
        except AuthorizationError:
            raise
        except IndexSyncError as e:
            logger.error("Error booting RAG client %s: %s. Skipping this client.", rag_client.get_engine_name(), e)
    if not booted:
        raise IndexSyncError("No RAG clients booted successfully.")
    return booted


async def main() -> None:
    """Run a full ingestion pass."""
    logger = setup_logging()
    config = HelperConfig(logger=logger)
    settings = IngestionSettings.from_config(config)
    doc_types = DocumentTypeRegistry(helper_config=config)
    sources = DocumentSourceManager(helper_config=config, supported_extensions=doc_types.get_supported_extensions()).get_sources()
    rag_clients = RAGClientManager(helper_config=config).get_clients()
    embed_client = EmbedClientManager(helper_config=config).get_client()
    tracker = ChangeTracker(helper_config=config)

    try:
        try:
            booted_rag_clients = await boot_clients(embed_client, rag_clients, logger)
        except (IndexSyncError, ValueError) as e:
            logger.error("Error booting clients: %s. Aborting.", e)
            return

        service = IngestionService(
            helper_config=config,
            settings=settings,
            rag_clients=booted_rag_clients,
            embed_client=embed_client,
            tracker=tracker,
            doc_types=doc_types,
        )

        def _log_progress(update: IngestionProgress) -> None:
            logger.debug(
                "Progress %d/%s: %s (%s)",
                update.processed_count,
                update.total_count if update.total_count is not None else "?",
                update.current_reference,
                update.message,
            )

        results = await service.do_full_ingest(sources, progress=_log_progress)
        failed = sum(result.failed for result in results)
        if failed:
            logger.warning("Ingestion finished with %d failed document(s).", failed)
    finally:
        await embed_client.close()
        for rag_client in rag_clients:
            await rag_client.close()
        tracker.close()


if __name__ == "__main__":
    asyncio.run(main())
