"""FastAPI application entry point for index_sync_bridge."""

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shared.logging.logging_setup import setup_logging
from shared.helper.HelperConfig import HelperConfig
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.embed.EmbedClientManager import EmbedClientManager
from shared.clients.rag.RAGClientManager import RAGClientManager
from shared.doctypes.DocumentTypeRegistry import DocumentTypeRegistry
from shared.exceptions import TransientRemoteError
from shared.models.config import IngestionSettings
from shared.sources.DocumentSourceManager import DocumentSourceManager
from shared.tracking.ChangeTracker import ChangeTracker
from services.index_sync.IngestionService import IngestionService
from server.core.QueryService import QueryService
from server.routers.IngestRouter import router as ingest_router
from server.routers.QueryRouter import router as query_router
from server.routers.WebhookRouter import router as webhook_router

logging = setup_logging()
app_version = os.getenv("APP_VERSION", "unknown")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # when the app starts
    app.state.logging = logging
    app.state.helper_config = HelperConfig(logger=logging)
    settings = IngestionSettings.from_config(app.state.helper_config)

    doc_types = DocumentTypeRegistry(helper_config=app.state.helper_config)
    sources = DocumentSourceManager(
        helper_config=app.state.helper_config,
        supported_extensions=doc_types.get_supported_extensions(),
    ).get_sources()
    rag_clients = RAGClientManager(helper_config=app.state.helper_config).get_clients()
    embed_client = EmbedClientManager(helper_config=app.state.helper_config).get_client()
    tracker = ChangeTracker(helper_config=app.state.helper_config)

    logging.info("Booting all clients...")
    for client in [*rag_clients, embed_client]:
        await client.boot()
    logging.info("All clients booted successfully.")

    app.state.sources = sources
    app.state.rag_clients = rag_clients
    app.state.embed_client = embed_client
    app.state.ingestion_service = IngestionService(
        helper_config=app.state.helper_config,
        settings=settings,
        rag_clients=rag_clients,
        embed_client=embed_client,
        tracker=tracker,
        doc_types=doc_types,
    )
    app.state.query_service = QueryService(
        helper_config=app.state.helper_config,
        settings=settings,
        rag_clients=rag_clients,
        embed_client=embed_client,
    )

    await check_connections(rag_clients, embed_client)

    # while the app is running...
    yield

    # when the app shuts down, close all client connections
    logging.info("Shutting down, closing all clients...")
    for client in [*rag_clients, embed_client]:
        await client.close()
    tracker.close()
    logging.info("All clients closed.")


app = FastAPI(
    title="index_sync_bridge",
    description=(
        "Keeps a vector index in sync with local and remote document collections. "
        "Changed documents are chunked, embedded and indexed; deleted documents are retired. "
        "Semantic search is served via POST /query, ingestion is started via POST /ingest."
    ),
    version=app_version,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(query_router)
app.include_router(ingest_router)
app.include_router(webhook_router)


@app.get("/health", tags=["health"])
async def health() -> dict:
    return {"status": "ok", "version": app_version}


async def check_connections(
    rag_clients: list[RAGClientInterface],
    embed_client: EmbedClientInterface,
) -> None:
    """Check connectivity to all configured backends on startup.

    RAG and embed failures are fatal, queries cannot be served without them.

    Raises:
        TransientRemoteError: If a backend is not reachable.
        AuthorizationError: If a backend rejects the credentials.
    """
    for client in [*rag_clients, embed_client]:
        result = await client.do_healthcheck()
        if not result.is_success:
            raise TransientRemoteError(
                f"{client.get_client_type().upper()} client '{client.get_engine_name()}' is not reachable "
                f"(status {result.status_code})."
            )


if __name__ == "__main__":
    import uvicorn

    logging.info(
        "Starting index_sync_bridge API Server v%s from root dir: %s on port 8000...",
        app_version,
        os.environ.get("ROOT_DIR", "unknown"),
    )
    uvicorn.run(app, host="0.0.0.0", port=8000)
