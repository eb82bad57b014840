from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import IngestionSettings
from server.models.requests import SearchRequest
from server.models.responses import SearchResponse, SearchResultItem


class QueryService:
    """Handles semantic search queries: embed -> search -> map results."""

    def __init__(
        self,
        helper_config: HelperConfig,
        settings: IngestionSettings,
        rag_clients: list[RAGClientInterface],
        embed_client: EmbedClientInterface,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._settings = settings
        self._rag_clients = rag_clients
        self._embed_client = embed_client

    ##########################################
    ############### CORE #####################
    ##########################################

    async def search(self, request: SearchRequest) -> SearchResponse:
        """Embed a query and return the closest chunks of the configured tenant and group.

        Args:
            request (SearchRequest): The search request with query and limit.

        Returns:
            SearchResponse: The matching chunks, best match first.

        Raises:
            NeedsIngestionError: If nothing has been ingested yet.
        """
        self.logging.info("QueryService.search: query='%s', limit=%d", request.query, request.limit)

        vectors = await self._embed_client.do_embed([request.query])

        # the first RAG client serves queries; the others are write replicas
        rag_client = self._rag_clients[0]
        hits = await rag_client.do_search(
            vectors[0],
            tenant_id=self._settings.tenant_id,
            group_id=self._settings.group_id,
            k=request.limit,
        )

        items = [
            SearchResultItem(
                id=hit.id,
                document_reference=hit.document_reference,
                source_reference=hit.source_reference,
                path=hit.path,
                content=hit.content,
                score=hit.score,
            )
            for hit in hits
        ]
        self.logging.info("QueryService.search: returning %d result(s).", len(items))
        return SearchResponse(query=request.query, results=items, total=len(items))
