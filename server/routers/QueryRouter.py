from fastapi import APIRouter, Depends, HTTPException, Request

from server.dependencies.auth import verify_api_key
from server.models.requests import SearchRequest
from server.models.responses import SearchResponse
from shared.exceptions import NeedsIngestionError

router = APIRouter(prefix="/query", tags=["query"])


@router.post("")
async def query_documents(
    request: Request,
    body: SearchRequest,
    _: None = Depends(verify_api_key),
) -> SearchResponse:
    """Execute a semantic search query against the RAG backend.

    Args:
        request (Request): FastAPI request (provides app.state.query_service).
        body (SearchRequest): JSON body with query string and limit.
        _ (None): Auth dependency result (unused).

    Returns:
        SearchResponse: Matching chunks with their document references.

    Raises:
        HTTPException: 409 if no documents have been ingested yet.
    """
    query_service = request.app.state.query_service
    try:
        return await query_service.search(body)
    except NeedsIngestionError as e:
        raise HTTPException(status_code=409, detail=str(e))
