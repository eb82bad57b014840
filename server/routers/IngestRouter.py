from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request

from server.dependencies.auth import verify_api_key
from server.models.requests import IngestRequest
from server.models.responses import AcceptedResponse

router = APIRouter(prefix="/ingest", tags=["ingest"])


@router.post("", status_code=202)
async def ingest_sources(
    request: Request,
    body: IngestRequest,
    background_tasks: BackgroundTasks,
    _: None = Depends(verify_api_key),
) -> AcceptedResponse:
    """Start an ingestion pass over the configured document sources in the background.

    Raises:
        HTTPException: 404 if a requested source reference is not configured.
    """
    sources = request.app.state.sources
    if body.source_references is not None:
        known = {source.get_reference(): source for source in sources}
        unknown = [ref for ref in body.source_references if ref not in known]
        if unknown:
            raise HTTPException(status_code=404, detail=f"Unknown source reference(s): {unknown}")
        sources = [known[ref] for ref in body.source_references]

    ingestion_service = request.app.state.ingestion_service
    background_tasks.add_task(ingestion_service.do_full_ingest, sources)
    return AcceptedResponse(source_references=[source.get_reference() for source in sources])
