from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import verify_api_key
from server.models.requests import ReconcileRequest, RemoveDocumentsRequest
from server.models.responses import PurgeResponse, ReconcileResponse, RemoveDocumentsResponse

router = APIRouter(prefix="/webhook", tags=["webhook"])


@router.post("/reconcile")
async def webhook_reconcile(
    request: Request,
    body: ReconcileRequest,
    _: None = Depends(verify_api_key),
) -> ReconcileResponse:
    """Remove every document of a source that is missing from the supplied reference list.

    Args:
        request (Request): FastAPI request (provides app.state.ingestion_service).
        body (ReconcileRequest): Source reference and its currently existing document references.
        _ (None): Auth dependency result (unused).
    """
    ingestion_service = request.app.state.ingestion_service
    deleted = await ingestion_service.do_reconcile(body.source_reference, body.document_references)
    return ReconcileResponse(source_reference=body.source_reference, deleted=deleted)


@router.post("/remove")
async def webhook_remove(
    request: Request,
    body: RemoveDocumentsRequest,
    _: None = Depends(verify_api_key),
) -> RemoveDocumentsResponse:
    """Remove specific documents, e.g. on a deletion notification from the source system."""
    ingestion_service = request.app.state.ingestion_service
    removed = await ingestion_service.do_remove_documents(body.document_references)
    return RemoveDocumentsResponse(removed=removed)


@router.post("/purge")
async def webhook_purge(
    request: Request,
    _: None = Depends(verify_api_key),
) -> PurgeResponse:
    """Delete every chunk and hash record of the configured tenant, e.g. on tenant offboarding."""
    ingestion_service = request.app.state.ingestion_service
    removed = await ingestion_service.do_purge_tenant()
    return PurgeResponse(tenant_id=ingestion_service.tenant_id, removed=removed)
