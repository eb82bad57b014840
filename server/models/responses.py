from pydantic import BaseModel


class SearchResultItem(BaseModel):
    id: str
    document_reference: str
    source_reference: str
    path: str
    content: str
    score: float | None


class SearchResponse(BaseModel):
    query: str
    results: list[SearchResultItem]
    total: int


class AcceptedResponse(BaseModel):
    status: str = "accepted"
    source_references: list[str]


class ReconcileResponse(BaseModel):
    source_reference: str
    deleted: int


class RemoveDocumentsResponse(BaseModel):
    removed: int


class PurgeResponse(BaseModel):
    tenant_id: str
    removed: int
