from pydantic import BaseModel, Field


class SearchRequest(BaseModel):
    query: str = Field(min_length=1)
    limit: int = Field(default=3, gt=0, le=100)


class IngestRequest(BaseModel):
    # None ingests every configured source
    source_references: list[str] | None = None


class ReconcileRequest(BaseModel):
    source_reference: str
    document_references: list[str]


class RemoveDocumentsRequest(BaseModel):
    document_references: list[str]
