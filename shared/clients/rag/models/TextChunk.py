"""TextChunk model: the unit of storage in a RAG backend."""

import uuid

from pydantic import BaseModel

# Fixed namespace for deterministic UUIDv5 chunk IDs.
# Changing this value would invalidate all existing chunk IDs in every backend.
CHUNK_ID_NAMESPACE = uuid.UUID("3b8e6f0a-52c4-4d1e-9a7f-0c2d5e8b1a64")

# Payload field names shared by all backends
FIELD_DOCUMENT_REFERENCE = "DocumentReference"
FIELD_SOURCE_REFERENCE = "SourceReference"
FIELD_CONTENT = "Content"
FIELD_PATH = "Path"
FIELD_TENANT_ID = "TenantID"
FIELD_GROUP_ID = "GroupID"


def make_chunk_id(tenant_id: str, group_id: str, document_reference: str, chunk_index: int) -> str:
    """Build a deterministic UUID5 chunk ID.

    The same document chunk always maps to the same ID so that re-ingesting
    overwrites rather than duplicates. Tenant and group are part of the name,
    so two scopes indexing the same reference into one collection never share
    a point.

    Args:
        tenant_id (str): Tenant scope of the chunk.
        group_id (str): Group scope of the chunk.
        document_reference (str): Stable reference of the document.
        chunk_index (int): Zero-based chunk index within the document.

    Returns:
        str: UUID string usable as a point/document key in any backend.
    """
    name = "\x1f".join([tenant_id, group_id, document_reference, str(chunk_index)])
    return str(uuid.uuid5(CHUNK_ID_NAMESPACE, name))


class TextChunk(BaseModel):
    """A bounded text segment plus its embedding and scoping metadata.

    Attributes:
        id:                 Deterministic chunk ID, see make_chunk_id().
        document_reference: Stable reference of the document the chunk belongs to.
        source_reference:   Reference of the document source that produced the document.
        content:            Raw text of this chunk.
        embedding:          Embedding vector; empty on results that do not carry vectors.
        path:               Path of the document inside its source.
        tenant_id:          MANDATORY tenant scope; used for isolation.
        group_id:           MANDATORY group scope; used for isolation.
        score:              Similarity score, only set on search results.
    """

    id: str
    document_reference: str
    source_reference: str = ""
    content: str = ""
    embedding: list[float] = []
    path: str = ""
    tenant_id: str
    group_id: str
    score: float | None = None

    def to_payload(self) -> dict:
        """Return the backend-agnostic payload stored next to the vector."""
        return {
            FIELD_DOCUMENT_REFERENCE: self.document_reference,
            FIELD_SOURCE_REFERENCE: self.source_reference,
            FIELD_CONTENT: self.content,
            FIELD_PATH: self.path,
            FIELD_TENANT_ID: self.tenant_id,
            FIELD_GROUP_ID: self.group_id,
        }

    @classmethod
    def from_payload(cls, chunk_id: str, payload: dict, score: float | None = None, embedding: list[float] | None = None) -> "TextChunk":
        """Rebuild a chunk from a stored payload."""
        return cls(
            id=str(chunk_id),
            document_reference=str(payload.get(FIELD_DOCUMENT_REFERENCE, "")),
            source_reference=str(payload.get(FIELD_SOURCE_REFERENCE, "")),
            content=str(payload.get(FIELD_CONTENT) or ""),
            path=str(payload.get(FIELD_PATH) or ""),
            tenant_id=str(payload.get(FIELD_TENANT_ID, "")),
            group_id=str(payload.get(FIELD_GROUP_ID, "")),
            score=score,
            embedding=embedding or [],
        )
