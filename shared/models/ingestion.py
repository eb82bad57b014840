"""Pydantic models for the ingestion pipeline.

Hierarchy:
  DocumentInfo: one document as yielded by a document source.
  ChangeKind: classification of a scanned document against the change tracker.
  IngestionProgress: ephemeral progress update handed to a progress sink.
  IngestionResult: summary of one ingestion pass over one source.
"""

from enum import Enum
from typing import Callable

from pydantic import BaseModel, ConfigDict, Field

REFERENCE_SEPARATOR = ":"


def make_reference_prefix(source_reference: str) -> str:
    """Prefix shared by every document reference of a source.

    Args:
        source_reference (str): Reference of the document source.

    Returns:
        str: The prefix, e.g. "fs:/data/docs:".
    """
    return f"{source_reference}{REFERENCE_SEPARATOR}"


def make_document_reference(source_reference: str, path: str) -> str:
    """Build the stable document reference of a document inside a source."""
    return f"{make_reference_prefix(source_reference)}{path}"


class DocumentInfo(BaseModel):
    """A single document yielded by a document source.

    Attributes:
        source_reference: Reference of the source that produced the document.
        content:          Raw document bytes.
        doc_type:         Type tag used to pick an extractor (usually the file extension).
        path:             Path of the document inside the source.
        description:      Human readable description of the source that produced the document.
        read_error:       Set when the source listed the document but could not read it.
    """

    model_config = ConfigDict(frozen=True)

    source_reference: str
    content: bytes
    doc_type: str
    path: str
    description: str = ""
    read_error: str | None = None

    @property
    def document_reference(self) -> str:
        return make_document_reference(self.source_reference, self.path)


class ChangeKind(str, Enum):
    NEW = "new"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"
    DELETED = "deleted"


class HashRecord(BaseModel):
    """Read model of a row in the HashRecords table."""

    id: int
    file_ref: str
    hash: str


class IngestionProgress(BaseModel):
    """Progress update for observability. Never persisted.

    total_count stays None while the source is still being enumerated.
    """

    processed_count: int
    total_count: int | None = None
    current_reference: str = ""
    message: str = ""


ProgressSink = Callable[[IngestionProgress], None]


class DocumentError(BaseModel):
    document_reference: str
    error: str


class IngestionResult(BaseModel):
    """Summary of one ingestion pass over one document source."""

    source_reference: str
    new: int = 0
    modified: int = 0
    unchanged: int = 0
    failed: int = 0
    deleted: int = 0
    cancelled: bool = False
    errors: list[DocumentError] = Field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.new + self.modified + self.unchanged + self.failed
