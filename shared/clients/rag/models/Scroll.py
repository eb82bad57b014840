from pydantic import BaseModel


class ScrollResult(BaseModel):
    """Structured output of a single scroll page.

    Attributes:
        result:           List of raw point/document dicts returned by the page.
        next_page_offset: Cursor for the next page, or None when all pages
                          have been consumed.
    """

    result: list[dict]
    next_page_offset: str | int | None = None


class DocumentReferenceEntry(BaseModel):
    """A single (chunk id, document reference) pair from a reference listing."""

    id: str
    document_reference: str
