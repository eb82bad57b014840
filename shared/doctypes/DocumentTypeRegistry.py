from shared.doctypes.DocumentTypeCode import DocumentTypeCode
from shared.doctypes.DocumentTypeExecutable import DocumentTypeExecutable
from shared.doctypes.DocumentTypeHtml import DocumentTypeHtml
from shared.doctypes.DocumentTypeInterface import DocumentTypeInterface
from shared.doctypes.DocumentTypeText import DocumentTypeText
from shared.exceptions import UnsupportedDocumentTypeError
from shared.helper.HelperConfig import HelperConfig


def normalize_doc_type(doc_type: str) -> str:
    """Turn a file name, an extension or a type tag into a lowercase tag. E.g. "Notes.TXT" -> "txt"."""
    doc_type = doc_type.strip().lower()
    if "." in doc_type:
        doc_type = doc_type.rsplit(".", 1)[1]
    return doc_type


class DocumentTypeRegistry:
    """
    Maps extension tags to document type extractors. Built once at startup and injected.
    """

    def __init__(self, helper_config: HelperConfig, doc_types: list[DocumentTypeInterface] | None = None):
        self.logging = helper_config.get_logger()
        self._types: dict[str, DocumentTypeInterface] = {}
        for doc_type in doc_types or self._get_default_types():
            self.register(doc_type)

    def _get_default_types(self) -> list[DocumentTypeInterface]:
        return [DocumentTypeText(), DocumentTypeHtml(), DocumentTypeCode(), DocumentTypeExecutable()]

    def register(self, doc_type: DocumentTypeInterface) -> None:
        """Register a type for all of its extensions. Later registrations win."""
        for extension in doc_type.get_supported_extensions():
            self._types[normalize_doc_type(extension)] = doc_type
        self.logging.debug(
            "Registered document type '%s' for %s", doc_type.get_type_name(), doc_type.get_supported_extensions()
        )

    def get_supported_extensions(self) -> list[str]:
        return sorted(self._types)

    def is_supported(self, doc_type: str) -> bool:
        return normalize_doc_type(doc_type) in self._types

    def resolve(self, doc_type: str) -> DocumentTypeInterface:
        """
        Returns the extractor for a type tag.

        Raises:
            UnsupportedDocumentTypeError: If no extractor is registered for the tag.
        """
        tag = normalize_doc_type(doc_type)
        try:
            return self._types[tag]
        except KeyError:
            raise UnsupportedDocumentTypeError(f"No extractor registered for document type '{tag}'.")

    def get_text(self, doc_type: str, content: bytes) -> str:
        """
        Extracts the text of a document with the extractor registered for its type.

        Raises:
            UnsupportedDocumentTypeError: If no extractor is registered for the type.
        """
        return self.resolve(doc_type).get_text(content)
