from abc import ABC, abstractmethod


class DocumentTypeInterface(ABC):
    """Turns the raw bytes of one kind of document into plain text."""

    encoding = "utf-8"

    @abstractmethod
    def get_type_name(self) -> str:
        """
        Returns the name of the document type. E.g. "text"
        """
        pass

    @abstractmethod
    def get_supported_extensions(self) -> list[str]:
        """
        Returns the lowercase extension tags handled by this type, without the dot. E.g. ["txt", "md"]
        """
        pass

    @abstractmethod
    def get_text(self, content: bytes) -> str:
        """Extract the plain text of a document.

        Args:
            content (bytes): Raw document bytes.

        Returns:
            str: The extracted text. May be empty.
        """
        pass

    def decode(self, content: bytes) -> str:
        # undecodable bytes must not fail the whole document
        return content.decode(self.encoding, errors="replace")
