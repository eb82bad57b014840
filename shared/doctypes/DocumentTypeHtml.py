"""HTML document type. Keeps visible text only."""

from bs4 import BeautifulSoup

from shared.doctypes.DocumentTypeInterface import DocumentTypeInterface

_SKIPPED_TAGS = ["head", "script", "style", "noscript", "template"]


class DocumentTypeHtml(DocumentTypeInterface):
    def get_type_name(self) -> str:
        return "html"

    def get_supported_extensions(self) -> list[str]:
        return ["html", "htm", "xhtml"]

    def get_text(self, content: bytes) -> str:
        soup = BeautifulSoup(self.decode(content), "html.parser")
        for tag in soup(_SKIPPED_TAGS):
            tag.decompose()

        text = soup.get_text(separator="\n", strip=True)
        lines = (" ".join(line.split()) for line in text.splitlines())
        return "\n".join(line for line in lines if line)
