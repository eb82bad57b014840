from shared.doctypes.DocumentTypeInterface import DocumentTypeInterface


class DocumentTypeCode(DocumentTypeInterface):
    """Source code is indexed verbatim."""

    def get_type_name(self) -> str:
        return "code"

    def get_supported_extensions(self) -> list[str]:
        return [
            "py", "cs", "js", "ts", "tsx", "jsx", "java", "kt", "go", "rs", "rb", "php",
            "c", "h", "cpp", "hpp", "swift", "scala", "sh", "ps1", "sql", "css",
        ]

    def get_text(self, content: bytes) -> str:
        return self.decode(content).lstrip("\ufeff")
