from shared.doctypes.DocumentTypeInterface import DocumentTypeInterface


class DocumentTypeText(DocumentTypeInterface):
    def get_type_name(self) -> str:
        return "text"

    def get_supported_extensions(self) -> list[str]:
        return ["txt", "md", "markdown", "rst", "csv", "tsv", "json", "log", "xml", "yaml", "yml", "ini", "cfg", "toml"]

    def get_text(self, content: bytes) -> str:
        # strip a leading BOM
        return self.decode(content).lstrip("\ufeff")
