from shared.doctypes.DocumentTypeInterface import DocumentTypeInterface


class DocumentTypeExecutable(DocumentTypeInterface):
    """Binaries are tracked but never produce text."""

    def get_type_name(self) -> str:
        return "executable"

    def get_supported_extensions(self) -> list[str]:
        return ["exe", "dll", "so", "dylib", "bin"]

    def get_text(self, content: bytes) -> str:
        return ""
