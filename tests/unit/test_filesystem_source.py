"""Unit tests for the filesystem document source."""

import asyncio
from pathlib import Path

import pytest

from shared.exceptions import ConfigurationError, IncompleteEnumerationError
from shared.sources.DocumentSourceManager import DocumentSourceManager
from shared.sources.filesystem.DocumentSourceFilesystem import DocumentSourceFilesystem


@pytest.fixture
def tree(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    (tmp_path / "a.txt").write_bytes(b"alpha")
    (tmp_path / "skip.bin").write_bytes(b"\x00")
    (tmp_path / "sub").mkdir()
    (tmp_path / "sub" / "b.md").write_bytes(b"beta")
    (tmp_path / "sub" / "deeper").mkdir()
    (tmp_path / "sub" / "deeper" / "c.txt").write_bytes(b"gamma")
    monkeypatch.setenv("SOURCE_FILESYSTEM_ROOT", str(tmp_path))
    monkeypatch.setenv("SOURCE_FILESYSTEM_REFERENCE", "fs")
    return tmp_path


def collect(source, cancel_event=None):
    async def scenario():
        return [doc async for doc in source.iter_documents(cancel_event)]

    return asyncio.run(scenario())


def test_breadth_first_enumeration_with_extension_filter(helper_config, tree: Path) -> None:
    source = DocumentSourceFilesystem(helper_config, supported_extensions=["txt", "md"])
    docs = collect(source)
    assert [doc.path for doc in docs] == ["a.txt", "sub/b.md", "sub/deeper/c.txt"]
    assert docs[0].document_reference == "fs:a.txt"
    assert docs[0].content == b"alpha"
    assert docs[1].doc_type == "md"


def test_depth_bound_limits_traversal(helper_config, tree: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SOURCE_FILESYSTEM_MAX_DEPTH", "1")
    source = DocumentSourceFilesystem(helper_config, supported_extensions=["txt", "md"])
    assert [doc.path for doc in collect(source)] == ["a.txt", "sub/b.md"]


def test_include_extensions_setting_overrides_registry(helper_config, tree: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SOURCE_FILESYSTEM_INCLUDE_EXTENSIONS", "[md]")
    source = DocumentSourceFilesystem(helper_config, supported_extensions=["txt", "md"])
    assert [doc.path for doc in collect(source)] == ["sub/b.md"]


def test_enumeration_is_restartable(helper_config, tree: Path) -> None:
    source = DocumentSourceFilesystem(helper_config, supported_extensions=["txt", "md"])
    assert [d.path for d in collect(source)] == [d.path for d in collect(source)]


def test_cancel_stops_enumeration(helper_config, tree: Path) -> None:
    source = DocumentSourceFilesystem(helper_config, supported_extensions=["txt", "md"])
    event = asyncio.Event()
    event.set()
    assert collect(source, event) == []


def test_missing_root_is_a_configuration_error(helper_config, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SOURCE_FILESYSTEM_ROOT", str(tmp_path / "nope"))
    with pytest.raises(ConfigurationError):
        DocumentSourceFilesystem(helper_config)


def test_manager_builds_configured_sources(helper_config, tree: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("SOURCE_ENGINES", "[filesystem]")
    sources = DocumentSourceManager(helper_config, supported_extensions=["txt"]).get_sources()
    assert [s.get_reference() for s in sources] == ["fs"]
    assert [d.path for d in collect(sources[0])] == ["a.txt", "sub/deeper/c.txt"]


def test_unreadable_file_is_yielded_with_read_error(helper_config, tree: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    original = Path.read_bytes

    def read_bytes(self: Path) -> bytes:
        if self.name == "b.md":
            raise PermissionError("permission denied")
        return original(self)

    monkeypatch.setattr(Path, "read_bytes", read_bytes)
    source = DocumentSourceFilesystem(helper_config, supported_extensions=["txt", "md"])
    docs = {doc.path: doc for doc in collect(source)}

    assert list(docs) == ["a.txt", "sub/b.md", "sub/deeper/c.txt"]
    assert docs["sub/b.md"].content == b""
    assert "permission denied" in docs["sub/b.md"].read_error
    assert docs["a.txt"].read_error is None


def test_unreadable_directory_fails_enumeration_after_yielding_the_rest(
    helper_config, tree: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    original = DocumentSourceFilesystem._list_directory

    def list_directory(directory: Path):
        if directory.name == "sub":
            raise PermissionError("permission denied")
        return original(directory)

    monkeypatch.setattr(DocumentSourceFilesystem, "_list_directory", staticmethod(list_directory))
    source = DocumentSourceFilesystem(helper_config, supported_extensions=["txt", "md"])
    yielded: list[str] = []

    async def scenario() -> None:
        async for doc in source.iter_documents():
            yielded.append(doc.path)

    with pytest.raises(IncompleteEnumerationError, match="sub"):
        asyncio.run(scenario())
    assert yielded == ["a.txt"]
