"""Local file tree document source.

Walks the configured root breadth first up to SOURCE_FILESYSTEM_MAX_DEPTH
directory levels. Directory listings and file reads run in a worker thread.
"""

import asyncio
from collections import deque
import os
from pathlib import Path
from typing import AsyncIterator

from shared.exceptions import ConfigurationError, IncompleteEnumerationError
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.ingestion import DocumentInfo
from shared.sources.DocumentSourceInterface import DocumentSourceInterface


class DocumentSourceFilesystem(DocumentSourceInterface):
    def __init__(self, helper_config: HelperConfig, supported_extensions: list[str] | None = None):
        super().__init__(helper_config=helper_config, supported_extensions=supported_extensions)
        root = self.get_config_val("ROOT", default=None, val_type="string")
        self._root = Path(root).expanduser().resolve()
        if not self._root.is_dir():
            raise ConfigurationError(f"SOURCE_FILESYSTEM_ROOT '{root}' is not a directory.")
        self._max_depth = int(self.get_config_val("MAX_DEPTH", default=10, val_type="number"))
        self._description = self.get_config_val("DESCRIPTION", default="File System", val_type="string")
        self._reference = self.get_config_val("REFERENCE", default=f"FileSystem:{self._root.as_posix()}", val_type="string")

        include = self.get_config_val("INCLUDE_EXTENSIONS", default=[], val_type="list")
        extensions = include or self._supported_extensions or []
        self._extensions = {ext.lower().lstrip(".") for ext in extensions}

    ##########################################
    ################ GETTER ##################
    ##########################################

    def _get_engine_name(self) -> str:
        return "Filesystem"

    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="ROOT", val_type="string", default=None),
            EnvConfig(env_key="MAX_DEPTH", val_type="number", default=10),
            EnvConfig(env_key="DESCRIPTION", val_type="string", default="File System"),
        ]

    def get_reference(self) -> str:
        return self._reference

    def get_description(self) -> str:
        return self._description

    ##########################################
    ############# ENUMERATION ################
    ##########################################

    async def iter_documents(self, cancel_event: asyncio.Event | None = None) -> AsyncIterator[DocumentInfo]:
        """Yield every included file below the root.

        A file that cannot be read is still yielded, with read_error set, so it
        is not mistaken for a deleted document.

        Raises:
            IncompleteEnumerationError: After all readable entries were yielded,
                if at least one directory could not be listed.
        """
        skipped_dirs: list[str] = []
        pending: deque[tuple[Path, int]] = deque([(self._root, 0)])
        while pending:
            directory, depth = pending.popleft()
            try:
                entries = await asyncio.to_thread(self._list_directory, directory)
            except OSError as e:
                self.logging.warning("Skipping unreadable directory '%s': %s", directory, e)
                skipped_dirs.append(directory.as_posix())
                continue

            for entry in entries:
                if cancel_event is not None and cancel_event.is_set():
                    self.logging.info("Enumeration of '%s' cancelled.", self._reference)
                    return
                if entry.is_dir(follow_symlinks=False):
                    if depth < self._max_depth:
                        pending.append((Path(entry.path), depth + 1))
                    continue
                if not entry.is_file(follow_symlinks=False) or not self._is_included(entry.name):
                    continue

                path = Path(entry.path)
                content = b""
                read_error = None
                try:
                    content = await asyncio.to_thread(path.read_bytes)
                except OSError as e:
                    self.logging.warning("Cannot read file '%s': %s", path, e)
                    read_error = str(e)

                yield DocumentInfo(
                    source_reference=self._reference,
                    content=content,
                    read_error=read_error,
                    doc_type=path.suffix.lstrip(".").lower(),
                    path=path.relative_to(self._root).as_posix(),
                    description=self._description,
                )

        if skipped_dirs:
            raise IncompleteEnumerationError(
                f"Unreadable directories in '{self._reference}' skipped: {', '.join(skipped_dirs)}"
            )

    ##########################################
    ############### HELPERS ##################
    ##########################################

    def _is_included(self, file_name: str) -> bool:
        if not self._extensions:
            return True
        _, _, extension = file_name.rpartition(".")
        return "." in file_name and extension.lower() in self._extensions

    @staticmethod
    def _list_directory(directory: Path) -> list[os.DirEntry]:
        with os.scandir(directory) as it:
            # sorted for a reproducible enumeration order
            return sorted(it, key=lambda entry: entry.name)
