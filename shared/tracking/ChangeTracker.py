"""Change tracker.

Persists the last-seen content hash of every ingested document so that
unchanged documents can skip extraction, chunking, embedding and upload.
Backed by SQLAlchemy; blocking database work runs in a worker thread so the
async ingestion loop is never stalled.
"""

import asyncio
import copy
import hashlib
import threading
from contextlib import nullcontext
from typing import Iterable

from sqlalchemy import create_engine, delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from shared.exceptions import ConfigurationError, ConflictError
from shared.helper.HelperConfig import HelperConfig
from shared.models.ingestion import ChangeKind, HashRecord
from shared.tracking.models import Base, HashRecordRow

DELETE_BATCH_SIZE = 500


def compute_content_hash(content: bytes) -> str:
    """SHA-256 hex digest of a document's raw bytes."""
    return hashlib.sha256(content).hexdigest()


class ChangeTracker:
    """Persistent mapping from document reference to last-seen content hash.

    Every record belongs to one tenant and group. An instance reads and writes
    only its own scope (TENANT_ID/GROUP_ID unless given); scoped() returns a
    view on the same database for another scope.
    """

    def __init__(
        self,
        helper_config: HelperConfig,
        db_url: str | None = None,
        tenant_id: str | None = None,
        group_id: str | None = None,
    ) -> None:
        self.logging = helper_config.get_logger()
        self.tenant_id = tenant_id or helper_config.get_string_val("TENANT_ID", default="0")
        self.group_id = group_id or helper_config.get_string_val("GROUP_ID", default="0")
        self._db_url = db_url or helper_config.get_string_val("TRACKER_DB_URL", default="sqlite:///hash_records.db")

        engine_kwargs: dict = {}
        shared_connection = False
        if self._db_url.startswith("sqlite"):
            # sessions are used from worker threads
            engine_kwargs["connect_args"] = {"check_same_thread": False}
            if self._db_url in ("sqlite://", "sqlite:///:memory:"):
                engine_kwargs["poolclass"] = StaticPool
                shared_connection = True

        try:
            self._engine = create_engine(self._db_url, **engine_kwargs)
        except (SQLAlchemyError, ValueError) as e:
            raise ConfigurationError(f"Invalid TRACKER_DB_URL '{self._db_url}': {e}") from e

        if self._engine.dialect.name not in ("sqlite", "postgresql"):
            raise ConfigurationError(
                f"Unsupported change tracker database '{self._engine.dialect.name}'. Use sqlite or postgresql."
            )

        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(self._engine, expire_on_commit=False)
        # an in-memory database is a single connection shared by all threads
        self._lock = threading.Lock() if shared_connection else nullcontext()
        self.logging.debug("Change tracker ready on %s", self._engine.url.render_as_string(hide_password=True))

    def scoped(self, tenant_id: str, group_id: str) -> "ChangeTracker":
        """Return a tracker for another tenant and group sharing this database."""
        if (tenant_id, group_id) == (self.tenant_id, self.group_id):
            return self
        view = copy.copy(self)
        view.tenant_id = tenant_id
        view.group_id = group_id
        return view

    ##########################################
    ############### CLASSIFY #################
    ##########################################

    async def classify(self, file_ref: str, content_hash: str) -> ChangeKind:
        """Classify a scanned document against its last-seen hash.

        Args:
            file_ref (str): The document reference.
            content_hash (str): Hash of the document's current content.

        Returns:
            ChangeKind: NEW if never seen, MODIFIED if the hash differs, UNCHANGED otherwise.
        """
        previous = await self.lookup(file_ref)
        if previous is None:
            return ChangeKind.NEW
        if previous != content_hash:
            return ChangeKind.MODIFIED
        return ChangeKind.UNCHANGED

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def lookup(self, file_ref: str) -> str | None:
        """Return the last committed hash for a document, or None."""
        return await self._run(self._lookup, file_ref)

    async def get_record(self, file_ref: str) -> HashRecord | None:
        """Return the full record for a document, or None."""
        return await self._run(self._get_record, file_ref)

    async def commit(self, file_ref: str, content_hash: str) -> None:
        """Insert or update the hash of a document. Last writer wins.

        Raises:
            ConflictError: If the backing store rejects the write.
        """
        await self._run(self._commit, file_ref, content_hash)

    async def list_references(self, source_prefix: str) -> set[str]:
        """Return every tracked reference starting with source_prefix."""
        return await self._run(self._list_references, source_prefix)

    async def prune(self, source_prefix: str, keep: Iterable[str]) -> set[str]:
        """Remove every record under source_prefix that is not in keep.

        Returns:
            set[str]: The references that were removed.
        """
        return await self._run(self._prune, source_prefix, set(keep))

    async def remove(self, file_refs: Iterable[str]) -> int:
        """Remove the given references. Absent references are ignored.

        Returns:
            int: Number of rows deleted.
        """
        return await self._run(self._remove, list(file_refs))

    async def remove_tenant(self) -> int:
        """Remove every record of this tracker's tenant, across all groups.

        Returns:
            int: Number of rows deleted.
        """
        return await self._run(self._remove_tenant)

    def close(self) -> None:
        # views from scoped() share the engine
        self._engine.dispose()

    ##########################################
    ################ WORKERS #################
    ##########################################

    async def _run(self, func, *args):
        try:
            return await asyncio.to_thread(self._locked, func, *args)
        except SQLAlchemyError as e:
            self.logging.error("Change tracker storage error in %s: %s", func.__name__, e)
            raise ConflictError(f"Change tracker storage error: {e}") from e

    def _locked(self, func, *args):
        with self._lock:
            return func(*args)

    def _in_scope(self):
        return (HashRecordRow.tenant_id == self.tenant_id) & (HashRecordRow.group_id == self.group_id)

    def _lookup(self, file_ref: str) -> str | None:
        with self._session_factory() as session:
            return session.scalar(
                select(HashRecordRow.hash).where(self._in_scope(), HashRecordRow.file_ref == file_ref)
            )

    def _get_record(self, file_ref: str) -> HashRecord | None:
        with self._session_factory() as session:
            row = session.scalar(select(HashRecordRow).where(self._in_scope(), HashRecordRow.file_ref == file_ref))
            if row is None:
                return None
            return HashRecord(id=row.id, file_ref=row.file_ref, hash=row.hash)

    def _commit(self, file_ref: str, content_hash: str) -> None:
        insert = postgresql.insert if self._engine.dialect.name == "postgresql" else sqlite.insert
        # excluded is keyed by database column name, not by attribute name
        table = HashRecordRow.__table__
        stmt = insert(table).values({
            table.c.TenantID: self.tenant_id,
            table.c.GroupID: self.group_id,
            table.c.FileRef: file_ref,
            table.c.Hash: content_hash,
        })
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.TenantID, table.c.GroupID, table.c.FileRef],
            set_={table.c.Hash: stmt.excluded.Hash},
        )
        with self._session_factory.begin() as session:
            session.execute(stmt)

    def _list_references(self, source_prefix: str) -> set[str]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(HashRecordRow.file_ref).where(
                    self._in_scope(),
                    HashRecordRow.file_ref.startswith(source_prefix, autoescape=True),
                )
            )
            return set(rows)

    def _prune(self, source_prefix: str, keep: set[str]) -> set[str]:
        stale = self._list_references(source_prefix) - keep
        if stale:
            self._remove(sorted(stale))
        return stale

    def _remove(self, file_refs: list[str]) -> int:
        removed = 0
        with self._session_factory.begin() as session:
            for start in range(0, len(file_refs), DELETE_BATCH_SIZE):
                batch = file_refs[start: start + DELETE_BATCH_SIZE]
                removed += self._delete_batch(session, batch)
        return removed

    def _remove_tenant(self) -> int:
        with self._session_factory.begin() as session:
            result = session.execute(delete(HashRecordRow).where(HashRecordRow.tenant_id == self.tenant_id))
            return result.rowcount or 0

    def _delete_batch(self, session: Session, batch: list[str]) -> int:
        result = session.execute(delete(HashRecordRow).where(self._in_scope(), HashRecordRow.file_ref.in_(batch)))
        return result.rowcount or 0
