"""ORM model of the change-tracking table."""

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class HashRecordRow(Base):
    """Last-seen content hash of one document within one tenant and group.

    (TenantID, GroupID, FileRef) is the natural key. Id is a storage-assigned
    surrogate.
    """

    __tablename__ = "HashRecords"
    __table_args__ = (UniqueConstraint("TenantID", "GroupID", "FileRef", name="uq_hashrecords_scope_ref"),)

    id: Mapped[int] = mapped_column("Id", Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column("TenantID", String, nullable=False)
    group_id: Mapped[str] = mapped_column("GroupID", String, nullable=False)
    file_ref: Mapped[str] = mapped_column("FileRef", String, nullable=False, index=True)
    hash: Mapped[str] = mapped_column("Hash", String(64), nullable=False)
