from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, LargeBinary, String, Text, UniqueConstraint, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from .extraction import project_name


class Base(DeclarativeBase):
    pass


class Bucket(Base):
    __tablename__ = "buckets"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    owner: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    objects: Mapped[list["CatalogObject"]] = relationship(back_populates="bucket", cascade="all, delete-orphan")


class CatalogObject(Base):
    __tablename__ = "catalog_objects"
    __table_args__ = (
        UniqueConstraint("bucket_id", "name", name="uq_bucket_object_name"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    bucket_id: Mapped[int] = mapped_column(ForeignKey("buckets.id", ondelete="CASCADE"), nullable=False)

    name: Mapped[str] = mapped_column(String(1024), nullable=False)
    kind: Mapped[str] = mapped_column(String(255), nullable=False)
    content_type: Mapped[str] = mapped_column(String(255), nullable=False)

    bucket: Mapped[Bucket] = relationship(back_populates="objects")
    revisions: Mapped[list["CatalogObjectRevision"]] = relationship(
        back_populates="catalog_object",
        cascade="all, delete-orphan",
        order_by=lambda: [CatalogObjectRevision.commit_time, CatalogObjectRevision.revision_id],
    )


class CatalogObjectRevision(Base):
    __tablename__ = "catalog_object_revisions"
    __table_args__ = (
        UniqueConstraint("catalog_object_id", "revision_id", name="uq_object_revision_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    catalog_object_id: Mapped[int] = mapped_column(
        ForeignKey("catalog_objects.id", ondelete="CASCADE"), nullable=False, index=True
    )

    revision_id: Mapped[int] = mapped_column(Integer, nullable=False)
    # naive UTC, so ordering survives backends without timezone support
    commit_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    commit_message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    content_type: Mapped[str] = mapped_column(String(255), nullable=False)
    raw_object: Mapped[bytes] = mapped_column(LargeBinary, nullable=False, deferred=True)

    catalog_object: Mapped[CatalogObject] = relationship(back_populates="revisions")
    key_values: Mapped[list["KeyValueMetadata"]] = relationship(
        back_populates="revision",
        cascade="all, delete-orphan",
        order_by="KeyValueMetadata.position",
    )

    @property
    def project_name(self) -> str | None:
        return project_name(self.key_values)


class KeyValueMetadata(Base):
    __tablename__ = "key_value_metadata"
    __table_args__ = (
        UniqueConstraint("revision_pk", "position", name="uq_revision_metadata_position"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    revision_pk: Mapped[int] = mapped_column(
        ForeignKey("catalog_object_revisions.id", ondelete="CASCADE"), nullable=False, index=True
    )

    position: Mapped[int] = mapped_column(Integer, nullable=False)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    key: Mapped[str] = mapped_column(String(255), nullable=False)
    value: Mapped[str] = mapped_column(Text, nullable=False, default="")

    revision: Mapped[CatalogObjectRevision] = relationship(back_populates="key_values")
