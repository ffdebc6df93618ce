"""Buckets, catalog objects and their revisions.

Every public operation opens its own session. Writes to an object run while
holding that object's lock for the whole transaction, so revision ids and
commit times are allocated by one writer at a time per object.
"""
import logging
from contextlib import contextmanager
from typing import Callable, Iterable, Iterator

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload, sessionmaker

from . import archive
from .exceptions import BucketAlreadyExists, BucketNotFound, CatalogObjectNotFound, DuplicateCommitRace
from .extraction import MetadataEntry, extract_metadata
from .locks import ObjectLocks
from .models import Bucket, CatalogObject, CatalogObjectRevision
from .revisions import RevisionManager
from .schemas import BucketOut, MetadataEntryOut, RawPayload, RevisionOut

logger = logging.getLogger(__name__)


def _revision_out(revision: CatalogObjectRevision) -> RevisionOut:
    catalog_object = revision.catalog_object
    return RevisionOut(
        bucket_id=catalog_object.bucket_id,
        name=catalog_object.name,
        kind=catalog_object.kind,
        content_type=revision.content_type,
        project_name=revision.project_name,
        revision_id=revision.revision_id,
        commit_time=revision.commit_time,
        commit_message=revision.commit_message,
        object_key_values=[MetadataEntryOut.model_validate(kv) for kv in revision.key_values],
    )


def _kind_matches(kind: str, wanted: str) -> bool:
    kind, wanted = kind.lower(), wanted.lower().rstrip("/")
    return kind == wanted or kind.startswith(wanted + "/")


class CatalogObjectStore:
    def __init__(
        self,
        session_factory: sessionmaker,
        revisions: RevisionManager | None = None,
        locks: ObjectLocks | None = None,
        extractor: Callable[[str, bytes], tuple[MetadataEntry, ...]] = extract_metadata,
    ):
        self._session_factory = session_factory
        self._revisions = revisions or RevisionManager()
        self._locks = locks or ObjectLocks()
        self._extract = extractor

    @contextmanager
    def _session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
        finally:
            session.close()

    @contextmanager
    def _transaction(self, session: Session, bucket_id: int) -> Iterator[None]:
        try:
            yield
            session.commit()
        except IntegrityError as exc:
            session.rollback()
            if session.get(Bucket, bucket_id) is None:
                # bucket deleted while we were writing into it
                raise BucketNotFound(bucket_id) from exc
            logger.critical("Uniqueness violated while committing to bucket %s: %s", bucket_id, exc.orig)
            raise DuplicateCommitRace(f"Concurrent commit conflict in bucket {bucket_id}") from exc
        except Exception:
            session.rollback()
            raise

    # --- Buckets ---

    def create_bucket(self, name: str, owner: str) -> BucketOut:
        with self._session() as session:
            bucket = Bucket(name=name, owner=owner)
            session.add(bucket)
            try:
                session.commit()
            except IntegrityError:
                session.rollback()
                raise BucketAlreadyExists(name)
            logger.info("Created bucket %s (id=%s, owner=%s)", name, bucket.id, owner)
            return BucketOut.model_validate(bucket)

    def get_bucket(self, bucket_id: int) -> BucketOut:
        with self._session() as session:
            return BucketOut.model_validate(self._require_bucket(session, bucket_id))

    def list_buckets(self) -> list[BucketOut]:
        with self._session() as session:
            buckets = session.scalars(select(Bucket).order_by(Bucket.id)).all()
            return [BucketOut.model_validate(b) for b in buckets]

    def delete_bucket(self, bucket_id: int) -> None:
        with self._session() as session:
            bucket = self._require_bucket(session, bucket_id)
            session.delete(bucket)
            session.commit()
            logger.info("Deleted bucket %s with all its objects", bucket_id)

    # --- Catalog objects ---

    def create_or_commit(
        self,
        bucket_id: int,
        name: str,
        kind: str,
        content_type: str,
        commit_message: str,
        payload: bytes,
    ) -> RevisionOut:
        with self._locks.hold((bucket_id, name)), self._session() as session:
            self._require_bucket(session, bucket_id)
            with self._transaction(session, bucket_id):
                revision = self._commit(session, bucket_id, name, kind, content_type, commit_message, payload)
            return _revision_out(revision)

    def commit_revision(self, bucket_id: int, name: str, commit_message: str, payload: bytes) -> RevisionOut:
        """Append a revision to an object that must already exist."""
        with self._locks.hold((bucket_id, name)), self._session() as session:
            catalog_object = self._require_object(session, bucket_id, name)
            with self._transaction(session, bucket_id):
                revision = self._commit(
                    session,
                    bucket_id,
                    name,
                    catalog_object.kind,
                    catalog_object.content_type,
                    commit_message,
                    payload,
                )
            return _revision_out(revision)

    def get_latest(self, bucket_id: int, name: str) -> RevisionOut:
        with self._session() as session:
            catalog_object = self._require_object(session, bucket_id, name)
            return _revision_out(self._revisions.latest(catalog_object))

    def get_revision(self, bucket_id: int, name: str, revision_id: int) -> RevisionOut:
        with self._session() as session:
            catalog_object = self._require_object(session, bucket_id, name)
            return _revision_out(self._revisions.by_id(catalog_object, revision_id))

    def list_revisions(self, bucket_id: int, name: str) -> list[RevisionOut]:
        with self._session() as session:
            catalog_object = self._require_object(session, bucket_id, name)
            return [_revision_out(r) for r in self._revisions.history(catalog_object)]

    def get_raw_payload(self, bucket_id: int, name: str, revision_id: int | None = None) -> RawPayload:
        with self._session() as session:
            catalog_object = self._require_object(session, bucket_id, name, with_payload=True)
            if revision_id is None:
                revision = self._revisions.latest(catalog_object)
            else:
                revision = self._revisions.by_id(catalog_object, revision_id)
            return RawPayload(revision.raw_object, revision.content_type)

    def list_objects(self, bucket_id: int, kind: str | None = None) -> list[RevisionOut]:
        """Latest revision of every object in the bucket, by name."""
        with self._session() as session:
            self._require_bucket(session, bucket_id)
            objects = session.scalars(
                self._objects_query()
                .where(CatalogObject.bucket_id == bucket_id)
                .order_by(CatalogObject.name)
            ).unique().all()
            objects = [o for o in objects if o.revisions]
            if kind:
                objects = [o for o in objects if _kind_matches(o.kind, kind)]
            return [_revision_out(self._revisions.latest(o)) for o in objects]

    def delete(self, bucket_id: int, name: str) -> None:
        with self._locks.hold((bucket_id, name)), self._session() as session:
            catalog_object = self._require_object(session, bucket_id, name)
            count = len(catalog_object.revisions)
            session.delete(catalog_object)
            session.commit()
            logger.info("Deleted object %s from bucket %s (%d revisions)", name, bucket_id, count)

    # --- Bulk ---

    def export_archive(self, bucket_id: int, names: Iterable[str] | None = None) -> bytes | None:
        """Zip the latest payload of the named objects, or of the whole bucket.

        Returns None when there is nothing to export.
        """
        with self._session() as session:
            self._require_bucket(session, bucket_id)
            if names is None:
                objects = session.scalars(
                    self._objects_query(with_payload=True)
                    .where(CatalogObject.bucket_id == bucket_id)
                    .order_by(CatalogObject.name)
                ).unique().all()
                objects = [o for o in objects if o.revisions]
            else:
                objects = [self._require_object(session, bucket_id, name, with_payload=True) for name in names]

            entries = [(o.name, self._revisions.latest(o).raw_object) for o in objects]

        content = archive.pack(entries)
        logger.info("Exported %d objects from bucket %s", len(entries), bucket_id)
        return content

    def import_archive(
        self,
        bucket_id: int,
        archive_bytes: bytes,
        kind: str,
        content_type: str,
        commit_message: str,
    ) -> list[RevisionOut]:
        """Commit every archive entry under its entry name, all or nothing."""
        entries = archive.unpack_entries(archive_bytes)
        keys = [(bucket_id, entry.name) for entry in entries]

        with self._locks.hold(*keys), self._session() as session:
            self._require_bucket(session, bucket_id)
            with self._transaction(session, bucket_id):
                revisions = [
                    self._commit(session, bucket_id, entry.name, kind, content_type, commit_message, entry.content)
                    for entry in entries
                ]
            logger.info("Imported %d entries into bucket %s", len(revisions), bucket_id)
            return [_revision_out(r) for r in revisions]

    # --- Internals ---

    @staticmethod
    def _objects_query(with_payload: bool = False):
        # one statement, so an object is never read apart from its revisions and metadata
        options = [joinedload(CatalogObject.revisions).joinedload(CatalogObjectRevision.key_values)]
        if with_payload:
            options.append(joinedload(CatalogObject.revisions).undefer(CatalogObjectRevision.raw_object))
        return select(CatalogObject).options(*options)

    def _require_bucket(self, session: Session, bucket_id: int) -> Bucket:
        bucket = session.get(Bucket, bucket_id)
        if bucket is None:
            raise BucketNotFound(bucket_id)
        return bucket

    def _find_object(
        self, session: Session, bucket_id: int, name: str, with_payload: bool = False
    ) -> CatalogObject | None:
        return session.scalars(
            self._objects_query(with_payload).where(CatalogObject.bucket_id == bucket_id, CatalogObject.name == name)
        ).unique().one_or_none()

    def _require_object(
        self, session: Session, bucket_id: int, name: str, with_payload: bool = False
    ) -> CatalogObject:
        catalog_object = self._find_object(session, bucket_id, name, with_payload)
        # an object caught mid-delete has no revisions left; treat it as gone
        if catalog_object is None or not catalog_object.revisions:
            raise CatalogObjectNotFound(bucket_id, name)
        return catalog_object

    def _commit(
        self,
        session: Session,
        bucket_id: int,
        name: str,
        kind: str,
        content_type: str,
        commit_message: str,
        payload: bytes,
    ) -> CatalogObjectRevision:
        catalog_object = self._find_object(session, bucket_id, name)
        if catalog_object is None:
            catalog_object = CatalogObject(bucket_id=bucket_id, name=name, kind=kind, content_type=content_type)

        # metadata first: a malformed payload must not leave a half-created object behind
        metadata = self._extract(catalog_object.kind, payload)
        revision = self._revisions.append_revision(
            session,
            catalog_object,
            commit_message,
            payload,
            catalog_object.content_type,
            metadata,
        )
        logger.info(
            "Committed revision %d of %s in bucket %s (%d metadata entries)",
            revision.revision_id,
            name,
            bucket_id,
            len(revision.key_values),
        )
        return revision
