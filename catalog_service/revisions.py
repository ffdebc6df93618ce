"""Append-only revision history of a catalog object."""
import logging
from datetime import datetime, timezone
from typing import Callable, Iterable

from sqlalchemy.orm import Session

from .exceptions import RevisionNotFound
from .extraction import MetadataEntry
from .models import CatalogObject, CatalogObjectRevision, KeyValueMetadata

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class RevisionManager:
    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self._clock = clock

    def append_revision(
        self,
        session: Session,
        catalog_object: CatalogObject,
        commit_message: str,
        payload: bytes,
        content_type: str,
        metadata: Iterable[MetadataEntry],
    ) -> CatalogObjectRevision:
        """Add the next revision to ``catalog_object`` inside the caller's transaction.

        The caller must hold the object's lock and commit the session; a new
        object and its first revision are flushed together.
        """
        previous = self.latest(catalog_object) if catalog_object.revisions else None

        commit_time = self._clock()
        if previous is not None and commit_time < previous.commit_time:
            # clock went backwards; keep history ordered
            commit_time = previous.commit_time

        revision = CatalogObjectRevision(
            revision_id=previous.revision_id + 1 if previous is not None else 1,
            commit_time=commit_time,
            commit_message=commit_message,
            content_type=content_type,
            raw_object=bytes(payload),
            key_values=[
                KeyValueMetadata(position=position, label=entry.label, key=entry.key, value=entry.value)
                for position, entry in enumerate(metadata)
            ],
        )
        catalog_object.revisions.append(revision)
        session.add(catalog_object)
        session.flush()

        logger.debug(
            "Appended revision %d to object %s (bucket %s)",
            revision.revision_id,
            catalog_object.name,
            catalog_object.bucket_id,
        )
        return revision

    def latest(self, catalog_object: CatalogObject) -> CatalogObjectRevision:
        if not catalog_object.revisions:
            raise RevisionNotFound(catalog_object.name)
        return max(catalog_object.revisions, key=lambda r: (r.commit_time, r.revision_id))

    def by_id(self, catalog_object: CatalogObject, revision_id: int) -> CatalogObjectRevision:
        for revision in catalog_object.revisions:
            if revision.revision_id == revision_id:
                return revision
        raise RevisionNotFound(catalog_object.name, revision_id)

    def history(self, catalog_object: CatalogObject) -> list[CatalogObjectRevision]:
        """Newest first."""
        return sorted(catalog_object.revisions, key=lambda r: (r.commit_time, r.revision_id), reverse=True)
