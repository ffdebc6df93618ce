"""Tests for the revision manager."""

from datetime import datetime, timedelta

import pytest

from catalog_service.exceptions import RevisionNotFound
from catalog_service.extraction import MetadataEntry
from catalog_service.models import Bucket, CatalogObject
from catalog_service.revisions import RevisionManager

T0 = datetime(2024, 5, 1, 12, 0, 0)


class FakeClock:
    def __init__(self, *times):
        self.times = list(times)

    def __call__(self):
        return self.times.pop(0)


@pytest.fixture
def session(session_factory):
    session = session_factory()
    bucket = Bucket(name="b", owner="o")
    session.add(bucket)
    session.commit()
    yield session
    session.close()


@pytest.fixture
def catalog_object(session):
    bucket = session.query(Bucket).one()
    return CatalogObject(bucket_id=bucket.id, name="wf", kind="workflow", content_type="application/xml")


def test_first_revision_is_created_with_object(session, catalog_object):
    manager = RevisionManager(clock=FakeClock(T0))
    metadata = [MetadataEntry("variable", "a", "1"), MetadataEntry("variable", "b", "2")]

    revision = manager.append_revision(session, catalog_object, "first", b"\x00payload", "application/xml", metadata)
    session.commit()

    assert catalog_object.id is not None
    assert revision.revision_id == 1
    assert revision.commit_time == T0
    assert revision.raw_object == b"\x00payload"
    assert [(kv.position, kv.key) for kv in revision.key_values] == [(0, "a"), (1, "b")]


def test_revision_ids_increase(session, catalog_object):
    manager = RevisionManager(clock=FakeClock(T0, T0 + timedelta(seconds=1), T0 + timedelta(seconds=2)))

    ids = [
        manager.append_revision(session, catalog_object, f"c{i}", b"x", "text/plain", []).revision_id
        for i in range(3)
    ]

    assert ids == [1, 2, 3]
    assert manager.latest(catalog_object).commit_message == "c2"


def test_commit_time_never_goes_backwards(session, catalog_object):
    manager = RevisionManager(clock=FakeClock(T0, T0 - timedelta(hours=1)))

    first = manager.append_revision(session, catalog_object, "first", b"1", "text/plain", [])
    second = manager.append_revision(session, catalog_object, "second", b"2", "text/plain", [])

    assert second.commit_time == first.commit_time
    assert manager.latest(catalog_object) is second


def test_latest_breaks_timestamp_ties_by_revision_id(session, catalog_object):
    manager = RevisionManager(clock=FakeClock(T0, T0, T0))

    for message in ("a", "b", "c"):
        manager.append_revision(session, catalog_object, message, b"x", "text/plain", [])

    assert manager.latest(catalog_object).revision_id == 3
    assert [r.revision_id for r in manager.history(catalog_object)] == [3, 2, 1]


def test_by_id(session, catalog_object):
    manager = RevisionManager(clock=FakeClock(T0, T0 + timedelta(seconds=1)))
    manager.append_revision(session, catalog_object, "a", b"first", "text/plain", [])
    manager.append_revision(session, catalog_object, "b", b"second", "text/plain", [])

    assert manager.by_id(catalog_object, 1).raw_object == b"first"
    with pytest.raises(RevisionNotFound):
        manager.by_id(catalog_object, 3)


def test_latest_without_revisions(catalog_object):
    with pytest.raises(RevisionNotFound):
        RevisionManager().latest(catalog_object)
