from pathlib import Path

import pytest

from catalog_service.db import make_engine, make_session_factory
from catalog_service.models import Base
from catalog_service.store import CatalogObjectStore

RESOURCES = Path(__file__).parent / "resources"


@pytest.fixture
def workflow_xml():
    """Raw bytes of the sample workflow."""
    return (RESOURCES / "workflow.xml").read_bytes()


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path / 'catalog.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def store(session_factory):
    return CatalogObjectStore(session_factory)


@pytest.fixture
def bucket(store):
    return store.create_bucket("myBucket", "BucketControllerIntegrationTestUser")
