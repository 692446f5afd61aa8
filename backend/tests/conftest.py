"""
Shared fixtures.

- relational engine: a throwaway SQLite file per test
- document engine: one mongomock client per test, handed to every
  DocumentConnection the factory opens, so contexts share its data
"""

from datetime import date

import mongomock
import pytest

from paperhub.config import LoggingConfig, MigrationConfig, MongoConfig, PostgresConfig, Settings
from paperhub.database.factory import RepositoryFactory


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        database_type="relational",
        postgres=PostgresConfig(url=f"sqlite:///{tmp_path / 'paperhub.db'}"),
        mongodb=MongoConfig(uri="mongodb://localhost:27017", database="paperhub_test"),
        migration=MigrationConfig(batch_size=2, max_records=100, record_timeout_seconds=5.0),
        logging=LoggingConfig(level="DEBUG", file=None),
    )


@pytest.fixture
def mongo_client():
    return mongomock.MongoClient()


@pytest.fixture
def factory(settings, mongo_client):
    factory = RepositoryFactory(settings, mongo_client_factory=lambda *args, **kwargs: mongo_client)
    yield factory
    factory.cleanup()


@pytest.fixture(params=["relational", "document"])
def engine(request) -> str:
    return request.param


@pytest.fixture
def context(factory, engine):
    with factory.open_context(engine) as ctx:
        yield ctx


@pytest.fixture
def papers(context):
    return context.papers


@pytest.fixture
def notes(context):
    return context.notes


@pytest.fixture
def new_paper():
    """Build a PaperCreate payload; keyword arguments override the defaults."""

    def build(**overrides) -> dict:
        data = {
            "title": "Attention Is All You Need",
            "abstract": "The dominant sequence transduction models are based on recurrent networks.",
            "keywords": ["transformers", "attention"],
            "publication_date": date(2017, 6, 12),
            "journal": "Advances in Neural Information Processing Systems",
            "authors": [{"name": "Ashish Vaswani", "email": "avaswani@example.org"}],
        }
        data.update(overrides)
        return data

    return build


@pytest.fixture
def new_annotation():
    def build(**overrides) -> dict:
        data = {
            "type": "highlight",
            "page_number": 3,
            "position": {"x": 10.0, "y": 20.0, "width": 100.0, "height": 12.0},
            "content": "key sentence",
            "color": "#ffff00",
        }
        data.update(overrides)
        return data

    return build
