"""Shared fixtures: an in-memory SQLite database with the content schema, and an API client bound to it."""

import os

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

os.environ.setdefault("LOG_LEVEL", "WARNING")

from tancms.config import Settings  # noqa: E402
from tancms.db import create_db_engine  # noqa: E402
from tancms.main import create_app  # noqa: E402
from tancms.tables import metadata  # noqa: E402


@pytest.fixture
def engine():
    eng = create_db_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def settings():
    return Settings(
        database_url=None,
        log_level="WARNING",
        log_format="console",
        default_page_size=10,
        max_page_size=50,
        worker_interval_seconds=1,
    )


@pytest.fixture
def client(engine, settings):
    return TestClient(create_app(engine=engine, settings=settings))


@pytest.fixture
def article_type(engine):
    from tancms import repo

    return repo.create_content_type(
        engine,
        name="Article",
        display_name="Article",
        description="Long-form posts",
        fields=[
            {"name": "title", "display_name": "Title", "field_type": "TEXT", "required": True},
            {"name": "body", "display_name": "Body", "field_type": "RICH_TEXT"},
            {"name": "rating", "display_name": "Rating", "field_type": "NUMBER"},
            {"name": "featured", "display_name": "Featured", "field_type": "BOOLEAN"},
        ],
    )


def field_id(content_type, name):
    for f in content_type["fields"]:
        if f["name"] == name:
            return f["id"]
    raise KeyError(name)
