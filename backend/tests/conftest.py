import os

# Keep the module-level engine off Postgres and away from real provider keys
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["AIML_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.models  # noqa: F401  registers tables
from app.config import Settings
from app.models.base import Base
from app.services.embeddings import Embedding
from app.services.event_store import EventStore


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        database_url="sqlite://",
        aiml_api_key="test-aiml-key",
        openai_api_key="",
        stage_retry_backoff_seconds=0,
        crawl_fallback_enabled=False,
    )


@pytest.fixture
def db_session():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, expire_on_commit=False)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def store(db_session):
    return EventStore(db_session)


class FakeEmbedder:
    """Bag-of-keywords vectors, so related texts land close together."""

    VOCABULARY = ("prize", "judge", "register", "team", "deadline", "venue")

    def __init__(self, fail_when=None, model="fake-embed"):
        self.fail_when = fail_when
        self.model = model
        self.calls = []

    def embed(self, text):
        self.calls.append(text)
        if self.fail_when and self.fail_when in text:
            return None
        lowered = text.lower()
        vector = [float(lowered.count(word)) for word in self.VOCABULARY]
        return Embedding(vector=vector, model=self.model, provider="fake")


@pytest.fixture
def make_embedder():
    return FakeEmbedder


@pytest.fixture
def fake_embedder():
    return FakeEmbedder()
