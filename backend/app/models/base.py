from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from typing import Generator

from app.config import get_settings


class Base(DeclarativeBase):
    pass


settings = get_settings()

# Sync engine shared by the API and the Celery workers
engine = create_engine(
    settings.database_url,
    echo=settings.debug,
    pool_pre_ping=True,
)

SessionLocal = sessionmaker(
    bind=engine,
    expire_on_commit=False,
)


def get_db() -> Generator[Session, None, None]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


def init_db():
    # Import models so their tables are registered on Base.metadata
    import app.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
