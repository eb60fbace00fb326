from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from storygate.core.config import settings
from storygate.db.base import Base


def build_engine(database_url: str) -> Engine:
    """SQLite gets a thread-shareable connection; server databases get a pool."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_recycle=1800,  # recycle connections every 30 min (avoid stale)
        connect_args={"connect_timeout": 5},
    )


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


def init_db(bind: Engine | None = None) -> None:
    """Create tables for all registered models."""
    import storygate.models  # noqa: F401  registers mappers

    target = bind or engine
    if target.url.get_backend_name() == "sqlite" and target.url.database:
        from pathlib import Path

        Path(target.url.database).parent.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(bind=target)


def get_db():
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
