"""
SQLAlchemy ORM database configuration for verified lead storage.
The engine is created on first use so the gateway starts without a database
when lead persistence is disabled.
"""

from contextlib import contextmanager
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

# Logger
from app.logging.utils import get_app_logger
logger = get_app_logger("database")

# Settings
from app.config.settings import GatewayConfigs
configs = GatewayConfigs()

# Base class for ORM models
Base = declarative_base()

# Bound lazily by init_engine()
SessionLocal = sessionmaker(autoflush=False)

_engine: Optional[Engine] = None


def _driver_url(url: str) -> str:
    """Convert postgresql:// to postgresql+psycopg:// for the psycopg3 driver"""
    if url and url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def init_engine(url: Optional[str] = None, **engine_kwargs) -> Engine:
    global _engine
    database_url = _driver_url(url or configs.DATABASE_URL)
    if database_url.startswith("postgresql"):
        options = dict(
            pool_size=10,           # connections kept in the pool
            max_overflow=20,        # extra connections beyond pool_size
            pool_pre_ping=True,     # validate connections before use
            pool_recycle=3600,
            connect_args={
                "connect_timeout": 5,
                "keepalives_idle": 600,
                "keepalives_interval": 30,
                "keepalives_count": 3
            },
        )
    else:
        options = {}
    options.update(engine_kwargs)
    _engine = create_engine(database_url, echo=False, **options)
    SessionLocal.configure(bind=_engine)
    logger.info(f"SQLAlchemy engine initialized | dialect={_engine.dialect.name}")
    return _engine


def get_engine() -> Engine:
    return _engine if _engine is not None else init_engine()


def create_tables():
    # imported for its side effect of registering the model on Base
    from app.models import leads  # noqa: F401
    Base.metadata.create_all(bind=get_engine())


@contextmanager
def get_db_session(session_factory=None):
    """
    Session with commit on success and rollback on error.

    Yields:
        SQLAlchemy session object
    """
    if session_factory is None:
        get_engine()
        session_factory = SessionLocal
    db = session_factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def close_db_pool():
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None
