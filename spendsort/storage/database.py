from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from spendsort.config import get_settings

DATABASE_URL = get_settings().database_url

Base = declarative_base()


def make_engine(url: str, echo: bool = False) -> Engine:
    """Create an engine, with the connection arguments SQLite needs for threaded use."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        # In-memory databases live and die with their single connection
        if ":memory:" in url or url in ("sqlite://", "sqlite+pysqlite://"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=echo, **kwargs)
    return create_engine(url, echo=echo, pool_pre_ping=True)


def make_session_factory(url: str | None = None, engine: Engine | None = None) -> sessionmaker:
    engine = engine or make_engine(url or DATABASE_URL)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create any missing tables."""
    # Register the mapped tables on Base.metadata
    from spendsort.storage import schema  # noqa: F401
    Base.metadata.create_all(bind=engine)


engine = make_engine(DATABASE_URL)
SessionLocal = make_session_factory(engine=engine)


def get_db():
    """Yield a session and close it afterwards"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
