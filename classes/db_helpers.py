import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from classes import settings
from classes.entities import Base

logger = logging.getLogger("opsync_agent")


def get_db_url() -> str:
    # !###############################################
    # !   EITHER A DATABASE_URL IN THE .ENV FILE,
    # !   A LOCAL SQLITE FILE, OR DB_* POSTGRES VARS
    # !###############################################
    if settings.DATABASE_URL:
        return settings.DATABASE_URL
    if settings.IS_LOCAL_DB:
        return f"sqlite:///{settings.SQLITE_PATH}"
    return (
        f"postgresql+pg8000://{settings.DB_USER}:{settings.DB_PASSWORD}"
        f"@{settings.DB_HOST}:{settings.DB_PORT}/{settings.DB_NAME}"
    )


def _enable_sqlite_foreign_keys(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _set_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def get_db_engine(url: str | None = None, **kwargs) -> Engine:
    url = url or get_db_url()

    if url.startswith("sqlite"):
        logger.info(f"[DB] Using SQLite URL: {url}")
        engine = create_engine(url, future=True, **kwargs)
        _enable_sqlite_foreign_keys(engine)
        return engine

    logger.info("[DB] Connecting to Postgres at %s:%s/%s", settings.DB_HOST, settings.DB_PORT, settings.DB_NAME)
    # pg8000 supports 'timeout' in seconds
    return create_engine(
        url,
        future=True,
        pool_pre_ping=True,
        connect_args={"timeout": 10},  # fail in 10s instead of hanging forever
        **kwargs,
    )


def create_session_factory(engine: Engine | None = None) -> sessionmaker:
    engine = engine or get_db_engine()
    Base.metadata.create_all(engine)
    return sessionmaker(
        bind=engine,
        autoflush=False,
        autocommit=False,
        expire_on_commit=False,
        future=True,
    )
