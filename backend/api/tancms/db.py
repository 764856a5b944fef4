from __future__ import annotations

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine

from tancms.config import get_settings, require_database_url


def _enable_sqlite_foreign_keys(dbapi_conn, _record) -> None:
    # SQLite ignores ON DELETE CASCADE unless this is set per connection.
    cur = dbapi_conn.cursor()
    cur.execute("PRAGMA foreign_keys=ON")
    cur.close()


def create_db_engine(db_url: str, **kwargs) -> Engine:
    """
    Build the persistence handle. Callers own its lifecycle:
    open it at process start, pass it to the stores, dispose() at shutdown.
    """
    engine = create_engine(db_url, pool_pre_ping=True, future=True, **kwargs)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


def engine_from_env() -> Engine:
    return create_db_engine(require_database_url(get_settings()))


def db_ping(engine: Engine) -> None:
    with engine.connect() as conn:
        conn.execute(text("SELECT 1")).scalar_one()
