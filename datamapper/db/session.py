import os
import socket
from contextlib import closing

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url

from datamapper.core.config import settings

_engine = None


def _engine_options(database_url: str) -> dict:
    if make_url(database_url).get_backend_name() == "sqlite":
        return {"connect_args": {"check_same_thread": False}}
    return {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}


def _report_connection_failure(exc: Exception) -> None:
    """Print diagnostics when the relational store cannot be reached at startup."""
    print(f"Warning: relational store unreachable: {exc}")
    print("Mapping runs will fail their connectivity check until the database is reachable.")

    try:
        url = make_url(settings.database_url)
    except Exception as parse_error:  # pragma: no cover
        print(f"  DATABASE_URL could not be parsed ({parse_error}).")
        return

    backend = url.get_backend_name()
    print(f"  Backend: {backend} (driver: {url.get_driver_name() or 'default'})")
    print(f"  Target: {url.host or 'localhost'}:{url.port or '(default)'}/{url.database}")
    print(f"  SKIP_DB_INIT: {os.getenv('SKIP_DB_INIT')!r}")

    if backend == "sqlite":
        return

    host = url.host or "localhost"
    port = url.port or 5432
    try:
        with closing(socket.create_connection((host, port), timeout=2)):
            print(f"  Socket check: ✅ {host}:{port} accepts connections (check credentials and database name)")
    except OSError as socket_err:
        print(f"  Socket check: ❌ {host}:{port} unreachable ({socket_err})")


def get_engine() -> Engine:
    """Shared engine for the relational store, created on first use."""
    global _engine
    if _engine is None:
        options = _engine_options(settings.database_url)
        try:
            _engine = create_engine(settings.database_url, **options)
            with _engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception as e:
            _report_connection_failure(e)
            # Keep the engine; the pipeline's ping reports the outage per run.
            _engine = create_engine(settings.database_url, **options)
    return _engine
