"""Database utilities and session management for tracking catalogs."""
from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import ArgumentError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool
from tenacity import RetryError, retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from .config import RetryConfig
from .exceptions import CatalogError
from .logging_setup import get_logger

logger = get_logger(__name__)


def create_catalog_engine(url: str) -> Engine:
    """Create an engine holding exactly one connection to the catalog."""

    try:
        return create_engine(url, poolclass=StaticPool, future=True)
    except ArgumentError as exc:
        raise CatalogError(f"Invalid catalog URL '{url}': {exc}") from exc


def verify_connection(engine: Engine, retry_config: RetryConfig | None = None) -> None:
    """Check the catalog answers a trivial query, retrying transient failures."""

    settings = retry_config or RetryConfig()

    @retry(
        stop=stop_after_attempt(settings.attempts),
        wait=wait_exponential(
            multiplier=settings.backoff_seconds,
            min=settings.backoff_seconds,
            max=settings.backoff_max_seconds,
        ),
        retry=retry_if_exception_type(OperationalError),
    )
    def _ping() -> None:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    try:
        _ping()
    except RetryError as exc:
        cause = exc.last_attempt.exception()
        logger.error("database.unreachable", url=str(engine.url), attempts=settings.attempts)
        raise CatalogError(f"Unable to connect to catalog {engine.url}: {cause}") from cause


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    """Return the factory ``SqlCatalog`` opens its lookup sessions from.

    Catalog sessions never write, so autoflush is disabled.
    """

    return sessionmaker(bind=engine, autoflush=False, future=True)


@contextmanager
def read_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    """Yield a session for catalog lookups; its transaction is always rolled back."""

    session = session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


__all__ = [
    "create_catalog_engine",
    "create_session_factory",
    "read_session",
    "verify_connection",
]
