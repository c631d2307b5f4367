"""Ledger database engine and session scope"""
import logging
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from moment_editions.db_config import ledger_database_url
from moment_editions.models.db import Base

logger = logging.getLogger(__name__)

class Database:
    """Owns the engine of the edition ledger and hands out sessions"""

    def __init__(self):
        self._engine: Optional[Engine] = None
        self._SessionLocal = None

    def init(self, connection_string: Optional[str] = None) -> None:
        """
        Connect and create the ledger tables.

        Args:
            connection_string: Overrides the URL resolved from settings

        Raises:
            ValueError: The settings do not resolve to a database
            SQLAlchemyError: The database could not be reached
        """
        url = connection_string or ledger_database_url()
        connect_args = {}
        if url.startswith("sqlite"):
            # Ledger operations run on worker threads
            connect_args = {"check_same_thread": False}
        try:
            self._engine = create_engine(url, connect_args=connect_args, pool_pre_ping=not url.startswith("sqlite"))
            Base.metadata.create_all(self._engine)
        except SQLAlchemyError as e:
            logger.error(f"Ledger database initialization failed: {e}")
            raise
        # Edition snapshots are read after commit
        self._SessionLocal = sessionmaker(bind=self._engine, expire_on_commit=False)
        logger.info(f"Ledger database ready ({self._engine.url.get_backend_name()})")

    @property
    def is_initialized(self) -> bool:
        return self._SessionLocal is not None

    @contextmanager
    def session(self) -> Generator[Session, None, None]:
        """One transaction: committed on success, rolled back on any error"""
        if not self._SessionLocal:
            raise RuntimeError("Database not initialized. Call init() first.")

        session = self._SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        """Release pooled connections on shutdown"""
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None
            self._SessionLocal = None

db = Database()
