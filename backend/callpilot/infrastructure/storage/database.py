"""
Database Connection and Session Management
One SQLite database per tenant: {data_dir}/tenants/{tenant_id}/conversations.db
"""
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from callpilot.infrastructure.storage.models import Base
from callpilot.utils.tenant_filter import tenant_dir

logger = logging.getLogger(__name__)

DATABASE_FILENAME = "conversations.db"


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


class TenantDatabase:
    """
    Engine and session factory for a single tenant's database.

    The schema is created on first use, which is how a tenant's isolated
    storage comes into existence.
    """

    def __init__(self, data_dir: str, tenant_id: str):
        self.tenant_id = tenant_id
        directory = tenant_dir(data_dir, tenant_id)
        directory.mkdir(parents=True, exist_ok=True)
        self.path = directory / DATABASE_FILENAME

        self.engine: Engine = create_engine(
            f"sqlite:///{self.path}",
            connect_args={"check_same_thread": False},
            echo=False,  # Set to True for debugging SQL queries
        )
        event.listen(self.engine, "connect", _enable_foreign_keys)

        Base.metadata.create_all(self.engine)
        self._session_factory = sessionmaker(autocommit=False, autoflush=False, bind=self.engine)
        logger.info(f"Opened conversation database for tenant {tenant_id}")

    @contextmanager
    def session(self) -> Iterator[Session]:
        """
        Get database session with automatic commit/rollback

        Usage:
            with database.session() as db:
                conversations = db.query(ConversationRecord).all()
        """
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def dispose(self) -> None:
        self.engine.dispose()
