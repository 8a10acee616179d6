"""SQLAlchemy-backed key-value store for small JSON records.

Holds saved prompts (prompt:<id>) and MCP server configs (mcpserver:<id>).
Values are JSON-serialized; keys can be listed by prefix. Each put/delete is
its own transaction and nothing more.
"""

import json
import os
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy import Column, DateTime, String, Text, create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

logger = structlog.get_logger(__name__)

Base = declarative_base()


class KVEntry(Base):
    """One stored record."""
    __tablename__ = "kv_entries"

    key = Column(String, primary_key=True)
    value = Column(Text, nullable=False)  # JSON string
    updated_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))


class KVStore:
    """get / put / list(prefix) / delete over a single SQL table."""

    def __init__(self, database_url: str | None = None):
        """Create engine + table.

        Args:
            database_url: SQLAlchemy connection string. Defaults to the
                KV_DATABASE_URL env var.
        """
        url = database_url or os.environ.get("KV_DATABASE_URL", "sqlite:///data/chet_kv.sqlite")
        if url.startswith("sqlite") and ":memory:" in url:
            # One shared connection, otherwise every session sees an empty database
            self._engine = create_engine(url, connect_args={"check_same_thread": False},
                                         poolclass=StaticPool)
        else:
            if url.startswith("sqlite:///") and not url.startswith("sqlite:////"):
                os.makedirs(os.path.dirname(url[len("sqlite:///"):]) or ".", exist_ok=True)
            self._engine = create_engine(url, echo=False)
        self._session_factory = sessionmaker(bind=self._engine)

        Base.metadata.create_all(self._engine)
        logger.info("kv.initialized", url=url.split("///")[0] + "///***")

    def _session(self) -> Session:
        return self._session_factory()

    def get(self, key: str) -> Any | None:
        """Fetch and deserialize the value under key, or None if absent."""
        with self._session() as session:
            row = session.get(KVEntry, key)
            return json.loads(row.value) if row else None

    def put(self, key: str, value: Any) -> None:
        """Store value under key, replacing any previous value."""
        with self._session() as session:
            session.merge(KVEntry(
                key=key,
                value=json.dumps(value),
                updated_at=datetime.now(timezone.utc),
            ))
            session.commit()
            logger.debug("kv.put", key=key)

    def list_keys(self, prefix: str = "") -> list[str]:
        """Keys starting with prefix, sorted."""
        with self._session() as session:
            query = session.query(KVEntry.key)
            if prefix:
                query = query.filter(KVEntry.key.startswith(prefix, autoescape=True))
            return [key for (key,) in query.order_by(KVEntry.key.asc()).all()]

    def delete(self, key: str) -> bool:
        """Remove key. Returns False if it did not exist."""
        with self._session() as session:
            row = session.get(KVEntry, key)
            if row is None:
                return False
            session.delete(row)
            session.commit()
            logger.debug("kv.delete", key=key)
            return True

    def is_healthy(self) -> bool:
        try:
            with self._session() as session:
                session.query(KVEntry.key).limit(1).all()
            return True
        except Exception as e:
            logger.error("kv.unhealthy", error=str(e))
            return False
