# Overview: Explicit entity store; owns the engine, the session, the writer lock and the change channel.

"""
EntityStore

One store instance is created per application (see create_app) and disposed
at shutdown. There is no module-level session: services receive the store as
their first argument.

- The dataset is process-lifetime only: DATABASE_URL defaults to an in-memory
  SQLite engine shared through a StaticPool.
- writer_lock serializes every gateway mutation (single logical writer).
- Changes recorded during a unit of work are emitted on the change channel
  only after commit; a rollback discards them.
"""

from __future__ import annotations

import logging
import threading

import sqlalchemy as sa
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .enums import EntityType
from .events import ChangeChannel, ChangeEvent
from .models import Model

logger = logging.getLogger(__name__)


def build_engine(url: str, *, echo: bool = False) -> sa.engine.Engine:
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if url in ("sqlite://", "sqlite:///:memory:"):
        return sa.create_engine(
            url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    if url.startswith("sqlite"):
        return sa.create_engine(url, echo=echo, connect_args={"check_same_thread": False})
    return sa.create_engine(url, echo=echo)


class EntityStore:
    def __init__(self, database_url: str = "sqlite://", *, echo: bool = False):
        self.database_url = database_url
        self.engine = build_engine(database_url, echo=echo)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        self.session = self._session_factory()
        self.writer_lock = threading.RLock()
        self.changes = ChangeChannel()
        self._pending: list[ChangeEvent] = []
        self._closed = False

    def create_all(self) -> None:
        Model.metadata.create_all(self.engine)

    def drop_all(self) -> None:
        Model.metadata.drop_all(self.engine)

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    def query(self, *entities):
        return self.session.query(*entities)

    def get(self, model, ident):
        if ident is None:
            return None
        return self.session.get(model, ident)

    def add(self, obj):
        self.session.add(obj)
        return obj

    def delete(self, obj) -> None:
        self.session.delete(obj)

    def flush(self) -> None:
        self.session.flush()

    def record_change(self, entity_type: EntityType | str, action: str, obj=None, *, entity_id=None, branch_id=None) -> None:
        """Queue a change event; it is emitted after the next successful commit."""
        if obj is not None:
            entity_id = getattr(obj, "id", entity_id)
            branch_id = getattr(obj, "branch_id", branch_id)
        self._pending.append(ChangeEvent(
            entity_type=EntityType(entity_type),
            action=action,
            entity_id=entity_id,
            branch_id=branch_id,
        ))

    def commit(self) -> None:
        self.session.commit()
        events, self._pending = self._pending, []
        for event in events:
            self.changes.emit(event)

    def rollback(self) -> None:
        self._pending = []
        self.session.rollback()

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def subscribe(self, receiver, entity_type=None):
        return self.changes.subscribe(receiver, entity_type)

    def unsubscribe(self, receiver) -> None:
        self.changes.unsubscribe(receiver)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._pending = []
        self.session.close()
        self.engine.dispose()
        self.changes.clear()
        logger.info("Entity store closed (%s)", self.database_url)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
