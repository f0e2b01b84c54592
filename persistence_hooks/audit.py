"""
Audit stamping for SQLAlchemy sessions.

Stamps the ``modified_by`` audit column on every added, modified or deleted
entity before changes are committed. For deleted entities, entities one
relationship hop away are loaded and stamped too, so that database-side
cascade deletes and audit triggers see the acting user.

Entities opt in through AuditOwnerMixin or register_audited(); every other
mapped class is left untouched.
"""

import enum
import weakref
from dataclasses import dataclass
from typing import (
    Any,
    Awaitable,
    Callable,
    Iterable,
    List,
    Optional,
    Protocol,
    Set,
    Type,
    TypeVar,
)

import structlog
from sqlalchemy import Column, Integer, event, inspect
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import RelationshipProperty, Session, sessionmaker

from .core.config import settings
from .domain.exceptions import AuditConfigurationException

logger = structlog.get_logger(__name__)

T = TypeVar("T")

AUDIT_FIELD = "modified_by"


class AuditOwnerMixin:
    """
    Declarative mixin marking a mapped class as audited.

    Attributes:
        modified_by: Id of the actor responsible for the latest mutation
    """

    modified_by = Column(Integer, nullable=True)


_audited_types: Set[type] = set()


def register_audited(cls: Type[T]) -> Type[T]:
    """
    Register a class that carries ``modified_by`` without the mixin.

    Can be used as a class decorator.
    """
    _audited_types.add(cls)
    return cls


def is_audited(entity: Any) -> bool:
    """Check whether an entity participates in auditing."""
    if isinstance(entity, AuditOwnerMixin):
        return True
    return any(isinstance(entity, cls) for cls in _audited_types)


def stamp(entity: Any, actor_id: int) -> bool:
    """
    Set the audit field on an entity.

    Args:
        entity: Any object
        actor_id: Value written to ``modified_by``

    Returns:
        True if the entity is audited and was stamped, False otherwise
    """
    if not is_audited(entity):
        return False
    setattr(entity, AUDIT_FIELD, actor_id)
    return True


class ChangeState(str, enum.Enum):
    """Pending lifecycle state of a tracked entity."""

    UNCHANGED = "unchanged"
    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"


RELEVANT_STATES = frozenset({ChangeState.ADDED, ChangeState.MODIFIED, ChangeState.DELETED})


@dataclass(frozen=True)
class ChangeEntry:
    """A tracked entity together with its pending state."""

    entity: Any
    state: ChangeState


def tracked_entries(session: Session) -> List[ChangeEntry]:
    """
    Snapshot the change tracker of a session.

    Returns:
        Entries for new, dirty and deleted objects, followed by every other
        object of the identity map as UNCHANGED
    """
    entries = [ChangeEntry(obj, ChangeState.ADDED) for obj in session.new]
    entries += [ChangeEntry(obj, ChangeState.MODIFIED) for obj in session.dirty]
    entries += [ChangeEntry(obj, ChangeState.DELETED) for obj in session.deleted]

    seen = {id(entry.entity) for entry in entries}
    entries += [
        ChangeEntry(obj, ChangeState.UNCHANGED)
        for obj in session.identity_map.values()
        if id(obj) not in seen
    ]
    return entries


def relevant_entries(session: Session) -> List[ChangeEntry]:
    """Return the added, modified and deleted entries of a session."""
    return [entry for entry in tracked_entries(session) if entry.state in RELEVANT_STATES]


class RelationLoader(Protocol):
    """Blocking access to the relationships of an entity."""

    def relation_names(self, entity: Any) -> List[str]: ...

    def load_related(self, entity: Any, relation_name: str) -> List[Any]: ...


class AsyncRelationLoader(Protocol):
    """Awaitable access to the relationships of an entity."""

    def relation_names(self, entity: Any) -> List[str]: ...

    async def load_related(self, entity: Any, relation_name: str) -> List[Any]: ...


def _related_values(relationship: RelationshipProperty, value: Any) -> List[Any]:
    if value is None:
        return []
    if not relationship.uselist:
        return [value]
    if isinstance(value, dict):
        return list(value.values())
    return list(value)


class SessionRelationLoader:
    """Loads relationships through SQLAlchemy lazy loading."""

    def __init__(self, session: Session):
        self.session = session

    def relation_names(self, entity: Any) -> List[str]:
        return [relationship.key for relationship in inspect(entity).mapper.relationships]

    def is_loaded(self, entity: Any, relation_name: str) -> bool:
        return relation_name not in inspect(entity).unloaded

    def load_related(self, entity: Any, relation_name: str) -> List[Any]:
        """
        Load a relationship if needed and return its related entities.

        Autoflush is suspended so the pending delete is not flushed
        before its related entities are read.
        """
        state = inspect(entity)
        if relation_name in state.unloaded:
            logger.debug(
                "Loading relation",
                entity=type(entity).__name__,
                relation=relation_name,
            )
        with self.session.no_autoflush:
            value = getattr(entity, relation_name)
        return _related_values(state.mapper.relationships[relation_name], value)


def _load_in_sync_session(session: Session, entity: Any, relation_name: str) -> List[Any]:
    return SessionRelationLoader(session).load_related(entity, relation_name)


class AsyncSessionRelationLoader:
    """Loads relationships of entities attached to an AsyncSession."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._loader = SessionRelationLoader(session.sync_session)

    def relation_names(self, entity: Any) -> List[str]:
        return self._loader.relation_names(entity)

    async def load_related(self, entity: Any, relation_name: str) -> List[Any]:
        if self._loader.is_loaded(entity, relation_name):
            return self._loader.load_related(entity, relation_name)
        # Lazy loads need the greenlet context provided by run_sync
        return await self.session.run_sync(_load_in_sync_session, entity, relation_name)


class AuditStamper:
    """
    Stamps ``modified_by`` on pending changes of a session.

    Offers a blocking and an awaitable variant, commit wrappers for both, and
    a ``before_flush`` event handler.
    """

    def __init__(self, actor_id: Optional[int] = None):
        """
        Initialize stamper.

        Args:
            actor_id: Value to stamp, defaults to settings.AUDIT_ACTOR_ID
        """
        self.actor_id = settings.AUDIT_ACTOR_ID if actor_id is None else actor_id

    def _stamp_all(self, entities: Iterable[Any]) -> int:
        stamped = 0
        for entity in entities:
            if stamp(entity, self.actor_id):
                logger.debug(
                    "Entity stamped", entity=type(entity).__name__, actor_id=self.actor_id
                )
                stamped += 1
        return stamped

    def stamp_changes(
        self, session: Session, loader: Optional[RelationLoader] = None
    ) -> int:
        """
        Stamp added, modified and deleted entities of a session.

        Args:
            session: Session holding the pending changes
            loader: Relationship loader, defaults to SessionRelationLoader

        Returns:
            Number of entities stamped
        """
        loader = loader or SessionRelationLoader(session)
        stamped = 0

        for entry in relevant_entries(session):
            stamped += self._stamp_all([entry.entity])
            if entry.state is ChangeState.DELETED:
                for name in loader.relation_names(entry.entity):
                    stamped += self._stamp_all(loader.load_related(entry.entity, name))

        logger.debug("Audit stamp applied", stamped=stamped, actor_id=self.actor_id)
        return stamped

    async def stamp_changes_async(
        self, session: AsyncSession, loader: Optional[AsyncRelationLoader] = None
    ) -> int:
        """
        Awaitable variant of stamp_changes.

        Unloaded relationships of deleted entities are loaded one at a time;
        cancellation while loading propagates to the caller.
        """
        loader = loader or AsyncSessionRelationLoader(session)
        stamped = 0

        for entry in relevant_entries(session.sync_session):
            stamped += self._stamp_all([entry.entity])
            if entry.state is ChangeState.DELETED:
                for name in loader.relation_names(entry.entity):
                    related = await loader.load_related(entry.entity, name)
                    stamped += self._stamp_all(related)

        logger.debug("Audit stamp applied", stamped=stamped, actor_id=self.actor_id)
        return stamped

    def save_changes(self, session: Session, commit: Callable[[], T]) -> T:
        """Stamp pending changes, then run commit and return its result."""
        self.stamp_changes(session)
        return commit()

    async def save_changes_async(
        self, session: AsyncSession, commit: Callable[[], Awaitable[T]]
    ) -> T:
        """Stamp pending changes, then await commit and return its result."""
        await self.stamp_changes_async(session)
        return await commit()

    def before_flush(self, session: Session, flush_context: Any, instances: Any) -> None:
        """SQLAlchemy ``before_flush`` event handler."""
        self.stamp_changes(session)


_installed: "weakref.WeakKeyDictionary[Any, AuditStamper]" = weakref.WeakKeyDictionary()


def install_audit_listener(
    target: Any, stamper: Optional[AuditStamper] = None
) -> AuditStamper:
    """
    Register the audit stamper as a ``before_flush`` listener.

    Args:
        target: Session subclass, Session or AsyncSession instance, or sessionmaker
        stamper: Stamper to install, defaults to a new AuditStamper

    Returns:
        The installed stamper, or the one already installed on target

    Raises:
        AuditConfigurationException: If target cannot carry session events
    """
    if isinstance(target, AsyncSession):
        target = target.sync_session

    is_session_class = isinstance(target, type) and issubclass(target, Session)
    if not (is_session_class or isinstance(target, (Session, sessionmaker))):
        raise AuditConfigurationException(
            target, "expected a Session class, a Session instance or a sessionmaker"
        )

    existing = _installed.get(target)
    if existing is not None:
        return existing

    stamper = stamper or AuditStamper()
    event.listen(target, "before_flush", stamper.before_flush)
    _installed[target] = stamper
    logger.info(
        "Audit listener installed",
        target=getattr(target, "__name__", type(target).__name__),
        actor_id=stamper.actor_id,
    )
    return stamper


class AuditedSession(Session):
    """
    Session that stamps pending changes on every flush and before commit.

    Explicit flushes and autoflushes go through the ``before_flush`` listener.
    """

    def __init__(self, *args: Any, audit_stamper: Optional[AuditStamper] = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.audit_stamper = audit_stamper or AuditStamper()
        event.listen(self, "before_flush", self.audit_stamper.before_flush)

    def commit(self) -> None:
        return self.audit_stamper.save_changes(self, super().commit)


class AuditedAsyncSession(AsyncSession):
    """
    AsyncSession that stamps pending changes on every flush and before commit.

    Commit runs the awaitable stamping first so relation loads suspend the
    task; flushes outside commit are stamped by the ``before_flush`` listener
    on the underlying sync session.
    """

    def __init__(self, *args: Any, audit_stamper: Optional[AuditStamper] = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self.audit_stamper = audit_stamper or AuditStamper()
        event.listen(self.sync_session, "before_flush", self.audit_stamper.before_flush)

    async def commit(self) -> None:
        return await self.audit_stamper.save_changes_async(self, super().commit)
