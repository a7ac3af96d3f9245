"""SQLAlchemy implementations of the sync store contracts.

Hey future me - read this before touching any create_* method!

Every write here is ONE statement in ONE short transaction (Database.session_scope()).
Creates are `INSERT ... ON CONFLICT DO NOTHING RETURNING id`:
- a row comes back            → CREATED
- no row comes back           → ALREADY_EXISTS (a unique constraint fired, nothing else can
                                 make DO NOTHING skip the insert)
- SQLAlchemyError raised      → FAILED(reason) (FK violation, NOT NULL, disk, lock timeout...)

So the engine's "lost the race, read the winner" branch only ever runs for genuine
duplicates. We NEVER catch IntegrityError and guess that it meant "duplicate".
Non-create operations translate SQLAlchemyError into StorageError.
"""

import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime
from functools import wraps
from typing import Any, ParamSpec, TypeVar

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError

from petal.domain.entities import (
    CanonicalEntity,
    EntityDraft,
    EntityKind,
    LocalPairing,
    Relationship,
    RelationKind,
    RelationshipDraft,
    SyncState,
)
from petal.domain.exceptions import ConfigurationError, StorageError
from petal.domain.ports import (
    CreateOutcome,
    ICanonicalEntityStore,
    IListeningHistoryStore,
    IRelationshipStore,
    ISyncStateTracker,
    IUserDirectory,
)
from petal.infrastructure.persistence.database import Database
from petal.infrastructure.persistence.models import (
    CATALOG_TABLES,
    ListeningHistoryModel,
    SyncStateModel,
    UserModel,
    utc_now,
)
from petal.infrastructure.persistence.retry import with_db_retry

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


def storage_operation(func: Callable[P, Awaitable[T]]) -> Callable[P, Awaitable[T]]:
    """Translate SQLAlchemy errors of a non-create operation into StorageError."""

    @wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        try:
            return await func(*args, **kwargs)
        except SQLAlchemyError as e:
            raise StorageError(f"{func.__name__} failed: {e}") from e

    return wrapper


class _SqlStore:
    """Shared plumbing: session scopes and dialect-specific INSERT."""

    def __init__(self, database: Database) -> None:
        self._db = database

    def _insert(self, table: Any) -> Any:
        dialect = self._db.dialect_name
        if dialect == "sqlite":
            return sqlite_insert(table)
        if dialect == "postgresql":
            return pg_insert(table)
        raise ConfigurationError(f"Unsupported database dialect for upserts: {dialect}")

    @with_db_retry()
    async def _insert_returning_id(self, table: Any, values: dict[str, Any]) -> str | None:
        stmt = self._insert(table).values(**values).on_conflict_do_nothing().returning(table.c.id)
        async with self._db.session_scope() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    @staticmethod
    def _failed(what: str, error: SQLAlchemyError) -> CreateOutcome[Any]:
        logger.warning("Insert of %s failed: %s", what, error)
        return CreateOutcome.failed(str(error))


class SqlCanonicalEntityStore(_SqlStore, ICanonicalEntityStore):
    """Canonical playlists/tracks/albums/artists."""

    @staticmethod
    def _kind_fields(model: Any, fields: dict[str, Any]) -> dict[str, Any]:
        return {name: value for name, value in fields.items() if name in model.FIELD_NAMES}

    @storage_operation
    @with_db_retry()
    async def find_entity_by_external_id(
        self, kind: EntityKind, external_id: str
    ) -> CanonicalEntity | None:
        model = CATALOG_TABLES[kind].entity
        async with self._db.session_scope() as session:
            result = await session.execute(select(model).where(model.spotify_id == external_id))
            row = result.scalar_one_or_none()
            return row.to_entity() if row is not None else None

    async def create_entity(self, draft: EntityDraft) -> CreateOutcome[CanonicalEntity]:
        model = CATALOG_TABLES[draft.kind].entity
        fields = self._kind_fields(model, draft.fields)
        now = utc_now()
        values = {
            "id": str(uuid.uuid4()),
            "spotify_id": draft.external_id,
            "name": draft.name,
            "image_url": draft.image_url,
            "change_token": draft.change_token,
            "created_at": now,
            "updated_at": now,
            **fields,
        }

        try:
            inserted_id = await self._insert_returning_id(model.__table__, values)
        except SQLAlchemyError as e:
            return self._failed(f"{draft.kind.value} {draft.external_id}", e)

        if inserted_id is None:
            return CreateOutcome.already_exists()

        return CreateOutcome.created(
            CanonicalEntity(
                id=inserted_id,
                kind=draft.kind,
                external_id=draft.external_id,
                name=draft.name,
                change_token=draft.change_token,
                image_url=draft.image_url,
                fields=fields,
            )
        )

    @storage_operation
    @with_db_retry()
    async def update_entity(self, kind: EntityKind, entity_id: str, draft: EntityDraft) -> None:
        model = CATALOG_TABLES[kind].entity
        stmt = (
            update(model)
            .where(model.id == entity_id)
            .values(
                name=draft.name,
                image_url=draft.image_url,
                change_token=draft.change_token,
                updated_at=utc_now(),
                **self._kind_fields(model, draft.fields),
            )
        )
        async with self._db.session_scope() as session:
            await session.execute(stmt)


class SqlRelationshipStore(_SqlStore, IRelationshipStore):
    """Per-user link tables."""

    @storage_operation
    @with_db_retry()
    async def find_relationship(
        self, kind: EntityKind, user_id: str, entity_id: str
    ) -> Relationship | None:
        tables = CATALOG_TABLES[kind]
        stmt = select(tables.link).where(
            tables.link.user_id == user_id, tables.link_fk == entity_id
        )
        async with self._db.session_scope() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return row.to_relationship() if row is not None else None

    async def create_relationship(self, draft: RelationshipDraft) -> CreateOutcome[Relationship]:
        link = CATALOG_TABLES[draft.kind].link
        values = {
            "id": str(uuid.uuid4()),
            "user_id": draft.user_id,
            link.ENTITY_FK: draft.entity_id,
            "relation_kind": draft.relation_kind.value,
            "added_at": draft.added_at,
            "created_at": utc_now(),
        }

        try:
            inserted_id = await self._insert_returning_id(link.__table__, values)
        except SQLAlchemyError as e:
            return self._failed(
                f"{draft.kind.value} link {draft.user_id}/{draft.entity_id}", e
            )

        if inserted_id is None:
            return CreateOutcome.already_exists()

        return CreateOutcome.created(
            Relationship(
                user_id=draft.user_id,
                entity_id=draft.entity_id,
                kind=draft.kind,
                relation_kind=draft.relation_kind,
                added_at=draft.added_at,
            )
        )

    @storage_operation
    @with_db_retry()
    async def delete_relationship(self, kind: EntityKind, user_id: str, entity_id: str) -> bool:
        tables = CATALOG_TABLES[kind]
        stmt = delete(tables.link).where(
            tables.link.user_id == user_id, tables.link_fk == entity_id
        )
        async with self._db.session_scope() as session:
            result = await session.execute(stmt)
            return bool(result.rowcount)

    @storage_operation
    @with_db_retry()
    async def list_relationships(self, user_id: str, kind: EntityKind) -> list[LocalPairing]:
        tables = CATALOG_TABLES[kind]
        entity = tables.entity
        stmt = (
            select(
                entity.id,
                entity.spotify_id,
                entity.change_token,
                tables.link.relation_kind,
            )
            .join(entity, tables.link_fk == entity.id)
            .where(tables.link.user_id == user_id)
        )
        async with self._db.session_scope() as session:
            rows = (await session.execute(stmt)).all()

        return [
            LocalPairing(
                entity_id=row[0],
                external_id=row[1],
                change_token=row[2],
                relation_kind=RelationKind(row[3]),
            )
            for row in rows
        ]


class SqlSyncStateTracker(_SqlStore, ISyncStateTracker):
    """sync_states table."""

    @storage_operation
    @with_db_retry()
    async def get_state(self, user_id: str, sync_type: str) -> SyncState | None:
        stmt = select(SyncStateModel).where(
            SyncStateModel.user_id == user_id, SyncStateModel.sync_type == sync_type
        )
        async with self._db.session_scope() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
            return row.to_state() if row is not None else None

    @storage_operation
    @with_db_retry()
    async def record(self, state: SyncState) -> None:
        table = SyncStateModel.__table__
        mutable = {
            "last_synced_at": state.last_synced_at,
            "status": state.status.value,
            "error_message": state.error_message,
            "items_added": state.items_added,
            "items_updated": state.items_updated,
            "items_removed": state.items_removed,
            "updated_at": utc_now(),
        }
        stmt = self._insert(table).values(
            id=str(uuid.uuid4()),
            user_id=state.user_id,
            sync_type=state.sync_type,
            **mutable,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["user_id", "sync_type"],
            set_={name: stmt.excluded[name] for name in mutable},
        )
        async with self._db.session_scope() as session:
            await session.execute(stmt)


class SqlUserDirectory(_SqlStore, IUserDirectory):
    """Read side of the users table (plus creation for onboarding and tests)."""

    @storage_operation
    @with_db_retry()
    async def get_external_id(self, user_id: str) -> str | None:
        async with self._db.session_scope() as session:
            result = await session.execute(
                select(UserModel.spotify_id).where(UserModel.id == user_id)
            )
            return result.scalar_one_or_none()

    @storage_operation
    @with_db_retry()
    async def create_user(
        self, handle: str, spotify_id: str | None = None, display_name: str | None = None
    ) -> str:
        """Insert a user and return its id."""
        user = UserModel(handle=handle, spotify_id=spotify_id, display_name=display_name)
        async with self._db.session_scope() as session:
            session.add(user)
            await session.flush()
            return user.id


class SqlListeningHistoryStore(_SqlStore, IListeningHistoryStore):
    """listening_history table."""

    async def add_play(
        self, user_id: str, track_entity_id: str, played_at: datetime
    ) -> CreateOutcome[None]:
        values = {
            "id": str(uuid.uuid4()),
            "user_id": user_id,
            "track_id": track_entity_id,
            "played_at": played_at,
        }
        try:
            inserted_id = await self._insert_returning_id(
                ListeningHistoryModel.__table__, values
            )
        except SQLAlchemyError as e:
            return self._failed(f"play {user_id}/{track_entity_id}@{played_at}", e)

        if inserted_id is None:
            return CreateOutcome.already_exists()
        return CreateOutcome.created(None)

    @storage_operation
    @with_db_retry()
    async def count_plays(self, user_id: str) -> int:
        """Number of stored plays of a user."""
        async with self._db.session_scope() as session:
            result = await session.execute(
                select(func.count(ListeningHistoryModel.id)).where(
                    ListeningHistoryModel.user_id == user_id
                )
            )
            return int(result.scalar_one())
