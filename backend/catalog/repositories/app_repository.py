"""
App Catalog Backend — App Repository
=====================================

What:  Persistence layer for app records (the `apps` table).
Why:   Routes and the sync pipeline work with AppRecord values; only this
       module knows about ORM rows, sessions and SQL.
How:   Every public method opens its own transactional session via
       session_scope(), converts rows to AppRecord, and wraps any SQLAlchemy
       or connection failure in RepositoryError.
Who:   Route handlers (CRUD/search) and SyncService (catalog snapshot, writes).

Write Semantics:
    - put():           insert or replace a whole record
    - update_fields(): partial, per-record atomic update; never touches
                       `id` or `name`; raises RepositoryError for unknown IDs
    - There are no multi-record transactions. Two writers racing on the same
      record resolve as last-write-wins.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import async_sessionmaker

from catalog.database import async_session_factory, session_scope
from catalog.exceptions import RepositoryError
from catalog.models.app import App
from catalog.schemas.app import MAX_IDS_PER_REQUEST, AppRecord

logger = logging.getLogger(__name__)

# Never writable through update_fields()
IMMUTABLE_FIELDS = frozenset({"id", "name"})

_COLUMNS = frozenset(column.key for column in App.__table__.columns)

# Driver-level connection failures (asyncpg, aiosqlite) can surface as OSError
_DB_ERRORS = (SQLAlchemyError, OSError)


def _to_record(row: App) -> AppRecord:
    return AppRecord.model_validate(row)


class AppRepository:
    """
    Async repository over the `apps` table.

    Args:
        session_factory: async_sessionmaker to open sessions from (tests pass
                         one bound to an in-memory SQLite engine)
    """

    def __init__(self, session_factory: async_sessionmaker = async_session_factory):
        self.session_factory = session_factory

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get_all(self) -> List[AppRecord]:
        """Full catalog ordered by id (the sync snapshot order)."""
        try:
            async with session_scope(self.session_factory) as session:
                result = await session.execute(select(App).order_by(App.id))
                return [_to_record(row) for row in result.scalars().all()]
        except _DB_ERRORS as e:
            logger.error("Failed to read app catalog: %s", e)
            raise RepositoryError(
                message="Could not read the app catalog.",
                context={"error_type": type(e).__name__},
            )

    async def get_by_id(self, app_id: str) -> Optional[AppRecord]:
        try:
            async with session_scope(self.session_factory) as session:
                row = await session.get(App, app_id)
                return _to_record(row) if row is not None else None
        except _DB_ERRORS as e:
            logger.error("Failed to read app %s: %s", app_id, e)
            raise RepositoryError(
                message="Could not retrieve the app.",
                context={"app_id": app_id, "error_type": type(e).__name__},
            )

    async def get_by_ids(self, app_ids: Iterable[str]) -> List[AppRecord]:
        """
        Fetch several apps at once, preserving the requested order.

        Only the first MAX_IDS_PER_REQUEST distinct IDs are used; unknown IDs
        are skipped.
        """
        wanted: List[str] = []
        for app_id in app_ids:
            if app_id not in wanted:
                wanted.append(app_id)
        wanted = wanted[:MAX_IDS_PER_REQUEST]
        if not wanted:
            return []

        try:
            async with session_scope(self.session_factory) as session:
                result = await session.execute(select(App).where(App.id.in_(wanted)))
                rows = {row.id: row for row in result.scalars().all()}
        except _DB_ERRORS as e:
            logger.error("Failed to read apps by ids: %s", e)
            raise RepositoryError(
                message="Could not retrieve the requested apps.",
                context={"error_type": type(e).__name__},
            )
        return [_to_record(rows[app_id]) for app_id in wanted if app_id in rows]

    async def search(self, query: str) -> List[AppRecord]:
        """Case-insensitive substring match against id and queryName."""
        needle = query.strip().lower()
        try:
            async with session_scope(self.session_factory) as session:
                stmt = (
                    select(App)
                    .where(
                        or_(
                            func.lower(App.id).contains(needle, autoescape=True),
                            func.lower(App.query_name).contains(needle, autoescape=True),
                        )
                    )
                    .order_by(App.id)
                )
                result = await session.execute(stmt)
                return [_to_record(row) for row in result.scalars().all()]
        except _DB_ERRORS as e:
            logger.error("App search failed for %r: %s", query, e)
            raise RepositoryError(
                message="Could not search apps.",
                context={"error_type": type(e).__name__},
            )

    # ── Writes ────────────────────────────────────────────────────────────

    async def put(self, record: AppRecord) -> AppRecord:
        """Insert `record`, replacing any stored record with the same id."""
        try:
            async with session_scope(self.session_factory) as session:
                row = await session.merge(App(**record.model_dump()))
                await session.flush()
                return _to_record(row)
        except _DB_ERRORS as e:
            logger.error("Failed to store app %s: %s", record.id, e)
            raise RepositoryError(
                message="Could not save the app.",
                context={"app_id": record.id, "error_type": type(e).__name__},
            )

    async def update_fields(self, app_id: str, fields: Dict[str, Any]) -> AppRecord:
        """
        Partially update one record.

        Raises:
            RepositoryError: The id does not exist, a field name is unknown,
                or the database rejected the write.
        """
        unknown = set(fields) - _COLUMNS
        if unknown:
            raise RepositoryError(
                message="Unknown app fields.",
                context={"app_id": app_id, "fields": sorted(unknown)},
            )

        try:
            async with session_scope(self.session_factory) as session:
                row = await session.get(App, app_id)
                if row is None:
                    raise RepositoryError(
                        message=f"App '{app_id}' does not exist.",
                        context={"app_id": app_id},
                    )
                for key, value in fields.items():
                    if key in IMMUTABLE_FIELDS:
                        continue
                    setattr(row, key, value)
                await session.flush()
                return _to_record(row)
        except _DB_ERRORS as e:
            logger.error("Failed to update app %s: %s", app_id, e)
            raise RepositoryError(
                message="Could not update the app.",
                context={"app_id": app_id, "error_type": type(e).__name__},
            )

    async def update_many(
        self, items: Iterable[Tuple[str, Dict[str, Any]]]
    ) -> List[Tuple[str, Optional[str]]]:
        """
        Apply update_fields() for each (app_id, fields) pair.

        Each record is its own transaction. Returns (app_id, error message or
        None) per item so callers can report partial failures.
        """
        outcomes: List[Tuple[str, Optional[str]]] = []
        for app_id, fields in items:
            try:
                await self.update_fields(app_id, fields)
                outcomes.append((app_id, None))
            except RepositoryError as e:
                outcomes.append((app_id, e.message))
        return outcomes

    async def ping(self) -> bool:
        """Lightweight connectivity check used by /health."""
        try:
            async with session_scope(self.session_factory) as session:
                await session.execute(select(1))
            return True
        except _DB_ERRORS as e:
            logger.error("Database health check failed: %s", e)
            return False


# ── Singleton Instance ────────────────────────────────────────────────────
app_repository = AppRepository()
