from __future__ import annotations

import asyncio
from functools import wraps
from typing import Any, Generic, TypeVar

from asyncpg.exceptions import ConnectionDoesNotExistError
from sqlalchemy import func, select
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import AppAsyncSessionLocal
from app.models.base import Base
from app.utils.logger import setup_logger

logger = setup_logger("db_handlers")


ModelType = TypeVar("ModelType", bound=Base)


def check_local_db(func):
    """Database session decorator with transaction management and retry logic."""

    @wraps(func)
    async def wrapper(*args, **kwargs):
        # The outermost caller who created the session owns the transaction
        if kwargs.get("db"):
            return await func(*args, **kwargs)

        last_exception = None
        for attempt in range(3):
            async with AppAsyncSessionLocal() as db:
                kwargs["db"] = db
                try:
                    result = await func(*args, **kwargs)
                    await db.commit()
                    return result
                except DBAPIError as e:
                    await db.rollback()
                    if isinstance(e.orig, ConnectionDoesNotExistError):
                        last_exception = e
                        logger.warning(
                            f"Connection error in {func.__name__} (attempt {attempt + 1}/3): {e}. Retrying..."
                        )
                        await asyncio.sleep(1 + attempt)
                        continue
                    logger.error(
                        f"DBAPIError in {func.__name__} (attempt {attempt + 1}/3): {e}",
                        exc_info=True,
                    )
                    raise
                except Exception as e:
                    await db.rollback()
                    logger.error(
                        f"Transaction failed in {func.__name__} (attempt {attempt + 1}/3): {e}",
                        exc_info=True,
                    )
                    raise

        logger.error(
            f"All retries failed for {func.__name__}. Last error: {last_exception}"
        )
        raise last_exception

    return wrapper


class BaseDBHandler(Generic[ModelType]):
    """Generic handler for database operations with basic CRUD methods."""

    def __init__(self, model: type[ModelType]):
        self.model = model

    @check_local_db
    async def create(
        self, obj_dict: dict[str, Any], *, db: AsyncSession = None
    ) -> ModelType:
        """Create a new record in the database."""
        db_obj = self.model(**obj_dict)
        try:
            db.add(db_obj)
            await db.commit()
            await db.refresh(db_obj)
            return db_obj
        except IntegrityError as e:
            await db.rollback()
            logger.warning(f"IntegrityError creating {self.model.__name__}: {e}")
            raise
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Error creating {self.model.__name__}: {e}", exc_info=True)
            raise

    @check_local_db
    async def get(self, id: Any, *, db: AsyncSession = None) -> ModelType | None:
        """Get a single record by its primary key."""
        stmt = select(self.model).where(self.model.id == id)
        result = await db.execute(stmt)
        return result.scalars().first()

    @check_local_db
    async def get_by_attributes(
        self, *, db: AsyncSession = None, **kwargs
    ) -> ModelType | None:
        """Get a single record by a set of attributes."""
        options_to_load = kwargs.pop("options", None)
        stmt = select(self.model).filter_by(**kwargs)
        if options_to_load:
            stmt = stmt.options(*options_to_load)
        result = await db.execute(stmt)
        return result.scalars().first()

    @check_local_db
    async def get_multi_by_attributes(
        self, *, db: AsyncSession = None, skip: int = 0, limit: int = 100, **kwargs
    ) -> list[ModelType]:
        """Get multiple records by a set of attributes with pagination."""
        final_limit = kwargs.pop("limit", limit)
        final_offset = kwargs.pop("offset", skip)
        order_by_clauses = kwargs.pop("order_by", None)
        options_to_load = kwargs.pop("options", None)

        stmt = select(self.model).filter_by(**kwargs)

        if options_to_load:
            stmt = stmt.options(*options_to_load)

        if order_by_clauses is not None:
            if isinstance(order_by_clauses, list):
                stmt = stmt.order_by(*order_by_clauses)
            else:
                stmt = stmt.order_by(order_by_clauses)

        stmt = stmt.offset(final_offset).limit(final_limit)
        result = await db.execute(stmt)
        return result.scalars().all()

    @check_local_db
    async def update(
        self,
        db_obj: ModelType,
        update_data: dict[str, Any],
        *,
        db: AsyncSession = None,
    ) -> ModelType:
        """Update an existing record in the database."""
        for field, value in update_data.items():
            if hasattr(db_obj, field):
                setattr(db_obj, field, value)

        try:
            db.add(db_obj)
            await db.commit()
            await db.refresh(db_obj)
            return db_obj
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(
                f"Error updating {self.model.__name__} with id {db_obj.id}: {e}",
                exc_info=True,
            )
            raise

    @check_local_db
    async def batch_create(
        self, obj_dicts: list[dict[str, Any]], *, db: AsyncSession = None
    ) -> list[ModelType]:
        """Create multiple records in a single transaction, preserving input order."""
        if not obj_dicts:
            return []

        try:
            db_objs = [self.model(**obj_dict) for obj_dict in obj_dicts]
            db.add_all(db_objs)
            await db.commit()

            for obj in db_objs:
                await db.refresh(obj)

            return db_objs
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(
                f"Error in batch_create for {self.model.__name__}: {e}", exc_info=True
            )
            raise


class OwnedDBHandler(BaseDBHandler[ModelType]):
    """
    Handler for models carrying a user_id owner column.

    Reads go through the owner filter so that a foreign id behaves exactly like
    a missing one.
    """

    @check_local_db
    async def get_owned(
        self, id: Any, user_id: Any, *, db: AsyncSession = None
    ) -> ModelType | None:
        """Get a row by id only if it belongs to user_id."""
        stmt = select(self.model).where(
            self.model.id == id, self.model.user_id == user_id
        )
        result = await db.execute(stmt)
        return result.scalar_one_or_none()

    @check_local_db
    async def get_owned_by_ids(
        self, ids: list[Any], user_id: Any, *, db: AsyncSession = None
    ) -> list[ModelType]:
        """Get the subset of ids owned by user_id. Order is not guaranteed."""
        if not ids:
            return []
        stmt = select(self.model).where(
            self.model.id.in_(ids), self.model.user_id == user_id
        )
        result = await db.execute(stmt)
        return result.scalars().all()

    @check_local_db
    async def list_owned(
        self,
        user_id: Any,
        *,
        db: AsyncSession = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[ModelType]:
        """List a user's rows, newest first."""
        stmt = (
            select(self.model)
            .where(self.model.user_id == user_id)
            .order_by(self.model.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        result = await db.execute(stmt)
        return result.scalars().all()

    @check_local_db
    async def count_owned(self, user_id: Any, *, db: AsyncSession = None) -> int:
        """Count a user's rows."""
        stmt = (
            select(func.count())
            .select_from(self.model)
            .where(self.model.user_id == user_id)
        )
        result = await db.execute(stmt)
        return int(result.scalar_one() or 0)

    @check_local_db
    async def update_owned(
        self,
        id: Any,
        user_id: Any,
        update_data: dict[str, Any],
        *,
        db: AsyncSession = None,
    ) -> ModelType | None:
        """Single-row update keyed by id and owner. Returns None if not owned."""
        obj = await self.get_owned(id, user_id, db=db)
        if obj is None:
            logger.warning(
                f"{self.model.__name__} {id} not found for user {user_id}; update skipped"
            )
            return None
        return await self.update(obj, update_data, db=db)
