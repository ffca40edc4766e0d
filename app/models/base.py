"""
Base configurations and mixins for database models.

This module provides the foundation for all Daylight database models: the
declarative base with dict serialization, UUID primary keys, timestamps, and
the owner reference that every user-owned table carries.
"""

import uuid
from datetime import date, datetime

from sqlalchemy import Column, DateTime, ForeignKey, inspect
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import declarative_base, declared_attr
from sqlalchemy.sql.functions import now as db_now

from app.config import settings

SCHEMA_NAME = settings.schema_name


class CustomBase:
    """
    Custom base class for SQLAlchemy models with enhanced serialization.

    This class provides a `to_dict` method that automatically converts
    model instances to dictionaries, handling special data types like
    UUID, date and datetime objects appropriately.
    """

    def to_dict(self) -> dict:
        d = {}
        if not self:
            return d
        for column in inspect(self).mapper.column_attrs:
            value = getattr(self, column.key)
            if isinstance(value, uuid.UUID):
                d[column.key] = str(value)
            elif isinstance(value, datetime | date):
                d[column.key] = value.isoformat()
            else:
                d[column.key] = value
        return d


# Create the base class for all models
Base = declarative_base(cls=CustomBase)


class TimestampMixin:
    """
    Mixin class that adds automatic timestamp management to models.

    The created_at timestamp is set when the record is first inserted, and
    updated_at is refreshed by the database whenever the record is modified.
    """

    created_at = Column(
        DateTime(timezone=True),
        server_default=db_now(),
        nullable=False,
        comment="Timestamp when the record was created",
    )
    updated_at = Column(
        DateTime(timezone=True),
        server_default=db_now(),
        onupdate=db_now(),
        nullable=False,
        comment="Timestamp when the record was last updated",
    )


class UUIDMixin:
    """
    Mixin class that adds UUID primary key to models.
    """

    id = Column(
        PG_UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        index=True,
        comment="Primary key using UUID4 format",
    )


class OwnedMixin:
    """
    Mixin for rows owned by exactly one user.

    The owner reference is non-nullable and indexed; handlers filter every
    read and stamp every write with it.
    """

    @declared_attr
    def user_id(cls):
        return Column(
            PG_UUID(as_uuid=True),
            ForeignKey(f"{SCHEMA_NAME}.users.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
            comment="Owner of this row; every access is filtered by it",
        )


def check_choice(field: str, value, allowed: tuple[str, ...], nullable=False):
    """Shared @validates body for string columns restricted to a closed vocabulary."""
    if value is None and nullable:
        return value
    if value not in allowed:
        raise ValueError(f"Invalid {field}: {value!r}. Expected one of {allowed}")
    return value


__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    "OwnedMixin",
    "check_choice",
    "SCHEMA_NAME",
]
