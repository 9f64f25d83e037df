"""
Base ORM Model and Mixins.

============================================================
PURPOSE
============================================================
Provides the declarative base and common mixins used by all
ORM models of the traffic store.

============================================================
COMPONENTS
============================================================
- Base: SQLAlchemy declarative base for all models
- TimestampMixin: Common timestamp columns

============================================================
"""

from datetime import date, datetime

from sqlalchemy import Date, DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """
    Declarative base for all ORM models.

    All models of the traffic store inherit from this base.
    Timestamps are timezone-aware; repositories write them in UTC.
    """

    type_annotation_map = {
        datetime: DateTime(timezone=True),
        date: Date(),
    }


class TimestampMixin:
    """
    Mixin providing standard timestamp columns.

    created_at is set by the database on insert. updated_at is
    written explicitly by every upsert, since ON CONFLICT updates
    bypass ORM onupdate hooks.

    Usage:
        class MyModel(Base, TimestampMixin):
            __tablename__ = "my_table"
            ...
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Record creation timestamp (UTC)"
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        comment="Last write timestamp (UTC)"
    )
