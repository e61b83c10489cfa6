"""
Declarative base, column helpers and mixins shared by every table.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Type

from sqlalchemy import Column, Integer, DateTime, Enum as SQLEnum
from sqlalchemy.orm import DeclarativeBase


def utc_now() -> datetime:
    """Naive UTC timestamp, matching the DateTime columns (no tz stored)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def enum_column(enum_cls: Type[Enum], name: str) -> SQLEnum:
    """
    Build a SQL enum that stores member values ("in_progress"), not names.

    WHY: The database-side transition guard and any reporting SQL compare
    against the lowercase wire values, so the stored labels must match them.
    """
    return SQLEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


class Base(DeclarativeBase):
    """Registry for every work orders table (Base.metadata drives create_all in tests)."""


class TimestampMixin:
    """
    created_at and updated_at columns.

    Note: TicketDAO.apply_update sets updated_at explicitly because a bulk
    UPDATE does not fire the ORM onupdate hook.
    """

    created_at = Column(DateTime, default=utc_now, nullable=False)
    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now, nullable=False)


class PrimaryKeyMixin:
    """Integer key for reference data (organizations, users, buildings, spaces)."""

    id = Column(Integer, primary_key=True, index=True)
