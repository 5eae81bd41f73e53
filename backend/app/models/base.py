from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Type

from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Declarative base shared by all ORM models."""


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive values returned by backends without tz support."""

    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def enum_column(enum_cls: Type[Enum], name: str) -> SAEnum:
    """Persist an enum by its values rather than its member names."""

    return SAEnum(
        enum_cls,
        name=name,
        values_callable=lambda enum_type: [member.value for member in enum_type],
    )
