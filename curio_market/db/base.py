"""SQLAlchemy declarative base class and portable column types."""

import json
import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.types import TypeDecorator, Text, DateTime
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB


class JSONB(TypeDecorator):
    """
    Platform-agnostic JSONB type.

    Uses JSONB on PostgreSQL and Text with JSON serialization on other databases.
    This allows tests to run with SQLite while production uses PostgreSQL JSONB.
    Array-valued columns (tags, category ids, image URLs) use it as well.
    """
    impl = Text
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(PG_JSONB())
        else:
            return dialect.type_descriptor(Text())

    def process_bind_param(self, value, dialect):
        if value is not None:
            if dialect.name != 'postgresql':
                return json.dumps(value, default=str)
        return value

    def process_result_value(self, value, dialect):
        if value is not None:
            if dialect.name != 'postgresql' and isinstance(value, str):
                return json.loads(value)
        return value


class UTCDateTime(TypeDecorator):
    """
    Timezone-aware datetime on every backend.

    SQLite hands back naive values; they are stored in UTC, so tag them.
    """
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_result_value(self, value, dialect):
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass
