"""Custom SQLAlchemy types and column helpers shared by all models"""
from datetime import datetime
import uuid

from sqlalchemy import TypeDecorator, String, JSON
from sqlalchemy.dialects.postgresql import JSONB


def generate_uuid():
    """Generate a UUID string"""
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores"""
    return datetime.utcnow()


class GUID(TypeDecorator):
    """Platform-independent GUID type that stores UUIDs as VARCHAR(36)"""
    impl = String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return value

    def process_result_value(self, value, dialect):
        if value is not None:
            return str(value)
        return value


# JSONB on PostgreSQL, plain JSON (TEXT) on SQLite
JSONType = JSON().with_variant(JSONB(), "postgresql")
