"""
Base class for all SQLAlchemy ORM models.
All table models inherit from Base; Alembic reads Base.metadata.
"""
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import Column, DateTime
from sqlalchemy.sql import func


class Base(DeclarativeBase):
    pass


class TimestampMixin:
    """
    Mixin to add created_at and updated_at columns to any model.
    Usage: class MyModel(Base, TimestampMixin):
    """
    created_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True),
        onupdate=func.now()
    )


def row_to_dict(row) -> dict:
    """Column values of an ORM instance, without SQLAlchemy internals."""
    return {k: v for k, v in row.__dict__.items() if not k.startswith('_')}


def sync_database_url(url: str) -> str:
    """
    The psycopg2 form of an application DATABASE_URL.
    The app runs on asyncpg; Alembic migrations run on a blocking driver.
    """
    for prefix in ("postgresql+asyncpg://", "postgresql://", "postgres://"):
        if url.startswith(prefix):
            return "postgresql+psycopg2://" + url[len(prefix):]
    return url
