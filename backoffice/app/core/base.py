"""
SQLAlchemy Base class for all models.

Kept apart from database.py so models can be imported (by Alembic and the
test suite) without creating the production engine.
"""
from sqlalchemy.ext.asyncio import AsyncAttrs
from sqlalchemy.orm import DeclarativeBase


class Base(AsyncAttrs, DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass
