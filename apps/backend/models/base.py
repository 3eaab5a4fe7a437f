"""
Declarative Base
================
Shared SQLAlchemy base for every AssetLogix table.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp (SQLite has no timezone support)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def row_to_dict(obj: Any, exclude: tuple = ()) -> Dict[str, Any]:
    """Column values of an ORM row as a plain dict."""
    return {
        column.name: getattr(obj, column.key)
        for column in obj.__table__.columns
        if column.name not in exclude
    }
