"""Database helpers."""

from sesame.db.base import Base
from sesame.db.engine import create_async_engine_from_settings
from sesame.db.session import get_db

__all__ = [
    "Base",
    "create_async_engine_from_settings",
    "get_db",
]
