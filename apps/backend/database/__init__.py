"""
Database Package
================
Engine/session management and the idempotent schema patcher.
"""

from .session import (
    build_engine,
    dispose_engine,
    get_engine,
    get_session,
    get_session_factory,
    ping_database,
)

__all__ = [
    "build_engine",
    "dispose_engine",
    "get_engine",
    "get_session",
    "get_session_factory",
    "ping_database",
]
