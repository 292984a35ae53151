"""
Database Module
"""
from .connection import (
    build_session_factory,
    check_database_health,
    close_database,
    get_session_factory,
    init_database,
)
from .models import Base

__all__ = [
    "build_session_factory",
    "check_database_health",
    "close_database",
    "get_session_factory",
    "init_database",
    "Base",
]
