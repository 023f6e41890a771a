"""Database engine, session management and ORM models."""

from podtrack.infrastructure.persistence.database.db_connection import (
    create_db_engine,
    create_session_factory,
    dispose_engine,
    get_engine,
    get_session_factory,
    init_db,
)
from podtrack.infrastructure.persistence.database.db_models import PodtrackDBBase

__all__ = [
    "PodtrackDBBase",
    "create_db_engine",
    "create_session_factory",
    "dispose_engine",
    "get_engine",
    "get_session_factory",
    "init_db",
]
