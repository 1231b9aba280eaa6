"""Session persistence and bootstrap."""

from .bootstrap import SessionBootstrap, generate_user_id
from .store import (
    InMemorySessionStore,
    PostgresSessionStore,
    SessionStore,
    connection_factory_from_config,
    managed_connection,
)

__all__ = [
    "InMemorySessionStore",
    "PostgresSessionStore",
    "SessionBootstrap",
    "SessionStore",
    "connection_factory_from_config",
    "generate_user_id",
    "managed_connection",
]
