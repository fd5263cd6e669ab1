from .base import Base
from .session import (
    Database,
    get_database,
    get_db,
    transaction,
)

__all__ = [
    "Base",
    "Database",
    "get_database",
    "get_db",
    "transaction",
]
