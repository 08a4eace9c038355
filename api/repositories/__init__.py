"""Repository layer for database operations.

Repositories encapsulate all database queries, keeping services free of SQL.
This separation provides:
- Single source of truth for database operations
- Easier testing (repositories can be mocked)
- Reusable queries across multiple services
"""

from repositories.inbox_repository import (
    InboxRepository,
    decode_details,
    encode_details,
)
from repositories.productivity_repository import ProductivityRepository
from repositories.utils import log_slow_query

__all__ = [
    "InboxRepository",
    "ProductivityRepository",
    "decode_details",
    "encode_details",
    "log_slow_query",
]
