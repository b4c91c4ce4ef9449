from .base import ClaimStore
from .sqlite_store import SQLiteClaimStore

__all__ = ["ClaimStore", "SQLiteClaimStore"]
