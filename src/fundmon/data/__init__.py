"""Fund observation persistence layer.

Provides the SQLite database manager and the typed record store.
"""

from fundmon.data.database import FundDatabase
from fundmon.data.store import FundRecordStore

__all__ = [
    "FundDatabase",
    "FundRecordStore",
]
