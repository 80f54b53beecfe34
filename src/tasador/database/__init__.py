"""
Módulo de base de datos.

Provee el store de registros (JSON, memoria o Supabase) y los repositorios.
"""

from tasador.database.store import (
    BaseRecordStore,
    JsonFileRecordStore,
    MemoryRecordStore,
    StoreDocument,
    StoreError,
    StoreErrorKind,
    get_record_store,
)
from tasador.database.repositories import (
    CityRepository,
    ListingRepository,
    PriceHistoryRepository,
    TransactionRepository,
    SnapshotRepository,
    RefreshLogRepository,
)

__all__ = [
    "BaseRecordStore",
    "JsonFileRecordStore",
    "MemoryRecordStore",
    "StoreDocument",
    "StoreError",
    "StoreErrorKind",
    "get_record_store",
    "CityRepository",
    "ListingRepository",
    "PriceHistoryRepository",
    "TransactionRepository",
    "SnapshotRepository",
    "RefreshLogRepository",
]
