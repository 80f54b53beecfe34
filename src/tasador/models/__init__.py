"""
Modelos de datos del sistema.

- Listings: ScrapedListing (salida del scraper), ListingRecord, PriceHistoryEntry
- Transacciones: TransactionInput, TransactionRecord
- Agregados: PriceSnapshot, TrendIndicator, RefreshLogEntry
- Ciudades: CityInput, CityRecord
- Estadísticas: ListingStats, TransactionStats, CityStats, CityCard
"""

from tasador.models.city import CityInput, CityRecord, slugify
from tasador.models.listing import (
    ListingRecord,
    Market,
    MarketType,
    PriceHistoryEntry,
    ScrapedListing,
)
from tasador.models.snapshot import (
    DataType,
    PriceSnapshot,
    RefreshErrorKind,
    RefreshLogEntry,
    RefreshStatus,
    TrendDirection,
    TrendIndicator,
)
from tasador.models.stats import CityCard, CityStats, ListingStats, TransactionStats
from tasador.models.transaction import TransactionInput, TransactionRecord

__all__ = [
    # Ciudades
    "CityInput",
    "CityRecord",
    "slugify",
    # Listings
    "ListingRecord",
    "Market",
    "MarketType",
    "PriceHistoryEntry",
    "ScrapedListing",
    # Transacciones
    "TransactionInput",
    "TransactionRecord",
    # Agregados
    "DataType",
    "PriceSnapshot",
    "RefreshErrorKind",
    "RefreshLogEntry",
    "RefreshStatus",
    "TrendDirection",
    "TrendIndicator",
    # Estadísticas
    "CityCard",
    "CityStats",
    "ListingStats",
    "TransactionStats",
]
