"""
Proyecciones de lectura: estadísticas por ciudad y tarjetas de resumen.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from tasador.models.city import CityRecord
from tasador.models.snapshot import PriceSnapshot, TrendIndicator


class ListingStats(BaseModel):
    """Estadísticas de los listings activos de una ciudad."""

    total: int = 0
    primary: int = 0
    secondary: int = 0
    avg_price_per_m2: float = 0.0
    median_price_per_m2: float = 0.0
    min_price_per_m2: float = 0.0
    max_price_per_m2: float = 0.0
    avg_price: float = Field(0.0, description="Precio total promedio en PLN")


class TransactionStats(BaseModel):
    """Estadísticas de las transacciones de una ciudad."""

    total: int = 0
    avg_price_per_m2: float = 0.0
    median_price_per_m2: float = 0.0
    last_3_months: int = Field(0, description="Transacciones de los últimos 3 meses")


class CityStats(BaseModel):
    """Vista completa de una ciudad."""

    city: CityRecord
    listings: ListingStats
    transactions: TransactionStats
    trend: TrendIndicator
    price_history: list[PriceSnapshot] = Field(default_factory=list)
    last_refreshed: Optional[datetime] = None


class CityCard(BaseModel):
    """Fila del resumen general de ciudades."""

    city: CityRecord
    active_listings: int = 0
    avg_listing_price_per_m2: float = 0.0
    transactions: int = 0
    avg_transaction_price_per_m2: float = 0.0
    trend: TrendIndicator = Field(default_factory=TrendIndicator)
    last_refreshed: Optional[datetime] = None
