"""
Agregados mensuales y auditoría de refresh.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class DataType(str, Enum):
    """Serie a la que pertenece un snapshot."""

    LISTING = "listing"
    TRANSACTION = "transaction"


class TrendDirection(str, Enum):
    UP = "up"
    DOWN = "down"
    STABLE = "stable"


class PriceSnapshot(BaseModel):
    """
    Resumen estadístico mensual del precio por m².

    Clave: (city_id, month, data_type). Se sobrescribe en el lugar
    cada vez que se recalcula.
    """

    id: int
    city_id: int
    month: str = Field(..., pattern=r"^\d{4}-\d{2}$", description="Mes YYYY-MM")
    data_type: DataType
    avg_price_per_m2: float
    median_price_per_m2: float
    min_price_per_m2: float
    max_price_per_m2: float
    listing_count: int = Field(..., ge=0, description="Tamaño de la muestra")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TrendIndicator(BaseModel):
    """Dirección y porcentaje de cambio de los últimos snapshots de transacciones."""

    direction: TrendDirection = TrendDirection.STABLE
    change_percent: float = 0.0


class RefreshStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class RefreshLogEntry(BaseModel):
    """Registro inmutable de un intento de refresh."""

    id: int
    city_id: int
    refreshed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    listings_found: int = 0
    status: RefreshStatus
    error_message: Optional[str] = None


class RefreshErrorKind(str, Enum):
    """Motivo de un refresh fallido."""

    NETWORK = "network"
    SCHEMA_DRIFT = "schema_drift"
    UNKNOWN_CITY = "unknown_city"
