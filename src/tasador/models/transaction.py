"""
Transacciones cerradas (precios reales de venta).

Se cargan a mano o por importación; el motor sólo las consume
para recalcular los snapshots mensuales.
"""

from datetime import date, datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class TransactionInput(BaseModel):
    """Datos de entrada para registrar una transacción."""

    city_id: int
    transaction_date: date = Field(..., description="Fecha de la escritura")
    price: float = Field(..., gt=0, description="Precio total en PLN")
    area: float = Field(..., gt=0, description="Superficie en m²")
    price_per_m2: Optional[float] = Field(
        None, gt=0, description="Precio por m²; se deriva de price/area si falta"
    )
    address: Optional[str] = None
    property_type: str = Field(default="mieszkanie", description="Tipo de inmueble")
    market_type: str = Field(default="pierwotny", description="pierwotny o wtórny")
    source: Optional[str] = Field(None, description="manual, import, RCN...")
    notes: Optional[str] = None

    @model_validator(mode="after")
    def _derive_price_per_m2(self) -> "TransactionInput":
        if self.price_per_m2 is None:
            self.price_per_m2 = round(self.price / self.area, 2)
        return self


class TransactionRecord(BaseModel):
    """Transacción persistida."""

    id: int
    city_id: int
    transaction_date: date
    price: float
    area: float
    price_per_m2: float
    address: Optional[str] = None
    property_type: str = "mieszkanie"
    market_type: str = "pierwotny"
    source: str = "manual"
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def month(self) -> str:
        """Mes de la transacción en formato YYYY-MM."""
        return self.transaction_date.strftime("%Y-%m")
