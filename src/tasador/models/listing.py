"""
Listings de otodom.

- ScrapedListing: anuncio normalizado tal como sale del extractor,
  todavía sin ciudad ni mercado asignado.
- ListingRecord: anuncio persistido, con ciclo de vida
  (first_seen / last_seen / active).
- PriceHistoryEntry: historial append-only de precios por listing.
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Market(str, Enum):
    """Filtro de mercado usado al pedir resultados al portal."""

    PRIMARY = "PRIMARY"
    SECONDARY = "SECONDARY"
    ALL = "ALL"

    @classmethod
    def parse(cls, value: Optional[str], default: Optional["Market"] = None) -> "Market":
        """Parsea un valor libre ('primary', 'ALL', ...) a Market."""
        if not value:
            if default is None:
                raise ValueError("Mercado vacío")
            return default
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise ValueError(f"Mercado inválido: {value}") from None

    @property
    def market_type(self) -> Optional["MarketType"]:
        """Tipo de mercado que cubre el filtro (None para ALL)."""
        if self is Market.PRIMARY:
            return MarketType.PRIMARY
        if self is Market.SECONDARY:
            return MarketType.SECONDARY
        return None


class MarketType(str, Enum):
    """Mercado de un listing: obra nueva (primary) o reventa (secondary)."""

    PRIMARY = "primary"
    SECONDARY = "secondary"


class ScrapedListing(BaseModel):
    """Anuncio canónico producido por el normalizador."""

    external_id: str = Field(..., min_length=1, description="ID estable del anuncio en otodom")
    title: str = Field(default="", description="Título del anuncio")
    price: float = Field(..., gt=0, description="Precio total en PLN")
    area: float = Field(..., gt=0, description="Superficie en m²")
    price_per_m2: float = Field(..., gt=0, description="Precio por m² (2 decimales)")
    rooms: Optional[int] = Field(None, description="Cantidad de habitaciones")
    floor: Optional[int] = Field(None, description="Piso")
    developer: Optional[str] = Field(None, description="Desarrolladora o inmobiliaria")
    address: Optional[str] = Field(None, description="Calle y distrito")
    url: Optional[str] = Field(None, description="URL del detalle del anuncio")
    market_type: Optional[MarketType] = Field(
        None, description="Mercado informado por el propio anuncio, si lo trae"
    )


class ListingRecord(BaseModel):
    """
    Listing persistido para una ciudad.

    Clave única: (city_id, external_id). Nunca se borra físicamente;
    cuando deja de aparecer en un refresh se marca active=False.
    """

    id: int = Field(..., description="ID interno")
    city_id: int = Field(..., description="FK a la ciudad")
    external_id: str = Field(..., description="ID del anuncio en otodom")

    title: str = Field(default="")
    price: float = Field(..., description="Precio total en PLN")
    area: float = Field(..., description="Superficie en m²")
    price_per_m2: float = Field(..., description="Precio por m²")
    rooms: Optional[int] = None
    floor: Optional[int] = None
    developer: Optional[str] = None
    address: Optional[str] = None
    url: Optional[str] = None
    market_type: MarketType = Field(..., description="primary o secondary")

    # Ciclo de vida
    first_seen: date = Field(..., description="Fecha de la primera observación")
    last_seen: date = Field(..., description="Fecha de la última observación")
    active: bool = Field(default=True, description="Visto en el último refresh de su alcance")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def apply_observation(self, scraped: ScrapedListing, seen_on: date) -> None:
        """Sobrescribe los campos mutables con una nueva observación."""
        self.title = scraped.title
        self.price = scraped.price
        self.area = scraped.area
        self.price_per_m2 = scraped.price_per_m2
        self.rooms = scraped.rooms
        self.floor = scraped.floor
        self.developer = scraped.developer
        self.address = scraped.address
        self.url = scraped.url
        self.last_seen = max(seen_on, self.first_seen)
        self.active = True


class PriceHistoryEntry(BaseModel):
    """Precio de un listing en una fecha. Append-only."""

    id: int
    listing_id: int = Field(..., description="FK al ListingRecord")
    price: float
    price_per_m2: float
    recorded_at: date = Field(..., description="Día en que se observó el precio")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
