"""
Directorio de ciudades seguidas.
"""

import re
import unicodedata
from datetime import datetime, timezone

from pydantic import BaseModel, Field


def slugify(text: str) -> str:
    """'Ełk' -> 'elk', 'Biała Podlaska' -> 'biala-podlaska'."""
    lowered = text.lower().replace("ł", "l")
    normalized = unicodedata.normalize("NFKD", lowered)
    ascii_text = normalized.encode("ascii", "ignore").decode("ascii")
    return re.sub(r"[^a-z0-9]+", "-", ascii_text).strip("-")


class CityInput(BaseModel):
    """Datos para dar de alta una ciudad."""

    name: str = Field(..., min_length=1)
    voivodeship: str = Field(..., min_length=1, description="Voivodato")
    voivodeship_slug: str = Field(..., min_length=1, description="Segmento del voivodato en la URL de otodom")
    otodom_city_slug: str = Field(..., min_length=1, description="Segmento(s) de la ciudad en la URL de otodom")
    slug: str = Field(default="", description="Se deriva del nombre si viene vacío")

    def resolved_slug(self) -> str:
        return self.slug or slugify(self.name)


class CityRecord(BaseModel):
    """Ciudad persistida."""

    id: int
    name: str
    slug: str
    voivodeship: str
    voivodeship_slug: str
    otodom_city_slug: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
