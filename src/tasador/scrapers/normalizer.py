"""
Normalización de candidatos de otodom.

Convierte un item crudo (dict del JSON embebido, o el dict armado a partir
del HTML) en un ScrapedListing. Los items sin precio o superficie
positivos se descartan devolviendo None.
"""

import re
from typing import Any, Optional

from tasador.models import MarketType, ScrapedListing

DEFAULT_BASE_URL = "https://www.otodom.pl"

# otodom expone la cantidad de habitaciones como enum en algunas versiones
ROOM_WORDS = {
    "ONE": 1,
    "TWO": 2,
    "THREE": 3,
    "FOUR": 4,
    "FIVE": 5,
    "SIX": 6,
    "SEVEN": 7,
    "EIGHT": 8,
    "NINE": 9,
    "TEN": 10,
    "MORE": 10,
}

# "350 000,50 zł" / "52,5 m²" / "6 500 zł/m²" / "1.250.000 zł"
_NUMBER_RE = re.compile(r"\d(?:[\d \u00a0\u202f]|\.(?=\d))*(?:,\d+)?")


def parse_polish_number(text: Optional[str]) -> Optional[float]:
    """
    Parsea un número en formato polaco: miles separados por espacio
    (o por punto), decimales con coma. Un único punto sin coma se toma
    como decimal ("52.5"). Devuelve None si no hay número.
    """
    if not text:
        return None
    match = _NUMBER_RE.search(text)
    if not match:
        return None
    cleaned = re.sub(r"[ \u00a0\u202f]", "", match.group(0))
    if "," in cleaned or cleaned.count(".") > 1:
        cleaned = cleaned.replace(".", "")
    cleaned = cleaned.replace(",", ".")
    try:
        return float(cleaned)
    except ValueError:
        return None


def _number(value: Any) -> Optional[float]:
    """Número a partir de int/float, {'value': x} o string numérico."""
    if isinstance(value, dict):
        value = value.get("value")
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        return parse_polish_number(value)
    return None


def _integer(value: Any) -> Optional[int]:
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if text.upper() in ROOM_WORDS:
            return ROOM_WORDS[text.upper()]
        match = re.search(r"-?\d+", text)
        return int(match.group(0)) if match else None
    return None


def _first_number(candidate: dict, *keys: str) -> Optional[float]:
    for key in keys:
        value = _number(candidate.get(key))
        if value is not None:
            return value
    return None


def _first_integer(candidate: dict, *keys: str) -> Optional[int]:
    for key in keys:
        value = _integer(candidate.get(key))
        if value is not None:
            return value
    return None


def _developer(candidate: dict) -> Optional[str]:
    agency = candidate.get("agency")
    if isinstance(agency, dict):
        name = agency.get("name")
        if isinstance(name, str) and name.strip():
            return name.strip()
    return None


def _address(candidate: dict) -> Optional[str]:
    location = candidate.get("location")
    if not isinstance(location, dict):
        return None
    address = location.get("address")
    if not isinstance(address, dict):
        return None

    parts = []
    for key in ("street", "district"):
        node = address.get(key)
        name = node.get("name") if isinstance(node, dict) else None
        if isinstance(name, str) and name.strip():
            parts.append(name.strip())
    return ", ".join(parts) or None


def _market_type(candidate: dict) -> Optional[MarketType]:
    market = candidate.get("market")
    if isinstance(market, str):
        lowered = market.strip().lower()
        if lowered in ("primary", "secondary"):
            return MarketType(lowered)
    return None


def build_listing_url(slug: str, base_url: str = DEFAULT_BASE_URL) -> str:
    return f"{base_url.rstrip('/')}/pl/oferta/{slug}"


def normalize_candidate(
    candidate: dict, base_url: str = DEFAULT_BASE_URL
) -> Optional[ScrapedListing]:
    """
    Convierte un candidato en ScrapedListing.

    Returns:
        ScrapedListing o None si el candidato no tiene ID, precio
        o superficie positivos.
    """
    external_id = candidate.get("id") or candidate.get("slug")
    if external_id is None or str(external_id).strip() == "":
        return None
    external_id = str(external_id).strip()

    price = _first_number(candidate, "totalPrice", "price")
    area = _first_number(candidate, "areaInSquareMeters", "area")
    if not price or not area or price <= 0 or area <= 0:
        return None

    price_per_m2 = _first_number(candidate, "pricePerSquareMeter")
    if not price_per_m2 or price_per_m2 <= 0:
        price_per_m2 = price / area

    url = candidate.get("url")
    if not isinstance(url, str) or not url.startswith("http"):
        url = build_listing_url(str(candidate.get("slug") or external_id), base_url)

    title = candidate.get("title")

    return ScrapedListing(
        external_id=external_id,
        title=str(title).strip() if title else "",
        price=price,
        area=round(area, 2),
        price_per_m2=round(price_per_m2, 2),
        rooms=_first_integer(candidate, "roomsNumber", "rooms"),
        floor=_first_integer(candidate, "floor", "floorNumber"),
        developer=_developer(candidate),
        address=_address(candidate),
        url=url,
        market_type=_market_type(candidate),
    )
