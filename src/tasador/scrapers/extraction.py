"""
Extracción de listings desde la página de resultados de otodom.

otodom cambia la estructura de la página sin aviso, así que la extracción
es una cadena ordenada de estrategias. Se acepta la primera que produce
al menos un listing válido:

1. EmbeddedStateStrategy: JSON de <script id="__NEXT_DATA__">, probando
   las rutas conocidas del listado (actual, legacy e initialProps).
2. InlineFragmentStrategy: cualquier otro <script> con un fragmento JSON
   que contenga "searchAds".
3. MarkupStrategy: tarjetas del HTML renderizado, parseando texto.

Los items individuales con errores se saltean sin abortar el lote.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional
from urllib.parse import urljoin

import structlog
from bs4 import BeautifulSoup, Tag
from pydantic import ValidationError

from tasador.models import ScrapedListing
from tasador.scrapers.normalizer import (
    DEFAULT_BASE_URL,
    normalize_candidate,
    parse_polish_number,
)

logger = structlog.get_logger()

SCHEMA_DRIFT_MESSAGE = (
    "No se encontraron anuncios en la página "
    "(posible cambio de estructura de otodom)"
)


@dataclass
class StrategyResult:
    """Items crudos encontrados por una estrategia."""

    items: list[dict] = field(default_factory=list)
    total_found: int = 0
    error: Optional[str] = None


@dataclass
class ExtractResult:
    """Resultado de la extracción de una página."""

    success: bool
    records: list[ScrapedListing] = field(default_factory=list)
    total_found: int = 0
    strategy: Optional[str] = None
    skipped: int = 0
    error: Optional[str] = None


def _dig(data: Any, path: tuple[str, ...]) -> Any:
    node = data
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _items_from_node(node: Any) -> Optional[StrategyResult]:
    """Lee {items: [...], pagination: {totalResults}} si el nodo lo tiene."""
    if not isinstance(node, dict):
        return None
    items = node.get("items")
    if not isinstance(items, list) or not items:
        return None

    dict_items = [item for item in items if isinstance(item, dict)]
    pagination = node.get("pagination")
    total = pagination.get("totalResults") if isinstance(pagination, dict) else None
    if not isinstance(total, int) or isinstance(total, bool) or total <= 0:
        total = len(dict_items)
    return StrategyResult(items=dict_items, total_found=total)


class ExtractionStrategy(ABC):
    """Estrategia de extracción. Nunca lanza: devuelve un StrategyResult."""

    name: str = "base"

    @abstractmethod
    def find_items(self, soup: BeautifulSoup) -> StrategyResult:
        """Busca items candidatos en la página parseada."""


class EmbeddedStateStrategy(ExtractionStrategy):
    """Estado de Next.js embebido en <script id="__NEXT_DATA__">."""

    name = "embedded_state"

    ITEM_PATHS = (
        ("props", "pageProps", "data", "searchAds"),
        ("props", "pageProps", "ads"),
        ("props", "pageProps", "initialProps", "data", "searchAds"),
    )

    def find_items(self, soup: BeautifulSoup) -> StrategyResult:
        script = soup.find("script", id="__NEXT_DATA__")
        if not script or not script.string:
            return StrategyResult(error="sin __NEXT_DATA__")

        try:
            data = json.loads(script.string)
        except json.JSONDecodeError as e:
            return StrategyResult(error=f"__NEXT_DATA__ no es JSON válido: {e}")

        if not isinstance(_dig(data, ("props", "pageProps")), dict):
            return StrategyResult(error="sin pageProps en __NEXT_DATA__")

        for path in self.ITEM_PATHS:
            found = _items_from_node(_dig(data, path))
            if found:
                logger.debug("Items en __NEXT_DATA__", path=".".join(path), count=len(found.items))
                return found

        return StrategyResult(error="sin items en __NEXT_DATA__")


class InlineFragmentStrategy(ExtractionStrategy):
    """Fragmentos JSON con "searchAds" en otros <script>."""

    name = "inline_fragment"

    MARKER = '"searchAds"'
    MAX_DEPTH = 6

    def find_items(self, soup: BeautifulSoup) -> StrategyResult:
        for script in soup.find_all("script"):
            if script.get("id") == "__NEXT_DATA__":
                continue
            content = script.string or ""
            if self.MARKER not in content:
                continue

            start, end = content.find("{"), content.rfind("}")
            if start < 0 or end <= start:
                continue
            try:
                data = json.loads(content[start : end + 1])
            except json.JSONDecodeError:
                continue

            found = _items_from_node(self._find_search_ads(data, self.MAX_DEPTH))
            if found:
                return found

        return StrategyResult(error="sin fragmentos con searchAds")

    def _find_search_ads(self, data: Any, depth: int) -> Any:
        if depth < 0 or not isinstance(data, dict):
            return None
        if "searchAds" in data:
            return data["searchAds"]
        for value in data.values():
            found = self._find_search_ads(value, depth - 1)
            if found is not None:
                return found
        return None


class MarkupStrategy(ExtractionStrategy):
    """Tarjetas del HTML renderizado. Menos confiable: sólo título, precio, m² y habitaciones."""

    name = "markup"

    CARD_SELECTOR = (
        '[data-cy="listing-item"], [data-testid="listing-item"], article[data-featured-name]'
    )
    TITLE_SELECTOR = '[data-cy="listing-item-title"], h3, h2'
    PRICE_SELECTOR = '[data-cy="listing-item-price"], [aria-label*="Cena"]'

    def __init__(self, base_url: str = DEFAULT_BASE_URL):
        self.base_url = base_url

    def find_items(self, soup: BeautifulSoup) -> StrategyResult:
        items: list[dict] = []
        for card in soup.select(self.CARD_SELECTOR):
            try:
                item = self._parse_card(card)
            except (AttributeError, TypeError, ValueError) as e:
                logger.debug("Tarjeta ilegible", error=str(e))
                continue
            if item:
                items.append(item)

        if not items:
            return StrategyResult(error="sin tarjetas de anuncios en el HTML")
        return StrategyResult(items=items, total_found=len(items))

    def _parse_card(self, card: Tag) -> Optional[dict]:
        link = card.select_one('a[href*="/oferta/"]')
        href = (link.get("href") or "") if link else ""
        slug = href.split("?")[0].split("#")[0].rstrip("/").split("/")[-1]
        if not slug:
            return None

        title_el = card.select_one(self.TITLE_SELECTOR)
        price_el = card.select_one(self.PRICE_SELECTOR)

        return {
            "id": slug,
            "slug": slug,
            "title": title_el.get_text(" ", strip=True) if title_el else "Mieszkanie",
            "totalPrice": parse_polish_number(price_el.get_text(" ", strip=True)) if price_el else None,
            "areaInSquareMeters": parse_polish_number(self._text_with(card, "m²", exclude="zł")),
            "roomsNumber": parse_polish_number(self._text_with(card, "pok")),
            "url": urljoin(self.base_url, href),
        }

    def _text_with(self, card: Tag, needle: str, exclude: Optional[str] = None) -> Optional[str]:
        """Texto del primer elemento hoja que contiene `needle` (y no `exclude`)."""
        for el in card.find_all(["span", "dd", "li", "div", "p"]):
            if el.find(["span", "dd", "li", "div", "p"]):
                continue
            text = el.get_text(" ", strip=True)
            if needle in text and not (exclude and exclude in text):
                return text
        return None


class ListingExtractor:
    """Aplica la cadena de estrategias y normaliza los items."""

    def __init__(
        self,
        strategies: Optional[list[ExtractionStrategy]] = None,
        base_url: str = DEFAULT_BASE_URL,
    ):
        self.base_url = base_url
        self.strategies = strategies or [
            EmbeddedStateStrategy(),
            InlineFragmentStrategy(),
            MarkupStrategy(base_url),
        ]

    def extract(self, html: str) -> ExtractResult:
        """
        Extrae listings de la página.

        Returns:
            ExtractResult con success=False y un diagnóstico si ninguna
            estrategia produjo al menos un listing válido.
        """
        soup = BeautifulSoup(html or "", "html.parser")
        diagnostics: list[str] = []

        for strategy in self.strategies:
            try:
                found = strategy.find_items(soup)
            except Exception as e:
                logger.warning("Estrategia de extracción falló", strategy=strategy.name, error=str(e))
                diagnostics.append(f"{strategy.name}: {e}")
                continue

            if not found.items:
                diagnostics.append(f"{strategy.name}: {found.error or 'sin items'}")
                continue

            records, skipped = self._normalize_items(found.items)
            if not records:
                diagnostics.append(f"{strategy.name}: {len(found.items)} items sin datos válidos")
                continue

            logger.info(
                "Listings extraídos",
                strategy=strategy.name,
                records=len(records),
                skipped=skipped,
                total_found=found.total_found,
            )
            return ExtractResult(
                success=True,
                records=records,
                total_found=found.total_found or len(records),
                strategy=strategy.name,
                skipped=skipped,
            )

        error = f"{SCHEMA_DRIFT_MESSAGE}: {'; '.join(diagnostics)}"
        logger.warning("Extracción sin resultados", diagnostics=diagnostics)
        return ExtractResult(success=False, error=error)

    def _normalize_items(self, items: list[dict]) -> tuple[list[ScrapedListing], int]:
        records: list[ScrapedListing] = []
        skipped = 0
        for item in items:
            try:
                record = normalize_candidate(item, self.base_url)
            except (ValidationError, TypeError, ValueError, AttributeError) as e:
                logger.debug("Item descartado por error", error=str(e))
                record = None
            if record is None:
                skipped += 1
                continue
            records.append(record)
        return records, skipped
