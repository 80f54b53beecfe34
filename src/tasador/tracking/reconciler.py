"""
Reconciliación de listings.

Funde un lote de listings recién scrapeados con los persistidos de una
ciudad: upsert con historial de precios y, después del lote completo,
desactivación de los que ya no aparecen en el alcance del refresh.
"""

from dataclasses import dataclass
from datetime import date
from typing import Iterable

import structlog

from tasador.database import (
    ListingRepository,
    PriceHistoryRepository,
    StoreDocument,
)
from tasador.models import Market, MarketType, ScrapedListing

logger = structlog.get_logger()


@dataclass
class ReconcileResult:
    """Conteos de una reconciliación."""

    new: int = 0
    updated: int = 0
    deactivated: int = 0


class Reconciler:
    """
    Reconciliador de un lote contra el documento del store.

    Flujo:
    1. Para cada listing del lote, buscar por (city_id, external_id)
       a. Existe: si cambió el precio, agregar historial; sobrescribir campos
          (incluido el mercado, salvo en un refresh ALL sin dato del anuncio)
       b. No existe: crear con first_seen = last_seen = hoy y sembrar historial
    2. Desactivar los activos del alcance cuyo external_id no vino en el lote

    No tiene camino de error propio: asume que el lote ya fue validado.
    """

    def reconcile(
        self,
        document: StoreDocument,
        city_id: int,
        market: Market,
        batch: Iterable[ScrapedListing],
        today: date,
    ) -> ReconcileResult:
        listings = ListingRepository(document)
        history = PriceHistoryRepository(document)
        result = ReconcileResult()
        seen_ids: set[str] = set()

        for scraped in batch:
            seen_ids.add(scraped.external_id)
            existing = listings.get_by_external_id(city_id, scraped.external_id)

            if existing is None:
                listing = listings.create(
                    city_id, scraped, self._market_type_for(scraped, market), today
                )
                history.append(listing, today)
                result.new += 1
                continue

            price_changed = existing.price != scraped.price
            existing.apply_observation(scraped, today)
            observed_type = scraped.market_type or market.market_type
            if observed_type is not None:
                existing.market_type = observed_type
            if price_changed:
                history.append(existing, today)
                logger.debug(
                    "Cambio de precio",
                    external_id=existing.external_id,
                    price=existing.price,
                )
            result.updated += 1

        result.deactivated = self._deactivate_missing(listings, city_id, market, seen_ids)

        logger.info(
            "Reconciliación completada",
            city_id=city_id,
            market=market.value,
            new=result.new,
            updated=result.updated,
            deactivated=result.deactivated,
        )
        return result

    @staticmethod
    def _market_type_for(scraped: ScrapedListing, market: Market) -> MarketType:
        """Mercado del anuncio si lo informa; si no, el del alcance (ALL -> primary)."""
        if scraped.market_type is not None:
            return scraped.market_type
        return market.market_type or MarketType.PRIMARY

    @staticmethod
    def _deactivate_missing(
        listings: ListingRepository,
        city_id: int,
        market: Market,
        seen_ids: set[str],
    ) -> int:
        count = 0
        for listing in listings.for_city(city_id, active_only=True, market_type=market.market_type):
            if listing.external_id not in seen_ids:
                listing.active = False
                count += 1
        return count
