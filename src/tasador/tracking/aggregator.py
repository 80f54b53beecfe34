"""
Agregación mensual y tendencia.

- Aggregator: recalcula los PriceSnapshot de una ciudad, para la serie
  de listings (mes actual) o la de transacciones (rebuild completo).
- TrendCalculator: dirección y porcentaje de cambio a partir de los
  últimos snapshots de transacciones.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional

import structlog

from tasador.database import (
    ListingRepository,
    SnapshotRepository,
    StoreDocument,
    TransactionRepository,
)
from tasador.models import DataType, PriceSnapshot, TrendDirection, TrendIndicator

logger = structlog.get_logger()


@dataclass
class PriceSummary:
    """Estadísticas de una serie de precios por m²."""

    avg: float
    median: float
    min: float
    max: float
    count: int


def summarize_prices(values: Iterable[float]) -> Optional[PriceSummary]:
    """
    Media, mediana, mínimo y máximo de una serie, redondeados a 2 decimales.

    Returns:
        PriceSummary o None si la serie está vacía
    """
    series = sorted(values)
    if not series:
        return None

    count = len(series)
    mid = count // 2
    if count % 2:
        median = series[mid]
    else:
        median = (series[mid - 1] + series[mid]) / 2

    return PriceSummary(
        avg=round(sum(series) / count, 2),
        median=round(median, 2),
        min=round(series[0], 2),
        max=round(series[-1], 2),
        count=count,
    )


def _snapshot(city_id: int, month: str, data_type: DataType, summary: PriceSummary) -> PriceSnapshot:
    # id=0 es provisorio: SnapshotRepository.upsert asigna el definitivo
    return PriceSnapshot(
        id=0,
        city_id=city_id,
        month=month,
        data_type=data_type,
        avg_price_per_m2=summary.avg,
        median_price_per_m2=summary.median,
        min_price_per_m2=summary.min,
        max_price_per_m2=summary.max,
        listing_count=summary.count,
    )


class Aggregator:
    """Recalcula snapshots mensuales sobre el documento del store."""

    def recompute_listing_snapshot(
        self, document: StoreDocument, city_id: int, today: date
    ) -> Optional[PriceSnapshot]:
        """
        Snapshot del mes actual con los listings activos de la ciudad.
        Si no hay listings activos no se toca nada.
        """
        active = ListingRepository(document).for_city(city_id, active_only=True)
        summary = summarize_prices(l.price_per_m2 for l in active)
        if summary is None:
            logger.info("Sin listings activos, no se genera snapshot", city_id=city_id)
            return None

        month = today.strftime("%Y-%m")
        snapshot = SnapshotRepository(document).upsert(
            _snapshot(city_id, month, DataType.LISTING, summary)
        )
        logger.info(
            "Snapshot de listings actualizado",
            city_id=city_id,
            month=month,
            avg=summary.avg,
            count=summary.count,
        )
        return snapshot

    def recompute_transaction_snapshots(
        self, document: StoreDocument, city_id: int
    ) -> list[PriceSnapshot]:
        """
        Rebuild completo de la serie de transacciones: un snapshot por mes
        con transacciones, y se borran los de meses que quedaron vacíos.
        """
        by_month: dict[str, list[float]] = defaultdict(list)
        for transaction in TransactionRepository(document).for_city(city_id):
            by_month[transaction.month].append(transaction.price_per_m2)

        snapshots = SnapshotRepository(document)
        result = []
        for month in sorted(by_month):
            summary = summarize_prices(by_month[month])
            result.append(
                snapshots.upsert(_snapshot(city_id, month, DataType.TRANSACTION, summary))
            )

        removed = snapshots.delete_except(city_id, DataType.TRANSACTION, set(by_month))
        logger.info(
            "Snapshots de transacciones recalculados",
            city_id=city_id,
            months=len(result),
            removed=removed,
        )
        return result


class TrendCalculator:
    """
    Tendencia de precios de transacciones.

    Compara el snapshot más viejo contra el más reciente dentro de la
    ventana de los últimos `window` meses con datos.
    """

    def __init__(self, window: int = 3, threshold: float = 1.0):
        self.window = window
        self.threshold = threshold

    def trend(self, document: StoreDocument, city_id: int) -> TrendIndicator:
        recent = SnapshotRepository(document).latest(city_id, DataType.TRANSACTION, self.window)
        return self.from_snapshots(recent)

    def from_snapshots(self, recent: list[PriceSnapshot]) -> TrendIndicator:
        """`recent` ordenado de mes descendente."""
        if len(recent) < 2:
            return TrendIndicator()

        latest, oldest = recent[0], recent[-1]
        if oldest.avg_price_per_m2 <= 0:
            return TrendIndicator()

        change = (latest.avg_price_per_m2 - oldest.avg_price_per_m2) / oldest.avg_price_per_m2 * 100
        if change > self.threshold:
            direction = TrendDirection.UP
        elif change < -self.threshold:
            direction = TrendDirection.DOWN
        else:
            direction = TrendDirection.STABLE

        return TrendIndicator(direction=direction, change_percent=round(change, 1))
