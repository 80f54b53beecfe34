"""
Fachada del motor de precios.

PriceTracker orquesta el ciclo de refresh (fetch -> extracción ->
reconciliación -> snapshot) y expone las lecturas y las operaciones
sobre transacciones y ciudades. Cada operación que escribe es un único
load-modify-save sobre el store (ver tasador.database.store).
"""

import calendar
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

import structlog

from tasador.config import DEFAULT_CITIES, DEFAULT_TRANSACTIONS, Settings, get_settings
from tasador.database import (
    BaseRecordStore,
    CityRepository,
    ListingRepository,
    RefreshLogRepository,
    SnapshotRepository,
    StoreDocument,
    StoreError,
    StoreErrorKind,
    TransactionRepository,
)
from tasador.models import (
    CityCard,
    CityInput,
    CityRecord,
    CityStats,
    DataType,
    ListingRecord,
    ListingStats,
    Market,
    MarketType,
    PriceSnapshot,
    RefreshErrorKind,
    RefreshLogEntry,
    RefreshStatus,
    TransactionInput,
    TransactionRecord,
    TransactionStats,
    TrendIndicator,
)
from tasador.scrapers import BaseScraper, OtodomScraper
from tasador.tracking.aggregator import Aggregator, TrendCalculator, summarize_prices
from tasador.tracking.reconciler import Reconciler

logger = structlog.get_logger()

REFRESH_HINT = (
    "otodom puede estar bloqueando pedidos automáticos. "
    "Probá de nuevo más tarde o cargá los datos a mano."
)


@dataclass
class RefreshOutcome:
    """Resultado de un refresh. Las fallas vuelven como dato, no como excepción."""

    success: bool
    total_found: int = 0
    scraped: int = 0
    new: int = 0
    updated: int = 0
    deactivated: int = 0
    error_kind: Optional[RefreshErrorKind] = None
    error: Optional[str] = None
    message: Optional[str] = None
    hint: Optional[str] = None

    @classmethod
    def failure(cls, kind: RefreshErrorKind, error: str, hint: Optional[str] = REFRESH_HINT):
        return cls(
            success=False,
            error_kind=kind,
            error=error,
            message=f"No se pudieron obtener datos de otodom. {error}",
            hint=hint,
        )

    def to_dict(self) -> dict:
        if self.success:
            return {
                "success": True,
                "totalFound": self.total_found,
                "scraped": self.scraped,
                "new": self.new,
                "updated": self.updated,
                "deactivated": self.deactivated,
            }
        return {
            "success": False,
            "errorKind": self.error_kind.value if self.error_kind else None,
            "error": self.error,
            "message": self.message,
            "hint": self.hint,
        }


def _months_ago(day: date, months: int) -> date:
    month_index = day.year * 12 + day.month - 1 - months
    year, month = divmod(month_index, 12)
    month += 1
    return date(year, month, min(day.day, calendar.monthrange(year, month)[1]))


def _seed_transaction(city_id: int, row: tuple) -> TransactionInput:
    transaction_date, price, area, price_per_m2, address, market_type, notes = row
    return TransactionInput(
        city_id=city_id,
        transaction_date=transaction_date,
        price=price,
        area=area,
        price_per_m2=price_per_m2,
        address=address,
        market_type=market_type,
        source="RCN",
        notes=notes,
    )


class PriceTracker:
    """
    Motor de seguimiento de precios de departamentos.

    Uso:
        tracker = PriceTracker(get_record_store())
        outcome = await tracker.refresh("elk", Market.PRIMARY)
    """

    def __init__(
        self,
        store: BaseRecordStore,
        scraper_factory: Optional[Callable[[], BaseScraper]] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], date] = date.today,
    ):
        self.store = store
        self.settings = settings or get_settings()
        self.scraper_factory = scraper_factory or OtodomScraper
        self.clock = clock
        self.reconciler = Reconciler()
        self.aggregator = Aggregator()
        self.trend_calculator = TrendCalculator(
            window=self.settings.trend_window,
            threshold=self.settings.trend_threshold_percent,
        )

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    async def refresh(self, city_slug: str, market: Optional[Market] = None) -> RefreshOutcome:
        """
        Ejecuta un ciclo completo de refresh para una ciudad.

        Las fallas de red, de extracción o una ciudad desconocida vuelven
        como RefreshOutcome(success=False); los listings activos no se
        tocan. Sólo los errores del store (StoreError) se propagan.
        """
        market = market or Market.parse(self.settings.default_market, Market.PRIMARY)

        city = CityRepository(self.store.read()).get_by_slug(city_slug)
        if city is None:
            logger.warning("Ciudad desconocida", city=city_slug)
            return RefreshOutcome.failure(
                RefreshErrorKind.UNKNOWN_CITY,
                f"Ciudad '{city_slug}' no encontrada",
                hint=None,
            )

        logger.info("Iniciando refresh", city=city.slug, market=market.value)
        async with self.scraper_factory() as scraper:
            result = await scraper.scrape(city.voivodeship_slug, city.otodom_city_slug, market)

        if not result.success:
            kind = RefreshErrorKind.NETWORK if result.network_error else RefreshErrorKind.SCHEMA_DRIFT
            with self.store.transaction() as document:
                RefreshLogRepository(document).create(
                    city.id, 0, RefreshStatus.ERROR, result.error
                )
            logger.warning("Refresh fallido", city=city.slug, kind=kind.value, error=result.error)
            return RefreshOutcome.failure(kind, result.error or "Error desconocido")

        today = self.clock()
        with self.store.transaction() as document:
            counts = self.reconciler.reconcile(document, city.id, market, result.records, today)
            self.aggregator.recompute_listing_snapshot(document, city.id, today)
            RefreshLogRepository(document).create(
                city.id, len(result.records), RefreshStatus.SUCCESS
            )

        outcome = RefreshOutcome(
            success=True,
            total_found=result.total_found,
            scraped=len(result.records),
            new=counts.new,
            updated=counts.updated,
            deactivated=counts.deactivated,
        )
        logger.info(
            "Refresh completado",
            city=city.slug,
            total_found=outcome.total_found,
            scraped=outcome.scraped,
            new=outcome.new,
            updated=outcome.updated,
            deactivated=outcome.deactivated,
        )
        return outcome

    # ------------------------------------------------------------------
    # Ciudades
    # ------------------------------------------------------------------

    def list_cities(self) -> list[CityRecord]:
        return CityRepository(self.store.read()).list_all()

    def get_city(self, slug: str) -> Optional[CityRecord]:
        return CityRepository(self.store.read()).get_by_slug(slug)

    def add_city(self, data: CityInput) -> CityRecord:
        """Raises StoreError(DUPLICATE_KEY) si el slug ya existe."""
        with self.store.transaction() as document:
            return CityRepository(document).create(data)

    def remove_city(self, slug: str) -> bool:
        with self.store.transaction() as document:
            return CityRepository(document).delete(slug)

    def seed_cities(self, with_transactions: bool = True) -> list[CityRecord]:
        """
        Da de alta las ciudades por defecto que falten.

        Args:
            with_transactions: Cargar también las transacciones RCN de
                referencia de cada ciudad creada y sus snapshots

        Returns:
            Ciudades creadas (vacía si ya existían todas)
        """
        with self.store.transaction() as document:
            repo = CityRepository(document)
            transactions = TransactionRepository(document)
            created = []
            for data in DEFAULT_CITIES:
                if repo.get_by_slug(data["slug"]) is not None:
                    continue
                city = repo.create(CityInput(**data))
                created.append(city)
                if not with_transactions:
                    continue
                for row in DEFAULT_TRANSACTIONS.get(city.slug, []):
                    transactions.create(_seed_transaction(city.id, row))
                self.aggregator.recompute_transaction_snapshots(document, city.id)
        logger.info("Ciudades por defecto cargadas", created=[c.slug for c in created])
        return created

    # ------------------------------------------------------------------
    # Lecturas
    # ------------------------------------------------------------------

    def get_listings(
        self, city_id: int, market_type: Optional[MarketType] = None
    ) -> list[ListingRecord]:
        """Listings activos ordenados por precio por m² ascendente."""
        listings = ListingRepository(self.store.read()).for_city(
            city_id, active_only=True, market_type=market_type
        )
        return sorted(listings, key=lambda l: (l.price_per_m2, l.id))

    def get_listing_stats(self, city_id: int) -> ListingStats:
        return self._listing_stats(self.store.read(), city_id)

    def get_transaction_stats(self, city_id: int) -> TransactionStats:
        return self._transaction_stats(self.store.read(), city_id)

    def get_transactions(self, city_id: int, limit: Optional[int] = None) -> list[TransactionRecord]:
        return TransactionRepository(self.store.read()).for_city(city_id, limit)

    def get_price_snapshots(
        self, city_id: int, data_type: Optional[DataType] = None
    ) -> list[PriceSnapshot]:
        return SnapshotRepository(self.store.read()).for_city(city_id, data_type)

    def get_trend(self, city_id: int) -> TrendIndicator:
        return self.trend_calculator.trend(self.store.read(), city_id)

    def get_last_refresh(self, city_id: int) -> Optional[RefreshLogEntry]:
        return RefreshLogRepository(self.store.read()).last_for_city(city_id)

    def get_city_stats(self, city: CityRecord) -> CityStats:
        """Estadísticas, tendencia e historial de una ciudad en una sola lectura."""
        document = self.store.read()
        last = RefreshLogRepository(document).last_for_city(city.id)
        return CityStats(
            city=city,
            listings=self._listing_stats(document, city.id),
            transactions=self._transaction_stats(document, city.id),
            trend=self.trend_calculator.trend(document, city.id),
            price_history=SnapshotRepository(document).for_city(city.id),
            last_refreshed=last.refreshed_at if last else None,
        )

    def get_city_cards(self) -> list[CityCard]:
        """Resumen de todas las ciudades para la vista general."""
        document = self.store.read()
        cards = []
        for city in CityRepository(document).list_all():
            listing_stats = self._listing_stats(document, city.id)
            transaction_stats = self._transaction_stats(document, city.id)
            last = RefreshLogRepository(document).last_for_city(city.id)
            cards.append(
                CityCard(
                    city=city,
                    active_listings=listing_stats.total,
                    avg_listing_price_per_m2=listing_stats.avg_price_per_m2,
                    transactions=transaction_stats.total,
                    avg_transaction_price_per_m2=transaction_stats.avg_price_per_m2,
                    trend=self.trend_calculator.trend(document, city.id),
                    last_refreshed=last.refreshed_at if last else None,
                )
            )
        return cards

    def _listing_stats(self, document: StoreDocument, city_id: int) -> ListingStats:
        active = ListingRepository(document).for_city(city_id, active_only=True)
        summary = summarize_prices(l.price_per_m2 for l in active)
        if summary is None:
            return ListingStats()

        return ListingStats(
            total=summary.count,
            primary=sum(1 for l in active if l.market_type == MarketType.PRIMARY),
            secondary=sum(1 for l in active if l.market_type == MarketType.SECONDARY),
            avg_price_per_m2=summary.avg,
            median_price_per_m2=summary.median,
            min_price_per_m2=summary.min,
            max_price_per_m2=summary.max,
            avg_price=round(sum(l.price for l in active) / len(active), 2),
        )

    def _transaction_stats(self, document: StoreDocument, city_id: int) -> TransactionStats:
        transactions = TransactionRepository(document).for_city(city_id)
        summary = summarize_prices(t.price_per_m2 for t in transactions)
        if summary is None:
            return TransactionStats()

        cutoff = _months_ago(self.clock(), 3)
        return TransactionStats(
            total=summary.count,
            avg_price_per_m2=summary.avg,
            median_price_per_m2=summary.median,
            last_3_months=sum(1 for t in transactions if t.transaction_date >= cutoff),
        )

    # ------------------------------------------------------------------
    # Transacciones
    # ------------------------------------------------------------------

    def add_transaction(self, data: TransactionInput) -> TransactionRecord:
        """Registra una transacción y recalcula los snapshots de su ciudad."""
        with self.store.transaction() as document:
            self._require_city(document, data.city_id)
            transaction = TransactionRepository(document).create(data)
            self.aggregator.recompute_transaction_snapshots(document, data.city_id)
        logger.info("Transacción registrada", transaction_id=transaction.id, city_id=data.city_id)
        return transaction

    def add_transactions_bulk(self, inputs: list[TransactionInput]) -> int:
        """
        Importa varias transacciones en una sola escritura.

        Returns:
            Cantidad importada
        """
        with self.store.transaction() as document:
            city_ids = {data.city_id for data in inputs}
            for city_id in city_ids:
                self._require_city(document, city_id)

            repo = TransactionRepository(document)
            for data in inputs:
                repo.create(data, default_source="import")
            for city_id in sorted(city_ids):
                self.aggregator.recompute_transaction_snapshots(document, city_id)

        logger.info("Transacciones importadas", count=len(inputs), cities=len(city_ids))
        return len(inputs)

    def delete_transaction(self, transaction_id: int) -> bool:
        """Borra una transacción y recalcula su ciudad. False si no existía."""
        with self.store.transaction() as document:
            removed = TransactionRepository(document).delete(transaction_id)
            if removed is None:
                return False
            self.aggregator.recompute_transaction_snapshots(document, removed.city_id)
        logger.info("Transacción eliminada", transaction_id=transaction_id)
        return True

    @staticmethod
    def _require_city(document: StoreDocument, city_id: int) -> None:
        if CityRepository(document).get_by_id(city_id) is None:
            raise StoreError(StoreErrorKind.NOT_FOUND, f"Ciudad {city_id} no encontrada")
