"""
Repositorios sobre el documento del store.

Cada repositorio maneja una colección. Operan sobre el StoreDocument
cargado en la transacción en curso; no leen ni escriben el backend.
"""

from datetime import date
from typing import Optional

import structlog

from tasador.database.store import StoreDocument, StoreError, StoreErrorKind
from tasador.models import (
    CityInput,
    CityRecord,
    DataType,
    ListingRecord,
    MarketType,
    PriceHistoryEntry,
    PriceSnapshot,
    RefreshLogEntry,
    RefreshStatus,
    ScrapedListing,
    TransactionInput,
    TransactionRecord,
)

logger = structlog.get_logger()


class BaseRepository:
    """Clase base para repositorios."""

    COLLECTION = ""

    def __init__(self, document: StoreDocument):
        self._document = document

    @property
    def document(self) -> StoreDocument:
        return self._document

    def _next_id(self) -> int:
        return self._document.next_id(self.COLLECTION)


class CityRepository(BaseRepository):
    """Repositorio del directorio de ciudades."""

    COLLECTION = "cities"

    def list_all(self) -> list[CityRecord]:
        return sorted(self.document.cities, key=lambda c: c.name.casefold())

    def get_by_slug(self, slug: str) -> Optional[CityRecord]:
        return next((c for c in self.document.cities if c.slug == slug), None)

    def get_by_id(self, city_id: int) -> Optional[CityRecord]:
        return next((c for c in self.document.cities if c.id == city_id), None)

    def create(self, data: CityInput) -> CityRecord:
        """
        Da de alta una ciudad.

        Raises:
            StoreError(DUPLICATE_KEY): si el slug ya existe
        """
        slug = data.resolved_slug()
        if self.get_by_slug(slug):
            raise StoreError(StoreErrorKind.DUPLICATE_KEY, f"La ciudad '{slug}' ya existe")

        city = CityRecord(
            id=self._next_id(),
            name=data.name,
            slug=slug,
            voivodeship=data.voivodeship,
            voivodeship_slug=data.voivodeship_slug,
            otodom_city_slug=data.otodom_city_slug,
        )
        self.document.cities.append(city)
        logger.info("Ciudad creada", slug=slug, city_id=city.id)
        return city

    def delete(self, slug: str) -> bool:
        """Borra la ciudad y todo lo que cuelga de ella."""
        city = self.get_by_slug(slug)
        if not city:
            return False

        doc = self.document
        listing_ids = {l.id for l in doc.listings if l.city_id == city.id}
        doc.cities = [c for c in doc.cities if c.id != city.id]
        doc.listings = [l for l in doc.listings if l.city_id != city.id]
        doc.price_history = [h for h in doc.price_history if h.listing_id not in listing_ids]
        doc.transactions = [t for t in doc.transactions if t.city_id != city.id]
        doc.price_snapshots = [s for s in doc.price_snapshots if s.city_id != city.id]
        doc.refresh_log = [r for r in doc.refresh_log if r.city_id != city.id]

        logger.info("Ciudad eliminada", slug=slug, listings=len(listing_ids))
        return True


class ListingRepository(BaseRepository):
    """Repositorio de listings persistidos."""

    COLLECTION = "listings"

    def get_by_external_id(self, city_id: int, external_id: str) -> Optional[ListingRecord]:
        return next(
            (
                l
                for l in self.document.listings
                if l.city_id == city_id and l.external_id == external_id
            ),
            None,
        )

    def create(
        self,
        city_id: int,
        scraped: ScrapedListing,
        market_type: MarketType,
        seen_on: date,
    ) -> ListingRecord:
        listing = ListingRecord(
            id=self._next_id(),
            city_id=city_id,
            external_id=scraped.external_id,
            title=scraped.title,
            price=scraped.price,
            area=scraped.area,
            price_per_m2=scraped.price_per_m2,
            rooms=scraped.rooms,
            floor=scraped.floor,
            developer=scraped.developer,
            address=scraped.address,
            url=scraped.url,
            market_type=market_type,
            first_seen=seen_on,
            last_seen=seen_on,
            active=True,
        )
        self.document.listings.append(listing)
        return listing

    def for_city(
        self,
        city_id: int,
        active_only: bool = True,
        market_type: Optional[MarketType] = None,
    ) -> list[ListingRecord]:
        result = [l for l in self.document.listings if l.city_id == city_id]
        if active_only:
            result = [l for l in result if l.active]
        if market_type is not None:
            result = [l for l in result if l.market_type == market_type]
        return result


class PriceHistoryRepository(BaseRepository):
    """Historial de precios (append-only)."""

    COLLECTION = "price_history"

    def append(self, listing: ListingRecord, recorded_at: date) -> PriceHistoryEntry:
        entry = PriceHistoryEntry(
            id=self._next_id(),
            listing_id=listing.id,
            price=listing.price,
            price_per_m2=listing.price_per_m2,
            recorded_at=recorded_at,
        )
        self.document.price_history.append(entry)
        return entry

    def for_listing(self, listing_id: int) -> list[PriceHistoryEntry]:
        return sorted(
            (h for h in self.document.price_history if h.listing_id == listing_id),
            key=lambda h: (h.recorded_at, h.id),
        )


class TransactionRepository(BaseRepository):
    """Repositorio de transacciones cerradas."""

    COLLECTION = "transactions"

    def create(self, data: TransactionInput, default_source: str = "manual") -> TransactionRecord:
        transaction = TransactionRecord(
            id=self._next_id(),
            city_id=data.city_id,
            transaction_date=data.transaction_date,
            price=data.price,
            area=data.area,
            price_per_m2=data.price_per_m2,
            address=data.address,
            property_type=data.property_type,
            market_type=data.market_type,
            source=data.source or default_source,
            notes=data.notes,
        )
        self.document.transactions.append(transaction)
        return transaction

    def get_by_id(self, transaction_id: int) -> Optional[TransactionRecord]:
        return next((t for t in self.document.transactions if t.id == transaction_id), None)

    def delete(self, transaction_id: int) -> Optional[TransactionRecord]:
        """Borra una transacción. Devuelve la borrada o None si no existía."""
        transaction = self.get_by_id(transaction_id)
        if transaction:
            self.document.transactions = [
                t for t in self.document.transactions if t.id != transaction_id
            ]
        return transaction

    def for_city(self, city_id: int, limit: Optional[int] = None) -> list[TransactionRecord]:
        """Transacciones de la ciudad, de la más reciente a la más vieja."""
        result = sorted(
            (t for t in self.document.transactions if t.city_id == city_id),
            key=lambda t: (t.transaction_date, t.id),
            reverse=True,
        )
        return result[:limit] if limit else result


class SnapshotRepository(BaseRepository):
    """Snapshots mensuales de precio por m²."""

    COLLECTION = "price_snapshots"

    def get(self, city_id: int, month: str, data_type: DataType) -> Optional[PriceSnapshot]:
        return next(
            (
                s
                for s in self.document.price_snapshots
                if s.city_id == city_id and s.month == month and s.data_type == data_type
            ),
            None,
        )

    def upsert(self, snapshot: PriceSnapshot) -> PriceSnapshot:
        """
        Inserta o reemplaza en el lugar el snapshot de (city_id, month, data_type).
        Conserva el ID del snapshot existente.
        """
        existing = self.get(snapshot.city_id, snapshot.month, snapshot.data_type)
        if existing:
            snapshot = snapshot.model_copy(update={"id": existing.id})
            idx = self.document.price_snapshots.index(existing)
            self.document.price_snapshots[idx] = snapshot
        else:
            snapshot = snapshot.model_copy(update={"id": self._next_id()})
            self.document.price_snapshots.append(snapshot)
        return snapshot

    def delete_except(self, city_id: int, data_type: DataType, months: set[str]) -> int:
        """Borra los snapshots de la serie cuyo mes no está en `months`."""
        before = len(self.document.price_snapshots)
        self.document.price_snapshots = [
            s
            for s in self.document.price_snapshots
            if not (s.city_id == city_id and s.data_type == data_type and s.month not in months)
        ]
        return before - len(self.document.price_snapshots)

    def for_city(self, city_id: int, data_type: Optional[DataType] = None) -> list[PriceSnapshot]:
        """Snapshots de la ciudad ordenados por mes ascendente."""
        result = [s for s in self.document.price_snapshots if s.city_id == city_id]
        if data_type is not None:
            result = [s for s in result if s.data_type == data_type]
        return sorted(result, key=lambda s: (s.month, s.data_type.value))

    def latest(self, city_id: int, data_type: DataType, count: int) -> list[PriceSnapshot]:
        """Los `count` snapshots más recientes, de mes descendente."""
        return list(reversed(self.for_city(city_id, data_type)))[:count]


class RefreshLogRepository(BaseRepository):
    """Auditoría de refresh."""

    COLLECTION = "refresh_log"

    def create(
        self,
        city_id: int,
        listings_found: int,
        status: RefreshStatus,
        error_message: Optional[str] = None,
    ) -> RefreshLogEntry:
        entry = RefreshLogEntry(
            id=self._next_id(),
            city_id=city_id,
            listings_found=listings_found,
            status=status,
            error_message=error_message,
        )
        self.document.refresh_log.append(entry)
        return entry

    def last_for_city(self, city_id: int) -> Optional[RefreshLogEntry]:
        entries = [r for r in self.document.refresh_log if r.city_id == city_id]
        if not entries:
            return None
        return max(entries, key=lambda r: (r.refreshed_at, r.id))
