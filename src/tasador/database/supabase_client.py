"""
Backend de Supabase para el store.

Una tabla por colección (mismo nombre) más `store_counters`
(name, value) para los contadores de ID y la versión del documento.
El save reemplaza cada colección completa: upsert de todas las filas
y borrado de las que ya no están en el documento.

PostgREST corta cada select en su `max-rows` (1000 por defecto), así que
el load pagina con `range()` hasta recibir una página vacía.
"""

from functools import lru_cache

import structlog
from pydantic import ValidationError
from supabase import create_client, Client

from tasador.config import get_settings
from tasador.database.store import (
    COLLECTIONS,
    STORE_VERSION,
    BaseRecordStore,
    StoreDocument,
    StoreError,
    StoreErrorKind,
    check_version,
)

logger = structlog.get_logger()

COUNTERS_TABLE = "store_counters"
PAGE_SIZE = 1000
_VERSION_KEY = "_version"


class SupabaseRecordStore(BaseRecordStore):
    """Store de registros sobre tablas de Supabase."""

    def __init__(self, client: Client, page_size: int = PAGE_SIZE):
        self._client = client
        self.page_size = page_size

    def table(self, name: str):
        """Acceso a una tabla específica."""
        return self._client.table(name)

    def select_all(self, name: str, order_by: str) -> list[dict]:
        """
        Lee todas las filas de una tabla en páginas de `page_size`.

        Avanza por la cantidad efectivamente recibida: si el servidor
        devuelve menos filas que las pedidas, la siguiente página
        arranca donde terminó la anterior.
        """
        rows: list[dict] = []
        while True:
            start = len(rows)
            page = (
                self.table(name)
                .select("*")
                .order(order_by)
                .range(start, start + self.page_size - 1)
                .execute()
                .data
            )
            if not page:
                return rows
            rows.extend(page)

    def load(self) -> StoreDocument:
        counters = {
            row["name"]: int(row["value"])
            for row in self.select_all(COUNTERS_TABLE, order_by="name")
        }
        check_version(counters.pop(_VERSION_KEY, STORE_VERSION))

        raw: dict = {"version": STORE_VERSION}
        for name in COLLECTIONS:
            raw[name] = self.select_all(name, order_by="id")
        if counters:
            raw["next_ids"] = {**{name: 1 for name in COLLECTIONS}, **counters}

        try:
            document = StoreDocument.model_validate(raw)
        except ValidationError as e:
            raise StoreError(
                StoreErrorKind.CORRUPTED, f"Filas inválidas en Supabase: {e}"
            ) from e

        logger.debug(
            "Store de Supabase cargado",
            listings=len(document.listings),
            price_history=len(document.price_history),
        )
        return document

    def save(self, document: StoreDocument) -> None:
        dumped = document.model_dump(mode="json")

        for name in COLLECTIONS:
            rows = dumped[name]
            if rows:
                self.table(name).upsert(rows, on_conflict="id").execute()
            ids = [row["id"] for row in rows]
            query = self.table(name).delete()
            if ids:
                query = query.not_.in_("id", ids)
            else:
                query = query.gte("id", 0)
            query.execute()

        counters = [{"name": k, "value": v} for k, v in document.next_ids.items()]
        counters.append({"name": _VERSION_KEY, "value": document.version})
        self.table(COUNTERS_TABLE).upsert(counters, on_conflict="name").execute()

        logger.debug("Store de Supabase guardado", collections=len(COLLECTIONS))


@lru_cache
def get_supabase_client() -> Client:
    """
    Obtiene el cliente de Supabase (singleton cacheado).

    Raises:
        ValueError: Si las credenciales no están configuradas
    """
    settings = get_settings()

    if not settings.supabase_url or not settings.supabase_key:
        raise ValueError(
            "SUPABASE_URL y SUPABASE_KEY son requeridos con store_backend='supabase'. "
            "Configura las variables de entorno."
        )

    # Usar service key si está disponible para operaciones admin
    key = settings.supabase_service_key or settings.supabase_key

    client = create_client(settings.supabase_url, key)
    logger.info("Cliente de Supabase inicializado", url=settings.supabase_url)

    return client
