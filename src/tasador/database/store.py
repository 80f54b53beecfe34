"""
Store de registros.

Todo el estado vive en un único documento versionado (StoreDocument)
con una colección por entidad y contadores de ID monotónicos.
Cada operación del motor hace load -> modificar -> save dentro de
`store.transaction()`.

Limitación conocida: la atomicidad es sólo por operación y por proceso.
Dos escritores concurrentes (dos procesos, o un refresh que se cruza con
una carga manual de transacciones) pueden pisarse entre load y save.
En producción tiene que haber un único escritor por store.
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Iterator, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError

from tasador.models import (
    CityRecord,
    ListingRecord,
    PriceHistoryEntry,
    PriceSnapshot,
    RefreshLogEntry,
    TransactionRecord,
)

logger = structlog.get_logger()

STORE_VERSION = 1

COLLECTIONS = (
    "cities",
    "listings",
    "price_history",
    "transactions",
    "price_snapshots",
    "refresh_log",
)


class StoreErrorKind(str, Enum):
    DUPLICATE_KEY = "duplicate_key"
    NOT_FOUND = "not_found"
    CORRUPTED = "corrupted"
    UNSUPPORTED_VERSION = "unsupported_version"


class StoreError(Exception):
    """Error del store con un tipo explícito."""

    def __init__(self, kind: StoreErrorKind, message: str):
        super().__init__(message)
        self.kind = kind


def _initial_ids() -> dict[str, int]:
    return {name: 1 for name in COLLECTIONS}


class StoreDocument(BaseModel):
    """Documento completo del store."""

    version: int = STORE_VERSION
    cities: list[CityRecord] = Field(default_factory=list)
    listings: list[ListingRecord] = Field(default_factory=list)
    price_history: list[PriceHistoryEntry] = Field(default_factory=list)
    transactions: list[TransactionRecord] = Field(default_factory=list)
    price_snapshots: list[PriceSnapshot] = Field(default_factory=list)
    refresh_log: list[RefreshLogEntry] = Field(default_factory=list)
    next_ids: dict[str, int] = Field(default_factory=_initial_ids)

    def next_id(self, collection: str) -> int:
        """Reserva el próximo ID de una colección."""
        if collection not in COLLECTIONS:
            raise KeyError(collection)
        value = self.next_ids.get(collection, 1)
        self.next_ids[collection] = value + 1
        return value


class BaseRecordStore(ABC):
    """Interfaz común de los stores."""

    @abstractmethod
    def load(self) -> StoreDocument:
        """Lee el documento completo."""

    @abstractmethod
    def save(self, document: StoreDocument) -> None:
        """Reemplaza el documento completo."""

    def read(self) -> StoreDocument:
        """Lectura sin intención de escribir."""
        return self.load()

    @contextmanager
    def transaction(self) -> Iterator[StoreDocument]:
        """
        Load-modify-save. Si el bloque lanza una excepción no se guarda nada.
        """
        document = self.load()
        yield document
        self.save(document)


def check_version(version: int) -> None:
    if version > STORE_VERSION:
        raise StoreError(
            StoreErrorKind.UNSUPPORTED_VERSION,
            f"Versión de store {version} no soportada (máximo {STORE_VERSION})",
        )


class MemoryRecordStore(BaseRecordStore):
    """Store en memoria. Devuelve copias para que load/save se comporten como uno real."""

    def __init__(self, document: Optional[StoreDocument] = None):
        self._document = document or StoreDocument()

    def load(self) -> StoreDocument:
        return self._document.model_copy(deep=True)

    def save(self, document: StoreDocument) -> None:
        self._document = document.model_copy(deep=True)


class JsonFileRecordStore(BaseRecordStore):
    """
    Store sobre un archivo JSON.

    Las escrituras van a un archivo temporal en el mismo directorio
    y después se renombran con os.replace, así un corte a mitad de
    escritura nunca deja el documento truncado.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> StoreDocument:
        if not self.path.exists():
            logger.info("Store inexistente, se inicia vacío", path=str(self.path))
            return StoreDocument()

        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(
                StoreErrorKind.CORRUPTED, f"No se pudo leer {self.path}: {e}"
            ) from e

        if not isinstance(raw, dict):
            raise StoreError(StoreErrorKind.CORRUPTED, f"Documento inválido en {self.path}")
        check_version(int(raw.get("version", STORE_VERSION)))
        try:
            return StoreDocument.model_validate(raw)
        except ValidationError as e:
            raise StoreError(
                StoreErrorKind.CORRUPTED, f"Documento inválido en {self.path}: {e}"
            ) from e

    def save(self, document: StoreDocument) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = document.model_dump_json(indent=2)

        fd, tmp_name = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.debug("Store guardado", path=str(self.path))


def get_record_store(backend: Optional[str] = None) -> BaseRecordStore:
    """Construye el store configurado ('json' o 'supabase')."""
    from tasador.config import get_settings

    settings = get_settings()
    backend = (backend or settings.store_backend).lower()

    if backend == "json":
        return JsonFileRecordStore(settings.store_path)
    if backend == "supabase":
        from tasador.database.supabase_client import (
            SupabaseRecordStore,
            get_supabase_client,
        )

        return SupabaseRecordStore(get_supabase_client())
    raise ValueError(f"Backend de store no soportado: {backend}")
