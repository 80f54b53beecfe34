"""
Scraper base abstracto.

Define la interfaz común para scrapers de portales inmobiliarios:
un GET por página de resultados (sin reintentos) y la extracción
de listings sobre el HTML recibido.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Optional

import aiohttp
import structlog

from tasador.config import get_settings
from tasador.models import Market, ScrapedListing
from tasador.scrapers.extraction import ListingExtractor

logger = structlog.get_logger()


@dataclass
class FetchResult:
    """Resultado de pedir una página."""

    success: bool
    url: str
    html: str = ""
    status: Optional[int] = None
    error: Optional[str] = None


@dataclass
class ScrapeResult:
    """Resultado de scrapear una página de resultados."""

    success: bool
    url: str
    records: list[ScrapedListing] = field(default_factory=list)
    total_found: int = 0
    strategy: Optional[str] = None
    network_error: bool = False
    error: Optional[str] = None


class BaseScraper(ABC):
    """
    Clase base abstracta para scrapers de portales inmobiliarios.

    La sesión HTTP se puede inyectar (tests) o se crea al entrar
    al context manager:

        async with OtodomScraper() as scraper:
            result = await scraper.scrape("podlaskie", "suwalki/suwalki/suwalki", Market.ALL)
    """

    # Nombre del portal (override en subclases)
    SOURCE_NAME: str = "base"

    # URL base (override en subclases)
    BASE_URL: str = ""

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        extractor: Optional[ListingExtractor] = None,
    ):
        self.settings = get_settings()
        self._session = session
        self._owns_session = session is None
        self.extractor = extractor or ListingExtractor(base_url=self.BASE_URL)

    async def __aenter__(self):
        """Context manager entry: abre la sesión HTTP si no fue inyectada."""
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.fetch_timeout_seconds),
            )
            self._owns_session = True
            logger.debug("Sesión HTTP inicializada", source=self.SOURCE_NAME)
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit: cierra la sesión propia."""
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None
            logger.debug("Sesión HTTP cerrada", source=self.SOURCE_NAME)

    def _default_headers(self) -> dict[str, str]:
        """Headers de navegador. Sin ellos el portal devuelve 403."""
        return {
            "User-Agent": self.settings.user_agent,
            "Accept": (
                "text/html,application/xhtml+xml,application/xml;q=0.9,"
                "image/avif,image/webp,*/*;q=0.8"
            ),
            "Accept-Language": "pl-PL,pl;q=0.9,en-US;q=0.8,en;q=0.7",
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
            "Sec-Fetch-Dest": "document",
            "Sec-Fetch-Mode": "navigate",
            "Sec-Fetch-Site": "none",
            "Sec-Fetch-User": "?1",
            "Upgrade-Insecure-Requests": "1",
        }

    async def fetch(self, url: str) -> FetchResult:
        """
        Pide una página. No lanza: falla de red, timeout, status no 2xx
        o charset desconocido vuelven como FetchResult(success=False).
        """
        if self._session is None:
            raise RuntimeError("Sesión no inicializada. Usa 'async with scraper:'")

        logger.info("Navegando a página de resultados", source=self.SOURCE_NAME, url=url)
        try:
            async with self._session.get(url, headers=self._default_headers()) as response:
                status = response.status
                if not 200 <= status < 300:
                    logger.warning(
                        "Respuesta HTTP con error", url=url, status=status, reason=response.reason
                    )
                    return FetchResult(
                        success=False,
                        url=url,
                        status=status,
                        error=f"HTTP {status}: {response.reason}",
                    )
                # Bytes inválidos para el charset declarado se reemplazan
                html = await response.text(errors="replace")
        except asyncio.TimeoutError:
            logger.warning("Timeout pidiendo página", url=url)
            return FetchResult(
                success=False,
                url=url,
                error=f"Timeout después de {self.settings.fetch_timeout_seconds}s",
            )
        except aiohttp.ClientError as e:
            logger.warning("Error de red pidiendo página", url=url, error=str(e))
            return FetchResult(success=False, url=url, error=f"Error de red: {e}")
        except LookupError as e:
            logger.warning("Charset desconocido", url=url, error=str(e))
            return FetchResult(success=False, url=url, error=f"Charset desconocido: {e}")

        logger.debug("Página recibida", url=url, status=status, size=len(html))
        return FetchResult(success=True, url=url, html=html, status=status)

    @abstractmethod
    def build_search_url(
        self,
        voivodeship_slug: str,
        city_slug: str,
        market: Market = Market.ALL,
    ) -> str:
        """
        Construye la URL de búsqueda para el portal.

        Args:
            voivodeship_slug: Voivodato en formato del portal
            city_slug: Ruta de la ciudad en formato del portal
            market: PRIMARY, SECONDARY o ALL

        Returns:
            URL completa de búsqueda
        """
        pass

    async def scrape(
        self,
        voivodeship_slug: str,
        city_slug: str,
        market: Market = Market.ALL,
    ) -> ScrapeResult:
        """
        Pide la primera página de resultados y extrae sus listings.

        Returns:
            ScrapeResult. En caso de falla `network_error` distingue
            un problema de red de un cambio de estructura de la página.
        """
        url = self.build_search_url(voivodeship_slug, city_slug, market)
        logger.info(
            "Iniciando scraping",
            source=self.SOURCE_NAME,
            city=city_slug,
            market=market.value,
        )

        fetched = await self.fetch(url)
        if not fetched.success:
            return ScrapeResult(
                success=False, url=url, network_error=True, error=fetched.error
            )

        extracted = self.extractor.extract(fetched.html)
        if not extracted.success:
            return ScrapeResult(success=False, url=url, error=extracted.error)

        logger.info(
            "Página completada",
            source=self.SOURCE_NAME,
            listings=len(extracted.records),
            total_found=extracted.total_found,
            strategy=extracted.strategy,
        )
        return ScrapeResult(
            success=True,
            url=url,
            records=extracted.records,
            total_found=extracted.total_found,
            strategy=extracted.strategy,
        )
