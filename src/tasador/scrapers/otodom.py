"""
Scraper para otodom.pl.

Pide la página de resultados de venta de departamentos de una ciudad
y extrae los anuncios del estado Next.js embebido (con fallbacks).
"""

from typing import Optional
from urllib.parse import urlencode

import aiohttp

from tasador.config import get_settings
from tasador.models import Market
from tasador.scrapers.base import BaseScraper
from tasador.scrapers.extraction import ListingExtractor


class OtodomScraper(BaseScraper):
    """Scraper de resultados de búsqueda de otodom.pl."""

    SOURCE_NAME = "otodom"
    BASE_URL = "https://www.otodom.pl"
    SEARCH_PATH = "/pl/wyniki/sprzedaz/mieszkanie/{voivodeship}/{city}"

    def __init__(
        self,
        session: Optional[aiohttp.ClientSession] = None,
        extractor: Optional[ListingExtractor] = None,
        base_url: Optional[str] = None,
    ):
        self.BASE_URL = (base_url or get_settings().otodom_base_url).rstrip("/")
        super().__init__(session=session, extractor=extractor)

    def build_search_url(
        self,
        voivodeship_slug: str,
        city_slug: str,
        market: Market = Market.ALL,
    ) -> str:
        """
        Construye la URL de búsqueda.

        Ejemplo:
            /pl/wyniki/sprzedaz/mieszkanie/podlaskie/suwalki/suwalki/suwalki
            ?market=PRIMARY&limit=72&by=DEFAULT&direction=DESC&viewType=listing
        """
        path = self.SEARCH_PATH.format(
            voivodeship=voivodeship_slug.strip("/"),
            city=city_slug.strip("/"),
        )

        params = {}
        # ALL = sin filtro de mercado
        if market != Market.ALL:
            params["market"] = market.value
        params.update(
            {
                "limit": self.settings.results_page_size,
                "by": "DEFAULT",
                "direction": "DESC",
                "viewType": "listing",
            }
        )

        return f"{self.BASE_URL}{path}?{urlencode(params)}"
