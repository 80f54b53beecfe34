"""
Módulo de scrapers.

Provee el scraper de otodom, la cadena de extracción y la normalización.
"""

from tasador.scrapers.base import BaseScraper, FetchResult, ScrapeResult
from tasador.scrapers.extraction import (
    EmbeddedStateStrategy,
    ExtractionStrategy,
    ExtractResult,
    InlineFragmentStrategy,
    ListingExtractor,
    MarkupStrategy,
)
from tasador.scrapers.normalizer import normalize_candidate, parse_polish_number
from tasador.scrapers.otodom import OtodomScraper

__all__ = [
    "BaseScraper",
    "FetchResult",
    "ScrapeResult",
    "EmbeddedStateStrategy",
    "ExtractionStrategy",
    "ExtractResult",
    "InlineFragmentStrategy",
    "ListingExtractor",
    "MarkupStrategy",
    "normalize_candidate",
    "parse_polish_number",
    "OtodomScraper",
]
