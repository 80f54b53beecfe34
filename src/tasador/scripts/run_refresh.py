"""
Script para refrescar los listings de otodom.

Uso:
    python -m tasador.scripts.run_refresh --city elk --market PRIMARY
    python -m tasador.scripts.run_refresh --all --market ALL
    python -m tasador.scripts.run_refresh --seed --all
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

import structlog

from tasador.config import MARKETS, get_settings
from tasador.database import StoreError, get_record_store
from tasador.models import Market
from tasador.tracking import PriceTracker

# Configurar logging
settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(message)s",
    force=True,
)

structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


async def run_refresh(
    tracker: PriceTracker,
    cities: Optional[list[str]] = None,
    market: Market = Market.PRIMARY,
) -> dict[str, dict]:
    """
    Refresca una o varias ciudades en secuencia.

    Args:
        tracker: Motor configurado
        cities: Slugs a refrescar (None = todas las ciudades)
        market: PRIMARY, SECONDARY o ALL

    Returns:
        Resultado de cada ciudad, indexado por slug
    """
    slugs = cities or [city.slug for city in tracker.list_cities()]
    if not slugs:
        logger.warning("No hay ciudades para refrescar. Usa --seed para cargar las de ejemplo")
        return {}

    results = {}
    for slug in slugs:
        outcome = await tracker.refresh(slug, market)
        results[slug] = outcome.to_dict()

    failed = [slug for slug, result in results.items() if not result["success"]]
    logger.info("Refresh terminado", cities=len(results), failed=failed or None)
    return results


def main():
    """Entry point del script."""
    parser = argparse.ArgumentParser(description="Refresh de precios de otodom")
    parser.add_argument(
        "--city",
        type=str,
        default=None,
        help="Slugs de ciudades separados por coma (ej: elk,suwalki)",
    )
    parser.add_argument(
        "--all",
        action="store_true",
        help="Refrescar todas las ciudades",
    )
    parser.add_argument(
        "--market",
        type=str.upper,
        default=settings.default_market.upper(),
        choices=MARKETS,
        help="Mercado a pedir",
    )
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Cargar las ciudades por defecto y sus transacciones RCN antes de refrescar",
    )

    args = parser.parse_args()

    if not args.city and not args.all:
        parser.error("Indicá --city o --all")

    cities = None
    if args.city and not args.all:
        cities = [c.strip() for c in args.city.split(",") if c.strip()]

    try:
        tracker = PriceTracker(get_record_store())
        if args.seed:
            tracker.seed_cities()

        results = asyncio.run(
            run_refresh(tracker, cities=cities, market=Market.parse(args.market))
        )
    except StoreError as e:
        logger.error("Error del store", kind=e.kind.value, error=str(e))
        sys.exit(2)
    except KeyboardInterrupt:
        logger.info("Refresh interrumpido por usuario")
        sys.exit(130)

    print(json.dumps(results, indent=2, ensure_ascii=False))
    sys.exit(0 if all(r["success"] for r in results.values()) else 1)


if __name__ == "__main__":
    main()
