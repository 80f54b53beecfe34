"""
API HTTP del motor de precios.

Uso:
    python -m tasador.scripts.run_api
    python -m tasador.scripts.run_api --seed --port 8081
"""

import argparse
import asyncio
import json
import logging
import sys

import structlog
from aiohttp import web
from pydantic import TypeAdapter, ValidationError

from tasador.config import get_settings
from tasador.database import StoreError, StoreErrorKind, get_record_store
from tasador.models import CityInput, DataType, Market, MarketType, RefreshErrorKind, TransactionInput
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

STORE_ERROR_STATUS = {
    StoreErrorKind.DUPLICATE_KEY: 409,
    StoreErrorKind.NOT_FOUND: 404,
}

_transaction_payloads = TypeAdapter(list[dict])


def _dump(models) -> list[dict]:
    return [m.model_dump(mode="json") for m in models]


@web.middleware
async def error_middleware(request: web.Request, handler):
    """Traduce errores de validación y del store a respuestas JSON."""
    try:
        return await handler(request)
    except ValidationError as e:
        return web.json_response(
            {"error": "Datos inválidos", "details": json.loads(e.json())}, status=400
        )
    except json.JSONDecodeError:
        return web.json_response({"error": "El cuerpo no es JSON válido"}, status=400)
    except StoreError as e:
        status = STORE_ERROR_STATUS.get(e.kind, 500)
        if status == 500:
            logger.error("Error del store", kind=e.kind.value, error=str(e), path=request.path)
        return web.json_response({"error": str(e), "kind": e.kind.value}, status=status)


def create_app(tracker: PriceTracker) -> web.Application:
    """Arma la aplicación aiohttp sobre un PriceTracker."""
    app = web.Application(middlewares=[error_middleware])
    refresh_lock = asyncio.Lock()

    def city_or_404(request: web.Request):
        slug = request.match_info["slug"]
        city = tracker.get_city(slug)
        if city is None:
            raise web.HTTPNotFound(
                text=json.dumps({"error": f"Ciudad '{slug}' no encontrada"}),
                content_type="application/json",
            )
        return city

    async def health(_: web.Request) -> web.Response:
        return web.Response(text="ok")

    async def list_cities(_: web.Request) -> web.Response:
        return web.json_response({"cities": _dump(tracker.get_city_cards())})

    async def add_city(request: web.Request) -> web.Response:
        data = CityInput.model_validate(await request.json())
        city = tracker.add_city(data)
        return web.json_response({"city": city.model_dump(mode="json")}, status=201)

    async def remove_city(request: web.Request) -> web.Response:
        city = city_or_404(request)
        tracker.remove_city(city.slug)
        return web.json_response({"success": True})

    async def refresh(request: web.Request) -> web.Response:
        try:
            market = Market.parse(request.query.get("market"), Market.parse(settings.default_market))
        except ValueError as e:
            return web.json_response({"error": str(e)}, status=400)

        # Un refresh a la vez por proceso: el store no aísla escritores concurrentes
        async with refresh_lock:
            outcome = await tracker.refresh(request.match_info["slug"], market)

        if outcome.error_kind == RefreshErrorKind.UNKNOWN_CITY:
            return web.json_response({"error": outcome.error}, status=404)
        # Una falla de scraping no es un error del servidor
        return web.json_response(outcome.to_dict())

    async def listings(request: web.Request) -> web.Response:
        city = city_or_404(request)
        market = request.query.get("market")
        try:
            market_type = MarketType(market.lower()) if market else None
        except ValueError:
            return web.json_response({"error": f"Mercado inválido: {market}"}, status=400)

        result = tracker.get_listings(city.id, market_type)
        return web.json_response({"listings": _dump(result), "total": len(result)})

    async def stats(request: web.Request) -> web.Response:
        city = city_or_404(request)
        data_type = request.query.get("data_type")
        city_stats = tracker.get_city_stats(city)
        payload = city_stats.model_dump(mode="json")
        if data_type:
            try:
                payload["price_history"] = _dump(
                    tracker.get_price_snapshots(city.id, DataType(data_type))
                )
            except ValueError:
                return web.json_response({"error": f"Serie inválida: {data_type}"}, status=400)
        return web.json_response(payload)

    async def list_transactions(request: web.Request) -> web.Response:
        city = city_or_404(request)
        raw_limit = request.query.get("limit")
        try:
            limit = int(raw_limit) if raw_limit else None
        except ValueError:
            return web.json_response({"error": f"Límite inválido: {raw_limit}"}, status=400)

        result = tracker.get_transactions(city.id, limit)
        return web.json_response({"transactions": _dump(result), "total": len(result)})

    async def add_transactions(request: web.Request) -> web.Response:
        city = city_or_404(request)
        body = await request.json()

        # Lista = importación en bloque; objeto = carga manual
        if isinstance(body, list):
            inputs = [
                TransactionInput.model_validate({**item, "city_id": city.id})
                for item in _transaction_payloads.validate_python(body)
            ]
            if not inputs:
                return web.json_response({"error": "No hay transacciones para importar"}, status=400)
            imported = tracker.add_transactions_bulk(inputs)
            return web.json_response({"success": True, "imported": imported}, status=201)

        if not isinstance(body, dict):
            return web.json_response({"error": "Se espera un objeto o una lista"}, status=400)
        transaction = tracker.add_transaction(
            TransactionInput.model_validate({**body, "city_id": city.id})
        )
        return web.json_response({"transaction": transaction.model_dump(mode="json")}, status=201)

    async def delete_transaction(request: web.Request) -> web.Response:
        city = city_or_404(request)
        try:
            transaction_id = int(request.match_info["transaction_id"])
        except ValueError:
            return web.json_response({"error": "ID de transacción inválido"}, status=400)

        transactions = {t.id for t in tracker.get_transactions(city.id)}
        if transaction_id not in transactions or not tracker.delete_transaction(transaction_id):
            return web.json_response({"error": "Transacción no encontrada"}, status=404)
        return web.json_response({"success": True})

    app.router.add_get("/health", health)
    app.router.add_get("/cities", list_cities)
    app.router.add_post("/cities", add_city)
    app.router.add_delete("/cities/{slug}", remove_city)
    app.router.add_post("/refresh/{slug}", refresh)
    app.router.add_get("/listings/{slug}", listings)
    app.router.add_get("/stats/{slug}", stats)
    app.router.add_get("/transactions/{slug}", list_transactions)
    app.router.add_post("/transactions/{slug}", add_transactions)
    app.router.add_delete("/transactions/{slug}/{transaction_id}", delete_transaction)
    return app


async def run_server(tracker: PriceTracker, listen: str, port: int):
    runner = web.AppRunner(create_app(tracker))
    await runner.setup()
    site = web.TCPSite(runner, host=listen, port=port)

    try:
        await site.start()
        logger.info("API activa", listen=listen, port=port, health_path="/health")
        await asyncio.Event().wait()
    finally:
        await runner.cleanup()


def main():
    """Entry point de la API."""
    parser = argparse.ArgumentParser(description="API del motor de precios")
    parser.add_argument("--listen", type=str, default=settings.api_listen, help="Host de escucha")
    parser.add_argument("--port", type=int, default=settings.api_port, help="Puerto")
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Cargar las ciudades por defecto y sus transacciones RCN al iniciar",
    )
    args = parser.parse_args()

    try:
        tracker = PriceTracker(get_record_store())
        if args.seed:
            tracker.seed_cities()
        asyncio.run(run_server(tracker, args.listen, args.port))
    except KeyboardInterrupt:
        logger.info("API detenida por usuario")
        sys.exit(0)
    except StoreError as e:
        logger.error("Error fatal del store", kind=e.kind.value, error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
