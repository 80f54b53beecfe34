import json
from datetime import date
from http import HTTPStatus

import pytest

from tasador.database import MemoryRecordStore
from tasador.scrapers import OtodomScraper
from tasador.tracking import PriceTracker


class FakeResponse:
    """Respuesta mínima compatible con `async with session.get(...)`."""

    def __init__(self, status: int = 200, body="", reason: str = None):
        self.status = status
        self.reason = reason or HTTPStatus(status).phrase
        self._body = body.encode("utf-8") if isinstance(body, str) else body

    async def text(self, encoding: str = None, errors: str = "strict") -> str:
        return self._body.decode(encoding or "utf-8", errors)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Sesión aiohttp falsa: devuelve respuestas en orden o lanza `error`."""

    def __init__(self, responses=None, error: Exception = None):
        self.responses = list(responses or [])
        self.error = error
        self.requests = []

    def get(self, url, headers=None, **kwargs):
        self.requests.append({"url": url, "headers": headers or {}})
        if self.error is not None:
            raise self.error
        return self.responses.pop(0)

    async def close(self):
        pass


class FixedClock:
    def __init__(self, today: date):
        self.today = today

    def __call__(self) -> date:
        return self.today


def build_ad(ad_id, price, area, **extra) -> dict:
    ad = {
        "id": ad_id,
        "slug": f"mieszkanie-{ad_id}",
        "title": f"Mieszkanie {ad_id}",
        "totalPrice": {"value": price, "currency": "PLN"},
        "areaInSquareMeters": area,
        "roomsNumber": "TWO",
    }
    ad.update(extra)
    return ad


def build_next_data_page(items, total=None, path=("data", "searchAds")) -> str:
    node = {"items": items}
    if total is not None:
        node["pagination"] = {"totalResults": total}

    page_props = node
    for key in reversed(path):
        page_props = {key: page_props}

    payload = {"props": {"pageProps": page_props}, "page": "/[lang]/results/[[...searchingCriteria]]"}
    return (
        "<html><head><title>Otodom</title></head><body>"
        '<div id="__next"></div>'
        f'<script id="__NEXT_DATA__" type="application/json">{json.dumps(payload)}</script>'
        "</body></html>"
    )


@pytest.fixture
def make_ad():
    return build_ad


@pytest.fixture
def make_page():
    return build_next_data_page


@pytest.fixture
def store():
    return MemoryRecordStore()


@pytest.fixture
def clock():
    return FixedClock(date(2025, 3, 14))


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def tracker(store, session, clock):
    tracker = PriceTracker(
        store,
        scraper_factory=lambda: OtodomScraper(session=session),
        clock=clock,
    )
    tracker.seed_cities(with_transactions=False)
    return tracker


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def fake_session():
    return FakeSession
