import asyncio

import aiohttp
from aiohttp import test_utils, web
import pytest

from tasador.models import Market
from tasador.scrapers import OtodomScraper

SEARCH_BASE = "https://www.otodom.pl/pl/wyniki/sprzedaz/mieszkanie/podlaskie/suwalki/suwalki/suwalki"


def test_build_search_url_primary():
    scraper = OtodomScraper(base_url="https://www.otodom.pl")

    url = scraper.build_search_url("podlaskie", "suwalki/suwalki/suwalki", Market.PRIMARY)

    assert url == (
        f"{SEARCH_BASE}?market=PRIMARY&limit=72&by=DEFAULT&direction=DESC&viewType=listing"
    )


def test_build_search_url_all_has_no_market_filter():
    scraper = OtodomScraper(base_url="https://www.otodom.pl/")

    url = scraper.build_search_url("podlaskie", "/suwalki/suwalki/suwalki/", Market.ALL)

    assert url.startswith(f"{SEARCH_BASE}?limit=72")
    assert "market=" not in url


def test_fetch_sends_browser_headers(fake_session, fake_response):
    session = fake_session([fake_response(200, "<html></html>")])
    scraper = OtodomScraper(session=session)

    result = asyncio.run(scraper.fetch("https://www.otodom.pl/x"))

    assert result.success
    assert result.status == 200
    headers = session.requests[0]["headers"]
    assert "Chrome" in headers["User-Agent"]
    assert headers["Accept-Language"].startswith("pl-PL")
    assert headers["Sec-Fetch-Mode"] == "navigate"
    assert {
        "Cache-Control",
        "Pragma",
        "Sec-Fetch-Dest",
        "Sec-Fetch-Site",
        "Sec-Fetch-User",
        "Upgrade-Insecure-Requests",
    } <= set(headers)
    assert "Accept-Encoding" not in headers


@pytest.mark.parametrize(
    "status,message",
    [(403, "HTTP 403: Forbidden"), (404, "HTTP 404: Not Found"), (500, "HTTP 500: Internal Server Error")],
)
def test_fetch_http_error(fake_session, fake_response, status, message):
    scraper = OtodomScraper(session=fake_session([fake_response(status, "blocked")]))

    result = asyncio.run(scraper.fetch("https://www.otodom.pl/x"))

    assert not result.success
    assert result.status == status
    assert result.error == message
    assert result.html == ""


def test_fetch_timeout(fake_session):
    scraper = OtodomScraper(session=fake_session(error=asyncio.TimeoutError()))

    result = asyncio.run(scraper.fetch("https://www.otodom.pl/x"))

    assert not result.success
    assert "Timeout" in result.error


def test_fetch_connection_error(fake_session):
    error = aiohttp.ClientConnectionError("connection reset")
    scraper = OtodomScraper(session=fake_session(error=error))

    result = asyncio.run(scraper.fetch("https://www.otodom.pl/x"))

    assert not result.success
    assert "connection reset" in result.error


def test_fetch_requires_session():
    scraper = OtodomScraper()

    with pytest.raises(RuntimeError):
        asyncio.run(scraper.fetch("https://www.otodom.pl/x"))


def test_scrape_success(fake_session, fake_response, make_ad, make_page):
    page = make_page([make_ad(1, 300000, 50), make_ad(2, 400000, 80)], total=87)
    session = fake_session([fake_response(200, page)])

    async def run():
        async with OtodomScraper(session=session) as scraper:
            return await scraper.scrape("podlaskie", "suwalki/suwalki/suwalki", Market.PRIMARY)

    result = asyncio.run(run())

    assert result.success
    assert result.total_found == 87
    assert len(result.records) == 2
    assert "market=PRIMARY" in session.requests[0]["url"]


def test_scrape_distinguishes_network_from_drift(fake_session, fake_response):
    blocked = OtodomScraper(session=fake_session([fake_response(403, "")]))
    drifted = OtodomScraper(session=fake_session([fake_response(200, "<html><body></body></html>")]))

    network = asyncio.run(blocked.scrape("podlaskie", "suwalki/suwalki/suwalki"))
    drift = asyncio.run(drifted.scrape("podlaskie", "suwalki/suwalki/suwalki"))

    assert not network.success and network.network_error
    assert not drift.success and not drift.network_error


def test_undecodable_page_is_read_with_replacement():
    async def search_page(request):
        return web.Response(
            body=b"<html><body>\xff\xfe Mieszkania</body></html>",
            content_type="text/html",
            charset="utf-8",
        )

    async def run():
        app = web.Application()
        app.router.add_get("/{tail:.*}", search_page)
        async with test_utils.TestServer(app) as server:
            async with aiohttp.ClientSession() as session:
                scraper = OtodomScraper(session=session, base_url=str(server.make_url("/")))
                fetched = await scraper.fetch(scraper.build_search_url("podlaskie", "suwalki"))
                scraped = await scraper.scrape("podlaskie", "suwalki")
                return fetched, scraped

    fetched, scraped = asyncio.run(run())

    assert fetched.success
    assert "�" in fetched.html
    assert "Mieszkania" in fetched.html
    assert not scraped.success
    assert not scraped.network_error


def test_fetch_unknown_charset(fake_session, fake_response):
    response = fake_response(200, b"<html></html>")

    async def unknown_charset(encoding=None, errors="strict"):
        raise LookupError("unknown encoding: x-polish")

    response.text = unknown_charset
    scraper = OtodomScraper(session=fake_session([response]))

    result = asyncio.run(scraper.fetch("https://www.otodom.pl/x"))

    assert not result.success
    assert "x-polish" in result.error
