import json

from bs4 import BeautifulSoup

from tasador.scrapers.extraction import (
    SCHEMA_DRIFT_MESSAGE,
    EmbeddedStateStrategy,
    InlineFragmentStrategy,
    ListingExtractor,
    MarkupStrategy,
)

CARDS_HTML = """
<html><body>
<div data-cy="search.listing.organic">
  <article data-cy="listing-item">
    <a href="/pl/oferta/mieszkanie-centrum-ID4abc">
      <p data-cy="listing-item-title">Mieszkanie, Centrum</p>
    </a>
    <span data-cy="listing-item-price">350 000 zł</span>
    <span>6 667 zł/m²</span>
    <dl><dd>2 pokoje</dd><dd>52,5 m²</dd></dl>
  </article>
  <article data-cy="listing-item">
    <a href="https://www.otodom.pl/pl/oferta/kawalerka-ID4def?promoted=1">
      <h3>Kawalerka przy parku</h3>
    </a>
    <span aria-label="Cena">210 500 zł</span>
    <dl><dd>1 pokój</dd><dd>28 m²</dd></dl>
  </article>
  <article data-cy="listing-item">
    <h3>Bez linku</h3>
    <span data-cy="listing-item-price">100 000 zł</span>
  </article>
</div>
</body></html>
"""


def test_embedded_state_current_path(make_ad, make_page):
    html = make_page([make_ad(1, 300000, 50), make_ad(2, 420000, 60)], total=143)

    result = ListingExtractor().extract(html)

    assert result.success
    assert result.strategy == "embedded_state"
    assert result.total_found == 143
    assert [r.external_id for r in result.records] == ["1", "2"]


def test_embedded_state_legacy_path(make_ad, make_page):
    html = make_page([make_ad(5, 300000, 50)], path=("ads",))

    found = EmbeddedStateStrategy().find_items(BeautifulSoup(html, "html.parser"))

    assert len(found.items) == 1
    assert found.total_found == 1


def test_embedded_state_initial_props_path(make_ad, make_page):
    html = make_page([make_ad(5, 300000, 50)], total=9, path=("initialProps", "data", "searchAds"))

    found = EmbeddedStateStrategy().find_items(BeautifulSoup(html, "html.parser"))

    assert found.total_found == 9


def test_embedded_state_invalid_json():
    html = '<script id="__NEXT_DATA__" type="application/json">{not json</script>'

    found = EmbeddedStateStrategy().find_items(BeautifulSoup(html, "html.parser"))

    assert found.items == []
    assert "JSON" in found.error


def test_inline_fragment(make_ad):
    state = {"app": {"listing": {"searchAds": {"items": [make_ad(9, 250000, 40)]}}}}
    html = f"<html><body><script>window.__STATE__ = {json.dumps(state)};</script></body></html>"

    result = ListingExtractor().extract(html)

    assert result.success
    assert result.strategy == "inline_fragment"
    assert result.records[0].external_id == "9"


def test_inline_fragment_skips_unparseable_scripts(make_ad):
    state = {"searchAds": {"items": [make_ad(3, 250000, 40)]}}
    html = (
        '<script>var broken = {"searchAds": [;</script>'
        f"<script>init({json.dumps(state)})</script>"
    )

    found = InlineFragmentStrategy().find_items(BeautifulSoup(html, "html.parser"))

    assert len(found.items) == 1


def test_markup_cards():
    result = ListingExtractor().extract(CARDS_HTML)

    assert result.success
    assert result.strategy == "markup"
    assert len(result.records) == 2

    first, second = result.records
    assert first.external_id == "mieszkanie-centrum-ID4abc"
    assert first.title == "Mieszkanie, Centrum"
    assert first.price == 350000
    assert first.area == 52.5
    assert first.rooms == 2
    assert first.price_per_m2 == 6666.67
    assert first.url == "https://www.otodom.pl/pl/oferta/mieszkanie-centrum-ID4abc"

    assert second.external_id == "kawalerka-ID4def"
    assert second.price == 210500
    assert second.area == 28
    assert second.rooms == 1


def test_markup_strategy_ignores_cards_without_link():
    found = MarkupStrategy().find_items(BeautifulSoup(CARDS_HTML, "html.parser"))

    assert len(found.items) == 2


def test_malformed_items_are_skipped(make_ad, make_page):
    items = [
        make_ad(1, 300000, 50),
        make_ad(2, 0, 50),
        {"title": "sin id", "totalPrice": 100000, "areaInSquareMeters": 30},
        make_ad(4, 280000, "nie wiem"),
        "no es un dict",
    ]

    result = ListingExtractor().extract(make_page(items, total=5))

    assert result.success
    assert [r.external_id for r in result.records] == ["1"]
    assert result.skipped == 3


def test_falls_through_when_no_item_normalizes(make_ad, make_page):
    embedded = make_page([make_ad(1, 0, 50)])
    html = embedded.replace("</body>", CARDS_HTML + "</body>")

    result = ListingExtractor().extract(html)

    assert result.success
    assert result.strategy == "markup"


def test_schema_drift_failure():
    result = ListingExtractor().extract("<html><body><p>Brak ogłoszeń</p></body></html>")

    assert not result.success
    assert result.records == []
    assert result.error.startswith(SCHEMA_DRIFT_MESSAGE)
    assert "embedded_state" in result.error
    assert "markup" in result.error


def test_empty_html_is_drift():
    assert not ListingExtractor().extract("").success
