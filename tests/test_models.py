from datetime import date

import pytest
from pydantic import ValidationError

from tasador.models import CityInput, Market, MarketType, TransactionInput, slugify


@pytest.mark.parametrize(
    "value,expected",
    [("primary", Market.PRIMARY), (" Secondary ", Market.SECONDARY), ("ALL", Market.ALL)],
)
def test_market_parse(value, expected):
    assert Market.parse(value) == expected


def test_market_parse_default_and_invalid():
    assert Market.parse(None, Market.ALL) == Market.ALL
    with pytest.raises(ValueError):
        Market.parse("luxury")
    with pytest.raises(ValueError):
        Market.parse("")


def test_market_type_of_scope():
    assert Market.PRIMARY.market_type == MarketType.PRIMARY
    assert Market.SECONDARY.market_type == MarketType.SECONDARY
    assert Market.ALL.market_type is None


@pytest.mark.parametrize(
    "name,slug",
    [("Ełk", "elk"), ("Suwałki", "suwalki"), ("Biała Podlaska", "biala-podlaska"), ("Łódź", "lodz")],
)
def test_slugify(name, slug):
    assert slugify(name) == slug


def test_city_input_slug():
    city = CityInput(name="Gołdap", voivodeship="warmińsko-mazurskie", voivodeship_slug="w", otodom_city_slug="g")

    assert city.resolved_slug() == "goldap"
    assert city.model_copy(update={"slug": "custom"}).resolved_slug() == "custom"


def test_transaction_price_per_m2_derived():
    transaction = TransactionInput(city_id=1, transaction_date=date(2025, 1, 5), price=350000, area=52.5)

    assert transaction.price_per_m2 == 6666.67
    assert transaction.property_type == "mieszkanie"
    assert transaction.market_type == "pierwotny"


def test_transaction_price_per_m2_kept():
    transaction = TransactionInput(
        city_id=1, transaction_date=date(2025, 1, 5), price=350000, area=52.5, price_per_m2=6700
    )

    assert transaction.price_per_m2 == 6700


@pytest.mark.parametrize("field", ["price", "area"])
def test_transaction_rejects_non_positive(field):
    data = {"city_id": 1, "transaction_date": date(2025, 1, 5), "price": 350000, "area": 52.5}
    data[field] = 0

    with pytest.raises(ValidationError):
        TransactionInput(**data)
