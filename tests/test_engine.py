import asyncio
from datetime import date

import pytest

from tasador.database import StoreError, StoreErrorKind
from tasador.models import (
    DataType,
    Market,
    MarketType,
    RefreshErrorKind,
    RefreshStatus,
    TransactionInput,
    TrendDirection,
)
from tasador.tracking import PriceTracker


def refresh(tracker, slug="elk", market=Market.PRIMARY):
    return asyncio.run(tracker.refresh(slug, market))


def elk_id(tracker):
    return tracker.get_city("elk").id


def test_seed_cities_is_idempotent(tracker):
    assert tracker.seed_cities() == []
    assert [c.slug for c in tracker.list_cities()] == ["elk", "suwalki"]


def test_refresh_end_to_end(tracker, session, fake_response, make_ad, make_page, clock):
    session.responses = [
        fake_response(200, make_page([make_ad(1, 300000, 50), make_ad(2, 420000, 60)], total=143)),
        fake_response(200, make_page([make_ad(1, 300000, 50)], total=142)),
    ]

    first = refresh(tracker)
    clock.today = date(2025, 3, 21)
    second = refresh(tracker)

    assert first.to_dict() == {
        "success": True,
        "totalFound": 143,
        "scraped": 2,
        "new": 2,
        "updated": 0,
        "deactivated": 0,
    }
    assert (second.new, second.updated, second.deactivated) == (0, 1, 1)

    city_id = elk_id(tracker)
    active = tracker.get_listings(city_id)
    assert [l.external_id for l in active] == ["1"]
    assert active[0].first_seen == date(2025, 3, 14)
    assert active[0].last_seen == date(2025, 3, 21)
    assert tracker.get_last_refresh(city_id).listings_found == 1

    assert "elcki/gmina-miejska--elk/elk" in session.requests[0]["url"]
    assert "market=PRIMARY" in session.requests[0]["url"]


def test_refresh_writes_listing_snapshot_and_log(tracker, session, fake_response, make_ad, make_page):
    session.responses = [
        fake_response(200, make_page([make_ad(1, 300000, 50), make_ad(2, 350000, 50)]))
    ]

    refresh(tracker)

    city_id = elk_id(tracker)
    snapshots = tracker.get_price_snapshots(city_id, DataType.LISTING)
    assert [(s.month, s.avg_price_per_m2, s.listing_count) for s in snapshots] == [
        ("2025-03", 6500.0, 2)
    ]
    last = tracker.get_last_refresh(city_id)
    assert last.status == RefreshStatus.SUCCESS
    assert last.listings_found == 2


def test_failed_refresh_leaves_listings_untouched(tracker, session, fake_response, make_ad, make_page):
    session.responses = [
        fake_response(200, make_page([make_ad(1, 300000, 50)])),
        fake_response(403, "Access denied"),
        fake_response(200, "<html><body>Captcha</body></html>"),
    ]
    refresh(tracker)

    blocked = refresh(tracker)
    drifted = refresh(tracker)

    assert blocked.error_kind == RefreshErrorKind.NETWORK
    assert drifted.error_kind == RefreshErrorKind.SCHEMA_DRIFT
    payload = drifted.to_dict()
    assert payload["success"] is False
    assert payload["errorKind"] == "schema_drift"
    assert "otodom" in payload["message"]
    assert payload["hint"]

    city_id = elk_id(tracker)
    assert [l.external_id for l in tracker.get_listings(city_id)] == ["1"]
    last = tracker.get_last_refresh(city_id)
    assert last.status == RefreshStatus.ERROR
    assert last.error_message


def test_refresh_unknown_city(tracker, session):
    outcome = refresh(tracker, slug="warszawa")

    assert not outcome.success
    assert outcome.error_kind == RefreshErrorKind.UNKNOWN_CITY
    assert session.requests == []


def test_get_listings_sorted_and_filtered(tracker, session, fake_response, make_ad, make_page):
    items = [
        make_ad(1, 480000, 60),
        make_ad(2, 300000, 60, market="SECONDARY"),
        make_ad(3, 390000, 60),
    ]
    session.responses = [fake_response(200, make_page(items))]
    refresh(tracker, market=Market.ALL)
    city_id = elk_id(tracker)

    assert [l.external_id for l in tracker.get_listings(city_id)] == ["2", "3", "1"]
    assert [l.external_id for l in tracker.get_listings(city_id, MarketType.SECONDARY)] == ["2"]

    stats = tracker.get_listing_stats(city_id)
    assert stats.total == 3
    assert (stats.primary, stats.secondary) == (2, 1)
    assert stats.avg_price == 390000
    assert stats.median_price_per_m2 == 6500
    assert stats.min_price_per_m2 == 5000
    assert stats.max_price_per_m2 == 8000


def test_transactions_recompute_snapshots_and_trend(tracker):
    city_id = elk_id(tracker)

    tracker.add_transaction(
        TransactionInput(city_id=city_id, transaction_date=date(2024, 11, 10), price=300000, area=50)
    )
    imported = tracker.add_transactions_bulk(
        [
            TransactionInput(city_id=city_id, transaction_date=date(2025, 2, 5), price=325000, area=50),
            TransactionInput(city_id=city_id, transaction_date=date(2025, 2, 25), price=325000, area=50),
        ]
    )

    assert imported == 2
    snapshots = tracker.get_price_snapshots(city_id, DataType.TRANSACTION)
    assert [(s.month, s.avg_price_per_m2) for s in snapshots] == [("2024-11", 6000), ("2025-02", 6500)]
    trend = tracker.get_trend(city_id)
    assert trend.direction == TrendDirection.UP
    assert trend.change_percent == 8.3

    transactions = tracker.get_transactions(city_id)
    assert [t.transaction_date for t in transactions] == [
        date(2025, 2, 25),
        date(2025, 2, 5),
        date(2024, 11, 10),
    ]
    assert transactions[-1].source == "manual"
    assert transactions[0].source == "import"
    assert len(tracker.get_transactions(city_id, limit=1)) == 1

    stats = tracker.get_transaction_stats(city_id)
    assert stats.total == 3
    assert stats.last_3_months == 2

    assert tracker.delete_transaction(transactions[-1].id)
    assert [s.month for s in tracker.get_price_snapshots(city_id, DataType.TRANSACTION)] == ["2025-02"]
    assert tracker.get_trend(city_id).direction == TrendDirection.STABLE
    assert not tracker.delete_transaction(999)


def test_transaction_for_unknown_city(tracker):
    with pytest.raises(StoreError) as exc_info:
        tracker.add_transaction(
            TransactionInput(city_id=404, transaction_date=date(2024, 11, 10), price=300000, area=50)
        )

    assert exc_info.value.kind == StoreErrorKind.NOT_FOUND


def test_city_stats_and_cards(tracker, session, fake_response, make_ad, make_page):
    session.responses = [fake_response(200, make_page([make_ad(1, 300000, 50)]))]
    refresh(tracker)
    city = tracker.get_city("elk")

    stats = tracker.get_city_stats(city)
    cards = {card.city.slug: card for card in tracker.get_city_cards()}

    assert stats.listings.total == 1
    assert stats.last_refreshed is not None
    assert [s.data_type for s in stats.price_history] == [DataType.LISTING]
    assert cards["elk"].active_listings == 1
    assert cards["elk"].avg_listing_price_per_m2 == 6000
    assert cards["suwalki"].active_listings == 0
    assert cards["suwalki"].last_refreshed is None


def test_remove_city(tracker):
    assert tracker.remove_city("suwalki")
    assert tracker.get_city("suwalki") is None
    assert not tracker.remove_city("suwalki")


def test_seed_loads_reference_transactions(store, clock):
    tracker = PriceTracker(store, clock=clock)

    created = tracker.seed_cities()

    assert [c.slug for c in created] == ["elk", "suwalki"]
    elk = tracker.get_city("elk")
    transactions = tracker.get_transactions(elk.id)
    assert len(transactions) == 40
    assert {t.source for t in transactions} == {"RCN"}

    snapshots = tracker.get_price_snapshots(elk.id, DataType.TRANSACTION)
    assert len(snapshots) == 11
    march = snapshots[0]
    assert march.month == "2025-03"
    assert (march.avg_price_per_m2, march.median_price_per_m2, march.listing_count) == (5375.33, 5400, 3)
    assert tracker.get_trend(elk.id).direction == TrendDirection.UP

    assert tracker.seed_cities() == []
    assert len(tracker.get_transactions(elk.id)) == 40


def test_refresh_with_undecodable_page_is_soft_failure(tracker, session, fake_response):
    session.responses = [fake_response(200, b"<html>\xff\xfe bad</html>")]

    outcome = refresh(tracker)

    assert not outcome.success
    assert outcome.error_kind == RefreshErrorKind.SCHEMA_DRIFT
    assert tracker.get_last_refresh(elk_id(tracker)).status == RefreshStatus.ERROR
