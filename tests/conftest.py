"""Pytest fixtures: an in-memory marketplace with a controllable clock."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest

from localmarket.marketplace import Marketplace
from localmarket.models import Vendor, new_id


class FakeClock:
    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def market(clock) -> Marketplace:
    return Marketplace(clock=clock, lock_timeout=2.0)


def add_vendor(market: Marketplace, name: str, lat: float, lon: float) -> Vendor:
    vendor = Vendor(id=new_id("ven"), name=name, description="", latitude=lat, longitude=lon)
    market.store.add_vendor(vendor)
    market.geo.index_location(vendor.id, lat, lon)
    return vendor


@pytest.fixture
def seeded(market, clock) -> SimpleNamespace:
    # Lower Manhattan origin; midtown ~5 km away, JFK ~20 km away
    downtown = add_vendor(market, "Mountain Peak Coffee Co.", 40.7128, -74.0060)
    midtown = add_vendor(market, "Midtown Bakery", 40.7549, -73.9840)
    airport = add_vendor(market, "Airport Deli", 40.6413, -73.7781)

    ledger = market.ledger
    espresso = ledger.create_product(downtown.id, "Espresso beans", "Dark roast, 250g", Decimal("14.50"), 10)
    filter_beans = ledger.create_product(downtown.id, "Filter beans", "Light roast COFFEE", Decimal("12.00"), 1)
    sold_out = ledger.create_product(downtown.id, "Cold brew kit", "Seasonal", Decimal("30.00"), 0)
    loaf = ledger.create_product(midtown.id, "Sourdough loaf", "Baked daily", Decimal("6.00"), 5)
    bagel = ledger.create_product(airport.id, "Bagel", "With coffee", Decimal("3.00"), 50)

    roastery = market.campaigns.create_campaign(
        downtown.id,
        "Artisan Coffee Roastery Expansion",
        "New roaster and facility upgrades",
        Decimal("15000"),
        clock() + timedelta(days=30),
        "food",
    )

    return SimpleNamespace(
        origin=(40.7128, -74.0060),
        downtown=downtown,
        midtown=midtown,
        airport=airport,
        espresso=espresso,
        filter_beans=filter_beans,
        sold_out=sold_out,
        loaf=loaf,
        bagel=bagel,
        roastery=roastery,
    )
