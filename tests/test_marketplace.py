"""Tests for the Marketplace boundary: payloads and error rendering."""
from datetime import timedelta
from decimal import Decimal

import pytest

from localmarket.errors import InvalidCoordinate, LocationRequired


def test_register_vendor_and_search_payload(market):
    vendor = market.register_vendor("Corner Bakery", "Sourdough", 51.5074, -0.1278)
    market.add_product(vendor["id"], "Rye loaf", "Dark rye", Decimal("4.5"), 2)

    [hit] = market.nearby_search("rye", 51.5080, -0.1280, 1000)

    assert hit["vendor"]["name"] == "Corner Bakery"
    assert hit["product"]["price"] == "4.50"
    assert hit["product"]["stock"] == 2
    assert 0 < hit["distanceMeters"] < 100


def test_register_vendor_rejects_bad_location(market):
    with pytest.raises(InvalidCoordinate):
        market.register_vendor("Nowhere", "", 123.0, 0.0)
    assert market.store.vendors == {}


def test_nearby_search_requires_both_coordinates(market):
    with pytest.raises(LocationRequired):
        market.nearby_search("bread", None, -0.1278, 1000)
    with pytest.raises(LocationRequired):
        market.nearby_campaigns(51.5, None)


def test_confirm_order_payload(market, seeded):
    payload = market.confirm_order(seeded.filter_beans.id, "buyer-1")
    assert payload["remainingStock"] == 0
    assert payload["orderId"].startswith("ord_")


def test_handle_renders_engine_errors(market, seeded):
    market.confirm_order(seeded.filter_beans.id, "buyer-1")

    result = market.handle(market.confirm_order, seeded.filter_beans.id, "buyer-2")

    assert result["ok"] is False
    assert result["error"]["kind"] == "conflict"
    assert result["error"]["code"] == "InsufficientStock"
    assert "Insufficient stock" in result["error"]["message"]

    missing = market.handle(market.back_campaign, "cmp_missing", "backer-1", "10")
    assert missing["error"] == {
        "kind": "not_found",
        "code": "CampaignNotFound",
        "message": "Campaign cmp_missing not found",
    }

    invalid = market.handle(market.add_product, seeded.downtown.id, "Mug", "", "0", 1)
    assert invalid["error"]["kind"] == "validation"


@pytest.mark.parametrize("amount", ["1e27", "10.005"])
def test_handle_renders_unrepresentable_amounts(market, seeded, amount):
    pledge = market.handle(market.back_campaign, seeded.roastery.id, "backer-1", amount)
    assert pledge["ok"] is False
    assert pledge["error"]["kind"] == "validation"
    assert pledge["error"]["code"] == "InvalidPledge"

    product = market.handle(market.add_product, seeded.downtown.id, "Mug", "", amount, 1)
    assert product["ok"] is False
    assert product["error"]["code"] == "InvalidProduct"

    assert market.campaigns.get_campaign(seeded.roastery.id).current_amount == Decimal("0.00")


def test_sub_cent_amount_is_rejected_not_rounded(market, seeded):
    result = market.handle(market.back_campaign, seeded.roastery.id, "backer-1", "10.005")
    assert "two decimal places" in result["error"]["message"]
    assert market.campaigns.list_pledges(seeded.roastery.id) == []


def test_handle_propagates_non_engine_errors(market):
    def broken():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        market.handle(broken)


def test_campaign_flow_payloads(market, seeded, clock):
    created = market.create_campaign(
        seeded.midtown.id, "Stone oven", "", "2000", clock() + timedelta(days=3), "home"
    )
    assert created["status"] == "active"
    assert created["targetAmount"] == "2000.00"

    backed = market.back_campaign(created["id"], "backer-1", "1000.00")
    assert backed["status"] == "funded"
    assert backed["progressPercentage"] == "50.00"

    nearby = market.nearby_campaigns(*seeded.origin, 10_000)
    by_id = {c["id"]: c for c in nearby}
    assert by_id[created["id"]]["vendorName"] == "Midtown Bakery"
    assert by_id[created["id"]]["backers"] == 1
    assert nearby[0]["id"] == seeded.roastery.id

    delivered = market.mark_delivered(created["id"])
    assert delivered["status"] == "delivered"


def test_expire_campaigns(market, seeded, clock):
    created = market.create_campaign(seeded.midtown.id, "Stone oven", "", "2000", clock() + timedelta(days=1), "home")
    clock.advance(days=2)

    expired = market.expire_campaigns()

    assert [c["id"] for c in expired] == [created["id"]]
    assert expired[0]["status"] == "failed"


def test_default_radius_applies(market, seeded):
    # 5 km default reaches downtown but not the airport deli
    names = {hit["product"]["name"] for hit in market.nearby_search("", *seeded.origin)}
    assert "Bagel" not in names
    assert "Espresso beans" in names
