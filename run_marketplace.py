from __future__ import annotations

import argparse
import json
import logging
from datetime import timedelta
from decimal import Decimal

from localmarket.config import setup_logging
from localmarket.marketplace import Marketplace

logger = logging.getLogger("run_marketplace")


def seed(market: Marketplace) -> dict:
    roastery = market.register_vendor(
        "Mountain Peak Coffee Co.", "Small-batch roastery downtown", latitude=40.7128, longitude=-74.0060
    )
    bakery = market.register_vendor("Corner Bakery", "Sourdough and pastries", latitude=40.7306, longitude=-73.9866)

    beans = market.add_product(roastery["id"], "Espresso beans", "Dark roast, 250g", Decimal("14.50"), 3)
    market.add_product(roastery["id"], "Filter beans", "Light roast, 250g", Decimal("12.00"), 10)
    market.add_product(bakery["id"], "Sourdough loaf", "Baked daily", Decimal("6.00"), 1)

    campaign = market.create_campaign(
        roastery["id"],
        "Artisan Coffee Roastery Expansion",
        "New roaster and facility upgrades",
        Decimal("15000"),
        market.store.now() + timedelta(days=30),
        "food",
    )
    return {"vendor": roastery, "product": beans, "campaign": campaign}


def main() -> None:
    setup_logging(fmt="%(message)s")

    p = argparse.ArgumentParser(description="Seed an in-memory marketplace and run one scenario.")
    p.add_argument("--query", type=str, default="")
    p.add_argument("--lat", type=float, default=40.7200)
    p.add_argument("--long", type=float, default=-74.0000)
    p.add_argument("--radius", type=float, default=None, help="Радиус поиска в метрах")
    p.add_argument("--orders", type=int, default=1, help="Сколько раз подтвердить заказ первого товара")
    p.add_argument("--pledge", type=str, default="7500.00")
    args = p.parse_args()

    market = Marketplace()
    market.coordinator.add_order_listener(
        lambda order: logger.info(f"pickup ready: order={order.id} buyer={order.buyer_id}")
    )
    seeded = seed(market)

    results = {
        "search": market.handle(market.nearby_search, args.query, args.lat, args.long, args.radius),
        "orders": [
            market.handle(market.confirm_order, seeded["product"]["id"], f"buyer-{n}") for n in range(args.orders)
        ],
        "pledge": market.handle(market.back_campaign, seeded["campaign"]["id"], "backer-1", args.pledge),
        "campaigns": market.handle(market.nearby_campaigns, args.lat, args.long, args.radius),
    }

    print("\n=== RESULT ===")
    print(json.dumps(results, indent=2))


if __name__ == "__main__":
    main()
