from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, List, Optional

from localmarket.config import Config
from localmarket.errors import StoreTimeout
from localmarket.models import Campaign, Order, Pledge, Product, StatusTransition, Vendor

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Store:
    """
    Хранилище в памяти вместо настоящей БД.

    Каждый агрегат (товар, кампания) имеет свой собственный Lock.
    Глобальной блокировки на операции нет: _registry_lock берётся только
    при создании нового агрегата, чтобы запись и её Lock появлялись вместе.

    Пишут сюда только InventoryLedger (товары/заказы) и CampaignEngine
    (кампании/пледжи/переходы статусов).
    """

    def __init__(self, clock: Optional[Clock] = None, lock_timeout: Optional[float] = None) -> None:
        self.clock: Clock = clock or utc_now
        self.lock_timeout = Config.LOCK_TIMEOUT_SECONDS if lock_timeout is None else lock_timeout

        self.vendors: Dict[str, Vendor] = {}
        self.products: Dict[str, Product] = {}
        self.vendor_products: Dict[str, List[str]] = {}
        self.orders: Dict[str, Order] = {}
        self.released_orders: set[str] = set()

        self.campaigns: Dict[str, Campaign] = {}
        self.vendor_campaigns: Dict[str, List[str]] = {}
        self.pledges: Dict[str, List[Pledge]] = {}
        self.transitions: Dict[str, List[StatusTransition]] = {}

        self.logs: List[str] = []

        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def now(self) -> datetime:
        return self.clock()

    def log(self, message: str) -> None:
        self.logs.append(message)
        logger.info(message)

    @contextmanager
    def locked(self, key: str) -> Iterator[None]:
        """Exclusive access to one aggregate, bounded by lock_timeout."""
        lock = self._locks[key]
        if not lock.acquire(timeout=self.lock_timeout):
            self.log(f"[{key}] lock timeout after {self.lock_timeout}s")
            raise StoreTimeout(f"Timed out waiting for {key}")
        try:
            yield
        finally:
            lock.release()

    # Registration helpers. Каждая создаёт Lock до того, как запись станет видна.
    def add_vendor(self, vendor: Vendor) -> None:
        with self._registry_lock:
            self.vendor_products.setdefault(vendor.id, [])
            self.vendor_campaigns.setdefault(vendor.id, [])
            self.vendors[vendor.id] = vendor

    def add_product(self, product: Product) -> None:
        with self._registry_lock:
            self._locks[f"product={product.id}"] = threading.Lock()
            self.products[product.id] = product
            self.vendor_products.setdefault(product.vendor_id, []).append(product.id)

    def add_campaign(self, campaign: Campaign) -> None:
        with self._registry_lock:
            self._locks[f"campaign={campaign.id}"] = threading.Lock()
            self.pledges[campaign.id] = []
            self.transitions[campaign.id] = []
            self.campaigns[campaign.id] = campaign
            self.vendor_campaigns.setdefault(campaign.vendor_id, []).append(campaign.id)
