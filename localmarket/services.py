from __future__ import annotations

import dataclasses
from typing import List, Optional

from localmarket.errors import (
    InsufficientStock,
    InvalidProduct,
    InvalidQuantity,
    LocationRequired,
    OrderNotFound,
    ProductNotFound,
    VendorNotFound,
)
from localmarket.geo import GeoIndex, PointLike
from localmarket.models import (
    CampaignHit,
    CampaignStatus,
    Order,
    Product,
    SearchHit,
    new_id,
    to_money,
)
from localmarket.store import Store


def _quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantity(f"quantity must be a positive integer, got {quantity!r}")
    return quantity


class InventoryLedger:
    """Only writer of products and orders. Stock changes happen under the product's lock."""

    def __init__(self, store: Store):
        self.store = store

    def create_product(self, vendor_id: str, name: str, description: str, price, stock) -> Product:
        if not name or not str(name).strip():
            raise InvalidProduct("Product name must not be empty")
        amount = to_money(price, InvalidProduct, field="price")
        if amount <= 0:
            raise InvalidProduct(f"Price must be > 0, got {amount}")
        if isinstance(stock, bool) or not isinstance(stock, int):
            raise InvalidProduct(f"Stock must be an integer, got {stock!r}")
        if stock < 0:
            raise InvalidProduct(f"Stock must be >= 0, got {stock}")
        if vendor_id not in self.store.vendors:
            raise VendorNotFound(f"Vendor {vendor_id} not found")

        product = Product(
            id=new_id("prd"),
            vendor_id=vendor_id,
            name=str(name).strip(),
            description=description or "",
            price=amount,
            stock=stock,
            created_at=self.store.now(),
        )
        self.store.add_product(product)
        self.store.log(f"[product={product.id}] created by vendor={vendor_id} price={amount} stock={stock}")
        return dataclasses.replace(product)

    def get_product(self, product_id: str) -> Product:
        product = self.store.products.get(product_id)
        if not product:
            raise ProductNotFound(f"Product {product_id} not found")
        return dataclasses.replace(product)

    def list_products(self, vendor_id: str) -> List[Product]:
        if vendor_id not in self.store.vendors:
            raise VendorNotFound(f"Vendor {vendor_id} not found")
        ids = list(self.store.vendor_products.get(vendor_id, ()))
        return [dataclasses.replace(self.store.products[pid]) for pid in ids]

    def list_orders(self, product_id: Optional[str] = None) -> List[Order]:
        orders = list(self.store.orders.values())
        if product_id is not None:
            orders = [o for o in orders if o.product_id == product_id]
        return orders

    def reserve_and_confirm(self, product_id: str, quantity: int, buyer_id: str) -> Order:
        """
        Check-and-decrement in one critical section, then record the order.

        Two callers racing for the last unit cannot both pass the check.
        """
        qty = _quantity(quantity)
        product = self.store.products.get(product_id)
        if not product:
            raise ProductNotFound(f"Product {product_id} not found")

        with self.store.locked(f"product={product_id}"):
            if product.stock < qty:
                self.store.log(
                    f"[product={product_id}] insufficient stock for buyer={buyer_id}: have={product.stock}, need={qty}"
                )
                raise InsufficientStock(f"Insufficient stock for {product_id}: have={product.stock}, need={qty}")
            product.stock -= qty
            order = Order(
                id=new_id("ord"),
                product_id=product_id,
                buyer_id=buyer_id,
                quantity=qty,
                remaining_stock=product.stock,
                created_at=self.store.now(),
            )
            self.store.orders[order.id] = order
            self.store.log(
                f"[product={product_id}] order={order.id} confirmed buyer={buyer_id} qty={qty} (stock={product.stock})"
            )
        return order

    def release(self, product_id: str, quantity: int, order_id: str) -> bool:
        """
        Put an order's units back. Returns False if this order was already released.
        """
        qty = _quantity(quantity)
        order = self.store.orders.get(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found")
        if order.product_id != product_id or order.quantity != qty:
            raise InvalidQuantity(
                f"Order {order_id} is for {order.product_id} qty={order.quantity}, not {product_id} qty={qty}"
            )
        product = self.store.products[product_id]

        with self.store.locked(f"product={product_id}"):
            if order_id in self.store.released_orders:
                self.store.log(f"[product={product_id}] order={order_id} already released")
                return False
            product.stock += qty
            self.store.released_orders.add(order_id)
            self.store.log(f"[product={product_id}] order={order_id} released qty={qty} (stock={product.stock})")
        return True


class SearchService:
    """
    Read path. Takes no aggregate lock: stock is read once per product, which
    is a consistent snapshot of the only field that changes.
    """

    def __init__(self, store: Store, geo: GeoIndex):
        self.store = store
        self.geo = geo

    def search(self, query: Optional[str], origin: Optional[PointLike], radius_meters: float) -> List[SearchHit]:
        if origin is None:
            raise LocationRequired("A location is required to search nearby products")

        hits: List[SearchHit] = []
        for vendor_id, distance in self.geo.within_radius(origin, radius_meters):
            vendor = self.store.vendors.get(vendor_id)
            if vendor is None:
                continue
            for product_id in list(self.store.vendor_products.get(vendor_id, ())):
                snapshot = dataclasses.replace(self.store.products[product_id])
                if snapshot.stock <= 0 or not snapshot.matches(query):
                    continue
                hits.append(SearchHit(product=snapshot, vendor=vendor, distance_meters=distance))

        hits.sort(key=lambda h: (h.distance_meters, h.product.id))
        return hits

    def nearby_campaigns(
        self,
        origin: Optional[PointLike],
        radius_meters: float,
        status: Optional[CampaignStatus] = None,
    ) -> List[CampaignHit]:
        if origin is None:
            raise LocationRequired("A location is required to list nearby campaigns")

        hits: List[CampaignHit] = []
        for vendor_id, distance in self.geo.within_radius(origin, radius_meters):
            vendor = self.store.vendors.get(vendor_id)
            if vendor is None:
                continue
            for campaign_id in list(self.store.vendor_campaigns.get(vendor_id, ())):
                # campaign writes publish a fresh record, so this read sees a whole state
                snapshot = dataclasses.replace(self.store.campaigns[campaign_id])
                if status is not None and snapshot.status != status:
                    continue
                hits.append(CampaignHit(campaign=snapshot, vendor=vendor, distance_meters=distance))

        hits.sort(key=lambda h: (h.distance_meters, h.campaign.id))
        return hits
