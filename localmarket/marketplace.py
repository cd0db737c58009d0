from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from localmarket.campaigns import CampaignEngine
from localmarket.config import Config
from localmarket.coordinator import TransactionCoordinator
from localmarket.errors import LocationRequired, MarketplaceError
from localmarket.geo import GeoIndex, GeoPoint
from localmarket.models import Campaign, Order, Product, Vendor, new_id
from localmarket.services import InventoryLedger, SearchService
from localmarket.store import Clock, Store

logger = logging.getLogger(__name__)


def _money(value: Decimal) -> str:
    return f"{value:.2f}"


def _timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat()


def vendor_payload(vendor: Vendor) -> Dict[str, Any]:
    return {
        "id": vendor.id,
        "name": vendor.name,
        "description": vendor.description,
        "location": {"latitude": vendor.latitude, "longitude": vendor.longitude},
    }


def product_payload(product: Product) -> Dict[str, Any]:
    return {
        "id": product.id,
        "vendorId": product.vendor_id,
        "name": product.name,
        "description": product.description,
        "price": _money(product.price),
        "stock": product.stock,
    }


def order_payload(order: Order) -> Dict[str, Any]:
    return {
        "orderId": order.id,
        "productId": order.product_id,
        "buyerId": order.buyer_id,
        "quantity": order.quantity,
        "remainingStock": order.remaining_stock,
        "createdAt": _timestamp(order.created_at),
    }


def campaign_payload(campaign: Campaign) -> Dict[str, Any]:
    return {
        "id": campaign.id,
        "vendorId": campaign.vendor_id,
        "title": campaign.title,
        "description": campaign.description,
        "targetAmount": _money(campaign.target_amount),
        "currentAmount": _money(campaign.current_amount),
        "progressPercentage": _money(campaign.progress_percentage),
        "deadline": _timestamp(campaign.deadline),
        "category": campaign.category.value,
        "status": campaign.status.value,
        "fundedAt": _timestamp(campaign.funded_at),
    }


class Marketplace:
    """
    Boundary of the engine: wires the components together and returns plain
    dict payloads for whatever transport sits in front of it.
    """

    def __init__(self, clock: Optional[Clock] = None, lock_timeout: Optional[float] = None):
        self.store = Store(clock=clock, lock_timeout=lock_timeout)
        self.geo = GeoIndex()
        self.ledger = InventoryLedger(self.store)
        self.search_service = SearchService(self.store, self.geo)
        self.campaigns = CampaignEngine(self.store)
        self.coordinator = TransactionCoordinator(self.store, self.ledger, self.campaigns)

    @staticmethod
    def _origin(latitude: Optional[float], longitude: Optional[float]) -> GeoPoint:
        if latitude is None or longitude is None:
            raise LocationRequired("Latitude and longitude are required")
        return GeoPoint(latitude, longitude)

    def handle(self, operation: Callable[..., Any], *args, **kwargs) -> Dict[str, Any]:
        """Run a boundary operation, turning engine errors into an error payload."""
        try:
            return {"ok": True, "data": operation(*args, **kwargs)}
        except MarketplaceError as e:
            logger.warning("%s failed: %s %s", getattr(operation, "__name__", operation), e.code, e.message)
            return {"ok": False, "error": e.to_dict()}

    def register_vendor(self, name: str, description: str, latitude: float, longitude: float) -> Dict[str, Any]:
        point = GeoPoint(latitude, longitude)
        vendor = Vendor(
            id=new_id("ven"),
            name=name,
            description=description or "",
            latitude=point.latitude,
            longitude=point.longitude,
        )
        self.store.add_vendor(vendor)
        self.geo.index_location(vendor.id, vendor.latitude, vendor.longitude)
        self.store.log(f"[vendor={vendor.id}] registered at ({vendor.latitude}, {vendor.longitude})")
        return vendor_payload(vendor)

    def nearby_search(
        self,
        query: Optional[str],
        latitude: Optional[float],
        longitude: Optional[float],
        radius_meters: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        origin = self._origin(latitude, longitude)
        radius = Config.DEFAULT_SEARCH_RADIUS_METERS if radius_meters is None else radius_meters
        return [
            {
                "product": product_payload(hit.product),
                "vendor": vendor_payload(hit.vendor),
                "distanceMeters": round(hit.distance_meters, 1),
            }
            for hit in self.search_service.search(query, origin, radius)
        ]

    def confirm_order(self, product_id: str, buyer_id: str) -> Dict[str, Any]:
        return order_payload(self.coordinator.confirm_order(product_id, buyer_id))

    def add_product(self, vendor_id: str, name: str, description: str, price, stock) -> Dict[str, Any]:
        return product_payload(self.ledger.create_product(vendor_id, name, description, price, stock))

    def create_campaign(
        self,
        vendor_id: str,
        title: str,
        description: str,
        target_amount,
        deadline: datetime,
        category,
    ) -> Dict[str, Any]:
        campaign = self.campaigns.create_campaign(vendor_id, title, description, target_amount, deadline, category)
        return campaign_payload(campaign)

    def back_campaign(self, campaign_id: str, backer_id: str, amount) -> Dict[str, Any]:
        return campaign_payload(self.coordinator.back_campaign(campaign_id, backer_id, amount))

    def nearby_campaigns(
        self,
        latitude: Optional[float],
        longitude: Optional[float],
        radius_meters: Optional[float] = None,
    ) -> List[Dict[str, Any]]:
        origin = self._origin(latitude, longitude)
        radius = Config.DEFAULT_SEARCH_RADIUS_METERS if radius_meters is None else radius_meters
        result = []
        for hit in self.search_service.nearby_campaigns(origin, radius):
            payload = campaign_payload(hit.campaign)
            payload["vendorName"] = hit.vendor.name
            payload["distanceMeters"] = round(hit.distance_meters, 1)
            payload["backers"] = self.campaigns.backer_count(hit.campaign.id)
            result.append(payload)
        return result

    def mark_delivered(self, campaign_id: str) -> Dict[str, Any]:
        return campaign_payload(self.campaigns.mark_delivered(campaign_id))

    def expire_campaigns(self) -> List[Dict[str, Any]]:
        return [campaign_payload(c) for c in self.campaigns.expire_due()]
