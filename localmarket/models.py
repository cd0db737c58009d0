from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional, Type

from localmarket.errors import ValidationError

CENTS = Decimal("0.01")


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def to_money(value, error: Type[ValidationError], field: str = "amount") -> Decimal:
    """
    Приводит значение к Decimal с двумя знаками. Не округляет: 10.005 отклоняется.

    float проходит через str(), чтобы 0.1 не превратился в 0.1000000000000000055...
    """
    if isinstance(value, bool):
        raise error(f"{field} must be a decimal amount, got {value!r}")
    try:
        amount = Decimal(str(value)) if isinstance(value, float) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise error(f"{field} must be a decimal amount, got {value!r}") from None
    if not amount.is_finite():
        raise error(f"{field} must be finite, got {value!r}")
    try:
        cents = amount.quantize(CENTS)
    except InvalidOperation:
        # more digits than the decimal context can hold at two places
        raise error(f"{field} is too large, got {value!r}") from None
    if cents != amount:
        raise error(f"{field} must have at most two decimal places, got {value!r}")
    return cents


class CampaignStatus(str, Enum):
    ACTIVE = "active"
    FUNDED = "funded"
    DELIVERED = "delivered"
    FAILED = "failed"


class CampaignCategory(str, Enum):
    FOOD = "food"
    TECH = "tech"
    FASHION = "fashion"
    HOME = "home"
    HEALTH = "health"
    OTHER = "other"


@dataclass(slots=True, frozen=True)
class Vendor:
    id: str
    name: str
    description: str
    latitude: float
    longitude: float


@dataclass(slots=True)
class Product:
    id: str
    vendor_id: str
    name: str
    description: str
    price: Decimal
    stock: int
    created_at: datetime

    def matches(self, query: Optional[str]) -> bool:
        if not query:
            return True
        needle = query.casefold()
        return needle in self.name.casefold() or needle in self.description.casefold()


@dataclass(slots=True, frozen=True)
class Order:
    id: str
    product_id: str
    buyer_id: str
    quantity: int
    remaining_stock: int
    created_at: datetime


@dataclass(slots=True)
class Campaign:
    id: str
    vendor_id: str
    title: str
    description: str
    target_amount: Decimal
    deadline: datetime
    category: CampaignCategory
    created_at: datetime
    current_amount: Decimal = Decimal("0.00")
    status: CampaignStatus = CampaignStatus.ACTIVE
    funded_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    @property
    def funding_ratio(self) -> Decimal:
        return self.current_amount / self.target_amount

    @property
    def progress_percentage(self) -> Decimal:
        return min(self.funding_ratio * 100, Decimal(100)).quantize(CENTS)

    @property
    def threshold_reached(self) -> bool:
        # 50% ровно тоже считается
        return self.current_amount * 2 >= self.target_amount


@dataclass(slots=True, frozen=True)
class Pledge:
    id: str
    campaign_id: str
    backer_id: str
    amount: Decimal
    created_at: datetime


@dataclass(slots=True, frozen=True)
class StatusTransition:
    campaign_id: str
    from_status: CampaignStatus
    to_status: CampaignStatus
    at: datetime


@dataclass(slots=True, frozen=True)
class PledgeResult:
    pledge: Pledge
    campaign: Campaign
    funded_now: bool


@dataclass(slots=True, frozen=True)
class SearchHit:
    product: Product
    vendor: Vendor
    distance_meters: float


@dataclass(slots=True, frozen=True)
class CampaignHit:
    campaign: Campaign
    vendor: Vendor
    distance_meters: float
