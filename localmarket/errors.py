from __future__ import annotations

from typing import Dict


class MarketplaceError(Exception):
    kind = "error"
    transient = False

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind, "code": self.code, "message": self.message}


class ValidationError(MarketplaceError):
    """Bad input, rejected before anything is touched."""

    kind = "validation"


class ConflictError(MarketplaceError):
    """Refused by the current state of an aggregate; the aggregate is unchanged."""

    kind = "conflict"


class NotFoundError(MarketplaceError):
    kind = "not_found"


class InfrastructureError(MarketplaceError):
    kind = "infrastructure"
    transient = True


class InvalidProduct(ValidationError):
    pass


class InvalidCampaign(ValidationError):
    pass


class InvalidPledge(ValidationError):
    pass


class InvalidCoordinate(ValidationError):
    pass


class InvalidRadius(ValidationError):
    pass


class InvalidQuantity(ValidationError):
    pass


class LocationRequired(ValidationError):
    pass


class InsufficientStock(ConflictError):
    pass


class CampaignNotActive(ConflictError):
    pass


class DeadlinePassed(ConflictError):
    pass


class InvalidTransition(ConflictError):
    pass


class ProductNotFound(NotFoundError):
    pass


class CampaignNotFound(NotFoundError):
    pass


class VendorNotFound(NotFoundError):
    pass


class OrderNotFound(NotFoundError):
    pass


class StoreTimeout(InfrastructureError):
    """Could not get exclusive access to an aggregate in time. Safe to retry."""
