from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, List, Optional

from localmarket.campaigns import CampaignEngine
from localmarket.models import Campaign, Order
from localmarket.services import InventoryLedger
from localmarket.store import Store

ORDER_QUANTITY = 1

OrderListener = Callable[[Order], None]


class PipelineError(Exception):
    """Raised on purpose by fail_at_step to exercise compensation."""


class Step(ABC):
    def __init__(self, store: Store, ref: str):
        self.store = store
        self.ref = ref

    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def execute(self) -> None: ...

    @abstractmethod
    def compensate(self) -> None: ...

    def run(self) -> None:
        self.store.log(f"[{self.ref}] STEP {self.name()}")
        self.execute()
        self.store.log(f"[{self.ref}] STEP {self.name()} OK")

    def run_compensation(self) -> None:
        self.store.log(f"[{self.ref}] COMPENSATE {self.name()}")
        self.compensate()
        self.store.log(f"[{self.ref}] COMPENSATE {self.name()} OK")


class ReserveStock(Step):
    def __init__(self, store: Store, ref: str, ledger: InventoryLedger, product_id: str, buyer_id: str):
        super().__init__(store, ref)
        self.ledger = ledger
        self.product_id = product_id
        self.buyer_id = buyer_id
        self.order: Optional[Order] = None

    def name(self) -> str:
        return "ReserveStock"

    def execute(self) -> None:
        self.order = self.ledger.reserve_and_confirm(self.product_id, ORDER_QUANTITY, self.buyer_id)

    def compensate(self) -> None:
        # release is idempotent per order, a repeated compensation is harmless
        self.ledger.release(self.product_id, self.order.quantity, self.order.id)


class FinalizeOrder(Step):
    def __init__(self, store: Store, ref: str, reserve: ReserveStock, listeners: List[OrderListener]):
        super().__init__(store, ref)
        self.reserve = reserve
        self.listeners = listeners

    def name(self) -> str:
        return "FinalizeOrder"

    def execute(self) -> None:
        # Доставка и уведомления вне движка: слушатели получают готовый заказ.
        # Исключение слушателя откатывает резерв.
        order = self.reserve.order
        for listener in self.listeners:
            listener(order)
        self.store.log(
            f"[{self.ref}] order={order.id} finalized (remaining={order.remaining_stock}, listeners={len(self.listeners)})"
        )

    def compensate(self) -> None:
        self.store.log(f"[{self.ref}] finalize has no compensation")


class TransactionCoordinator:
    """
    Write path of the marketplace.

    Never touches orders or pledges itself; it only calls InventoryLedger and
    CampaignEngine, each of which locks exactly one aggregate per call.
    """

    def __init__(self, store: Store, ledger: InventoryLedger, campaigns: CampaignEngine):
        self.store = store
        self.ledger = ledger
        self.campaigns = campaigns
        self.order_listeners: List[OrderListener] = []

    def add_order_listener(self, listener: OrderListener) -> None:
        """Called with every confirmed order before confirm_order returns."""
        self.order_listeners.append(listener)

    def confirm_order(self, product_id: str, buyer_id: str, fail_at_step: Optional[str] = None) -> Order:
        """
        Confirm one unit of a product for a buyer.

        Retries are not deduplicated: two calls for the same buyer and product
        buy two units. On failure after stock was taken the stock is released
        and the original exception is raised again, including when an order
        listener raises.

        fail_at_step names a step to fail before it runs, to exercise the
        compensation path without a failing listener.
        """
        ref = f"buyer={buyer_id} product={product_id}"
        self.store.log(f"[{ref}] PIPELINE START")

        reserve = ReserveStock(self.store, ref, self.ledger, product_id, buyer_id)
        steps: List[Step] = [reserve, FinalizeOrder(self.store, ref, reserve, list(self.order_listeners))]

        completed: List[Step] = []
        try:
            for step in steps:
                if fail_at_step == step.name():
                    raise PipelineError(f"Artificial failure at step {step.name()}")
                step.run()
                completed.append(step)
        except Exception as e:
            self.store.log(f"[{ref}] PIPELINE FAILED: {e}")
            for step in reversed(completed):
                try:
                    step.run_compensation()
                except Exception as comp_exc:
                    self.store.log(f"[{ref}] COMPENSATION FAILED at {step.name()}: {comp_exc}")
            raise

        self.store.log(f"[{ref}] PIPELINE OK")
        return reserve.order

    def back_campaign(self, campaign_id: str, backer_id: str, amount) -> Campaign:
        return self.campaigns.pledge(campaign_id, backer_id, amount).campaign
