from __future__ import annotations

import dataclasses
from datetime import datetime
from typing import Dict, FrozenSet, List

from localmarket.errors import (
    CampaignNotActive,
    CampaignNotFound,
    DeadlinePassed,
    InvalidCampaign,
    InvalidPledge,
    InvalidTransition,
    VendorNotFound,
)
from localmarket.models import (
    Campaign,
    CampaignCategory,
    CampaignStatus,
    Pledge,
    PledgeResult,
    StatusTransition,
    new_id,
    to_money,
)
from localmarket.store import Store

# Допустимые переходы. funded -> delivered единственный выход из funded.
TRANSITIONS: Dict[CampaignStatus, FrozenSet[CampaignStatus]] = {
    CampaignStatus.ACTIVE: frozenset({CampaignStatus.FUNDED, CampaignStatus.FAILED}),
    CampaignStatus.FUNDED: frozenset({CampaignStatus.DELIVERED}),
    CampaignStatus.DELIVERED: frozenset(),
    CampaignStatus.FAILED: frozenset(),
}

# funded campaigns keep collecting toward the full target
OPEN_FOR_PLEDGES = frozenset({CampaignStatus.ACTIVE, CampaignStatus.FUNDED})


def _category(value) -> CampaignCategory:
    try:
        return CampaignCategory(value)
    except ValueError:
        allowed = ", ".join(c.value for c in CampaignCategory)
        raise InvalidCampaign(f"Unknown category {value!r} (expected one of: {allowed})") from None


class CampaignEngine:
    """
    Campaigns, their pledge ledger and the funding-threshold state machine.

    Once pledges reach half of the target the campaign is funded and the
    vendor has to deliver, whatever happens to the rest of the target.
    Every state change for a campaign happens while holding that campaign's
    lock, so the amount update and the threshold check cannot be split by a
    concurrent pledge.

    Writers work on a copy and publish it (and fresh pledge/transition lists)
    by replacing the store entry. Readers never take the lock.
    """

    def __init__(self, store: Store):
        self.store = store

    def _campaign(self, campaign_id: str) -> Campaign:
        campaign = self.store.campaigns.get(campaign_id)
        if not campaign:
            raise CampaignNotFound(f"Campaign {campaign_id} not found")
        return campaign

    def _transition(self, campaign: Campaign, to_status: CampaignStatus, at: datetime) -> None:
        # caller holds the campaign lock
        from_status = campaign.status
        if to_status not in TRANSITIONS[from_status]:
            raise InvalidTransition(f"Campaign {campaign.id} cannot go from {from_status.value} to {to_status.value}")
        campaign.status = to_status
        if to_status == CampaignStatus.FUNDED:
            campaign.funded_at = at
        else:
            campaign.closed_at = at
        transition = StatusTransition(campaign_id=campaign.id, from_status=from_status, to_status=to_status, at=at)
        self.store.transitions[campaign.id] = [*self.store.transitions[campaign.id], transition]
        self.store.log(f"[campaign={campaign.id}] status {from_status.value} -> {to_status.value}")

    def create_campaign(
        self,
        vendor_id: str,
        title: str,
        description: str,
        target_amount,
        deadline: datetime,
        category,
    ) -> Campaign:
        if not title or not str(title).strip():
            raise InvalidCampaign("Campaign title must not be empty")
        target = to_money(target_amount, InvalidCampaign, field="target amount")
        if target <= 0:
            raise InvalidCampaign(f"Target amount must be > 0, got {target}")
        if not isinstance(deadline, datetime) or deadline.tzinfo is None:
            raise InvalidCampaign(f"Deadline must be a timezone-aware datetime, got {deadline!r}")
        now = self.store.now()
        if deadline <= now:
            raise InvalidCampaign(f"Deadline {deadline.isoformat()} is not in the future")
        cat = _category(category)
        if vendor_id not in self.store.vendors:
            raise VendorNotFound(f"Vendor {vendor_id} not found")

        campaign = Campaign(
            id=new_id("cmp"),
            vendor_id=vendor_id,
            title=str(title).strip(),
            description=description or "",
            target_amount=target,
            deadline=deadline,
            category=cat,
            created_at=now,
        )
        self.store.add_campaign(campaign)
        self.store.log(
            f"[campaign={campaign.id}] created by vendor={vendor_id} target={target} deadline={deadline.isoformat()}"
        )
        return dataclasses.replace(campaign)

    def get_campaign(self, campaign_id: str) -> Campaign:
        # published records are never mutated, so reads need no lock
        return dataclasses.replace(self._campaign(campaign_id))

    def list_pledges(self, campaign_id: str) -> List[Pledge]:
        self._campaign(campaign_id)
        return list(self.store.pledges[campaign_id])

    def list_transitions(self, campaign_id: str) -> List[StatusTransition]:
        self._campaign(campaign_id)
        return list(self.store.transitions[campaign_id])

    def backer_count(self, campaign_id: str) -> int:
        return len({p.backer_id for p in self.list_pledges(campaign_id)})

    def _publish(self, campaign: Campaign) -> Campaign:
        # caller holds the campaign lock
        self.store.campaigns[campaign.id] = campaign
        return dataclasses.replace(campaign)

    def pledge(self, campaign_id: str, backer_id: str, amount) -> PledgeResult:
        value = to_money(amount, InvalidPledge)
        if value <= 0:
            raise InvalidPledge(f"Pledge amount must be > 0, got {value}")
        self._campaign(campaign_id)

        with self.store.locked(f"campaign={campaign_id}"):
            campaign = dataclasses.replace(self._campaign(campaign_id))
            now = self.store.now()
            if campaign.status not in OPEN_FOR_PLEDGES:
                self.store.log(f"[campaign={campaign_id}] pledge refused: status={campaign.status.value}")
                raise CampaignNotActive(f"Campaign {campaign_id} is {campaign.status.value} and takes no pledges")
            if now > campaign.deadline:
                self.store.log(f"[campaign={campaign_id}] pledge refused: deadline passed")
                raise DeadlinePassed(f"Campaign {campaign_id} deadline {campaign.deadline.isoformat()} has passed")

            pledge = Pledge(
                id=new_id("plg"),
                campaign_id=campaign_id,
                backer_id=backer_id,
                amount=value,
                created_at=now,
            )
            campaign.current_amount += value

            # threshold only matters while active; a funded campaign stays funded
            funded_now = campaign.status == CampaignStatus.ACTIVE and campaign.threshold_reached
            if funded_now:
                self._transition(campaign, CampaignStatus.FUNDED, now)
            self.store.pledges[campaign_id] = [*self.store.pledges[campaign_id], pledge]
            snapshot = self._publish(campaign)
            self.store.log(
                f"[campaign={campaign_id}] pledge={pledge.id} backer={backer_id} amount={value} "
                f"(current={campaign.current_amount}/{campaign.target_amount})"
            )

        return PledgeResult(pledge=pledge, campaign=snapshot, funded_now=funded_now)

    def mark_delivered(self, campaign_id: str) -> Campaign:
        self._campaign(campaign_id)
        with self.store.locked(f"campaign={campaign_id}"):
            campaign = dataclasses.replace(self._campaign(campaign_id))
            self._transition(campaign, CampaignStatus.DELIVERED, self.store.now())
            return self._publish(campaign)

    def expire(self, campaign_id: str) -> Campaign:
        """
        Fail an active campaign whose deadline has passed without reaching 50%.

        Funded, delivered and already failed campaigns come back unchanged.
        """
        self._campaign(campaign_id)
        with self.store.locked(f"campaign={campaign_id}"):
            campaign = dataclasses.replace(self._campaign(campaign_id))
            if campaign.status != CampaignStatus.ACTIVE:
                return campaign
            now = self.store.now()
            if now <= campaign.deadline:
                raise InvalidTransition(
                    f"Campaign {campaign_id} cannot expire before its deadline {campaign.deadline.isoformat()}"
                )
            # active implies the threshold was never reached: funding is immediate
            self._transition(campaign, CampaignStatus.FAILED, now)
            return self._publish(campaign)

    def expire_due(self) -> List[Campaign]:
        now = self.store.now()
        failed: List[Campaign] = []
        for campaign_id, campaign in list(self.store.campaigns.items()):
            if campaign.status != CampaignStatus.ACTIVE or now <= campaign.deadline:
                continue
            result = self.expire(campaign_id)
            if result.status == CampaignStatus.FAILED:
                failed.append(result)
        return failed
