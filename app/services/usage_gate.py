"""
Usage gate: per-tier quotas on journal entries and evidence uploads.

The gate is read-only and runs before anything that costs money. Counts are
derived from the owner's rows on every call; nothing is cached or stored.
"""

import uuid
from dataclasses import dataclass
from typing import Any

from app.db_handlers import (
    EvidenceDBHandler,
    JournalEntryDBHandler,
    SubscriptionDBHandler,
)
from app.exceptions import LimitReached
from app.utils.logger import setup_logger

logger = setup_logger("usage_gate")

ACTIVE_SUBSCRIPTION_STATUSES = ("active", "trialing")


@dataclass(frozen=True)
class TierLimits:
    journal_entries: int | None  # None means unlimited
    evidence_uploads: int | None
    can_export: bool


TIER_LIMITS: dict[str, TierLimits] = {
    "free": TierLimits(journal_entries=5, evidence_uploads=10, can_export=False),
    "starter": TierLimits(journal_entries=20, evidence_uploads=50, can_export=True),
    "alpha": TierLimits(journal_entries=None, evidence_uploads=None, can_export=True),
    "pro": TierLimits(journal_entries=None, evidence_uploads=None, can_export=True),
    "enterprise": TierLimits(journal_entries=None, evidence_uploads=None, can_export=True),
}


@dataclass
class UsageDecision:
    allowed: bool
    tier: str
    limit: int | None
    current: int
    remaining: int | None
    reason: str | None = None


def _limit_reason(tier: str, limit: int, noun: str) -> str:
    return (
        f"{tier.capitalize()} plan limit reached ({limit} {noun}). "
        f"Upgrade to Pro for unlimited {noun.split(' ')[-1]}."
    )


class UsageGate:
    """Compares an owner's derived usage counters against their tier limits."""

    def __init__(self):
        self.subscription_handler = SubscriptionDBHandler()
        self.journal_handler = JournalEntryDBHandler()
        self.evidence_handler = EvidenceDBHandler()

    async def get_user_tier(self, user_id: uuid.UUID) -> str:
        """
        Resolve the owner's tier. Only an active or trialing subscription grants
        its tier; anything else, including a failed lookup, means 'free'.
        """
        try:
            subscription = await self.subscription_handler.get_latest_subscription(user_id)
        except Exception as e:
            logger.warning(f"[Gate user={user_id}] Tier lookup failed, treating as free: {e}")
            return "free"

        if subscription is None:
            return "free"
        if subscription.status not in ACTIVE_SUBSCRIPTION_STATUSES:
            logger.debug(
                f"[Gate user={user_id}] Subscription status '{subscription.status}' does not grant a tier"
            )
            return "free"
        if subscription.plan_tier not in TIER_LIMITS:
            logger.warning(
                f"[Gate user={user_id}] Unknown plan tier '{subscription.plan_tier}', treating as free"
            )
            return "free"
        return subscription.plan_tier

    def _decide(self, tier: str, limit: int | None, current: int, noun: str) -> UsageDecision:
        if limit is None:
            return UsageDecision(allowed=True, tier=tier, limit=None, current=current, remaining=None)
        remaining = max(limit - current, 0)
        if current >= limit:
            return UsageDecision(
                allowed=False,
                tier=tier,
                limit=limit,
                current=current,
                remaining=0,
                reason=_limit_reason(tier, limit, noun),
            )
        return UsageDecision(allowed=True, tier=tier, limit=limit, current=current, remaining=remaining)

    async def check_can_capture(self, user_id: uuid.UUID) -> UsageDecision:
        # Count failures propagate: an unknown count must not be read as zero
        tier = await self.get_user_tier(user_id)
        current = await self.journal_handler.count_owned(user_id)
        return self._decide(tier, TIER_LIMITS[tier].journal_entries, current, "journal entries")

    async def check_can_upload_evidence(self, user_id: uuid.UUID) -> UsageDecision:
        tier = await self.get_user_tier(user_id)
        current = await self.evidence_handler.count_owned(user_id)
        return self._decide(tier, TIER_LIMITS[tier].evidence_uploads, current, "evidence uploads")

    async def ensure_can_capture(self, user_id: uuid.UUID) -> UsageDecision:
        decision = await self.check_can_capture(user_id)
        if not decision.allowed:
            logger.info(
                f"[Gate user={user_id}] Capture denied: {decision.current}/{decision.limit} on {decision.tier}"
            )
            raise LimitReached(decision.reason, tier=decision.tier, limit=decision.limit)
        return decision

    async def ensure_can_upload_evidence(self, user_id: uuid.UUID) -> UsageDecision:
        decision = await self.check_can_upload_evidence(user_id)
        if not decision.allowed:
            logger.info(
                f"[Gate user={user_id}] Evidence upload denied: {decision.current}/{decision.limit} on {decision.tier}"
            )
            raise LimitReached(decision.reason, tier=decision.tier, limit=decision.limit)
        return decision

    async def get_usage(self, user_id: uuid.UUID) -> dict[str, Any]:
        tier = await self.get_user_tier(user_id)
        limits = TIER_LIMITS[tier]
        return {
            "tier": tier,
            "journal_entries": await self.journal_handler.count_owned(user_id),
            "evidence_uploads": await self.evidence_handler.count_owned(user_id),
            "limits": {
                "journal_entries": limits.journal_entries,
                "evidence_uploads": limits.evidence_uploads,
                "can_export": limits.can_export,
            },
        }
