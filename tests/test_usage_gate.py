from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.exceptions import LimitReached
from app.services.usage_gate import UsageGate


def _gate(*, subscription=None, journal_count=0, evidence_count=0, tier_error=None) -> UsageGate:
    gate = UsageGate()
    gate.subscription_handler = MagicMock()
    gate.subscription_handler.get_latest_subscription = AsyncMock(
        return_value=subscription, side_effect=tier_error
    )
    gate.journal_handler = MagicMock()
    gate.journal_handler.count_owned = AsyncMock(return_value=journal_count)
    gate.evidence_handler = MagicMock()
    gate.evidence_handler.count_owned = AsyncMock(return_value=evidence_count)
    return gate


@pytest.mark.asyncio
async def test_free_tier_allows_below_limit(user_id):
    decision = await _gate(journal_count=4).check_can_capture(user_id)

    assert decision.allowed
    assert decision.tier == "free"
    assert decision.remaining == 1


@pytest.mark.asyncio
async def test_free_tier_denies_at_limit(user_id):
    gate = _gate(journal_count=5)

    with pytest.raises(LimitReached) as exc_info:
        await gate.ensure_can_capture(user_id)

    body = exc_info.value.to_response()
    assert exc_info.value.status_code == 403
    assert body["reason"] == "limit_reached"
    assert body["tier"] == "free"
    assert body["limit"] == 5
    assert "Free plan limit reached (5 journal entries)" in body["detail"]


@pytest.mark.asyncio
async def test_active_pro_subscription_is_unlimited(user_id):
    subscription = SimpleNamespace(status="active", plan_tier="pro")

    decision = await _gate(subscription=subscription, journal_count=10_000).check_can_capture(user_id)

    assert decision.allowed
    assert decision.limit is None


@pytest.mark.asyncio
async def test_cancelled_subscription_counts_as_free(user_id):
    subscription = SimpleNamespace(status="canceled", plan_tier="pro")

    assert await _gate(subscription=subscription).get_user_tier(user_id) == "free"


@pytest.mark.asyncio
async def test_tier_lookup_failure_falls_back_to_free(user_id):
    gate = _gate(tier_error=RuntimeError("subscriptions unavailable"))

    assert await gate.get_user_tier(user_id) == "free"


@pytest.mark.asyncio
async def test_count_failure_propagates(user_id):
    gate = _gate()
    gate.journal_handler.count_owned = AsyncMock(side_effect=RuntimeError("count failed"))

    with pytest.raises(RuntimeError):
        await gate.ensure_can_capture(user_id)


@pytest.mark.asyncio
async def test_evidence_uploads_have_their_own_limit(user_id):
    subscription = SimpleNamespace(status="trialing", plan_tier="starter")
    gate = _gate(subscription=subscription, journal_count=0, evidence_count=50)

    with pytest.raises(LimitReached) as exc_info:
        await gate.ensure_can_upload_evidence(user_id)

    assert exc_info.value.details["tier"] == "starter"
    assert "uploads" in exc_info.value.message


@pytest.mark.asyncio
async def test_usage_summary(user_id):
    usage = await _gate(journal_count=3, evidence_count=7).get_usage(user_id)

    assert usage["tier"] == "free"
    assert usage["journal_entries"] == 3
    assert usage["evidence_uploads"] == 7
    assert usage["limits"]["journal_entries"] == 5
