from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from conftest import seed_tenant
from ecotrack.application.services.limits_config import LimitsConfigProvider
from ecotrack.application.services.quota_tracker import QuotaTracker
from ecotrack.core.errors import NotFoundError
from ecotrack.domain.limits import UNLIMITED, Operation
from ecotrack.domain.tenants import SubscriptionTier

NOW = datetime(2026, 10, 19, 8, 30, tzinfo=timezone.utc)
OCT_START = datetime(2026, 10, 1, tzinfo=timezone.utc)
NOV_START = datetime(2026, 11, 1, tzinfo=timezone.utc)


def _tracker(session_factory, now: datetime = NOW) -> QuotaTracker:
    return QuotaTracker(session_factory, LimitsConfigProvider(session_factory), clock=lambda: now)


def test_trial_tenant_below_cap_is_allowed(session_factory):
    tenant_id = seed_tenant(session_factory, bill_count=1, period_start=OCT_START, period_end=NOV_START)

    result = asyncio.run(_tracker(session_factory).check_quota(tenant_id, Operation.BILL_ANALYSIS))

    assert result.allowed
    assert (result.current, result.limit, result.remaining) == (1, 2, 1)
    assert result.percent_used == 50.0
    assert result.reset_time == NOV_START


def test_trial_tenant_at_cap_is_rejected_without_incrementing(session_factory):
    tenant_id = seed_tenant(session_factory, bill_count=2, period_start=OCT_START, period_end=NOV_START)
    tracker = _tracker(session_factory)

    first = asyncio.run(tracker.check_quota(tenant_id, Operation.BILL_ANALYSIS))
    second = asyncio.run(tracker.check_quota(tenant_id, Operation.BILL_ANALYSIS))

    assert not first.allowed
    assert first.remaining == 0
    assert second.current == 2


def test_bypass_allows_over_cap(session_factory):
    tenant_id = seed_tenant(session_factory, bill_count=2, period_start=OCT_START, period_end=NOV_START)

    result = asyncio.run(
        _tracker(session_factory).check_quota(tenant_id, Operation.BILL_ANALYSIS, bypass=True),
    )

    assert result.allowed
    assert result.current == 2


def test_enterprise_is_unlimited(session_factory):
    tenant_id = seed_tenant(
        session_factory,
        tier=SubscriptionTier.ENTERPRISE,
        bill_count=10_000,
        period_start=OCT_START,
        period_end=NOV_START,
    )

    result = asyncio.run(_tracker(session_factory).check_quota(tenant_id, Operation.BILL_ANALYSIS))

    assert result.allowed
    assert result.limit == UNLIMITED
    assert result.remaining == UNLIMITED
    assert result.percent_used == 0.0


def test_trial_reports_are_blocked(session_factory):
    tenant_id = seed_tenant(session_factory, period_start=OCT_START, period_end=NOV_START)

    result = asyncio.run(_tracker(session_factory).check_quota(tenant_id, Operation.REPORT_GENERATION))

    assert not result.allowed
    assert result.limit == 0
    assert result.percent_used == 0.0


def test_expired_period_rolls_over_to_current_month(session_factory):
    tenant_id = seed_tenant(
        session_factory,
        bill_count=2,
        report_count=1,
        period_start=datetime(2026, 9, 1, tzinfo=timezone.utc),
        period_end=OCT_START,
    )
    tracker = _tracker(session_factory)

    result = asyncio.run(tracker.check_quota(tenant_id, Operation.BILL_ANALYSIS))
    tenant = asyncio.run(tracker.get_tenant(tenant_id))

    assert result.allowed
    assert result.current == 0
    assert tenant.usage.report_generation_count == 0
    assert tenant.usage.period_start == OCT_START
    assert tenant.usage.period_end == NOV_START
    assert tenant.usage.last_reset == NOW


def test_multi_month_gap_lands_in_current_month(session_factory):
    tenant_id = seed_tenant(
        session_factory,
        bill_count=2,
        period_start=datetime(2026, 3, 1, tzinfo=timezone.utc),
        period_end=datetime(2026, 4, 1, tzinfo=timezone.utc),
    )

    result = asyncio.run(_tracker(session_factory).check_quota(tenant_id, Operation.BILL_ANALYSIS))

    assert result.current == 0
    assert result.reset_time == NOV_START


def test_missing_period_is_initialised(session_factory):
    tenant_id = seed_tenant(session_factory)
    tracker = _tracker(session_factory)

    asyncio.run(tracker.initialize_quota(tenant_id))
    tenant = asyncio.run(tracker.get_tenant(tenant_id))

    assert tenant.usage.period_start == OCT_START
    assert tenant.usage.period_end == NOV_START


def test_record_usage_never_exceeds_cap(session_factory):
    tenant_id = seed_tenant(session_factory, bill_count=1, period_start=OCT_START, period_end=NOV_START)
    tracker = _tracker(session_factory)

    applied = [asyncio.run(tracker.record_usage(tenant_id, Operation.BILL_ANALYSIS)) for _ in range(3)]
    status = asyncio.run(tracker.get_quota_status(tenant_id, Operation.BILL_ANALYSIS))

    assert applied == [True, False, False]
    assert status.current == 2


def test_reset_quota_zeroes_counters(session_factory):
    tenant_id = seed_tenant(session_factory, bill_count=2, period_start=OCT_START, period_end=NOV_START)
    tracker = _tracker(session_factory)

    asyncio.run(tracker.reset_quota(tenant_id))
    status = asyncio.run(tracker.get_quota_status(tenant_id, Operation.BILL_ANALYSIS))

    assert status.current == 0
    assert status.allowed


def test_unknown_tenant_raises_not_found(session_factory):
    with pytest.raises(NotFoundError):
        asyncio.run(_tracker(session_factory).check_quota("missing", Operation.BILL_ANALYSIS))
