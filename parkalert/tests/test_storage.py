import asyncio
from datetime import timedelta

import pytest
from sqlalchemy.exc import DBAPIError, IntegrityError

from parkalert.core.errors import StorageUnavailable
from parkalert.db.models import SecurityEventType, Severity
from parkalert.db.session import run_in_transaction
from parkalert.repositories.security_events import insert_security_event, list_security_events
from parkalert.services.retention import run_retention
from parkalert.services.stats import alert_statistics, reputation_distribution

pytestmark = pytest.mark.asyncio


async def test_timeout_maps_to_storage_unavailable(db):
    async def slow(session):
        await asyncio.sleep(1)

    with pytest.raises(StorageUnavailable) as ei:
        await run_in_transaction(db, slow, timeout=0.05)
    assert ei.value.to_error_response()["error"]["message"] == "temporarily unavailable, try again"


class _DriverError(Exception):
    def __init__(self, sqlstate):
        super().__init__(f"sqlstate {sqlstate}")
        self.sqlstate = sqlstate


@pytest.mark.parametrize("sqlstate", ["40P01", "40001"])
async def test_deadlock_and_serialization_abort_map_to_storage_unavailable(db, sqlstate):
    async def aborted(session):
        raise DBAPIError("UPDATE accounts", None, _DriverError(sqlstate))

    with pytest.raises(StorageUnavailable):
        await run_in_transaction(db, aborted)


async def test_other_driver_errors_pass_through(db):
    async def duplicate(session):
        raise IntegrityError("INSERT INTO identifiers", None, _DriverError("23505"))

    with pytest.raises(IntegrityError):
        await run_in_transaction(db, duplicate)


async def test_failed_operation_rolls_back(db, services, factory, t0):
    account = await factory.account()

    async def change_then_fail(session):
        await services.ledger.record_event(session, account, "penalty", -100, now=t0)
        raise ValueError("boom")

    with pytest.raises(ValueError):
        await run_in_transaction(db, change_then_fail)
    assert (await services.ledger.summary(account, now=t0)).score == 1000


async def test_retention_purges_old_security_events(db, t0):
    async def seed(session):
        for age in (100, 10):
            await insert_security_event(
                session,
                account_id=None,
                event_type=SecurityEventType.RAPID_REGISTRATIONS.value,
                severity=Severity.MEDIUM.value,
                details={"age": age},
                action_taken="logged",
                now=t0 - timedelta(days=age),
            )

    await run_in_transaction(db, seed)
    deleted = await run_in_transaction(db, run_retention, 90, now=t0)
    assert deleted == 1
    async with db() as session:
        left = await list_security_events(session)
    assert [e.details["age"] for e in left] == [10]


async def test_statistics(db, services, factory, t0):
    owner = await factory.account()
    sender = await factory.account()
    target, _ = await factory.vehicle(owner)
    a = (await services.router.send_alert(sender, target, "high", now=t0)).alert
    await services.router.send_alert(sender, target, "low", now=t0 + timedelta(minutes=1))
    await services.router.resolve(a.alert_id, owner, now=t0 + timedelta(minutes=2))

    async with db() as session:
        stats = await alert_statistics(session, now=t0 + timedelta(minutes=5))
        tiers = await reputation_distribution(session)

    by_key = {(s["urgency"], s["status"]): s for s in stats}
    assert by_key[("high", "resolved")]["count"] == 1
    assert by_key[("high", "resolved")]["avg_response_seconds"] == 120.0
    assert by_key[("low", "sent")]["avg_response_seconds"] is None

    counts = {t["tier"]: t["count"] for t in tiers}
    assert counts["GoodNeighbor"] == 2
    assert counts["Champion"] == 0
