import asyncio
from datetime import timedelta

import pytest
import pytest_asyncio

from parkalert.core.errors import (
    AlertNotFound,
    IdentifierNotFound,
    InvalidRequest,
    InvalidState,
    NotReceiver,
    NotSender,
    QuotaExceeded,
    SelfAlert,
)
from parkalert.core.settings import Settings
from parkalert.db.models import AlertStatus
from parkalert.push import PushDispatcher
from parkalert.repositories import accounts as accounts_repo
from parkalert.repositories.reputation import list_events
from parkalert.services.container import build_services
from parkalert.services.router import AlertAction

pytestmark = pytest.mark.asyncio


async def _events_for_alert(db, account_id, alert_id):
    async with db() as session:
        return await list_events(session, account_id, related_alert_id=alert_id)


@pytest_asyncio.fixture
async def parties(factory):
    owner = await factory.account()
    sender = await factory.account()
    target, _ = await factory.vehicle(owner)
    return owner, sender, target


async def test_quick_response_pays_both_sides(db, services, parties, t0):
    owner, sender, target = parties
    alert = (await services.router.send_alert(sender, target, "high", "Blocking the exit", now=t0)).alert
    assert alert.status == AlertStatus.SENT.value
    assert alert.receiver_account_id == owner
    assert alert.expires_at == t0 + timedelta(minutes=30)

    await services.router.mark_delivered(alert.alert_id, now=t0 + timedelta(seconds=5))
    await services.router.acknowledge(alert.alert_id, owner, now=t0 + timedelta(minutes=2))
    resolved = await services.router.resolve(alert.alert_id, owner, "On my way", now=t0 + timedelta(minutes=4))

    assert resolved.status == AlertStatus.RESOLVED.value
    assert resolved.response == "On my way"
    assert resolved.delivered_at < resolved.acknowledged_at < resolved.resolved_at

    owner_events = await _events_for_alert(db, owner, alert.alert_id)
    sender_events = await _events_for_alert(db, sender, alert.alert_id)
    assert [(e.event_type, e.delta) for e in owner_events] == [("quick_response", 15)]
    assert [(e.event_type, e.delta) for e in sender_events] == [("alert_resolved", 10)]
    assert (await services.ledger.summary(owner, now=t0)).score == 1015
    assert (await services.ledger.summary(sender, now=t0)).score == 1010


async def test_slow_response_pays_regular_reward(db, services, parties, t0):
    owner, sender, target = parties
    alert = (await services.router.send_alert(sender, target, now=t0)).alert
    await services.router.acknowledge(alert.alert_id, owner, now=t0 + timedelta(minutes=6))
    await services.router.resolve(alert.alert_id, owner, now=t0 + timedelta(minutes=7))

    owner_events = await _events_for_alert(db, owner, alert.alert_id)
    assert [(e.event_type, e.delta) for e in owner_events] == [("alert_acknowledged", 5)]


async def test_acknowledge_alone_pays_nothing(db, services, parties, t0):
    owner, sender, target = parties
    alert = (await services.router.send_alert(sender, target, now=t0)).alert
    await services.router.acknowledge(alert.alert_id, owner, now=t0 + timedelta(minutes=1))
    assert await _events_for_alert(db, owner, alert.alert_id) == []
    assert await _events_for_alert(db, sender, alert.alert_id) == []


async def test_resolve_twice_pays_once(db, services, parties, t0):
    owner, sender, target = parties
    alert = (await services.router.send_alert(sender, target, now=t0)).alert
    await services.router.resolve(alert.alert_id, owner, now=t0 + timedelta(minutes=1))
    with pytest.raises(InvalidState):
        await services.router.resolve(alert.alert_id, owner, now=t0 + timedelta(minutes=2))
    assert len(await _events_for_alert(db, owner, alert.alert_id)) == 1
    assert len(await _events_for_alert(db, sender, alert.alert_id)) == 1


async def test_only_receiver_answers(services, parties, t0):
    owner, sender, target = parties
    alert = (await services.router.send_alert(sender, target, now=t0)).alert
    with pytest.raises(NotReceiver):
        await services.router.acknowledge(alert.alert_id, sender, now=t0)
    with pytest.raises(NotReceiver):
        await services.router.resolve(alert.alert_id, sender, now=t0)


async def test_cannot_alert_own_vehicle(services, parties, t0):
    owner, _sender, target = parties
    with pytest.raises(SelfAlert):
        await services.router.send_alert(owner, target, now=t0)


async def test_unknown_target_and_bad_input(services, factory, parties, t0):
    _owner, sender, target = parties
    with pytest.raises(IdentifierNotFound):
        await services.router.send_alert(sender, "PARK-ZZZZ-0000", now=t0)
    with pytest.raises(InvalidRequest):
        await services.router.send_alert(sender, target, "panic", now=t0)
    with pytest.raises(InvalidRequest):
        await services.router.send_alert(sender, target, "normal", "x" * 201, now=t0)


async def test_expire_is_idempotent_and_neutral(db, services, parties, t0):
    owner, sender, target = parties
    alert = (await services.router.send_alert(sender, target, now=t0)).alert

    with pytest.raises(InvalidState):
        await services.router.expire(alert.alert_id, now=t0 + timedelta(minutes=10))

    later = t0 + timedelta(minutes=31)
    expired = await services.router.expire(alert.alert_id, now=later)
    assert expired.status == AlertStatus.EXPIRED.value
    again = await services.router.expire(alert.alert_id, now=later + timedelta(minutes=5))
    assert again.status == AlertStatus.EXPIRED.value

    assert await _events_for_alert(db, owner, alert.alert_id) == []
    assert await _events_for_alert(db, sender, alert.alert_id) == []
    with pytest.raises(InvalidState):
        await services.router.resolve(alert.alert_id, owner, now=later)


async def test_expire_leaves_resolved_alone(services, parties, t0):
    owner, sender, target = parties
    alert = (await services.router.send_alert(sender, target, now=t0)).alert
    await services.router.resolve(alert.alert_id, owner, now=t0 + timedelta(minutes=1))
    result = await services.router.expire(alert.alert_id, now=t0 + timedelta(hours=2))
    assert result.status == AlertStatus.RESOLVED.value


async def test_expire_due_sweeps_only_overdue(services, parties, t0):
    owner, sender, target = parties
    old = (await services.router.send_alert(sender, target, now=t0)).alert
    fresh = (await services.router.send_alert(sender, target, now=t0 + timedelta(minutes=20))).alert

    assert await services.router.expire_due(now=t0 + timedelta(minutes=35)) == 1
    assert (await services.router.get_alert(old.alert_id, sender)).status == AlertStatus.EXPIRED.value
    assert (await services.router.get_alert(fresh.alert_id, sender)).status == AlertStatus.SENT.value
    assert await services.router.expire_due(now=t0 + timedelta(minutes=35)) == 0


async def test_cancel_rules(services, parties, t0):
    owner, sender, target = parties
    alert = (await services.router.send_alert(sender, target, now=t0)).alert
    with pytest.raises(NotSender):
        await services.router.cancel(alert.alert_id, owner)
    cancelled = await services.router.apply_action(alert.alert_id, sender, AlertAction.CANCEL)
    assert cancelled.status == AlertStatus.CANCELLED.value

    acked = (await services.router.send_alert(sender, target, now=t0 + timedelta(minutes=1))).alert
    await services.router.acknowledge(acked.alert_id, owner, now=t0 + timedelta(minutes=2))
    with pytest.raises(InvalidState):
        await services.router.cancel(acked.alert_id, sender)


async def test_unregister_cancels_undelivered(services, parties, t0):
    owner, sender, target = parties
    alert = (await services.router.send_alert(sender, target, now=t0)).alert
    await services.registry.unregister(target, owner)
    assert await services.router.cancel_orphaned(target) == 1
    assert (await services.router.get_alert(alert.alert_id, sender)).status == AlertStatus.CANCELLED.value


async def test_get_alert_hidden_from_strangers(services, factory, parties, t0):
    _owner, sender, target = parties
    stranger = await factory.account()
    alert = (await services.router.send_alert(sender, target, now=t0)).alert
    with pytest.raises(AlertNotFound):
        await services.router.get_alert(alert.alert_id, stranger)


async def test_daily_quota_blocks(db, services, factory, parties, t0):
    _owner, sender, target = parties
    await factory.adjust(sender, -600)  # 400: NeedsImprovement, 2 per day
    for i in range(2):
        await services.router.send_alert(sender, target, now=t0 + timedelta(minutes=i))
    with pytest.raises(QuotaExceeded) as ei:
        await services.router.send_alert(sender, target, now=t0 + timedelta(minutes=3))
    assert ei.value.status_code == 429
    assert ei.value.extra["tier"] == "NeedsImprovement"
    assert ei.value.extra["daily_quota"] == 2
    assert ei.value.extra["resets_at"].startswith("2026-05-05T00:00:00")

    # a new UTC day resets the quota
    await services.router.send_alert(sender, target, now=t0 + timedelta(days=1))


async def test_push_sent_once_with_sound_hint(services, sink, parties, t0):
    owner, sender, target = parties
    alert = (await services.router.send_alert(sender, target, "high", now=t0)).alert
    assert len(sink.sent) == 1
    payload = sink.sent[0]
    assert payload.account_id == owner
    assert payload.sound_hint == "high_alert_1"
    assert payload.body == "Someone needs you to move your car!"
    assert payload.data["alert_id"] == alert.alert_id
    stored = await services.router.get_alert(alert.alert_id, owner)
    assert stored.push_sent is True and stored.push_sent_at == t0


async def test_push_failure_keeps_alert(db, settings, factory, t0):
    class DownSink:
        async def send(self, payload):
            raise RuntimeError("push service down")

    dispatcher = PushDispatcher()
    dispatcher.register(DownSink())
    services = build_services(db, settings, dispatcher)
    factory.services = services
    owner = await factory.account()
    sender = await factory.account()
    target, _ = await factory.vehicle(owner)

    alert = (await services.router.send_alert(sender, target, now=t0)).alert
    stored = await services.router.get_alert(alert.alert_id, sender)
    assert stored.status == AlertStatus.SENT.value
    assert stored.push_sent is False


async def test_champion_has_no_quota(db, push, factory, t0):
    services = build_services(db, Settings(SENDER_VELOCITY_MAX=100), push)
    factory.services = services
    owner = await factory.account()
    sender = await factory.account()
    target, _ = await factory.vehicle(owner)
    await factory.adjust(sender, 1000)
    for i in range(25):
        await services.router.send_alert(sender, target, now=t0 + timedelta(minutes=i))
    s = await services.ledger.summary(sender, now=t0)
    assert s.tier.name == "Champion" and s.daily_quota_remaining is None


async def test_sender_cannot_confirm_delivery(services, parties, t0):
    owner, sender, target = parties
    alert = (await services.router.send_alert(sender, target, now=t0)).alert
    with pytest.raises(NotReceiver):
        await services.router.mark_delivered(alert.alert_id, sender, now=t0 + timedelta(seconds=5))
    delivered = await services.router.mark_delivered(alert.alert_id, owner, now=t0 + timedelta(seconds=5))
    assert delivered.status == AlertStatus.DELIVERED.value


async def test_concurrent_resolves_transition_once(db, services, parties, t0):
    owner, sender, target = parties
    alert = (await services.router.send_alert(sender, target, now=t0)).alert
    when = t0 + timedelta(minutes=1)

    results = await asyncio.gather(
        services.router.resolve(alert.alert_id, owner, now=when),
        services.router.resolve(alert.alert_id, owner, now=when),
        return_exceptions=True,
    )

    resolved = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, Exception)]
    assert len(resolved) == 1 and resolved[0].status == AlertStatus.RESOLVED.value
    assert len(rejected) == 1 and isinstance(rejected[0], InvalidState)
    assert (await services.ledger.summary(owner, now=t0)).score == 1015
    assert (await services.ledger.summary(sender, now=t0)).score == 1010
    assert len(await _events_for_alert(db, owner, alert.alert_id)) == 1
    assert await services.ledger.verify_balance(owner)


async def test_resolve_locks_both_accounts_in_id_order(services, factory, t0, monkeypatch):
    a = await factory.account()
    b = await factory.account()
    plate_a, _ = await factory.vehicle(a)
    plate_b, _ = await factory.vehicle(b)
    to_a = (await services.router.send_alert(b, plate_a, now=t0)).alert
    to_b = (await services.router.send_alert(a, plate_b, now=t0)).alert

    locked = []
    original = accounts_repo.get_account

    async def recording_get_account(session, account_id, *, for_update=False):
        if for_update:
            locked.append(account_id)
        return await original(session, account_id, for_update=for_update)

    monkeypatch.setattr(accounts_repo, "get_account", recording_get_account)

    await services.router.resolve(to_a.alert_id, a, now=t0 + timedelta(minutes=1))
    first = list(locked)
    locked.clear()
    await services.router.resolve(to_b.alert_id, b, now=t0 + timedelta(minutes=1))

    assert first == sorted([a, b])
    assert locked == sorted([a, b])
