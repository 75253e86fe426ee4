"""
Reputation ledger.

Every score change is an appended ReputationEvent written in the same
transaction as the account update, so ``reputation_score`` always equals the
initial seed plus the sum of ``applied_delta`` over the account's events.
``delta`` keeps the requested change; ``applied_delta`` is what survived the
0 floor (a -50 penalty on a score of 20 applies -20).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from parkalert.core.errors import AccountNotFound, QuotaExceeded, StorageUnavailable
from parkalert.core.settings import Settings
from parkalert.db.models import Account, Alert, ReputationEvent, ReputationEventType, utcnow
from parkalert.db.session import run_in_transaction
from parkalert.metrics import REPUTATION_EVENTS
from parkalert.repositories import accounts as accounts_repo
from parkalert.repositories import alerts as alerts_repo
from parkalert.repositories import reputation as reputation_repo

log = logging.getLogger(__name__)

_CAS_ATTEMPTS = 5


@dataclass(frozen=True)
class Tier:
    name: str
    min_score: int
    daily_quota: Optional[int]  # None: unlimited


TIERS = (
    Tier("Champion", 2000, None),
    Tier("Considerate", 1500, 20),
    Tier("GoodNeighbor", 1000, 10),
    Tier("Learning", 500, 5),
    Tier("NeedsImprovement", 0, 2),
)


def tier_for(score: int) -> Tier:
    for tier in TIERS:
        if score >= tier.min_score:
            return tier
    return TIERS[-1]


def next_reset(now: datetime) -> datetime:
    """Daily quotas reset at UTC midnight."""
    day_start = now.replace(hour=0, minute=0, second=0, microsecond=0)
    return day_start + timedelta(days=1)


@dataclass
class QuotaStatus:
    tier: Tier
    used: int
    remaining: Optional[int]
    resets_at: datetime

    @property
    def exhausted(self) -> bool:
        return self.remaining is not None and self.remaining <= 0


@dataclass
class ReputationSummary:
    account_id: str
    score: int
    status: str
    tier: Tier
    daily_quota_remaining: Optional[int]
    resets_at: datetime


class ReputationLedger:
    def __init__(self, sessions: async_sessionmaker, settings: Settings):
        self.sessions = sessions
        self.settings = settings

    async def _tx(self, fn, *args, **kwargs):
        return await run_in_transaction(
            self.sessions, fn, *args, timeout=self.settings.STORAGE_TIMEOUT_SECONDS, **kwargs
        )

    # --- writes (always inside the caller's transaction) --------------------

    async def record_event(
        self,
        session: AsyncSession,
        account_id: str,
        event_type: ReputationEventType,
        delta: int,
        related_alert_id: Optional[str] = None,
        description: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> ReputationEvent:
        now = now or utcnow()
        for _ in range(_CAS_ATTEMPTS):
            account = await accounts_repo.get_account(session, account_id)
            if account is None:
                raise AccountNotFound()
            old = account.reputation_score
            new = max(0, old + delta)
            if await accounts_repo.compare_and_set_score(session, account_id, expected=old, new=new, now=now):
                break
        else:
            raise StorageUnavailable("reputation update kept losing to concurrent writers")

        ev = await reputation_repo.insert_event(
            session,
            account_id=account_id,
            event_type=ReputationEventType(event_type).value,
            delta=delta,
            applied_delta=new - old,
            related_alert_id=related_alert_id,
            description=description,
            now=now,
        )
        REPUTATION_EVENTS.labels(event_type=ev.event_type).inc()
        log.info("[ledger] %s %s delta=%+d applied=%+d score=%d", account_id, ev.event_type, delta, new - old, new)
        return ev

    async def payout_for_resolution(
        self, session: AsyncSession, alert: Alert, *, now: Optional[datetime] = None
    ) -> List[ReputationEvent]:
        s = self.settings
        # lock both rows in account_id order
        for account_id in sorted({alert.sender_account_id, alert.receiver_account_id}):
            await accounts_repo.get_account(session, account_id, for_update=True)
        events = [
            await self.record_event(
                session,
                alert.sender_account_id,
                ReputationEventType.ALERT_RESOLVED,
                s.REWARD_SENDER_RESOLVED,
                alert.alert_id,
                "Successfully resolved parking alert",
                now=now,
            )
        ]
        responded_at = alert.acknowledged_at or alert.resolved_at
        quick = responded_at is not None and (responded_at - alert.sent_at) <= timedelta(
            seconds=s.QUICK_RESPONSE_SECONDS
        )
        if quick:
            events.append(
                await self.record_event(
                    session,
                    alert.receiver_account_id,
                    ReputationEventType.QUICK_RESPONSE,
                    s.REWARD_QUICK_RESPONSE,
                    alert.alert_id,
                    "Quick response to parking alert",
                    now=now,
                )
            )
        else:
            events.append(
                await self.record_event(
                    session,
                    alert.receiver_account_id,
                    ReputationEventType.ALERT_ACKNOWLEDGED,
                    s.REWARD_REGULAR_RESPONSE,
                    alert.alert_id,
                    "Acknowledged parking alert",
                    now=now,
                )
            )
        return events

    # --- quota -----------------------------------------------------------------

    async def quota_status(self, session: AsyncSession, account: Account, now: datetime) -> QuotaStatus:
        tier = tier_for(account.reputation_score)
        resets_at = next_reset(now)
        used = await alerts_repo.count_sent_since(
            session, account.account_id, resets_at - timedelta(days=1)
        )
        remaining = None if tier.daily_quota is None else max(0, tier.daily_quota - used)
        return QuotaStatus(tier=tier, used=used, remaining=remaining, resets_at=resets_at)

    async def enforce_daily_quota(self, session: AsyncSession, account: Account, now: datetime) -> QuotaStatus:
        status = await self.quota_status(session, account, now)
        if status.exhausted:
            raise QuotaExceeded(
                f"daily alert limit reached for tier {status.tier.name}",
                tier=status.tier.name,
                daily_quota=status.tier.daily_quota,
                resets_at=status.resets_at.isoformat(),
            )
        return status

    # --- reads -------------------------------------------------------------------

    async def summary(self, account_id: str, *, now: Optional[datetime] = None) -> ReputationSummary:
        return await self._tx(self._summary_tx, account_id, now or utcnow())

    async def _summary_tx(self, session: AsyncSession, account_id: str, now: datetime) -> ReputationSummary:
        account = await accounts_repo.get_account(session, account_id)
        if account is None:
            raise AccountNotFound()
        quota = await self.quota_status(session, account, now)
        return ReputationSummary(
            account_id=account_id,
            score=account.reputation_score,
            status=account.status,
            tier=quota.tier,
            daily_quota_remaining=quota.remaining,
            resets_at=quota.resets_at,
        )

    async def history(self, account_id: str, *, limit: int = 50, offset: int = 0) -> Sequence[ReputationEvent]:
        async def _tx(session: AsyncSession):
            return await reputation_repo.list_events(session, account_id, limit=limit, offset=offset)

        return await self._tx(_tx)

    async def verify_balance(self, account_id: str) -> bool:
        """True when the stored score matches seed + sum of applied deltas."""
        async def _tx(session: AsyncSession) -> bool:
            account = await accounts_repo.get_account(session, account_id)
            if account is None:
                raise AccountNotFound()
            total = await reputation_repo.sum_applied(session, account_id)
            return account.reputation_score == max(0, self.settings.INITIAL_REPUTATION + total)

        return await self._tx(_tx)
