from __future__ import annotations

import logging
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from parkalert.core.errors import InvalidState, NotReceiver
from parkalert.core.settings import Settings
from parkalert.db.models import (
    AccountStatus,
    Alert,
    ReputationEventType,
    SecurityEventType,
    Severity,
    utcnow,
)
from parkalert.metrics import ABUSE_FLAGS
from parkalert.repositories import accounts as accounts_repo
from parkalert.repositories import alerts as alerts_repo
from parkalert.repositories import security_events as security_repo
from parkalert.services.ledger import ReputationLedger

log = logging.getLogger(__name__)


class Verdict(str, Enum):
    CLEAR = "clear"
    FLAGGED = "flagged"


class AbuseDetector:
    """
    Sliding-window velocity checks over persisted rows.

    Counts come from the alerts and registration_attempts tables, so every
    instance of the service sees the same window.
    """

    def __init__(self, settings: Settings, ledger: ReputationLedger):
        self.settings = settings
        self.ledger = ledger

    async def _penalize(
        self,
        session: AsyncSession,
        account_id: str,
        event_type: ReputationEventType,
        *,
        related_alert_id: Optional[str],
        description: str,
        now: datetime,
    ) -> List[str]:
        actions = ["reputation_penalty"]
        await self.ledger.record_event(
            session,
            account_id,
            event_type,
            self.settings.PENALTY_SPAM,
            related_alert_id,
            description,
            now=now,
        )
        if self.settings.SUSPEND_AT_ZERO_REPUTATION:
            account = await accounts_repo.get_account(session, account_id)
            if account is not None and account.reputation_score <= 0 and account.status != AccountStatus.SUSPENDED.value:
                await accounts_repo.set_status(session, account_id, AccountStatus.SUSPENDED)
                actions.append("account_suspended")
                log.warning("[abuse] account %s suspended at zero reputation", account_id)
        return actions

    async def check_sender_velocity(
        self,
        session: AsyncSession,
        account_id: str,
        window_seconds: Optional[int] = None,
        max_count: Optional[int] = None,
        *,
        now: Optional[datetime] = None,
    ) -> Verdict:
        """
        Runs before the new alert is written; the pending alert counts
        towards the window, so the sixth alert inside ten minutes flags.
        """
        now = now or utcnow()
        window = self.settings.SENDER_VELOCITY_WINDOW_SEC if window_seconds is None else window_seconds
        limit = self.settings.SENDER_VELOCITY_MAX if max_count is None else max_count
        count = await alerts_repo.count_sent_since(session, account_id, now - timedelta(seconds=window)) + 1
        if count <= limit:
            return Verdict.CLEAR

        actions = await self._penalize(
            session,
            account_id,
            ReputationEventType.PENALTY,
            related_alert_id=None,
            description="Too many alerts in a short time",
            now=now,
        )
        await security_repo.insert_security_event(
            session,
            account_id=account_id,
            event_type=SecurityEventType.RAPID_ALERTS.value,
            severity=Severity.HIGH.value,
            details={
                "alert_count": count,
                "timeframe": f"{window // 60} minutes",
                "max_count": limit,
            },
            action_taken=",".join(actions),
            now=now,
        )
        ABUSE_FLAGS.labels(kind=SecurityEventType.RAPID_ALERTS.value).inc()
        log.warning("[abuse] rapid alerts account=%s count=%d window=%ss", account_id, count, window)
        return Verdict.FLAGGED

    async def check_registration_velocity(
        self,
        session: AsyncSession,
        origin_hash: str,
        *,
        account_id: Optional[str] = None,
        identifier_hash: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Verdict:
        """Records the attempt and flags the origin; registration is never blocked here."""
        now = now or utcnow()
        window = self.settings.REGISTRATION_VELOCITY_WINDOW_SEC
        limit = self.settings.REGISTRATION_VELOCITY_MAX
        await security_repo.insert_registration_attempt(
            session, origin_hash=origin_hash, account_id=account_id, identifier_hash=identifier_hash, now=now
        )
        count = await security_repo.count_registration_attempts_since(
            session, origin_hash, now - timedelta(seconds=window)
        )
        if count <= limit:
            return Verdict.CLEAR

        await security_repo.insert_security_event(
            session,
            account_id=account_id,
            event_type=SecurityEventType.RAPID_REGISTRATIONS.value,
            severity=Severity.HIGH.value,
            details={"origin_hash": origin_hash, "count": count, "timeframe": f"{window // 60} minutes"},
            action_taken="logged",
            now=now,
        )
        ABUSE_FLAGS.labels(kind=SecurityEventType.RAPID_REGISTRATIONS.value).inc()
        log.warning("[abuse] rapid registrations origin=%s count=%d", origin_hash[:12], count)
        return Verdict.FLAGGED

    async def report_spam(
        self,
        session: AsyncSession,
        alert: Alert,
        reporter_account_id: str,
        *,
        now: Optional[datetime] = None,
    ) -> Verdict:
        """The receiver flags an alert as spam; the sender is penalised once per alert."""
        now = now or utcnow()
        if alert.receiver_account_id != reporter_account_id:
            raise NotReceiver()
        if not await alerts_repo.flag_spam_once(session, alert.alert_id):
            raise InvalidState("this alert was already reported")

        actions = await self._penalize(
            session,
            alert.sender_account_id,
            ReputationEventType.SPAM_REPORT,
            related_alert_id=alert.alert_id,
            description="Alert reported as spam",
            now=now,
        )
        await security_repo.insert_security_event(
            session,
            account_id=alert.sender_account_id,
            event_type=SecurityEventType.SUSPICIOUS_PATTERN.value,
            severity=Severity.MEDIUM.value,
            details={"alert_id": alert.alert_id, "reason": "spam_report"},
            action_taken=",".join(actions),
            now=now,
        )
        ABUSE_FLAGS.labels(kind="spam_report").inc()
        log.info("[abuse] alert %s reported as spam", alert.alert_id)
        return Verdict.FLAGGED
