"""
Alert router.

Alert lifecycle::

    sent -> delivered -> acknowledged -> resolved
      \\________\\______________\\-----> expired | cancelled

Every transition is a conditional UPDATE on the current status, so two
racing callers cannot both move the same alert; the loser gets
InvalidState. Reputation payouts are written in the resolving transaction.
The push notification goes out after commit and its failure never undoes
the alert.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from parkalert.core.errors import (
    AccountNotFound,
    AccountSuspended,
    AlertNotFound,
    InvalidRequest,
    InvalidState,
    NotReceiver,
    NotSender,
    SelfAlert,
    TransientError,
)
from parkalert.core.settings import Settings
from parkalert.db.models import (
    AccountStatus,
    Alert,
    AlertStatus,
    OPEN_STATUSES,
    TERMINAL_STATUSES,
    Urgency,
    utcnow,
)
from parkalert.db.session import run_in_transaction
from parkalert.identity.codes import validate_identifier
from parkalert.metrics import ALERT_TRANSITIONS, ALERTS_SENT
from parkalert.push import DEFAULT_BODY, DEFAULT_TITLE, PushDispatcher, sound_hint_for
from parkalert.repositories import accounts as accounts_repo
from parkalert.repositories import alerts as alerts_repo
from parkalert.services.abuse import AbuseDetector, Verdict
from parkalert.services.ledger import ReputationLedger
from parkalert.services.registry import IdentifierRegistry

log = logging.getLogger(__name__)

UNDELIVERED = frozenset({AlertStatus.SENT, AlertStatus.DELIVERED})


class AlertAction(str, Enum):
    ACKNOWLEDGE = "acknowledge"
    RESOLVE = "resolve"
    CANCEL = "cancel"


@dataclass
class SendResult:
    alert: Alert
    verdict: Verdict = Verdict.CLEAR

    @property
    def flagged(self) -> bool:
        return self.verdict is Verdict.FLAGGED


class AlertRouter:
    def __init__(
        self,
        sessions: async_sessionmaker,
        settings: Settings,
        registry: IdentifierRegistry,
        ledger: ReputationLedger,
        abuse: AbuseDetector,
        push: PushDispatcher,
    ):
        self.sessions = sessions
        self.settings = settings
        self.registry = registry
        self.ledger = ledger
        self.abuse = abuse
        self.push = push

    async def _tx(self, fn, *args, **kwargs):
        return await run_in_transaction(
            self.sessions, fn, *args, timeout=self.settings.STORAGE_TIMEOUT_SECONDS, **kwargs
        )

    # --- send ------------------------------------------------------------------

    def _clean_message(self, message: Optional[str]) -> Optional[str]:
        if message is None:
            return None
        message = message.strip()
        if not message:
            return None
        limit = self.settings.ALERT_MESSAGE_MAX_LEN
        if len(message) > limit:
            raise InvalidRequest(f"message is longer than {limit} characters", field="message")
        return message

    async def send_alert(
        self,
        sender_account_id: str,
        target_identifier_hash: str,
        urgency: str = Urgency.NORMAL.value,
        message: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> SendResult:
        now = now or utcnow()
        try:
            urgency_level = Urgency(urgency)
        except ValueError:
            raise InvalidRequest(
                f"urgency must be one of {', '.join(u.value for u in Urgency)}", field="urgency"
            ) from None
        target = validate_identifier(target_identifier_hash)
        message = self._clean_message(message)

        result = await self._tx(self._send_tx, sender_account_id, target, urgency_level, message, now)
        ALERTS_SENT.labels(urgency=urgency_level.value).inc()
        log.info(
            "[router] alert %s %s -> %s urgency=%s verdict=%s",
            result.alert.alert_id,
            sender_account_id,
            result.alert.receiver_account_id,
            urgency_level.value,
            result.verdict.value,
        )
        await self._notify(result.alert, now)
        return result

    async def _send_tx(
        self,
        session: AsyncSession,
        sender_account_id: str,
        target: str,
        urgency: Urgency,
        message: Optional[str],
        now: datetime,
    ) -> SendResult:
        # row lock serialises concurrent sends from one account on PostgreSQL
        sender = await accounts_repo.get_account(session, sender_account_id, for_update=True)
        if sender is None:
            raise AccountNotFound()
        if sender.status == AccountStatus.SUSPENDED.value:
            raise AccountSuspended()
        receiver_id = await self.registry.owner_of(session, target)
        if receiver_id == sender_account_id:
            raise SelfAlert()
        await self.ledger.enforce_daily_quota(session, sender, now)
        verdict = await self.abuse.check_sender_velocity(session, sender_account_id, now=now)
        alert = await alerts_repo.insert_alert(
            session,
            sender_account_id=sender_account_id,
            receiver_account_id=receiver_id,
            target_identifier_hash=target,
            urgency_level=urgency.value,
            message=message,
            sent_at=now,
            expires_at=now + timedelta(minutes=self.settings.ALERT_TTL_MINUTES),
        )
        return SendResult(alert=alert, verdict=verdict)

    async def _notify(self, alert: Alert, now: datetime) -> None:
        result = await self.push.send(
            alert.receiver_account_id,
            DEFAULT_TITLE,
            alert.message or DEFAULT_BODY,
            alert.urgency_level,
            sound_hint_for(alert.urgency_level),
            alert_id=alert.alert_id,
        )
        if not result.ok:
            log.warning("[router] push for alert %s not delivered: %s", alert.alert_id, result.failed)
            return
        try:
            await self._tx(alerts_repo.mark_push_sent, alert.alert_id, now)
        except TransientError as e:
            log.warning("[router] could not record push for %s: %s", alert.alert_id, e)
            return
        alert.push_sent = True
        alert.push_sent_at = now

    # --- transitions -----------------------------------------------------------

    async def _transition_tx(
        self,
        session: AsyncSession,
        alert_id: str,
        *,
        verb: str,
        from_statuses: Iterable[AlertStatus],
        to_status: AlertStatus,
        values: Optional[dict] = None,
        guard: Optional[Callable[[Alert], None]] = None,
    ) -> Alert:
        from_statuses = frozenset(from_statuses)
        alert = await alerts_repo.get_alert(session, alert_id)
        if alert is None:
            raise AlertNotFound()
        if guard is not None:
            guard(alert)
        if AlertStatus(alert.status) not in from_statuses:
            raise InvalidState(f"cannot {verb} an alert that is {alert.status}", status=alert.status)
        updated = await alerts_repo.transition(
            session, alert_id, from_statuses=from_statuses, to_status=to_status, values=values
        )
        if updated is None:
            current = await alerts_repo.get_alert(session, alert_id)
            raise InvalidState(f"cannot {verb} an alert that is {current.status}", status=current.status)
        ALERT_TRANSITIONS.labels(status=to_status.value).inc()
        return updated

    @staticmethod
    def _receiver_only(account_id: str) -> Callable[[Alert], None]:
        def _check(alert: Alert) -> None:
            if alert.receiver_account_id != account_id:
                raise NotReceiver()
        return _check

    async def mark_delivered(
        self, alert_id: str, by_account_id: Optional[str] = None, *, now: Optional[datetime] = None
    ) -> Alert:
        """Delivery receipt; when an account is given it must be the receiver."""
        now = now or utcnow()
        return await self._tx(
            self._transition_tx,
            alert_id,
            verb="deliver",
            from_statuses={AlertStatus.SENT},
            to_status=AlertStatus.DELIVERED,
            values={"delivered_at": now},
            guard=self._receiver_only(by_account_id) if by_account_id is not None else None,
        )

    async def acknowledge(self, alert_id: str, by_account_id: str, *, now: Optional[datetime] = None) -> Alert:
        now = now or utcnow()
        alert = await self._tx(
            self._transition_tx,
            alert_id,
            verb="acknowledge",
            from_statuses=UNDELIVERED,
            to_status=AlertStatus.ACKNOWLEDGED,
            values={"acknowledged_at": now},
            guard=self._receiver_only(by_account_id),
        )
        log.info("[router] alert %s acknowledged", alert_id)
        return alert

    async def resolve(
        self,
        alert_id: str,
        by_account_id: str,
        response: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> Alert:
        now = now or utcnow()
        response = self._clean_message(response)

        async def _tx(session: AsyncSession) -> Alert:
            alert = await self._transition_tx(
                session,
                alert_id,
                verb="resolve",
                from_statuses=OPEN_STATUSES,
                to_status=AlertStatus.RESOLVED,
                values={"resolved_at": now, "response": response},
                guard=self._receiver_only(by_account_id),
            )
            await self.ledger.payout_for_resolution(session, alert, now=now)
            return alert

        alert = await self._tx(_tx)
        log.info("[router] alert %s resolved", alert_id)
        return alert

    async def cancel(self, alert_id: str, by_account_id: str, *, now: Optional[datetime] = None) -> Alert:
        def _sender_only(alert: Alert) -> None:
            if alert.sender_account_id != by_account_id:
                raise NotSender()

        alert = await self._tx(
            self._transition_tx,
            alert_id,
            verb="cancel",
            from_statuses=UNDELIVERED,
            to_status=AlertStatus.CANCELLED,
            guard=_sender_only,
        )
        log.info("[router] alert %s cancelled by sender", alert_id)
        return alert

    async def expire(self, alert_id: str, *, now: Optional[datetime] = None) -> Alert:
        """Terminal alerts are returned untouched; no reputation change either way."""
        now = now or utcnow()

        async def _tx(session: AsyncSession) -> Alert:
            alert = await alerts_repo.get_alert(session, alert_id)
            if alert is None:
                raise AlertNotFound()
            if AlertStatus(alert.status) in TERMINAL_STATUSES:
                return alert
            if now <= alert.expires_at:
                raise InvalidState("alert has not expired yet", status=alert.status)
            updated = await alerts_repo.transition(
                session,
                alert_id,
                from_statuses=OPEN_STATUSES,
                to_status=AlertStatus.EXPIRED,
                expired_before=now,
            )
            if updated is None:
                return await alerts_repo.get_alert(session, alert_id)
            ALERT_TRANSITIONS.labels(status=AlertStatus.EXPIRED.value).inc()
            return updated

        return await self._tx(_tx)

    async def apply_action(
        self,
        alert_id: str,
        by_account_id: str,
        action: AlertAction,
        response: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> Alert:
        action = AlertAction(action)
        if action is AlertAction.ACKNOWLEDGE:
            return await self.acknowledge(alert_id, by_account_id, now=now)
        if action is AlertAction.RESOLVE:
            return await self.resolve(alert_id, by_account_id, response, now=now)
        return await self.cancel(alert_id, by_account_id, now=now)

    # --- sweeps ------------------------------------------------------------------

    async def expire_due(self, *, now: Optional[datetime] = None, limit: int = 500) -> int:
        now = now or utcnow()

        async def _tx(session: AsyncSession) -> int:
            n = 0
            for alert_id in await alerts_repo.due_for_expiry(session, now, limit):
                updated = await alerts_repo.transition(
                    session,
                    alert_id,
                    from_statuses=OPEN_STATUSES,
                    to_status=AlertStatus.EXPIRED,
                    expired_before=now,
                )
                if updated is not None:
                    n += 1
            return n

        n = await self._tx(_tx)
        if n:
            ALERT_TRANSITIONS.labels(status=AlertStatus.EXPIRED.value).inc(n)
            log.info("[router] expired %d alerts", n)
        return n

    async def cancel_orphaned(self, identifier_hash: str) -> int:
        """Undelivered alerts aimed at an identifier that no longer has an owner."""
        async def _tx(session: AsyncSession) -> int:
            n = 0
            for alert_id in await alerts_repo.open_for_identifier(session, identifier_hash, UNDELIVERED):
                updated = await alerts_repo.transition(
                    session, alert_id, from_statuses=UNDELIVERED, to_status=AlertStatus.CANCELLED
                )
                if updated is not None:
                    n += 1
            return n

        n = await self._tx(_tx)
        if n:
            ALERT_TRANSITIONS.labels(status=AlertStatus.CANCELLED.value).inc(n)
            log.info("[router] cancelled %d orphaned alerts for %s", n, identifier_hash[:12])
        return n

    # --- reads / reports ---------------------------------------------------------

    async def get_alert(self, alert_id: str, viewer_account_id: str) -> Alert:
        alert = await self._tx(alerts_repo.get_alert, alert_id)
        # non-parties get the same answer as a missing id
        if alert is None or viewer_account_id not in (alert.sender_account_id, alert.receiver_account_id):
            raise AlertNotFound()
        return alert

    async def list_alerts(self, account_id: str, *, role: str = "receiver", limit: int = 50):
        return await self._tx(alerts_repo.list_for_account, account_id, role=role, limit=limit)

    async def report_spam(self, alert_id: str, reporter_account_id: str, *, now: Optional[datetime] = None) -> Alert:
        now = now or utcnow()

        async def _tx(session: AsyncSession) -> Alert:
            alert = await alerts_repo.get_alert(session, alert_id)
            if alert is None:
                raise AlertNotFound()
            await self.abuse.report_spam(session, alert, reporter_account_id, now=now)
            return await alerts_repo.get_alert(session, alert_id)

        return await self._tx(_tx)
