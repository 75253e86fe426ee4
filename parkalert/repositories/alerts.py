# parkalert/repositories/alerts.py
from datetime import datetime
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from parkalert.db.models import Alert, AlertStatus, OPEN_STATUSES


async def insert_alert(
    session: AsyncSession,
    *,
    sender_account_id: str,
    receiver_account_id: str,
    target_identifier_hash: str,
    urgency_level: str,
    message: Optional[str],
    sent_at: datetime,
    expires_at: datetime,
) -> Alert:
    row = Alert(
        sender_account_id=sender_account_id,
        receiver_account_id=receiver_account_id,
        target_identifier_hash=target_identifier_hash,
        urgency_level=urgency_level,
        message=message,
        status=AlertStatus.SENT.value,
        sent_at=sent_at,
        expires_at=expires_at,
    )
    session.add(row)
    await session.flush()
    return row


async def get_alert(session: AsyncSession, alert_id: str) -> Optional[Alert]:
    stmt = select(Alert).where(Alert.alert_id == alert_id).execution_options(populate_existing=True)
    return (await session.execute(stmt)).scalar_one_or_none()


async def transition(
    session: AsyncSession,
    alert_id: str,
    *,
    from_statuses: Iterable[AlertStatus],
    to_status: AlertStatus,
    values: Optional[dict[str, Any]] = None,
    expired_before: Optional[datetime] = None,
) -> Optional[Alert]:
    """
    Optimistic status change: UPDATE ... WHERE status IN (from_statuses).
    Returns the refreshed alert, or None when another writer got there first.
    """
    conds = [Alert.alert_id == alert_id, Alert.status.in_([s.value for s in from_statuses])]
    if expired_before is not None:
        conds.append(Alert.expires_at < expired_before)
    stmt = (
        update(Alert)
        .where(*conds)
        .values(status=to_status.value, **(values or {}))
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    if (res.rowcount or 0) != 1:
        return None
    return await get_alert(session, alert_id)


async def count_sent_since(session: AsyncSession, sender_account_id: str, since: datetime) -> int:
    q = (
        select(func.count())
        .select_from(Alert)
        .where(Alert.sender_account_id == sender_account_id, Alert.sent_at >= since)
    )
    return (await session.execute(q)).scalar_one()


async def due_for_expiry(session: AsyncSession, now: datetime, limit: int = 500) -> Sequence[str]:
    q = (
        select(Alert.alert_id)
        .where(Alert.status.in_([s.value for s in OPEN_STATUSES]), Alert.expires_at < now)
        .order_by(Alert.expires_at)
        .limit(limit)
    )
    return (await session.execute(q)).scalars().all()


async def open_for_identifier(
    session: AsyncSession, identifier_hash: str, statuses: Iterable[AlertStatus] = OPEN_STATUSES
) -> Sequence[str]:
    q = select(Alert.alert_id).where(
        Alert.target_identifier_hash == identifier_hash,
        Alert.status.in_([s.value for s in statuses]),
    )
    return (await session.execute(q)).scalars().all()


async def mark_push_sent(session: AsyncSession, alert_id: str, at: datetime) -> None:
    await session.execute(
        update(Alert)
        .where(Alert.alert_id == alert_id)
        .values(push_sent=True, push_sent_at=at)
        .execution_options(synchronize_session=False)
    )


async def flag_spam_once(session: AsyncSession, alert_id: str) -> bool:
    stmt = (
        update(Alert)
        .where(Alert.alert_id == alert_id, Alert.spam_reported.is_(False))
        .values(spam_reported=True)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    return (res.rowcount or 0) == 1


async def response_rows_since(session: AsyncSession, since: datetime):
    q = select(
        Alert.urgency_level,
        Alert.status,
        Alert.sent_at,
        Alert.acknowledged_at,
        Alert.resolved_at,
        Alert.expires_at,
    ).where(Alert.sent_at >= since)
    return (await session.execute(q)).all()


async def list_for_account(session: AsyncSession, account_id: str, *, role: str = "receiver", limit: int = 50):
    col = Alert.receiver_account_id if role == "receiver" else Alert.sender_account_id
    q = select(Alert).where(col == account_id).order_by(Alert.sent_at.desc()).limit(limit)
    return (await session.execute(q)).scalars().all()
