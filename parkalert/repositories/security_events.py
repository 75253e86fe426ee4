# parkalert/repositories/security_events.py
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import delete, desc, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from parkalert.db.models import RegistrationAttempt, SecurityEvent


async def insert_security_event(
    session: AsyncSession,
    *,
    account_id: Optional[str],
    event_type: str,
    severity: str,
    details: dict,
    action_taken: Optional[str],
    now: datetime,
) -> SecurityEvent:
    ev = SecurityEvent(
        account_id=account_id,
        event_type=event_type,
        severity=severity,
        details=details,
        action_taken=action_taken,
        created_at=now,
    )
    session.add(ev)
    await session.flush()
    return ev


async def list_security_events(
    session: AsyncSession,
    *,
    account_id: Optional[str] = None,
    event_type: Optional[str] = None,
    since: Optional[datetime] = None,
    limit: int = 100,
) -> Sequence[SecurityEvent]:
    q = select(SecurityEvent)
    if account_id:
        q = q.where(SecurityEvent.account_id == account_id)
    if event_type:
        q = q.where(SecurityEvent.event_type == event_type)
    if since:
        q = q.where(SecurityEvent.created_at >= since)
    q = q.order_by(desc(SecurityEvent.created_at)).limit(limit)
    return (await session.execute(q)).scalars().all()


async def purge_security_events(session: AsyncSession, cutoff: datetime) -> int:
    res = await session.execute(delete(SecurityEvent).where(SecurityEvent.created_at < cutoff))
    return getattr(res, "rowcount", 0) or 0


async def purge_registration_attempts(session: AsyncSession, cutoff: datetime) -> int:
    res = await session.execute(delete(RegistrationAttempt).where(RegistrationAttempt.created_at < cutoff))
    return getattr(res, "rowcount", 0) or 0


async def insert_registration_attempt(
    session: AsyncSession,
    *,
    origin_hash: str,
    account_id: Optional[str],
    identifier_hash: Optional[str],
    now: datetime,
) -> RegistrationAttempt:
    row = RegistrationAttempt(
        origin_hash=origin_hash,
        account_id=account_id,
        identifier_hash=identifier_hash,
        created_at=now,
    )
    session.add(row)
    await session.flush()
    return row


async def count_registration_attempts_since(session: AsyncSession, origin_hash: str, since: datetime) -> int:
    q = (
        select(func.count())
        .select_from(RegistrationAttempt)
        .where(RegistrationAttempt.origin_hash == origin_hash, RegistrationAttempt.created_at >= since)
    )
    return (await session.execute(q)).scalar_one()
