# parkalert/repositories/reputation.py
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from parkalert.db.models import ReputationEvent


async def insert_event(
    session: AsyncSession,
    *,
    account_id: str,
    event_type: str,
    delta: int,
    applied_delta: int,
    related_alert_id: Optional[str],
    description: Optional[str],
    now: datetime,
) -> ReputationEvent:
    ev = ReputationEvent(
        account_id=account_id,
        event_type=event_type,
        delta=delta,
        applied_delta=applied_delta,
        related_alert_id=related_alert_id,
        description=description,
        created_at=now,
    )
    session.add(ev)
    await session.flush()
    return ev


async def list_events(
    session: AsyncSession,
    account_id: str,
    *,
    event_type: Optional[str] = None,
    related_alert_id: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> Sequence[ReputationEvent]:
    q = select(ReputationEvent).where(ReputationEvent.account_id == account_id)
    if event_type:
        q = q.where(ReputationEvent.event_type == event_type)
    if related_alert_id:
        q = q.where(ReputationEvent.related_alert_id == related_alert_id)
    q = q.order_by(ReputationEvent.created_at.desc()).limit(limit).offset(offset)
    return (await session.execute(q)).scalars().all()


async def sum_applied(session: AsyncSession, account_id: str) -> int:
    q = select(func.coalesce(func.sum(ReputationEvent.applied_delta), 0)).where(
        ReputationEvent.account_id == account_id
    )
    return int((await session.execute(q)).scalar_one())
