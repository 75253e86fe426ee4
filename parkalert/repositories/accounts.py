# parkalert/repositories/accounts.py
from datetime import datetime
from typing import Optional

from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from parkalert.db.models import (
    Account,
    AccountStatus,
    Alert,
    Identifier,
    RegistrationAttempt,
    ReputationEvent,
    SecurityEvent,
)


async def create_account(session: AsyncSession, *, initial_score: int, now: datetime) -> Account:
    acc = Account(
        reputation_score=initial_score,
        status=AccountStatus.ACTIVE.value,
        created_at=now,
        last_active_at=now,
    )
    session.add(acc)
    await session.flush()
    return acc


async def get_account(session: AsyncSession, account_id: str, *, for_update: bool = False) -> Optional[Account]:
    stmt = select(Account).where(Account.account_id == account_id).execution_options(populate_existing=True)
    if for_update:
        # row lock on PostgreSQL; ignored by SQLite
        stmt = stmt.with_for_update()
    return (await session.execute(stmt)).scalar_one_or_none()


async def compare_and_set_score(
    session: AsyncSession, account_id: str, *, expected: int, new: int, now: datetime
) -> bool:
    stmt = (
        update(Account)
        .where(Account.account_id == account_id, Account.reputation_score == expected)
        .values(reputation_score=new, last_active_at=now)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    return (res.rowcount or 0) == 1


async def set_status(session: AsyncSession, account_id: str, status: AccountStatus) -> None:
    await session.execute(
        update(Account)
        .where(Account.account_id == account_id)
        .values(status=status.value)
        .execution_options(synchronize_session=False)
    )


async def delete_account(session: AsyncSession, account_id: str) -> bool:
    # explicit cascade: SQLite does not enforce foreign keys by default
    await session.execute(
        delete(Alert).where(or_(Alert.sender_account_id == account_id, Alert.receiver_account_id == account_id))
    )
    await session.execute(delete(Identifier).where(Identifier.owner_account_id == account_id))
    await session.execute(delete(ReputationEvent).where(ReputationEvent.account_id == account_id))
    await session.execute(delete(SecurityEvent).where(SecurityEvent.account_id == account_id))
    await session.execute(delete(RegistrationAttempt).where(RegistrationAttempt.account_id == account_id))
    res = await session.execute(delete(Account).where(Account.account_id == account_id))
    return (res.rowcount or 0) == 1


async def tier_distribution(session: AsyncSession, thresholds: list[tuple[str, int]]):
    """Active accounts per tier; thresholds are (name, min_score) ordered high to low."""
    whens = [(Account.reputation_score >= min_score, name) for name, min_score in thresholds[:-1]]
    tier = case(*whens, else_=thresholds[-1][0]).label("tier")
    q = (
        select(tier, func.count().label("cnt"), func.avg(Account.reputation_score).label("avg_score"))
        .where(Account.status == AccountStatus.ACTIVE.value)
        .group_by(tier)
    )
    return (await session.execute(q)).all()
