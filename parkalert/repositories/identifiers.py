# parkalert/repositories/identifiers.py
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from parkalert.db.models import Identifier, VerificationStatus


async def get_identifier(session: AsyncSession, identifier_hash: str) -> Optional[Identifier]:
    # populate_existing: conditional UPDATEs bypass the identity map
    stmt = (
        select(Identifier)
        .where(Identifier.identifier_hash == identifier_hash)
        .execution_options(populate_existing=True)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


async def insert_identifier(
    session: AsyncSession,
    *,
    identifier_hash: str,
    owner_account_id: str,
    proof_hash: str,
    now: datetime,
) -> Identifier:
    """Flushes immediately so a duplicate hash raises IntegrityError here."""
    row = Identifier(
        identifier_hash=identifier_hash,
        owner_account_id=owner_account_id,
        verification_status=VerificationStatus.VERIFIED.value,
        ownership_proof_hash=proof_hash,
        registered_at=now,
        updated_at=now,
    )
    session.add(row)
    await session.flush()
    return row


async def count_for_owner(session: AsyncSession, owner_account_id: str) -> int:
    q = select(func.count()).select_from(Identifier).where(Identifier.owner_account_id == owner_account_id)
    return (await session.execute(q)).scalar_one()


async def list_for_owner(session: AsyncSession, owner_account_id: str) -> Sequence[Identifier]:
    q = (
        select(Identifier)
        .where(Identifier.owner_account_id == owner_account_id)
        .order_by(Identifier.registered_at)
    )
    return (await session.execute(q)).scalars().all()


async def transfer_if_proof(
    session: AsyncSession,
    identifier_hash: str,
    *,
    new_owner_account_id: str,
    proof_hash: str,
    now: datetime,
) -> bool:
    """
    Compare-and-swap on the ownership proof. An empty stored proof means the
    identifier was never initialised and can be claimed once.
    """
    stmt = (
        update(Identifier)
        .where(
            Identifier.identifier_hash == identifier_hash,
            or_(Identifier.ownership_proof_hash == proof_hash, Identifier.ownership_proof_hash == ""),
        )
        .values(
            owner_account_id=new_owner_account_id,
            ownership_proof_hash=proof_hash,
            verification_status=VerificationStatus.VERIFIED.value,
            updated_at=now,
        )
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    return (res.rowcount or 0) == 1


async def rotate_proof_if_match(
    session: AsyncSession,
    identifier_hash: str,
    *,
    owner_account_id: str,
    current_proof_hash: str,
    new_proof_hash: str,
    now: datetime,
) -> bool:
    stmt = (
        update(Identifier)
        .where(
            Identifier.identifier_hash == identifier_hash,
            Identifier.owner_account_id == owner_account_id,
            Identifier.ownership_proof_hash == current_proof_hash,
        )
        .values(ownership_proof_hash=new_proof_hash, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    res = await session.execute(stmt)
    return (res.rowcount or 0) == 1


async def delete_if_owner(session: AsyncSession, identifier_hash: str, owner_account_id: str) -> bool:
    stmt = delete(Identifier).where(
        Identifier.identifier_hash == identifier_hash,
        Identifier.owner_account_id == owner_account_id,
    )
    res = await session.execute(stmt)
    return (res.rowcount or 0) == 1
