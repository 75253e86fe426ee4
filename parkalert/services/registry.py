"""
Identifier registry.

Maps an identifier hash (plate digest or parking code) to the one account
that owns it. Uniqueness rests on the primary key of ``identifiers``; a
registration that loses an insert race re-reads the row and answers as if
it had arrived second.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from parkalert.core.errors import (
    AccountNotFound,
    AlreadyRegistered,
    IdentifierNotFound,
    NotOwner,
    ProofMismatch,
    TooManyIdentifiers,
)
from parkalert.core.settings import Settings
from parkalert.db.models import Identifier, utcnow
from parkalert.db.session import run_in_transaction
from parkalert.identity.codes import validate_identifier, validate_proof_hash
from parkalert.repositories import accounts as accounts_repo
from parkalert.repositories import identifiers as identifiers_repo
from parkalert.services.abuse import AbuseDetector

log = logging.getLogger(__name__)


class IdentifierRegistry:
    def __init__(self, sessions: async_sessionmaker, settings: Settings, abuse: AbuseDetector):
        self.sessions = sessions
        self.settings = settings
        self.abuse = abuse

    async def _tx(self, fn, *args, **kwargs):
        return await run_in_transaction(
            self.sessions, fn, *args, timeout=self.settings.STORAGE_TIMEOUT_SECONDS, **kwargs
        )

    async def _require_account(self, session: AsyncSession, account_id: str) -> None:
        if await accounts_repo.get_account(session, account_id) is None:
            raise AccountNotFound()

    async def _ensure_capacity(self, session: AsyncSession, account_id: str) -> None:
        limit = self.settings.MAX_IDENTIFIERS_PER_ACCOUNT
        if await identifiers_repo.count_for_owner(session, account_id) >= limit:
            raise TooManyIdentifiers(f"an account can register at most {limit} vehicles", limit=limit)

    # --- register ------------------------------------------------------------

    async def register(
        self,
        identifier_hash: str,
        owner_account_id: str,
        proof_hash: str,
        *,
        origin: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Identifier:
        now = now or utcnow()
        identifier_hash = validate_identifier(identifier_hash)
        proof_hash = validate_proof_hash(proof_hash)

        if origin:
            # its own transaction: the attempt is kept even if registration fails
            await self._tx(
                self.abuse.check_registration_velocity,
                origin,
                account_id=owner_account_id,
                identifier_hash=identifier_hash,
                now=now,
            )

        try:
            return await self._tx(self._register_tx, identifier_hash, owner_account_id, proof_hash, now)
        except IntegrityError:
            log.info("[registry] insert race on %s, re-reading", identifier_hash[:12])
            return await self._tx(self._register_tx, identifier_hash, owner_account_id, proof_hash, now)

    async def _register_tx(
        self, session: AsyncSession, identifier_hash: str, owner_account_id: str, proof_hash: str, now: datetime
    ) -> Identifier:
        await self._require_account(session, owner_account_id)
        existing = await identifiers_repo.get_identifier(session, identifier_hash)
        if existing is not None:
            if existing.owner_account_id == owner_account_id:
                return existing
            if existing.ownership_proof_hash and existing.ownership_proof_hash != proof_hash:
                raise AlreadyRegistered()
            # same ownership key from a new account: the owner reinstalled the app
            return await self._transfer_tx(session, identifier_hash, owner_account_id, proof_hash, now)

        await self._ensure_capacity(session, owner_account_id)
        row = await identifiers_repo.insert_identifier(
            session,
            identifier_hash=identifier_hash,
            owner_account_id=owner_account_id,
            proof_hash=proof_hash,
            now=now,
        )
        log.info("[registry] registered %s to %s", identifier_hash[:12], owner_account_id)
        return row

    # --- lookups -------------------------------------------------------------

    async def owner_of(self, session: AsyncSession, identifier_hash: str) -> str:
        row = await identifiers_repo.get_identifier(session, identifier_hash)
        if row is None:
            raise IdentifierNotFound()
        return row.owner_account_id

    async def resolve_owner(self, identifier_hash: str) -> str:
        identifier_hash = validate_identifier(identifier_hash)
        return await self._tx(self.owner_of, identifier_hash)

    async def list_for_owner(self, owner_account_id: str) -> Sequence[Identifier]:
        return await self._tx(identifiers_repo.list_for_owner, owner_account_id)

    # --- ownership changes ---------------------------------------------------

    async def transfer_ownership(
        self, identifier_hash: str, new_owner_account_id: str, proof_hash: str, *, now: Optional[datetime] = None
    ) -> Identifier:
        identifier_hash = validate_identifier(identifier_hash)
        proof_hash = validate_proof_hash(proof_hash)
        return await self._tx(self._transfer_tx, identifier_hash, new_owner_account_id, proof_hash, now or utcnow())

    async def _transfer_tx(
        self, session: AsyncSession, identifier_hash: str, new_owner_account_id: str, proof_hash: str, now: datetime
    ) -> Identifier:
        existing = await identifiers_repo.get_identifier(session, identifier_hash)
        if existing is None:
            raise IdentifierNotFound()
        if existing.owner_account_id == new_owner_account_id:
            return existing
        await self._require_account(session, new_owner_account_id)
        await self._ensure_capacity(session, new_owner_account_id)
        ok = await identifiers_repo.transfer_if_proof(
            session,
            identifier_hash,
            new_owner_account_id=new_owner_account_id,
            proof_hash=proof_hash,
            now=now,
        )
        if not ok:
            raise ProofMismatch()
        log.info(
            "[registry] %s moved from %s to %s", identifier_hash[:12], existing.owner_account_id, new_owner_account_id
        )
        return await identifiers_repo.get_identifier(session, identifier_hash)

    async def rotate_proof(
        self,
        identifier_hash: str,
        owner_account_id: str,
        current_proof_hash: str,
        new_proof_hash: str,
        *,
        now: Optional[datetime] = None,
    ) -> Identifier:
        identifier_hash = validate_identifier(identifier_hash)
        current_proof_hash = validate_proof_hash(current_proof_hash, field="currentProofHash")
        new_proof_hash = validate_proof_hash(new_proof_hash, field="newProofHash")

        async def _tx(session: AsyncSession) -> Identifier:
            existing = await identifiers_repo.get_identifier(session, identifier_hash)
            if existing is None:
                raise IdentifierNotFound()
            if existing.owner_account_id != owner_account_id:
                raise NotOwner()
            ok = await identifiers_repo.rotate_proof_if_match(
                session,
                identifier_hash,
                owner_account_id=owner_account_id,
                current_proof_hash=current_proof_hash,
                new_proof_hash=new_proof_hash,
                now=now or utcnow(),
            )
            if not ok:
                raise ProofMismatch()
            return await identifiers_repo.get_identifier(session, identifier_hash)

        return await self._tx(_tx)

    async def unregister(self, identifier_hash: str, owner_account_id: str) -> str:
        """Deletes the mapping; returns the normalised hash for follow-up cleanup."""
        identifier_hash = validate_identifier(identifier_hash)

        async def _tx(session: AsyncSession) -> None:
            existing = await identifiers_repo.get_identifier(session, identifier_hash)
            if existing is None:
                raise IdentifierNotFound()
            if existing.owner_account_id != owner_account_id:
                raise NotOwner()
            if not await identifiers_repo.delete_if_owner(session, identifier_hash, owner_account_id):
                raise NotOwner()

        await self._tx(_tx)
        log.info("[registry] %s unregistered by %s", identifier_hash[:12], owner_account_id)
        return identifier_hash
