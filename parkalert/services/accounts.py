import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from parkalert.core.errors import AccountNotFound
from parkalert.core.settings import Settings
from parkalert.db.models import Account, utcnow
from parkalert.db.session import run_in_transaction
from parkalert.repositories import accounts as accounts_repo
from parkalert.repositories import identifiers as identifiers_repo

log = logging.getLogger(__name__)


class AccountService:
    """Anonymous account provisioning. An account is nothing but an id and a score."""

    def __init__(self, sessions: async_sessionmaker, settings: Settings):
        self.sessions = sessions
        self.settings = settings

    async def _tx(self, fn, *args, **kwargs):
        return await run_in_transaction(
            self.sessions, fn, *args, timeout=self.settings.STORAGE_TIMEOUT_SECONDS, **kwargs
        )

    async def create(self, *, now: Optional[datetime] = None) -> Account:
        async def _tx(session: AsyncSession) -> Account:
            return await accounts_repo.create_account(
                session, initial_score=self.settings.INITIAL_REPUTATION, now=now or utcnow()
            )

        account = await self._tx(_tx)
        log.info("[accounts] created %s", account.account_id)
        return account

    async def get(self, account_id: str) -> Account:
        account = await self._tx(accounts_repo.get_account, account_id)
        if account is None:
            raise AccountNotFound()
        return account

    async def owned_identifiers(self, account_id: str) -> list:
        async def _tx(session: AsyncSession) -> list:
            return [row.identifier_hash for row in await identifiers_repo.list_for_owner(session, account_id)]

        return await self._tx(_tx)

    async def delete(self, account_id: str) -> None:
        """Removes the account with everything that references it."""
        async def _tx(session: AsyncSession) -> None:
            if not await accounts_repo.delete_account(session, account_id):
                raise AccountNotFound()

        await self._tx(_tx)
        log.info("[accounts] deleted %s", account_id)
