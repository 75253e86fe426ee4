from typing import AsyncIterator, Optional

from fastapi import Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from parkalert.core.errors import Forbidden, Unauthenticated
from parkalert.core.settings import Settings
from parkalert.services.container import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


async def get_db(request: Request) -> AsyncIterator[AsyncSession]:
    async with request.app.state.sessions() as session:
        yield session


async def current_account(x_account_id: Optional[str] = Header(default=None)) -> str:
    """The caller's opaque account id. Authentication happens upstream."""
    account_id = (x_account_id or "").strip()
    if not account_id:
        raise Unauthenticated()
    return account_id


def require_self(account_id: str, caller: str) -> None:
    if account_id != caller:
        raise Forbidden("you can only access your own account")
