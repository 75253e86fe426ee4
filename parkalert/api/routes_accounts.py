# parkalert/api/routes_accounts.py
from fastapi import APIRouter, Depends, Query, Response, status

from parkalert.api.deps import current_account, get_services, require_self
from parkalert.api.schemas import AccountOut, ReputationEventsPage, ReputationOut
from parkalert.services.container import Services

router = APIRouter(prefix="/accounts", tags=["accounts"])


@router.post("", response_model=AccountOut, status_code=status.HTTP_201_CREATED)
async def create_account(services: Services = Depends(get_services)):
    return await services.accounts.create()


@router.delete("/{account_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_account(
    account_id: str,
    caller: str = Depends(current_account),
    services: Services = Depends(get_services),
):
    require_self(account_id, caller)
    for identifier_hash in await services.accounts.owned_identifiers(account_id):
        await services.router.cancel_orphaned(identifier_hash)
    await services.accounts.delete(account_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{account_id}/reputation", response_model=ReputationOut)
async def get_reputation(
    account_id: str,
    caller: str = Depends(current_account),
    services: Services = Depends(get_services),
):
    require_self(account_id, caller)
    s = await services.ledger.summary(account_id)
    return ReputationOut(
        account_id=s.account_id,
        score=s.score,
        status=s.status,
        tier=s.tier.name,
        daily_quota=s.tier.daily_quota,
        daily_quota_remaining=s.daily_quota_remaining,
        resets_at=s.resets_at,
    )


@router.get("/{account_id}/reputation/events", response_model=ReputationEventsPage)
async def get_reputation_events(
    account_id: str,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    caller: str = Depends(current_account),
    services: Services = Depends(get_services),
):
    require_self(account_id, caller)
    # 404 for unknown accounts rather than an empty page
    await services.accounts.get(account_id)
    items = await services.ledger.history(account_id, limit=limit, offset=offset)
    return {"items": items}
