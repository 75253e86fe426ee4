# parkalert/api/routes_identifiers.py
from typing import List

from fastapi import APIRouter, Depends, Request, Response, status

from parkalert.api.deps import current_account, get_app_settings, get_services
from parkalert.api.schemas import (
    IdentifierOut,
    OwnerOut,
    RegisterIdentifierIn,
    RotateProofIn,
    TransferIn,
)
from parkalert.core.settings import Settings
from parkalert.security.ip_utils import get_client_info
from parkalert.services.container import Services

router = APIRouter(prefix="/identifiers", tags=["identifiers"])


@router.post("", response_model=IdentifierOut, status_code=status.HTTP_201_CREATED)
async def register_identifier(
    body: RegisterIdentifierIn,
    request: Request,
    caller: str = Depends(current_account),
    services: Services = Depends(get_services),
    settings: Settings = Depends(get_app_settings),
):
    _ip, origin = get_client_info(request, trusted_cidrs=settings.TRUSTED_PROXY_CIDRS, salt=settings.IP_SALT)
    return await services.registry.register(body.identifier_hash, caller, body.proof_hash, origin=origin)


@router.get("", response_model=List[IdentifierOut])
async def list_my_identifiers(
    caller: str = Depends(current_account),
    services: Services = Depends(get_services),
):
    return await services.registry.list_for_owner(caller)


@router.get("/{identifier_hash}/owner", response_model=OwnerOut)
async def resolve_owner(identifier_hash: str, services: Services = Depends(get_services)):
    return OwnerOut(account_id=await services.registry.resolve_owner(identifier_hash))


@router.post("/{identifier_hash}/transfer", response_model=IdentifierOut)
async def transfer_identifier(
    identifier_hash: str,
    body: TransferIn,
    caller: str = Depends(current_account),
    services: Services = Depends(get_services),
):
    return await services.registry.transfer_ownership(identifier_hash, caller, body.proof_hash)


@router.put("/{identifier_hash}/proof", response_model=IdentifierOut)
async def rotate_proof(
    identifier_hash: str,
    body: RotateProofIn,
    caller: str = Depends(current_account),
    services: Services = Depends(get_services),
):
    return await services.registry.rotate_proof(
        identifier_hash, caller, body.current_proof_hash, body.new_proof_hash
    )


@router.delete("/{identifier_hash}", status_code=status.HTTP_204_NO_CONTENT)
async def unregister_identifier(
    identifier_hash: str,
    caller: str = Depends(current_account),
    services: Services = Depends(get_services),
):
    normalized = await services.registry.unregister(identifier_hash, caller)
    await services.router.cancel_orphaned(normalized)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
