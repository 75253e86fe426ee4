# parkalert/api/routes_alerts.py
from typing import Literal

from fastapi import APIRouter, Depends, Query, status

from parkalert.api.deps import current_account, get_services
from parkalert.api.schemas import AlertActionIn, AlertOut, AlertsPage, PolicyNotice, SendAlertIn, SendAlertOut
from parkalert.core.errors import Forbidden
from parkalert.services.container import Services

router = APIRouter(prefix="/alerts", tags=["alerts"])


@router.post("", response_model=SendAlertOut, status_code=status.HTTP_201_CREATED)
async def send_alert(
    body: SendAlertIn,
    caller: str = Depends(current_account),
    services: Services = Depends(get_services),
):
    if body.sender_account_id and body.sender_account_id != caller:
        raise Forbidden("senderAccountId does not match the caller")
    result = await services.router.send_alert(caller, body.target_identifier_hash, body.urgency, body.message)
    policy = None
    if result.flagged:
        policy = PolicyNotice(
            code="rapid_alerts",
            message="You are sending alerts very quickly; your reputation was reduced.",
        )
    return SendAlertOut(alert=AlertOut.model_validate(result.alert), policy=policy)


@router.get("", response_model=AlertsPage)
async def list_alerts(
    role: Literal["receiver", "sender"] = "receiver",
    limit: int = Query(50, ge=1, le=200),
    caller: str = Depends(current_account),
    services: Services = Depends(get_services),
):
    return {"items": await services.router.list_alerts(caller, role=role, limit=limit)}


@router.get("/{alert_id}", response_model=AlertOut)
async def get_alert(
    alert_id: str,
    caller: str = Depends(current_account),
    services: Services = Depends(get_services),
):
    return await services.router.get_alert(alert_id, caller)


@router.patch("/{alert_id}", response_model=AlertOut)
async def update_alert(
    alert_id: str,
    body: AlertActionIn,
    caller: str = Depends(current_account),
    services: Services = Depends(get_services),
):
    return await services.router.apply_action(alert_id, caller, body.action, body.response)


@router.post("/{alert_id}/delivery", response_model=AlertOut)
async def mark_delivered(
    alert_id: str,
    caller: str = Depends(current_account),
    services: Services = Depends(get_services),
):
    # non-parties get 404, the sender gets not_receiver
    await services.router.get_alert(alert_id, caller)
    return await services.router.mark_delivered(alert_id, caller)


@router.post("/{alert_id}/report", response_model=AlertOut)
async def report_spam(
    alert_id: str,
    caller: str = Depends(current_account),
    services: Services = Depends(get_services),
):
    return await services.router.report_spam(alert_id, caller)
