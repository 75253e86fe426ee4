from fastapi import APIRouter, Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from parkalert.metrics import METRICS_REGISTRY

router = APIRouter()


@router.get("/metrics")
async def metrics(request: Request):
    # export the registry pinned on app.state, not the global default
    pm = getattr(request.app.state, "parkalert_metrics", None)
    reg = pm["registry"] if isinstance(pm, dict) and "registry" in pm else METRICS_REGISTRY
    return Response(content=generate_latest(reg), media_type=CONTENT_TYPE_LATEST)
