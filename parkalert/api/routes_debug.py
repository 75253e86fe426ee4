from fastapi import APIRouter, Query, Request

router = APIRouter()


@router.get("/_debug/config")
def debug_config(request: Request):
    settings = request.app.state.settings
    return {
        "app_env": settings.APP_ENV,
        "policy": settings.policy(),
        "push_sinks": settings.sinks(),
        "note": "Do not expose this in production without auth.",
    }


@router.get("/_debug/pushes")
async def recent_pushes(request: Request, limit: int = Query(50, ge=1, le=1000)):
    dispatcher = getattr(request.app.state, "push", None)
    if dispatcher is None:
        return []
    return dispatcher.recent(limit=limit)


@router.get("/version")
def version(request: Request):
    return {"app": "ParkAlert", "version": request.app.state.settings.APP_VERSION}
