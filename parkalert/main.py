from dotenv import load_dotenv
load_dotenv()  # .env before settings are read anywhere in the import chain


# parkalert/main.py
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from parkalert.api.routes_accounts import router as accounts_router
from parkalert.api.routes_alerts import router as alerts_router
from parkalert.api.routes_debug import router as debug_router
from parkalert.api.routes_identifiers import router as identifiers_router
from parkalert.api.routes_metrics import router as metrics_router
from parkalert.api.routes_stats import router as stats_router
from parkalert.core.errors import ParkAlertError, TransientError
from parkalert.core.log import setup_logging
from parkalert.core.settings import get_settings
from parkalert.db.session import SessionLocal
from parkalert.metrics import get_metrics
from parkalert.observability.middleware_latency import LatencyMiddleware
from parkalert.push import build_dispatcher
from parkalert.services.container import build_services
from parkalert.services.retention import run_retention

settings = get_settings()
setup_logging(settings.LOG_LEVEL)
log = logging.getLogger("parkalert.main")

app = FastAPI(title="ParkAlert", version=settings.APP_VERSION)
app.add_middleware(LatencyMiddleware)

# ---- shared state, wired once at import time
app.state.settings = settings
app.state.parkalert_metrics = get_metrics()
app.state.sessions = SessionLocal
app.state.push = build_dispatcher(settings)
app.state.services = build_services(SessionLocal, settings, app.state.push)


@app.exception_handler(ParkAlertError)
async def _parkalert_error(request: Request, exc: ParkAlertError):
    if isinstance(exc, TransientError):
        log.warning("[api] %s %s -> %s: %s", request.method, request.url.path, exc.code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_error_response())


@app.exception_handler(RequestValidationError)
async def _validation_error(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={
            "error": {
                "code": "invalid_request",
                "message": "request body or parameters are invalid",
                "details": [
                    {"loc": list(e.get("loc", ())), "msg": e.get("msg")} for e in exc.errors()
                ],
            }
        },
    )


@app.get("/health")
def health():
    return JSONResponse({"status": "ok"})


app.include_router(metrics_router)
app.include_router(debug_router)
app.include_router(accounts_router)
app.include_router(identifiers_router)
app.include_router(alerts_router)
app.include_router(stats_router)


@app.on_event("startup")
async def _startup():
    app.state.scheduler = AsyncIOScheduler()
    app.state.scheduler.add_job(
        _expire_job, "interval", seconds=settings.EXPIRE_SWEEP_SECONDS, max_instances=1, coalesce=True
    )
    # every day at 03:30
    app.state.scheduler.add_job(_retention_job, CronTrigger(hour=3, minute=30))
    app.state.scheduler.start()
    log.info("[main] scheduler started env=%s", settings.APP_ENV)


async def _expire_job():
    try:
        await app.state.services.router.expire_due()
    except TransientError as e:
        log.warning("[main] expiry sweep skipped: %s", e)


async def _retention_job():
    async with app.state.sessions() as session:
        async with session.begin():
            await run_retention(session, settings.SECURITY_EVENT_RETENTION_DAYS)


@app.on_event("shutdown")
async def _shutdown():
    sch = getattr(app.state, "scheduler", None)
    if sch:
        sch.shutdown(wait=False)
