from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from parkalert.api.deps import get_db
from parkalert.api.schemas import AlertStatsOut, ReputationStatsOut
from parkalert.services.stats import alert_statistics, reputation_distribution

router = APIRouter(prefix="/stats", tags=["stats"])


@router.get("/alerts", response_model=AlertStatsOut)
async def get_alert_stats(days: int = Query(30, ge=1, le=365), session: AsyncSession = Depends(get_db)):
    return {"days": days, "items": await alert_statistics(session, days=days)}


@router.get("/reputation", response_model=ReputationStatsOut)
async def get_reputation_stats(session: AsyncSession = Depends(get_db)):
    return {"items": await reputation_distribution(session)}
