# parkalert/services/retention.py
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from parkalert.db.models import utcnow
from parkalert.repositories.security_events import purge_registration_attempts, purge_security_events

log = logging.getLogger(__name__)


async def run_retention(session: AsyncSession, days: int, *, now: Optional[datetime] = None) -> int:
    """
    Drops security events and registration attempts older than ``days``.
    Returns the number of deleted rows.
    """
    cutoff = (now or utcnow()) - timedelta(days=days)
    deleted = await purge_security_events(session, cutoff)
    deleted += await purge_registration_attempts(session, cutoff)
    log.info("[retention] deleted=%d older_than_days=%d", deleted, days)
    return deleted
