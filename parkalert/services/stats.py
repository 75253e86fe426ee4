# parkalert/services/stats.py
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from parkalert.db.models import utcnow
from parkalert.repositories.accounts import tier_distribution
from parkalert.repositories.alerts import response_rows_since
from parkalert.services.ledger import TIERS


async def alert_statistics(
    session: AsyncSession, *, days: int = 30, now: Optional[datetime] = None
) -> List[Dict[str, Any]]:
    """Alert counts and mean response time per (urgency, status) over the last ``days``."""
    since = (now or utcnow()) - timedelta(days=days)
    groups: Dict[tuple, Dict[str, Any]] = defaultdict(lambda: {"count": 0, "responses": []})
    for urgency, status, sent_at, acknowledged_at, resolved_at, _expires_at in await response_rows_since(session, since):
        g = groups[(urgency, status)]
        g["count"] += 1
        responded_at = acknowledged_at or resolved_at
        if responded_at is not None:
            g["responses"].append((responded_at - sent_at).total_seconds())

    items = []
    for (urgency, status), g in sorted(groups.items()):
        resp = g["responses"]
        items.append(
            {
                "urgency": urgency,
                "status": status,
                "count": g["count"],
                "avg_response_seconds": round(sum(resp) / len(resp), 1) if resp else None,
            }
        )
    return items


async def reputation_distribution(session: AsyncSession) -> List[Dict[str, Any]]:
    rows = await tier_distribution(session, [(t.name, t.min_score) for t in TIERS])
    by_tier = {tier: (cnt, avg) for tier, cnt, avg in rows}
    out = []
    for t in TIERS:
        cnt, avg = by_tier.get(t.name, (0, None))
        out.append({"tier": t.name, "count": int(cnt), "avg_score": round(float(avg), 1) if avg is not None else None})
    return out
