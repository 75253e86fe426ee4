from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Protocol

from parkalert.metrics import PUSH_DELIVERIES

log = logging.getLogger(__name__)

DEFAULT_TITLE = "ParkAlert"
DEFAULT_BODY = "Someone needs you to move your car!"

_SOUNDS = {
    "low": "low_alert_1",
    "normal": "normal_alert",
    "high": "high_alert_1",
}


def sound_hint_for(urgency: str) -> str:
    return _SOUNDS.get(str(urgency), "normal_alert")


@dataclass
class PushPayload:
    account_id: str
    title: str
    body: str
    urgency: str
    sound_hint: str
    data: Dict[str, Any] = field(default_factory=dict)
    ts: float = field(default_factory=time.time)


@dataclass
class DeliveryResult:
    ok: bool
    delivered: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)


class PushSender(Protocol):
    async def send(self, payload: PushPayload) -> None: ...


class PushDispatcher:
    """
    Fans a notification out to every registered sink in parallel.

    A sink failure is logged and counted; ``send`` itself never raises, so
    callers can push after commit without guarding the call.
    """

    def __init__(self, keep_recent: int = 0):
        self.sinks: List[PushSender] = []
        self._recent = deque(maxlen=int(keep_recent)) if keep_recent > 0 else None

    def register(self, sink: PushSender) -> None:
        self.sinks.append(sink)

    async def send(
        self,
        account_id: str,
        title: str,
        body: str,
        urgency: str,
        sound_hint: Optional[str] = None,
        **data: Any,
    ) -> DeliveryResult:
        payload = PushPayload(
            account_id=account_id,
            title=title or DEFAULT_TITLE,
            body=body or DEFAULT_BODY,
            urgency=str(urgency),
            sound_hint=sound_hint or sound_hint_for(urgency),
            data=data,
        )
        outcomes = await asyncio.gather(*(self._send_one(s, payload) for s in self.sinks))
        result = DeliveryResult(ok=False)
        for name, err in outcomes:
            if err is None:
                result.delivered.append(name)
            else:
                result.failed[name] = err
        result.ok = bool(result.delivered)
        if self._recent is not None:
            self._recent.append({**asdict(payload), "ok": result.ok})
        return result

    async def _send_one(self, sink: PushSender, payload: PushPayload):
        name = sink.__class__.__name__
        try:
            await sink.send(payload)
        except Exception as e:
            PUSH_DELIVERIES.labels(sink=name, outcome="error").inc()
            log.warning("[push] %s failed for %s: %s", name, payload.account_id, e)
            return name, str(e) or e.__class__.__name__
        PUSH_DELIVERIES.labels(sink=name, outcome="ok").inc()
        return name, None

    def recent(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        if self._recent is None:
            return []
        if not limit or limit <= 0:
            return list(self._recent)
        return list(self._recent)[-int(limit):]
