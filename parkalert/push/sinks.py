import asyncio
import json
import logging
from dataclasses import asdict
from typing import Dict, Optional

import httpx

from parkalert.push.base import PushPayload

log = logging.getLogger(__name__)


class LogSink:
    """Writes the notification to the log; the default in dev."""

    async def send(self, payload: PushPayload) -> None:
        log.info("[push] %s", json.dumps(asdict(payload), ensure_ascii=False))


class WebhookSink:
    """POSTs the payload as JSON; retries with linear backoff, then raises."""

    def __init__(
        self,
        url: str,
        retry_max: int = 3,
        backoff_ms: int = 250,
        timeout_sec: float = 5.0,
        headers: Optional[Dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.retry_max = max(1, int(retry_max))
        self.backoff_ms = backoff_ms
        self.timeout = timeout_sec
        self.headers = headers or {"Content-Type": "application/json"}
        self.transport = transport

    async def send(self, payload: PushPayload) -> None:
        body = asdict(payload)
        last_error: Optional[Exception] = None
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            for attempt in range(1, self.retry_max + 1):
                try:
                    resp = await client.post(self.url, headers=self.headers, json=body)
                    resp.raise_for_status()
                    return
                except httpx.HTTPError as e:
                    last_error = e
                    log.debug("[push] webhook attempt %d/%d failed: %s", attempt, self.retry_max, e)
                    if attempt < self.retry_max:
                        await asyncio.sleep(self.backoff_ms * attempt / 1000.0)
        raise RuntimeError(f"webhook {self.url} unreachable after {self.retry_max} attempts") from last_error
