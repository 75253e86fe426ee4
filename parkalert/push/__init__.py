from parkalert.core.settings import Settings

from .base import (
    DEFAULT_BODY,
    DEFAULT_TITLE,
    DeliveryResult,
    PushDispatcher,
    PushPayload,
    PushSender,
    sound_hint_for,
)
from .sinks import LogSink, WebhookSink


def build_dispatcher(settings: Settings) -> PushDispatcher:
    dispatcher = PushDispatcher(keep_recent=settings.PUSH_KEEP_RECENT)
    for name in settings.sinks():
        if name == "log":
            dispatcher.register(LogSink())
        elif name == "webhook":
            for url in settings.webhook_urls():
                dispatcher.register(
                    WebhookSink(
                        url,
                        retry_max=settings.PUSH_RETRY_MAX,
                        backoff_ms=settings.PUSH_RETRY_BACKOFF_MS,
                        timeout_sec=settings.PUSH_TIMEOUT_SEC,
                    )
                )
    return dispatcher


__all__ = [
    "DEFAULT_BODY",
    "DEFAULT_TITLE",
    "DeliveryResult",
    "PushDispatcher",
    "PushPayload",
    "PushSender",
    "LogSink",
    "WebhookSink",
    "build_dispatcher",
    "sound_hint_for",
]
