"""Alert sinks: Sentry delivery and a file-backed mock for local runs."""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime
from typing import Optional, Protocol

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.utils import BadDsn

from .config import ConfigurationError
from .models import AlertEvent

logger = logging.getLogger(__name__)


class AlertSink(Protocol):
    def send(self, event: AlertEvent) -> Optional[str]:
        ...

    def close(self) -> None:
        ...


class SentrySink:
    """Hands events to the sentry-sdk client.

    Delivery, batching and retries are done by the SDK transport in the
    background; ``send`` returns as soon as the event is queued.
    """

    def __init__(
        self,
        *,
        dsn: str,
        environment: str | None = None,
        debug: bool = False,
        flush_timeout: float = 2.0,
    ):
        self._flush_timeout = flush_timeout
        try:
            sentry_sdk.init(
                dsn=dsn,
                environment=environment,
                debug=debug,
                # Our own log records stay breadcrumbs; only AlertEvents become Sentry events.
                integrations=[LoggingIntegration(level=logging.INFO, event_level=None)],
            )
        except BadDsn as exc:
            raise ConfigurationError(f"unable to initialise Sentry client: {exc}") from exc
        logger.info(f"Sentry client initialised (environment={environment or 'default'})")

    def send(self, event: AlertEvent) -> Optional[str]:
        return sentry_sdk.capture_event(event.to_sentry_event())

    def close(self) -> None:
        sentry_sdk.flush(timeout=self._flush_timeout)


class FileSink:
    """Mock mode: append each event as a JSON line instead of sending it."""

    def __init__(self, path: str):
        self._path = path
        self._lock = threading.Lock()

    def send(self, event: AlertEvent) -> Optional[str]:
        entry = {
            "timestamp": datetime.utcnow().isoformat(),
            "event": event.to_sentry_event(),
        }
        with self._lock:
            with open(self._path, "a") as f:
                f.write(json.dumps(entry) + "\n")
        return None

    def close(self) -> None:
        pass
