"""Turn pod status snapshots into Sentry alert events.

Every container of a snapshot is looked at on its own. A container whose
last termination is missing or a clean ``Completed`` exit produces nothing;
any other termination becomes one :class:`AlertEvent` that is handed to the
sink. Nothing here raises: a container that cannot be evaluated is logged
and skipped so the watch loop keeps running.
"""

from __future__ import annotations

import logging
from typing import Optional

from prometheus_client import Counter

from .dedup import TerminationCache
from .models import AlertEvent, AlertLevel, ContainerStatus, PLATFORM, PodStatusSnapshot, TerminationRecord
from .sink import AlertSink

logger = logging.getLogger(__name__)

COMPLETED_REASON = "Completed"
ERROR_REASON = "Error"
OOM_REASON = "OOMKilled"
REASON_SEPARATOR = " - "

# Prometheus metrics
SNAPSHOTS = Counter(
    "sentry_kubernetes_snapshots_total",
    "Pod status snapshots classified",
)
ALERTS = Counter(
    "sentry_kubernetes_alerts_total",
    "Alert events handed to the sink",
    ["reason"],  # Error, OOMKilled, other
)
SUPPRESSED = Counter(
    "sentry_kubernetes_suppressed_total",
    "Terminations that did not produce an alert",
    ["cause"],  # completed, duplicate, empty
)
CLASSIFY_ERRORS = Counter(
    "sentry_kubernetes_classify_errors_total",
    "Containers skipped because they could not be evaluated",
)
SINK_ERRORS = Counter(
    "sentry_kubernetes_sink_errors_total",
    "Alert events the sink refused",
)


def is_reportable(record: TerminationRecord) -> bool:
    return record.reason != COMPLETED_REASON


def compose_message(record: TerminationRecord) -> str:
    """Diagnostic text first (non-zero exits only), then the reason after " - "."""
    message = ""
    if record.exit_code != 0 and record.message:
        message = record.message
    if record.reason and record.reason != message:
        if message:
            message += REASON_SEPARATOR
        message += record.reason
    return message


def apply_override(pod_name: str, exit_code: int, message: str) -> tuple[str, str]:
    """Replace a bare "Error"/"OOMKilled" message with one naming the pod.

    Returns the final message and the reason reported in the event extras.
    """
    if message == ERROR_REASON:
        return f"Pod: {pod_name} exited with code: {exit_code}", ERROR_REASON
    if message == OOM_REASON:
        return f"Pod: {pod_name} OOMKilled", OOM_REASON
    return message, ""


def termination_fingerprint(container: ContainerStatus) -> tuple[int, str, int]:
    record = container.last_termination
    return (container.restart_count, record.reason, record.exit_code)


class TerminationClassifier:
    def __init__(
        self,
        sink: AlertSink,
        *,
        dedup: TerminationCache | None = None,
        report_empty_messages: bool = True,
    ):
        self._sink = sink
        self._dedup = dedup
        self._report_empty_messages = report_empty_messages

    def classify(self, snapshot: PodStatusSnapshot) -> list[AlertEvent]:
        SNAPSHOTS.inc()
        emitted: list[AlertEvent] = []
        for container in snapshot.containers:
            try:
                event = self._evaluate(snapshot, container)
            except Exception as exc:
                CLASSIFY_ERRORS.inc()
                logger.error(f"failed to classify {snapshot.ref} container {container.name}: {exc}")
                continue
            if event is None:
                continue
            if self._emit(event):
                emitted.append(event)
            elif self._dedup is not None:
                # Let the next update retry a termination the sink refused.
                self._dedup.release(self._key(snapshot, container), termination_fingerprint(container))
        return emitted

    def prime(self, snapshot: PodStatusSnapshot) -> None:
        """Remember the current terminations of ``snapshot`` without alerting."""
        if self._dedup is None:
            return
        for container in snapshot.containers:
            if container.last_termination is None:
                continue
            self._dedup.record(self._key(snapshot, container), termination_fingerprint(container))

    def forget_pod(self, namespace: str, name: str) -> None:
        if self._dedup is None:
            return
        dropped = self._dedup.forget_pod(namespace, name)
        if dropped:
            logger.debug(f"forgot {dropped} container(s) of deleted pod {namespace}/{name}")

    def build_event(self, snapshot: PodStatusSnapshot, container: ContainerStatus) -> Optional[AlertEvent]:
        record = container.last_termination
        if record is None or not is_reportable(record):
            return None

        message, reason = apply_override(snapshot.name, record.exit_code, compose_message(record))
        logger.debug(f"{snapshot.ref} container {container.name} last state: {record!r}")
        logger.debug(f"containerReason: {reason!r} containerMessage: {message!r}")

        return AlertEvent(
            message=message,
            release=container.image,
            platform=PLATFORM,
            level=AlertLevel.ERROR,
            extra={
                "name": snapshot.name,
                "reason": reason,
                "nodeName": snapshot.node_name,
                "exitCode": str(record.exit_code),
                "container": container.name,
                "namespace": snapshot.namespace,
                "restartCount": container.restart_count,
            },
        )

    def _evaluate(self, snapshot: PodStatusSnapshot, container: ContainerStatus) -> Optional[AlertEvent]:
        record = container.last_termination
        if record is None:
            return None
        if not is_reportable(record):
            SUPPRESSED.labels(cause="completed").inc()
            return None

        event = self.build_event(snapshot, container)
        if event is None:
            return None
        if not event.message and not self._report_empty_messages:
            SUPPRESSED.labels(cause="empty").inc()
            return None
        if self._dedup is not None and self._dedup.seen(
            self._key(snapshot, container), termination_fingerprint(container)
        ):
            SUPPRESSED.labels(cause="duplicate").inc()
            logger.debug(f"{snapshot.ref} container {container.name} termination already reported")
            return None
        return event

    def _emit(self, event: AlertEvent) -> bool:
        try:
            self._sink.send(event)
        except Exception as exc:
            SINK_ERRORS.inc()
            logger.error(f"alert sink error for pod {event.extra.get('name')}: {exc}")
            return False
        reason = event.extra.get("reason") or "other"
        ALERTS.labels(reason=reason).inc()
        logger.info(
            f"Reported {event.extra.get('namespace')}/{event.extra.get('name')} "
            f"container {event.extra.get('container')}: {event.message}"
        )
        return True

    @staticmethod
    def _key(snapshot: PodStatusSnapshot, container: ContainerStatus) -> tuple[str, str, str]:
        return (snapshot.namespace, snapshot.name, container.name)
