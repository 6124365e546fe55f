"""Pod watch loop feeding the termination classifier."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Optional

from kubernetes import client, watch
from kubernetes.client.rest import ApiException
from prometheus_client import Counter

from .classifier import TerminationClassifier
from .models import ContainerStatus, PodStatusSnapshot, TerminationRecord, WatchEventType

logger = logging.getLogger(__name__)

WATCH_RESTARTS = Counter(
    "sentry_kubernetes_watch_restarts_total",
    "Pod watch streams restarted after an error",
)
DECODE_ERRORS = Counter(
    "sentry_kubernetes_decode_errors_total",
    "Watch events skipped because the pod could not be decoded",
)

HTTP_GONE = 410


def _termination_from_status(container_status: Any) -> Optional[TerminationRecord]:
    last_state = getattr(container_status, "last_state", None)
    terminated = getattr(last_state, "terminated", None) if last_state else None
    if terminated is None:
        return None
    return TerminationRecord(
        exit_code=getattr(terminated, "exit_code", None),
        reason=getattr(terminated, "reason", None),
        message=getattr(terminated, "message", None),
    )


def _container_from_status(container_status: Any) -> ContainerStatus:
    return ContainerStatus(
        name=container_status.name,
        image=getattr(container_status, "image", None) or "",
        restart_count=getattr(container_status, "restart_count", None) or 0,
        last_termination=_termination_from_status(container_status),
    )


def snapshot_from_pod(pod: client.V1Pod) -> PodStatusSnapshot:
    """Build a PodStatusSnapshot from a V1Pod, containers in pod spec order."""
    metadata = pod.metadata
    spec = pod.spec
    statuses = list(getattr(pod.status, "container_statuses", None) or [])

    spec_order = {c.name: i for i, c in enumerate(getattr(spec, "containers", None) or [])}
    # Statuses whose container is not in the spec keep their relative order after the known ones.
    statuses.sort(key=lambda cs: spec_order.get(cs.name, len(spec_order)))

    return PodStatusSnapshot(
        name=metadata.name,
        namespace=metadata.namespace or "",
        node_name=getattr(spec, "node_name", None) or "",
        containers=tuple(_container_from_status(cs) for cs in statuses),
    )


class PodWatcher:
    def __init__(
        self,
        core_v1: client.CoreV1Api,
        classifier: TerminationClassifier,
        *,
        namespace: str | None = None,
        timeout_seconds: int = 60,
        reconnect_delay: float = 2.0,
    ):
        self._core_v1 = core_v1
        self._classifier = classifier
        self._namespace = namespace
        self._timeout_seconds = timeout_seconds
        self._reconnect_delay = reconnect_delay
        self._resource_version: Optional[str] = None
        self._watch = watch.Watch()

    @property
    def scope(self) -> str:
        return self._namespace or "all namespaces"

    def handle_event(self, event: dict[str, Any]) -> None:
        etype = event.get("type")
        obj = event.get("object")

        if etype == WatchEventType.ERROR.value or not isinstance(obj, client.V1Pod):
            logger.warning(f"skipping {etype} watch event with object {type(obj).__name__}")
            return

        if obj.metadata is not None and obj.metadata.resource_version:
            self._resource_version = obj.metadata.resource_version

        if etype == WatchEventType.DELETED.value:
            if obj.metadata is None or not obj.metadata.name:
                DECODE_ERRORS.inc()
                logger.error("could not decode deleted pod: missing metadata")
                return
            self._classifier.forget_pod(obj.metadata.namespace or "", obj.metadata.name)
            return

        try:
            snapshot = snapshot_from_pod(obj)
        except Exception as exc:
            DECODE_ERRORS.inc()
            name = getattr(obj.metadata, "name", "?")
            logger.error(f"could not decode pod {name}: {exc}")
            return

        if etype == WatchEventType.ADDED.value:
            self._classifier.prime(snapshot)
        elif etype == WatchEventType.MODIFIED.value:
            self._classifier.classify(snapshot)
        else:
            logger.debug(f"ignoring {etype} event for {snapshot.ref}")

    def run_once(self) -> None:
        kwargs: dict[str, Any] = {"timeout_seconds": self._timeout_seconds}
        if self._resource_version:
            kwargs["resource_version"] = self._resource_version
        if self._namespace:
            stream = self._watch.stream(self._core_v1.list_namespaced_pod, self._namespace, **kwargs)
        else:
            stream = self._watch.stream(self._core_v1.list_pod_for_all_namespaces, **kwargs)
        for event in stream:
            self.handle_event(event)

    def run(self, stop_event: threading.Event | None = None) -> None:
        logger.info(f"Watching pods in {self.scope}")
        while stop_event is None or not stop_event.is_set():
            try:
                self.run_once()
            except ApiException as exc:
                if exc.status == HTTP_GONE:
                    logger.info("pod watch resource version expired, relisting")
                    self._resource_version = None
                    continue
                self._backoff(f"watch api error: {exc.status} {exc.reason}")
            except Exception as exc:
                self._backoff(f"watch error: {exc}")

    def stop(self) -> None:
        self._watch.stop()

    def _backoff(self, message: str) -> None:
        WATCH_RESTARTS.inc()
        logger.error(message)
        time.sleep(self._reconnect_delay)
