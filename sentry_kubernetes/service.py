"""Runtime orchestration for sentry-kubernetes."""

from __future__ import annotations

import logging
import threading

from kubernetes import client, config
from kubernetes.config.config_exception import ConfigException

from .classifier import TerminationClassifier
from .config import ConfigurationError, Settings, get_settings
from .dedup import TerminationCache
from .sink import AlertSink, FileSink, SentrySink
from .watcher import PodWatcher


logger = logging.getLogger(__name__)


def load_kube_config() -> None:
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster config")
    except ConfigException:
        try:
            config.load_kube_config()
        except (ConfigException, FileNotFoundError) as exc:
            raise ConfigurationError(f"No cluster access: {exc}") from exc
        logger.info("Loaded kube config")


def build_sink(cfg: Settings) -> AlertSink:
    cfg.validate_sink()
    if cfg.mock_log_file:
        logger.info(f"Mock mode: writing alert events to {cfg.mock_log_file}")
        return FileSink(cfg.mock_log_file)
    return SentrySink(
        dsn=cfg.dsn,
        environment=cfg.environment,
        debug=cfg.debug,
        flush_timeout=cfg.flush_timeout_seconds,
    )


def build_classifier(sink: AlertSink, cfg: Settings) -> TerminationClassifier:
    dedup = TerminationCache(cfg.dedup_max_entries) if cfg.dedup_enabled else None
    return TerminationClassifier(
        sink,
        dedup=dedup,
        report_empty_messages=cfg.report_empty_messages,
    )


class WatcherService:
    def __init__(self, config: Settings | None = None):
        self._config = config or get_settings()
        self._stop = threading.Event()
        self._sink: AlertSink | None = None
        self._watcher: PodWatcher | None = None

    def start(self) -> None:
        """Configure everything, then block in the watch loop until stopped.

        Raises ConfigurationError when the sink or cluster access is missing.
        """
        self._sink = build_sink(self._config)
        load_kube_config()
        if self._config.metrics_port:
            self._start_metrics_server(self._config.metrics_port)

        classifier = build_classifier(self._sink, self._config)
        self._watcher = PodWatcher(
            client.CoreV1Api(),
            classifier,
            namespace=self._config.namespace,
            timeout_seconds=self._config.watch_timeout_seconds,
            reconnect_delay=self._config.reconnect_delay_seconds,
        )
        logger.info("Starting sentry-kubernetes")
        logger.debug(f"Using environment: {self._config.environment}")
        try:
            self._watcher.run(self._stop)
        finally:
            self._sink.close()

    def stop(self) -> None:
        self._stop.set()
        if self._watcher is not None:
            self._watcher.stop()

    def _start_metrics_server(self, port: int) -> None:
        """Start Prometheus metrics HTTP server."""
        from prometheus_client import start_http_server
        try:
            start_http_server(port)
            logger.info(f"Prometheus metrics server started on port {port}")
        except Exception as e:
            logger.warning(f"Failed to start Prometheus metrics server: {e}")


def run_watcher(config: Settings | None = None) -> None:
    WatcherService(config).start()


__all__ = ["WatcherService", "run_watcher", "build_sink", "build_classifier", "load_kube_config"]
