from unittest.mock import MagicMock

from prometheus_client import REGISTRY

from conftest import make_container, make_snapshot
from sentry_kubernetes.classifier import (
    TerminationClassifier,
    apply_override,
    compose_message,
)
from sentry_kubernetes.models import AlertEvent, AlertLevel, TerminationRecord


def test_no_termination_record_no_alert(classifier, sink):
    snapshot = make_snapshot(make_container(), make_container(name="sidecar"))
    assert classifier.classify(snapshot) == []
    sink.send.assert_not_called()


def test_completed_is_never_reported(classifier, sink):
    snapshot = make_snapshot(
        make_container(exit_code=0, reason="Completed"),
        make_container(name="job", exit_code=1, reason="Completed", message="done"),
    )
    assert classifier.classify(snapshot) == []
    sink.send.assert_not_called()


def test_error_override(classifier):
    snapshot = make_snapshot(make_container(exit_code=137, reason="Error", message="Error"))
    [event] = classifier.classify(snapshot)
    assert event.message == "Pod: worker-1 exited with code: 137"
    assert event.extra["reason"] == "Error"


def test_error_override_reason_only(classifier):
    snapshot = make_snapshot(make_container(exit_code=2, reason="Error"))
    [event] = classifier.classify(snapshot)
    assert event.message == "Pod: worker-1 exited with code: 2"
    assert event.extra["exitCode"] == "2"


def test_oom_override(classifier):
    snapshot = make_snapshot(make_container(exit_code=137, reason="OOMKilled"))
    [event] = classifier.classify(snapshot)
    assert event.message == "Pod: worker-1 OOMKilled"
    assert event.extra["reason"] == "OOMKilled"


def test_only_failing_container_reported(classifier, sink):
    snapshot = make_snapshot(
        make_container(name="init-proxy", restart_count=0),
        make_container(name="app", image="app:2.0", restart_count=5, exit_code=1, reason="Error"),
        make_container(name="sidecar", restart_count=1, exit_code=0, reason="Completed"),
    )
    events = classifier.classify(snapshot)
    assert len(events) == 1
    assert events[0].extra["container"] == "app"
    assert events[0].extra["restartCount"] == 5
    assert events[0].release == "app:2.0"
    sink.send.assert_called_once_with(events[0])


def test_message_composition():
    record = TerminationRecord(exit_code=1, reason="ContainerCannotRun", message="exec failed")
    assert compose_message(record) == "exec failed - ContainerCannotRun"


def test_message_ignored_for_zero_exit():
    record = TerminationRecord(exit_code=0, reason="Unknown", message="noise")
    assert compose_message(record) == "Unknown"


def test_empty_message_is_still_reported(classifier):
    snapshot = make_snapshot(make_container(exit_code=0))
    [event] = classifier.classify(snapshot)
    assert event.message == ""
    assert event.extra["exitCode"] == "0"
    assert event.extra["reason"] == ""


def test_empty_message_suppressed_when_disabled(sink):
    classifier = TerminationClassifier(sink, report_empty_messages=False)
    assert classifier.classify(make_snapshot(make_container(exit_code=0))) == []
    sink.send.assert_not_called()


def test_apply_override_passthrough():
    assert apply_override("web", 1, "boom - Error") == ("boom - Error", "")


def test_end_to_end_oom(classifier, sink):
    snapshot = make_snapshot(make_container(exit_code=137, reason="OOMKilled", message=""))
    events = classifier.classify(snapshot)

    assert events == [
        AlertEvent(
            message="Pod: worker-1 OOMKilled",
            release="app:1.2",
            platform="kubernetes",
            level=AlertLevel.ERROR,
            extra={
                "name": "worker-1",
                "reason": "OOMKilled",
                "nodeName": "node-a",
                "exitCode": "137",
                "container": "main",
                "namespace": "batch",
                "restartCount": 3,
            },
        )
    ]
    sink.send.assert_called_once_with(events[0])
    assert events[0].to_sentry_event() == {
        "message": "Pod: worker-1 OOMKilled",
        "release": "app:1.2",
        "platform": "kubernetes",
        "level": "error",
        "extra": events[0].extra,
    }


def test_sink_failure_does_not_stop_other_containers(sink):
    sink.send.side_effect = [RuntimeError("transport down"), None]
    classifier = TerminationClassifier(sink)
    snapshot = make_snapshot(
        make_container(name="a", exit_code=1, reason="Error"),
        make_container(name="b", exit_code=137, reason="OOMKilled"),
    )
    events = classifier.classify(snapshot)
    assert [e.extra["container"] for e in events] == ["b"]
    assert sink.send.call_count == 2


def test_broken_container_is_skipped(sink):
    broken = MagicMock()
    broken.name = "broken"
    broken.last_termination.reason = "Error"
    broken.last_termination.exit_code = "not-a-number"
    broken.last_termination.message = None
    broken.image = None

    classifier = TerminationClassifier(sink)
    snapshot = MagicMock()
    snapshot.name = "worker-1"
    snapshot.namespace = "batch"
    snapshot.node_name = "node-a"
    snapshot.ref = "batch/worker-1"
    snapshot.containers = (broken, make_container(exit_code=137, reason="OOMKilled"))

    events = classifier.classify(snapshot)
    assert len(events) == 1
    assert events[0].extra["container"] == "main"


def test_dedup_reports_once(dedup_classifier, sink):
    snapshot = make_snapshot(make_container(exit_code=137, reason="OOMKilled"))
    before = REGISTRY.get_sample_value("sentry_kubernetes_suppressed_total", {"cause": "duplicate"}) or 0

    assert len(dedup_classifier.classify(snapshot)) == 1
    assert dedup_classifier.classify(snapshot) == []

    after = REGISTRY.get_sample_value("sentry_kubernetes_suppressed_total", {"cause": "duplicate"})
    assert after == before + 1
    assert sink.send.call_count == 1


def test_dedup_restart_count_increase_reports_again(dedup_classifier):
    first = make_snapshot(make_container(restart_count=3, exit_code=137, reason="OOMKilled"))
    second = make_snapshot(make_container(restart_count=4, exit_code=137, reason="OOMKilled"))
    assert len(dedup_classifier.classify(first)) == 1
    assert len(dedup_classifier.classify(second)) == 1


def test_dedup_forget_pod(dedup_classifier):
    snapshot = make_snapshot(make_container(exit_code=1, reason="Error"))
    assert len(dedup_classifier.classify(snapshot)) == 1
    dedup_classifier.forget_pod("batch", "worker-1")
    assert len(dedup_classifier.classify(snapshot)) == 1


def test_without_dedup_every_update_reports(classifier):
    snapshot = make_snapshot(make_container(exit_code=1, reason="Error"))
    assert len(classifier.classify(snapshot)) == 1
    assert len(classifier.classify(snapshot)) == 1


def test_prime_suppresses_existing_terminations(dedup_classifier, sink):
    snapshot = make_snapshot(make_container(exit_code=137, reason="OOMKilled"))
    dedup_classifier.prime(snapshot)
    assert dedup_classifier.classify(snapshot) == []
    sink.send.assert_not_called()


def test_dedup_retries_after_sink_failure(dedup_classifier, sink):
    sink.send.side_effect = [RuntimeError("transport down"), None]
    snapshot = make_snapshot(make_container(exit_code=137, reason="OOMKilled"))

    assert dedup_classifier.classify(snapshot) == []
    assert len(dedup_classifier.classify(snapshot)) == 1
    assert dedup_classifier.classify(snapshot) == []
    assert sink.send.call_count == 2
