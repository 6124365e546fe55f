from sentry_kubernetes.config import get_settings
from sentry_kubernetes.models import ContainerStatus, PodStatusSnapshot, TerminationRecord
from sentry_kubernetes.service import build_classifier, build_sink


def test_sink():
    print("Sending a sample OOMKilled termination through the configured sink...")

    snapshot = PodStatusSnapshot(
        name="verify-alerts",
        namespace="default",
        node_name="local",
        containers=(
            ContainerStatus(
                name="main",
                image="verify-alerts:dev",
                restart_count=1,
                last_termination=TerminationRecord(exit_code=137, reason="OOMKilled"),
            ),
        ),
    )

    try:
        settings = get_settings()
        sink = build_sink(settings)
    except Exception as e:
        print(f"❌ Sink could not be configured: {e}")
        return

    classifier = build_classifier(sink, settings)
    events = classifier.classify(snapshot)
    sink.close()

    if len(events) == 1:
        print(f"✅ Sent: {events[0].message}")
    else:
        print(f"❌ Expected one event, got {len(events)}")


if __name__ == "__main__":
    test_sink()
