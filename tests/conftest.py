import pytest
from unittest.mock import MagicMock
from kubernetes import client

from sentry_kubernetes.classifier import TerminationClassifier
from sentry_kubernetes.dedup import TerminationCache
from sentry_kubernetes.models import ContainerStatus, PodStatusSnapshot, TerminationRecord


def make_snapshot(*containers, name="worker-1", namespace="batch", node_name="node-a"):
    return PodStatusSnapshot(name=name, namespace=namespace, node_name=node_name, containers=tuple(containers))


def make_container(name="main", image="app:1.2", restart_count=3, **termination):
    record = TerminationRecord(**termination) if termination else None
    return ContainerStatus(name=name, image=image, restart_count=restart_count, last_termination=record)


def make_pod(name="worker-1", namespace="batch", node_name="node-a", spec_containers=("main",), statuses=(), rv="1"):
    return client.V1Pod(
        metadata=client.V1ObjectMeta(name=name, namespace=namespace, resource_version=rv),
        spec=client.V1PodSpec(
            node_name=node_name,
            containers=[client.V1Container(name=c, image=f"{c}:latest") for c in spec_containers],
        ),
        status=client.V1PodStatus(container_statuses=list(statuses)),
    )


def make_container_status(name="main", image="app:1.2", restart_count=3, terminated=None):
    last_state = client.V1ContainerState(terminated=terminated) if terminated is not None else client.V1ContainerState()
    return client.V1ContainerStatus(
        name=name,
        image=image,
        image_id="",
        ready=False,
        restart_count=restart_count,
        last_state=last_state,
    )


@pytest.fixture
def sink():
    return MagicMock()


@pytest.fixture
def classifier(sink):
    return TerminationClassifier(sink)


@pytest.fixture
def dedup_classifier(sink):
    return TerminationClassifier(sink, dedup=TerminationCache())


@pytest.fixture
def mock_core_v1():
    return MagicMock(spec=client.CoreV1Api)
