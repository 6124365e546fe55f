"""sentry-kubernetes package."""

from .classifier import TerminationClassifier
from .config import Settings
from .models import AlertEvent, ContainerStatus, PodStatusSnapshot, TerminationRecord

__all__ = [
    "Settings",
    "TerminationClassifier",
    "AlertEvent",
    "ContainerStatus",
    "PodStatusSnapshot",
    "TerminationRecord",
]
