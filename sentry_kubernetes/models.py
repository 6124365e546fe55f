"""Core models shared across components."""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


PLATFORM = "kubernetes"


class AlertLevel(str, Enum):
    ERROR = "error"


class WatchEventType(str, Enum):
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    ERROR = "ERROR"


class TerminationRecord(BaseModel):
    """The last time a container terminated."""

    model_config = ConfigDict(frozen=True)

    exit_code: int = 0
    reason: str = ""
    message: str = ""

    @field_validator("exit_code", mode="before")
    @classmethod
    def _missing_exit_code(cls, value: Any) -> Any:
        return 0 if value is None else value

    @field_validator("reason", "message", mode="before")
    @classmethod
    def _missing_text(cls, value: Any) -> Any:
        return "" if value is None else value


class ContainerStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    image: str = ""
    restart_count: int = 0
    last_termination: Optional[TerminationRecord] = None


class PodStatusSnapshot(BaseModel):
    """Immutable view of one pod at one point in time."""

    model_config = ConfigDict(frozen=True)

    name: str
    namespace: str = ""
    node_name: str = ""
    containers: tuple[ContainerStatus, ...] = ()

    @property
    def ref(self) -> str:
        return f"{self.namespace}/{self.name}"


class AlertEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str
    release: str
    platform: str = PLATFORM
    level: AlertLevel = AlertLevel.ERROR
    extra: dict[str, Any] = Field(default_factory=dict)

    def to_sentry_event(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "release": self.release,
            "platform": self.platform,
            "level": self.level.value,
            "extra": dict(self.extra),
        }
