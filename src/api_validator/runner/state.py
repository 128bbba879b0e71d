"""Run phases and the observable run state."""

from enum import Enum

from pydantic import BaseModel, ConfigDict

from api_validator.generator.base import TestCase


class Phase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"
    COMPLETED = "completed"


ACTIVE_PHASES = (Phase.RUNNING, Phase.PAUSED)


class RunState(BaseModel):
    """Immutable snapshot of a controller's progress."""

    model_config = ConfigDict(frozen=True)

    phase: Phase = Phase.IDLE
    completed: int = 0
    total: int = 0
    current_test: TestCase | None = None

    @property
    def percentage(self) -> int:
        if self.total == 0:
            return 0
        return round(self.completed / self.total * 100)

    @property
    def is_active(self) -> bool:
        return self.phase in ACTIVE_PHASES
