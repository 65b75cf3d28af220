"""Job registry: named jobs, their runners and the setting holding their interval."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Awaitable, Callable

from velo.tasks.runtime import StageContext, StageResult

StageRunner = Callable[[StageContext], StageResult | Awaitable[StageResult]]


@dataclass(frozen=True)
class StageDefinition:
    """A registered job. ``interval_setting`` names a Settings field in minutes."""

    name: str
    runner: StageRunner
    description: str = ""
    interval_setting: str | None = None


class StageRegistry:
    """Named jobs in registration order."""

    def __init__(self) -> None:
        self._stages: dict[str, StageDefinition] = {}

    def register(self, stage: StageDefinition) -> None:
        if stage.name in self._stages:
            raise ValueError(f"Job already registered: {stage.name}")
        self._stages[stage.name] = stage

    def get(self, stage_name: str) -> StageDefinition:
        try:
            return self._stages[stage_name]
        except KeyError as exc:
            raise KeyError(f"Unknown job: {stage_name}") from exc

    def resolve(self, include: list[str] | None = None) -> list[StageDefinition]:
        """Jobs named in ``include`` (in that order), or every registered job."""
        if include is None:
            return list(self._stages.values())
        return [self.get(name) for name in include]
