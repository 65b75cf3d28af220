"""Job runtime: registry, runner, locks and scheduler."""

from velo.tasks.locks import advisory_lock_key, job_lock
from velo.tasks.runtime import StageContext, StageResult
from velo.tasks.stages import StageDefinition, StageRegistry

__all__ = [
    "StageContext",
    "StageDefinition",
    "StageRegistry",
    "StageResult",
    "advisory_lock_key",
    "job_lock",
]
