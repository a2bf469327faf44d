"""Migration stages."""

from .backup import BackupStage
from .eligibility import EligibilityFilter, Selection, should_migrate
from .lifecycle import LifecycleController
from .replacement import ReplacementStage, ReplacementState
from .status import StatusRecorder

__all__ = [
    "BackupStage",
    "EligibilityFilter",
    "LifecycleController",
    "ReplacementStage",
    "ReplacementState",
    "Selection",
    "StatusRecorder",
    "should_migrate",
]
