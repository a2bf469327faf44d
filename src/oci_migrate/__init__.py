"""
OCI Image Migrate - in-place replacement of tagged compute instances.

Selects instances by freeform tag, backs up their volumes, swaps each one for
an instance launched from a new image, carries the tags over and records the
outcome as tags on the instance.
"""

__version__ = "0.1.0"

from .context import RunContext
from .exceptions import (
    MigrationCancelled,
    MigrationError,
    ProviderError,
    SelectionError,
    WaitTimeout,
)
from .gateway import ComputeGateway, OCIComputeGateway
from .models import MigrationConfig, MigrationReport, MigrationResult, MigrationStatus
from .orchestrator import MigrationOrchestrator

__all__ = [
    "ComputeGateway",
    "MigrationCancelled",
    "MigrationConfig",
    "MigrationError",
    "MigrationOrchestrator",
    "MigrationReport",
    "MigrationResult",
    "MigrationStatus",
    "OCIComputeGateway",
    "ProviderError",
    "RunContext",
    "SelectionError",
    "WaitTimeout",
]
