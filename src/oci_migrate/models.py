"""Data models for the image migration workflow."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

# Reserved freeform tag keys used as the control and audit channel.
TAG_ENABLED = "migrate-enabled"
TAG_IF_RUNNING = "migrate-if-running"
TAG_STATUS = "migrate-status"
TAG_MESSAGE = "migrate-message"
TAG_TIMESTAMP = "migrate-timestamp"

ENABLED_VALUE = "enabled"


class AuthType(str, Enum):
    """Authentication types supported."""
    SESSION_TOKEN = "session_token"
    API_KEY = "api_key"


class LifecycleState(str, Enum):
    """OCI compute instance lifecycle states."""
    PROVISIONING = "PROVISIONING"
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"
    STOPPED = "STOPPED"
    CREATING_IMAGE = "CREATING_IMAGE"
    TERMINATING = "TERMINATING"
    TERMINATED = "TERMINATED"
    MOVING = "MOVING"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def parse(cls, value: Optional[str]) -> "LifecycleState":
        """Map a raw provider value onto a known state."""
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.UNKNOWN


class VolumeKind(str, Enum):
    """Kinds of storage attached to an instance."""
    BOOT = "BOOT"
    BLOCK = "BLOCK"


class MigrationStatus(str, Enum):
    """Values written to the ``migrate-status`` tag."""
    SKIPPED = "skipped"
    IN_PROGRESS = "in-progress"
    FAILED = "failed"
    WARNING = "warning"
    COMPLETED = "completed"


@dataclass
class VolumeAttachment:
    """A boot or block volume attached to an instance."""
    volume_id: str
    kind: VolumeKind = VolumeKind.BLOCK
    device: Optional[str] = None
    lifecycle_state: str = "ATTACHED"

    @property
    def is_snapshot_capable(self) -> bool:
        return self.lifecycle_state == "ATTACHED"


@dataclass
class Instance:
    """Point-in-time view of a compute instance."""
    instance_id: str
    lifecycle_state: LifecycleState
    shape: str
    compartment_id: Optional[str] = None
    availability_domain: Optional[str] = None
    subnet_id: Optional[str] = None
    display_name: Optional[str] = None
    ocpus: Optional[float] = None
    memory_in_gbs: Optional[float] = None
    volumes: List[VolumeAttachment] = field(default_factory=list)
    tags: Dict[str, str] = field(default_factory=dict)

    @property
    def is_running(self) -> bool:
        return self.lifecycle_state == LifecycleState.RUNNING


@dataclass
class MigrationTask:
    """One unit of fan-out work: migrate ``instance`` onto ``new_image_id``."""
    instance: Instance
    new_image_id: str
    needs_transient_start: bool = False


@dataclass
class MigrationResult:
    """Typed outcome of a single migration task."""
    instance_id: str
    status: MigrationStatus
    message: str
    replacement_id: Optional[str] = None
    error: Optional[BaseException] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def succeeded(self) -> bool:
        return self.status in (MigrationStatus.COMPLETED, MigrationStatus.WARNING)

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None


@dataclass
class MigrationReport:
    """Aggregated results of one orchestrator run.

    ``planned`` is only populated by dry runs, which execute no tasks.
    """
    results: List[MigrationResult] = field(default_factory=list)
    planned: List[MigrationTask] = field(default_factory=list)
    dry_run: bool = False

    def add(self, result: MigrationResult) -> None:
        self.results.append(result)

    def by_status(self, status: MigrationStatus) -> List[MigrationResult]:
        return [result for result in self.results if result.status == status]

    def counts(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in MigrationStatus}
        for result in self.results:
            counts[result.status.value] += 1
        return counts

    @property
    def has_failures(self) -> bool:
        return any(result.status == MigrationStatus.FAILED for result in self.results)

    def __len__(self) -> int:
        return len(self.results)


class OCIConfig(BaseModel):
    """OCI profile settings resolved from ``~/.oci/config``."""
    model_config = ConfigDict(validate_assignment=True)

    region: Optional[str] = None
    profile_name: str = "DEFAULT"
    config_file: Optional[str] = None
    tenancy: Optional[str] = None
    user: Optional[str] = None
    fingerprint: Optional[str] = None
    key_file: Optional[str] = None
    security_token_file: Optional[str] = None
    pass_phrase: Optional[str] = None

    def is_session_token_auth(self) -> bool:
        """Check if using session token authentication."""
        return self.security_token_file is not None


class MigrationConfig(BaseModel):
    """Settings for a single orchestrator run."""
    model_config = ConfigDict(validate_assignment=True)

    new_image_id: str
    compartment_id: Optional[str] = None
    enabled_value: str = ENABLED_VALUE
    instance_id: Optional[str] = None
    max_workers: int = Field(default=8, ge=1)
    wait_timeout: float = Field(default=300.0, gt=0)
    poll_interval: float = Field(default=10.0, gt=0)
    timeout: Optional[float] = Field(default=None, gt=0)
    dry_run: bool = False
