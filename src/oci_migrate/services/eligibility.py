"""Selection of instances eligible for image migration."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..context import RunContext
from ..exceptions import MigrationError, SelectionError
from ..gateway import ComputeGateway
from ..models import (
    ENABLED_VALUE,
    TAG_ENABLED,
    TAG_IF_RUNNING,
    Instance,
    MigrationStatus,
    MigrationTask,
)
from .status import StatusRecorder

logger = logging.getLogger(__name__)

SKIP_MESSAGE = "criteria not met"


def should_migrate(instance: Instance) -> Tuple[bool, bool]:
    """
    Decide whether an instance tagged for migration may be migrated now.

    Running instances additionally need ``migrate-if-running=enabled``.
    Instances in any other state qualify on the primary tag alone.

    Returns:
        Tuple of (migrate, needs_transient_start). The second value is never
        true: stopped instances are migrated without being started first.
    """
    if instance.is_running:
        return instance.tags.get(TAG_IF_RUNNING) == ENABLED_VALUE, False
    return True, False


@dataclass
class Selection:
    """Outcome of the eligibility pass."""
    tasks: List[MigrationTask] = field(default_factory=list)
    skipped: List[Instance] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.tasks)


class EligibilityFilter:
    """Fetch tagged instances and split them into tasks and skips."""

    def __init__(
        self,
        gateway: ComputeGateway,
        recorder: Optional[StatusRecorder] = None,
        record_skips: bool = True,
    ):
        self.gateway = gateway
        self.recorder = recorder or StatusRecorder(gateway)
        self.record_skips = record_skips

    def select(self, ctx: RunContext, enabled_value: str, new_image_id: str) -> Selection:
        """Query instances tagged ``migrate-enabled=<enabled_value>`` and classify them."""
        try:
            instances = self.gateway.describe_instances_by_tag(ctx, TAG_ENABLED, enabled_value)
        except MigrationError as exc:
            raise SelectionError(f"fetch instances: {exc}") from exc
        return self._classify(ctx, instances, new_image_id)

    def select_instance(self, ctx: RunContext, instance_id: str, new_image_id: str) -> Selection:
        """Select a single named instance, bypassing the tag query."""
        try:
            instance = self.gateway.describe_instance(ctx, instance_id)
        except MigrationError as exc:
            raise SelectionError(f"describe instance {instance_id}: {exc}") from exc
        return self._classify(ctx, [instance], new_image_id)

    def _classify(
        self, ctx: RunContext, instances: List[Instance], new_image_id: str
    ) -> Selection:
        selection = Selection()
        for instance in instances:
            migrate, needs_start = should_migrate(instance)
            if not migrate:
                logger.info(
                    "Skipping %s (%s): running without %s=%s",
                    instance.instance_id,
                    instance.lifecycle_state.value,
                    TAG_IF_RUNNING,
                    ENABLED_VALUE,
                )
                selection.skipped.append(instance)
                if self.record_skips:
                    self.recorder.record(
                        ctx, instance.instance_id, MigrationStatus.SKIPPED, SKIP_MESSAGE
                    )
                continue

            selection.tasks.append(
                MigrationTask(
                    instance=instance,
                    new_image_id=new_image_id,
                    needs_transient_start=needs_start,
                )
            )

        logger.info(
            "Selected %d instance(s) for migration, skipped %d",
            len(selection.tasks),
            len(selection.skipped),
        )
        return selection
