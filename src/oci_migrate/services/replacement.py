"""Swap an instance for a fresh one launched from the target image."""

import logging
from enum import Enum
from typing import Dict, Optional

from ..context import RunContext
from ..exceptions import MigrationError, ReplacementError
from ..gateway import ComputeGateway
from ..models import TAG_STATUS, Instance, MigrationTask
from .backup import BackupStage
from .lifecycle import LifecycleController

logger = logging.getLogger(__name__)


class ReplacementState(str, Enum):
    """Steps a replacement passes through, in order."""
    SELECTED = "selected"
    SNAPSHOTTING = "snapshotting"
    STOPPING = "stopping"
    LAUNCHING = "launching"
    TERMINATING_OLD = "terminating-old"
    TAG_COPY = "tag-copy"
    DONE = "done"
    FAILED = "failed"


def replacement_tags(source: Instance) -> Dict[str, str]:
    """Every source tag except the audit status key."""
    return {key: value for key, value in source.tags.items() if key != TAG_STATUS}


class ReplacementStage:
    """Back up, stop, relaunch, terminate and re-tag one instance.

    Steps run strictly in sequence. A failure raises :class:`ReplacementError`
    naming the state it happened in. Nothing is rolled back: if termination or
    tag copy fails, the launched replacement is left running and is attached
    to the error.
    """

    def __init__(
        self,
        gateway: ComputeGateway,
        lifecycle: LifecycleController,
        backup: Optional[BackupStage] = None,
    ):
        self.gateway = gateway
        self.lifecycle = lifecycle
        self.backup = backup or BackupStage(gateway)

    def replace(self, ctx: RunContext, task: MigrationTask) -> Instance:
        source = task.instance
        source_id = source.instance_id

        self._enter(source_id, ReplacementState.SNAPSHOTTING)
        try:
            self.backup.snapshot_volumes(ctx, source)
        except MigrationError as exc:
            raise self._fail(source_id, ReplacementState.SNAPSHOTTING, str(exc), exc)

        if source.is_running:
            self._enter(source_id, ReplacementState.STOPPING)
            try:
                self.lifecycle.stop(ctx, source_id)
            except MigrationError as exc:
                raise self._fail(source_id, ReplacementState.STOPPING, f"stop instance: {exc}", exc)

        self._enter(source_id, ReplacementState.LAUNCHING)
        try:
            replacement = self.gateway.run_instance(ctx, task.new_image_id, source)
        except MigrationError as exc:
            raise self._fail(source_id, ReplacementState.LAUNCHING, f"run instances: {exc}", exc)

        self._enter(source_id, ReplacementState.TERMINATING_OLD)
        try:
            self.gateway.terminate_instance(ctx, source_id)
        except MigrationError as exc:
            raise self._fail(
                source_id,
                ReplacementState.TERMINATING_OLD,
                f"terminate instance: {exc} (replacement {replacement.instance_id} left running)",
                exc,
                replacement,
            )

        self._enter(source_id, ReplacementState.TAG_COPY)
        try:
            self.copy_tags(ctx, source, replacement)
        except MigrationError as exc:
            raise self._fail(
                source_id, ReplacementState.TAG_COPY, f"copy tags: {exc}", exc, replacement
            )

        self._enter(source_id, ReplacementState.DONE)
        logger.info("Replaced %s with %s", source_id, replacement.instance_id)
        return replacement

    def copy_tags(self, ctx: RunContext, source: Instance, replacement: Instance) -> Dict[str, str]:
        tags = replacement_tags(source)
        self.gateway.create_tags(ctx, replacement.instance_id, tags)
        return tags

    @staticmethod
    def _enter(instance_id: str, state: ReplacementState) -> None:
        logger.debug("Instance %s -> %s", instance_id, state.value)

    @staticmethod
    def _fail(
        instance_id: str,
        state: ReplacementState,
        message: str,
        cause: BaseException,
        replacement: Optional[Instance] = None,
    ) -> ReplacementError:
        logger.error("Replacement of %s failed while %s: %s", instance_id, state.value, message)
        return ReplacementError(state.value, message, cause=cause, replacement=replacement)
