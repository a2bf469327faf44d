"""
Fleet-wide image migration.

The orchestrator selects tagged instances once, then runs one migration task
per eligible instance on a bounded thread pool and waits for all of them.
Per-task failures never propagate: each becomes a ``MigrationResult`` in the
returned report and an audit tag on the instance. Only a failed selection
raises.
"""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, timezone
from typing import List, Optional

from .context import RunContext
from .exceptions import MigrationError, ReplacementError, SelectionError
from .gateway import ComputeGateway
from .models import (
    Instance,
    MigrationConfig,
    MigrationReport,
    MigrationResult,
    MigrationStatus,
    MigrationTask,
)
from .services.eligibility import SKIP_MESSAGE, EligibilityFilter, Selection
from .services.lifecycle import LifecycleController
from .services.replacement import ReplacementStage
from .services.status import StatusRecorder

logger = logging.getLogger(__name__)

IN_PROGRESS_MESSAGE = "Starting migration"
COMPLETED_MESSAGE = "Migration completed successfully"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_image_id(
    gateway: ComputeGateway, ctx: RunContext, tag_key: str, tag_value: str
) -> str:
    """Find the image tagged ``tag_key=tag_value``; the first match wins."""
    try:
        image_ids = gateway.describe_images_by_tag(ctx, tag_key, tag_value)
    except MigrationError as exc:
        raise SelectionError(f"describe images: {exc}") from exc

    if not image_ids:
        raise SelectionError(f"no image tagged {tag_key}={tag_value}")
    if len(image_ids) > 1:
        logger.warning(
            "%d images tagged %s=%s, using %s", len(image_ids), tag_key, tag_value, image_ids[0]
        )
    return image_ids[0]


class MigrationOrchestrator:
    """Run image migrations for every eligible instance."""

    def __init__(
        self,
        gateway: ComputeGateway,
        config: MigrationConfig,
        recorder: Optional[StatusRecorder] = None,
        lifecycle: Optional[LifecycleController] = None,
        replacement: Optional[ReplacementStage] = None,
    ):
        self.gateway = gateway
        self.config = config
        self.recorder = recorder or StatusRecorder(gateway)
        self.lifecycle = lifecycle or LifecycleController(
            gateway, wait_timeout=config.wait_timeout, poll_interval=config.poll_interval
        )
        self.replacement = replacement or ReplacementStage(gateway, self.lifecycle)
        self.eligibility = EligibilityFilter(
            gateway, recorder=self.recorder, record_skips=not config.dry_run
        )

    def migrate(self, ctx: Optional[RunContext] = None) -> MigrationReport:
        """
        Select instances and migrate them to ``config.new_image_id``.

        Returns:
            MigrationReport with one result per selected or skipped instance.

        Raises:
            SelectionError: If the eligibility query fails. No task is started.
        """
        ctx = ctx or RunContext(timeout=self.config.timeout)
        selection = self._select(ctx)

        report = MigrationReport(dry_run=self.config.dry_run)
        for instance in selection.skipped:
            report.add(
                MigrationResult(
                    instance_id=instance.instance_id,
                    status=MigrationStatus.SKIPPED,
                    message=SKIP_MESSAGE,
                )
            )

        if not selection.tasks:
            logger.info("No instances eligible for migration")
            return report

        if self.config.dry_run:
            report.planned.extend(selection.tasks)
            logger.info("Dry run: %d instance(s) would be migrated", len(selection.tasks))
            return report

        for result in self._run_all(ctx, selection.tasks):
            report.add(result)

        counts = report.counts()
        logger.info(
            "Migration finished: %d completed, %d warning, %d failed, %d skipped",
            counts[MigrationStatus.COMPLETED.value],
            counts[MigrationStatus.WARNING.value],
            counts[MigrationStatus.FAILED.value],
            counts[MigrationStatus.SKIPPED.value],
        )
        return report

    def _select(self, ctx: RunContext) -> Selection:
        if self.config.instance_id:
            return self.eligibility.select_instance(
                ctx, self.config.instance_id, self.config.new_image_id
            )
        return self.eligibility.select(ctx, self.config.enabled_value, self.config.new_image_id)

    def _run_all(self, ctx: RunContext, tasks: List[MigrationTask]) -> List[MigrationResult]:
        """Fan out on the pool and block until every task has finished."""
        results: List[MigrationResult] = []
        max_workers = min(self.config.max_workers, len(tasks))
        logger.info("Migrating %d instance(s) with %d worker(s)", len(tasks), max_workers)

        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="migrate") as executor:
            future_map = {executor.submit(self.run_task, ctx, task): task for task in tasks}

            try:
                for future in as_completed(future_map):
                    task = future_map[future]
                    try:
                        results.append(future.result())
                    except Exception as exc:  # pragma: no cover - run_task already guards
                        logger.exception("Task for %s crashed", task.instance.instance_id)
                        results.append(self._failed(task.instance, f"Unexpected error: {exc}", exc))
            except KeyboardInterrupt:
                # Running tasks stop at their next provider call or poll.
                logger.warning("Interrupted; cancelling %d task(s)", len(future_map))
                ctx.cancel()
                raise
        return results

    def run_task(self, ctx: RunContext, task: MigrationTask) -> MigrationResult:
        """Migrate one instance; never raises."""
        started = _now()
        try:
            result = self._migrate_instance(ctx, task)
        except Exception as exc:
            logger.exception("Unexpected error migrating %s", task.instance.instance_id)
            message = f"Failed to upgrade instance: {exc}"
            self._finish(ctx, task.instance.instance_id, MigrationStatus.FAILED, message)
            result = self._failed(task.instance, message, exc)
        result.started_at = started
        result.finished_at = _now()
        return result

    def _migrate_instance(self, ctx: RunContext, task: MigrationTask) -> MigrationResult:
        source = task.instance
        source_id = source.instance_id
        self.recorder.record(ctx, source_id, MigrationStatus.IN_PROGRESS, IN_PROGRESS_MESSAGE)

        transient_start = task.needs_transient_start and not source.is_running
        if transient_start:
            try:
                self.lifecycle.start(ctx, source_id)
            except MigrationError as exc:
                message = f"Failed to start instance: {exc}"
                self._finish(ctx, source_id, MigrationStatus.FAILED, message)
                return self._failed(source, message, exc)

        try:
            replacement = self.replacement.replace(ctx, task)
        except MigrationError as exc:
            message = f"Failed to upgrade instance: {exc}"
            self._finish(ctx, source_id, MigrationStatus.FAILED, message)
            result = self._failed(source, message, exc)
            if isinstance(exc, ReplacementError) and exc.replacement is not None:
                result.replacement_id = exc.replacement.instance_id
            return result

        new_id = replacement.instance_id
        if transient_start:
            try:
                self.lifecycle.stop(ctx, new_id)
            except MigrationError as exc:
                message = f"Migration successful but failed to stop instance: {exc}"
                self._finish(ctx, new_id, MigrationStatus.WARNING, message)
                return MigrationResult(
                    instance_id=source_id,
                    status=MigrationStatus.WARNING,
                    message=message,
                    replacement_id=new_id,
                    error=exc,
                )

        self._finish(ctx, new_id, MigrationStatus.COMPLETED, COMPLETED_MESSAGE)
        return MigrationResult(
            instance_id=source_id,
            status=MigrationStatus.COMPLETED,
            message=COMPLETED_MESSAGE,
            replacement_id=new_id,
        )

    def _finish(
        self, ctx: RunContext, instance_id: str, status: MigrationStatus, message: str
    ) -> bool:
        """Write the terminal audit, even when the run has been cancelled."""
        return self.recorder.record(ctx.detached(), instance_id, status, message)

    @staticmethod
    def _failed(instance: Instance, message: str, exc: BaseException) -> MigrationResult:
        return MigrationResult(
            instance_id=instance.instance_id,
            status=MigrationStatus.FAILED,
            message=message,
            error=exc,
        )
