from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from oci_migrate.context import RunContext
from oci_migrate.exceptions import MigrationCancelled, ProviderError
from oci_migrate.models import (
    LifecycleState,
    MigrationConfig,
    MigrationReport,
    MigrationResult,
    MigrationStatus,
)


def test_lifecycle_state_parse() -> None:
    assert LifecycleState.parse("running") == LifecycleState.RUNNING
    assert LifecycleState.parse("SOMETHING_NEW") == LifecycleState.UNKNOWN
    assert LifecycleState.parse(None) == LifecycleState.UNKNOWN


def test_migration_config_defaults() -> None:
    config = MigrationConfig(new_image_id="ocid1.image.oc1..new")

    assert config.enabled_value == "enabled"
    assert config.max_workers == 8
    assert config.wait_timeout == 300
    assert config.poll_interval == 10
    assert config.timeout is None
    assert config.dry_run is False


@pytest.mark.parametrize("field", ["max_workers", "wait_timeout", "poll_interval", "timeout"])
def test_migration_config_rejects_non_positive(field: str) -> None:
    with pytest.raises(ValidationError):
        MigrationConfig(new_image_id="ocid1.image.oc1..new", **{field: 0})


def test_report_counts() -> None:
    report = MigrationReport()
    report.add(MigrationResult("i-1", MigrationStatus.SKIPPED, "criteria not met"))
    report.add(MigrationResult("i-2", MigrationStatus.COMPLETED, "done"))
    report.add(MigrationResult("i-3", MigrationStatus.FAILED, "boom"))

    counts = report.counts()

    assert counts["skipped"] == 1
    assert counts["completed"] == 1
    assert counts["failed"] == 1
    assert counts["warning"] == 0
    assert report.has_failures
    assert [r.instance_id for r in report.by_status(MigrationStatus.FAILED)] == ["i-3"]


def test_result_duration() -> None:
    started = datetime(2024, 6, 1, tzinfo=timezone.utc)
    result = MigrationResult(
        "i-1",
        MigrationStatus.WARNING,
        "stop failed",
        started_at=started,
        finished_at=started + timedelta(seconds=42),
    )

    assert result.succeeded
    assert result.duration_seconds == 42
    assert MigrationResult("i-2", MigrationStatus.FAILED, "x").duration_seconds is None


def test_provider_error_wrap_and_transience() -> None:
    class SdkError(Exception):
        status = 429
        code = "TooManyRequests"
        message = "slow down"

    error = ProviderError.wrap("describe instances", SdkError())

    assert str(error) == "describe instances: TooManyRequests - slow down"
    assert error.is_transient
    assert ProviderError("x", status=404).is_transient is False
    assert ProviderError("x", status=502).is_transient is True
    assert ProviderError.wrap("op", error) is error


def test_run_context_cancel() -> None:
    ctx = RunContext()
    ctx.check()

    ctx.cancel()

    assert ctx.cancelled
    with pytest.raises(MigrationCancelled, match="run cancelled"):
        ctx.check()


def test_run_context_sleep_stops_at_deadline() -> None:
    ctx = RunContext(timeout=60)
    ctx.deadline -= 61

    with pytest.raises(MigrationCancelled, match="deadline exceeded"):
        ctx.sleep(1)

    assert ctx.remaining() == 0.0


def test_run_context_deadline_check() -> None:
    ctx = RunContext(timeout=0.01)
    ctx.deadline -= 1

    with pytest.raises(MigrationCancelled, match="deadline exceeded"):
        ctx.check()


def test_run_context_detached_ignores_cancel_and_deadline() -> None:
    ctx = RunContext(timeout=60)
    ctx.deadline -= 61
    ctx.cancel()

    detached = ctx.detached()

    detached.check()
    assert not detached.cancelled
    assert detached.remaining() is None
