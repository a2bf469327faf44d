"""Tests for start/stop with bounded waits."""

import itertools

import pytest

from oci_migrate.context import RunContext
from oci_migrate.exceptions import MigrationCancelled, ProviderError, WaitTimeout
from oci_migrate.models import LifecycleState
from oci_migrate.services.lifecycle import LifecycleController

from .fakes import FakeGateway, make_instance


def stepping_clock(step=5.0):
    """Monotonic clock that advances ``step`` seconds per reading."""
    ticks = itertools.count()
    return lambda: next(ticks) * step


def test_stop_waits_for_stopped():
    gateway = FakeGateway([make_instance("i-1", LifecycleState.RUNNING)])
    controller = LifecycleController(gateway, wait_timeout=30, poll_interval=0.01)

    controller.stop(RunContext(), "i-1")

    assert gateway.calls_to("stop_instance") == [("i-1",)]
    assert gateway.calls_to("describe_instance_state") == [("i-1",)]


def test_start_waits_for_running():
    gateway = FakeGateway([make_instance("i-1", LifecycleState.STOPPED)])
    controller = LifecycleController(gateway, wait_timeout=30, poll_interval=0.01)

    controller.start(RunContext(), "i-1")

    assert gateway.instances["i-1"].lifecycle_state == LifecycleState.RUNNING


def test_wait_times_out_and_issues_no_further_mutations():
    gateway = FakeGateway([make_instance("i-1", LifecycleState.RUNNING)])
    gateway.frozen.add("i-1")
    controller = LifecycleController(
        gateway, wait_timeout=10, poll_interval=0.01, monotonic=stepping_clock()
    )

    with pytest.raises(WaitTimeout) as excinfo:
        controller.stop(RunContext(), "i-1")

    assert excinfo.value.target_state == "STOPPED"
    assert len(gateway.calls_to("describe_instance_state")) == 2
    assert [call[0] for call in gateway.mutations()] == ["stop_instance"]


def test_wait_aborts_when_instance_dies():
    gateway = FakeGateway([make_instance("i-1", LifecycleState.TERMINATED)])
    gateway.frozen.add("i-1")
    controller = LifecycleController(gateway, wait_timeout=30, poll_interval=0.01)

    with pytest.raises(ProviderError, match="TERMINATED"):
        controller.start(RunContext(), "i-1")


def test_wait_observes_cancellation_between_polls():
    gateway = FakeGateway([make_instance("i-1", LifecycleState.RUNNING)])
    gateway.frozen.add("i-1")
    ctx = RunContext()
    clock = stepping_clock(step=1.0)

    def cancelling_clock():
        value = clock()
        if value >= 1:
            ctx.cancel()
        return value

    controller = LifecycleController(
        gateway, wait_timeout=60, poll_interval=0.01, monotonic=cancelling_clock
    )

    with pytest.raises(MigrationCancelled):
        controller.stop(ctx, "i-1")

    assert len(gateway.calls_to("describe_instance_state")) == 1


def test_cancelled_context_issues_no_action():
    gateway = FakeGateway([make_instance("i-1", LifecycleState.RUNNING)])
    ctx = RunContext()
    ctx.cancel()

    with pytest.raises(MigrationCancelled):
        LifecycleController(gateway).stop(ctx, "i-1")

    assert gateway.calls == []
