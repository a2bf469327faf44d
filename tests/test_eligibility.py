"""Tests for instance selection."""

import pytest

from oci_migrate.context import RunContext
from oci_migrate.exceptions import MigrationCancelled, ProviderError, SelectionError
from oci_migrate.models import (
    TAG_ENABLED,
    TAG_IF_RUNNING,
    TAG_MESSAGE,
    TAG_STATUS,
    LifecycleState,
)
from oci_migrate.services.eligibility import EligibilityFilter, should_migrate

from .fakes import FakeGateway, make_instance

NEW_IMAGE = "ocid1.image.oc1..new"


@pytest.mark.parametrize(
    "state,tags,expected",
    [
        (LifecycleState.RUNNING, {TAG_ENABLED: "enabled"}, (False, False)),
        (LifecycleState.RUNNING, {TAG_ENABLED: "enabled", TAG_IF_RUNNING: "enabled"}, (True, False)),
        (LifecycleState.RUNNING, {TAG_ENABLED: "enabled", TAG_IF_RUNNING: "yes"}, (False, False)),
        (LifecycleState.STOPPED, {TAG_ENABLED: "enabled"}, (True, False)),
        (LifecycleState.STOPPED, {TAG_ENABLED: "enabled", TAG_IF_RUNNING: "disabled"}, (True, False)),
        (LifecycleState.STOPPING, {TAG_ENABLED: "enabled"}, (True, False)),
        (LifecycleState.PROVISIONING, {TAG_ENABLED: "enabled"}, (True, False)),
    ],
)
def test_should_migrate(state, tags, expected):
    assert should_migrate(make_instance("i", state=state, tags=tags)) == expected


def test_running_instance_without_if_running_is_skipped_and_tagged():
    gateway = FakeGateway([make_instance("i-1", LifecycleState.RUNNING, {TAG_ENABLED: "enabled"})])

    selection = EligibilityFilter(gateway).select(RunContext(), "enabled", NEW_IMAGE)

    assert selection.tasks == []
    assert [instance.instance_id for instance in selection.skipped] == ["i-1"]
    resource_id, tags = gateway.calls_to("create_tags")[0]
    assert resource_id == "i-1"
    assert tags[TAG_STATUS] == "skipped"
    assert tags[TAG_MESSAGE] == "criteria not met"


def test_stopped_instance_is_selected_regardless_of_if_running():
    gateway = FakeGateway(
        [
            make_instance("i-2", LifecycleState.STOPPED, {TAG_ENABLED: "enabled"}),
            make_instance(
                "i-3", LifecycleState.STOPPED, {TAG_ENABLED: "enabled", TAG_IF_RUNNING: "no"}
            ),
        ]
    )

    selection = EligibilityFilter(gateway).select(RunContext(), "enabled", NEW_IMAGE)

    assert sorted(task.instance.instance_id for task in selection.tasks) == ["i-2", "i-3"]
    assert all(task.new_image_id == NEW_IMAGE for task in selection.tasks)
    assert all(task.needs_transient_start is False for task in selection.tasks)
    assert gateway.calls_to("create_tags") == []


def test_select_uses_custom_enabled_value():
    gateway = FakeGateway(
        [
            make_instance("i-canary", tags={TAG_ENABLED: "canary"}),
            make_instance("i-default", tags={TAG_ENABLED: "enabled"}),
        ]
    )

    selection = EligibilityFilter(gateway).select(RunContext(), "canary", NEW_IMAGE)

    assert [task.instance.instance_id for task in selection.tasks] == ["i-canary"]
    assert gateway.calls_to("describe_instances_by_tag") == [(TAG_ENABLED, "canary")]


def test_select_raises_selection_error_when_query_fails():
    gateway = FakeGateway()
    gateway.fail("describe_instances_by_tag", ProviderError("describe instances: 403", status=403))

    with pytest.raises(SelectionError, match="fetch instances"):
        EligibilityFilter(gateway).select(RunContext(), "enabled", NEW_IMAGE)


def test_select_on_cancelled_context_is_a_selection_error():
    gateway = FakeGateway([make_instance("i-2", tags={TAG_ENABLED: "enabled"})])
    ctx = RunContext()
    ctx.cancel()

    with pytest.raises(SelectionError) as excinfo:
        EligibilityFilter(gateway).select(ctx, "enabled", NEW_IMAGE)

    assert isinstance(excinfo.value.__cause__, MigrationCancelled)


def test_dry_run_does_not_record_skips():
    gateway = FakeGateway([make_instance("i-1", LifecycleState.RUNNING, {TAG_ENABLED: "enabled"})])

    selection = EligibilityFilter(gateway, record_skips=False).select(
        RunContext(), "enabled", NEW_IMAGE
    )

    assert len(selection.skipped) == 1
    assert gateway.mutations() == []


def test_select_instance_bypasses_tag_query():
    gateway = FakeGateway([make_instance("i-untagged", LifecycleState.STOPPED, {})])

    selection = EligibilityFilter(gateway).select_instance(RunContext(), "i-untagged", NEW_IMAGE)

    assert [task.instance.instance_id for task in selection.tasks] == ["i-untagged"]
    assert gateway.calls_to("describe_instances_by_tag") == []


def test_select_instance_still_applies_running_rule():
    gateway = FakeGateway([make_instance("i-live", LifecycleState.RUNNING, {})])

    selection = EligibilityFilter(gateway).select_instance(RunContext(), "i-live", NEW_IMAGE)

    assert selection.tasks == []
    assert gateway.audit_statuses("i-live") == ["skipped"]


def test_select_instance_unknown_id_is_selection_error():
    with pytest.raises(SelectionError, match="i-missing"):
        EligibilityFilter(FakeGateway()).select_instance(RunContext(), "i-missing", NEW_IMAGE)
