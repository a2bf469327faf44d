"""Start/stop an instance and wait for it to settle."""

import logging
import time
from typing import Callable

from ..context import RunContext
from ..exceptions import ProviderError, WaitTimeout
from ..gateway import ComputeGateway
from ..models import LifecycleState

logger = logging.getLogger(__name__)

DEFAULT_WAIT_TIMEOUT = 300.0
DEFAULT_POLL_INTERVAL = 10.0

# States from which neither RUNNING nor STOPPED can be reached.
DEAD_STATES = {LifecycleState.TERMINATING, LifecycleState.TERMINATED}


class LifecycleController:
    """Issue lifecycle actions and poll until the target state is observed."""

    def __init__(
        self,
        gateway: ComputeGateway,
        wait_timeout: float = DEFAULT_WAIT_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.gateway = gateway
        self.wait_timeout = wait_timeout
        self.poll_interval = poll_interval
        self._monotonic = monotonic

    def start(self, ctx: RunContext, instance_id: str) -> None:
        logger.info("Starting instance %s", instance_id)
        self.gateway.start_instance(ctx, instance_id)
        self.wait_for_state(ctx, instance_id, LifecycleState.RUNNING)

    def stop(self, ctx: RunContext, instance_id: str) -> None:
        logger.info("Stopping instance %s", instance_id)
        self.gateway.stop_instance(ctx, instance_id)
        self.wait_for_state(ctx, instance_id, LifecycleState.STOPPED)

    def wait_for_state(self, ctx: RunContext, instance_id: str, target: LifecycleState) -> None:
        """Poll until ``target`` is reported or ``wait_timeout`` elapses.

        Raises:
            WaitTimeout: the state was not observed within the bound
            ProviderError: the describe call failed or the instance died
            MigrationCancelled: the run was cancelled mid-wait
        """
        started = self._monotonic()
        while True:
            state = self.gateway.describe_instance_state(ctx, instance_id)
            elapsed = self._monotonic() - started
            logger.debug(
                "Instance %s state=%s target=%s elapsed=%.0fs",
                instance_id,
                state.value,
                target.value,
                elapsed,
            )

            if state == target:
                logger.info("Instance %s reached %s after %.0fs", instance_id, target.value, elapsed)
                return
            if state in DEAD_STATES:
                raise ProviderError(
                    f"instance {instance_id} entered {state.value} while waiting for {target.value}"
                )
            if elapsed >= self.wait_timeout:
                raise WaitTimeout(instance_id, target.value, elapsed)

            ctx.sleep(min(self.poll_interval, self.wait_timeout - elapsed))
