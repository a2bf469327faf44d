"""Audit trail written to instance tags."""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict

from ..context import RunContext
from ..exceptions import MigrationError
from ..gateway import ComputeGateway
from ..models import TAG_MESSAGE, TAG_STATUS, TAG_TIMESTAMP, MigrationStatus

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime(TIMESTAMP_FORMAT)


def audit_tags(status: MigrationStatus, message: str, timestamp: str) -> Dict[str, str]:
    return {
        TAG_STATUS: status.value,
        TAG_MESSAGE: message,
        TAG_TIMESTAMP: timestamp,
    }


class StatusRecorder:
    """Write the status/message/timestamp triple in a single tag call.

    Best effort: a failed write is logged and reported through the return
    value, never raised.
    """

    def __init__(self, gateway: ComputeGateway, clock: Callable[[], str] = utc_timestamp):
        self.gateway = gateway
        self.clock = clock

    def record(
        self, ctx: RunContext, instance_id: str, status: MigrationStatus, message: str
    ) -> bool:
        tags = audit_tags(status, message, self.clock())
        try:
            self.gateway.create_tags(ctx, instance_id, tags)
        except MigrationError as exc:
            logger.warning(
                "Could not record status %s on %s: %s", status.value, instance_id, exc
            )
            return False

        logger.debug("Recorded %s on %s: %s", status.value, instance_id, message)
        return True
