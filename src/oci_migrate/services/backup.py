"""Pre-migration volume backups."""

import logging
from typing import List

from ..context import RunContext
from ..exceptions import MigrationCancelled, MigrationError, ProviderError
from ..gateway import ComputeGateway
from ..models import Instance

logger = logging.getLogger(__name__)

SOURCE_TAG = "migrate-source-instance"


def backup_description(instance_id: str) -> str:
    return f"Backup before image migration for instance {instance_id}"


class BackupStage:
    """Issue one backup request per snapshot-capable volume of an instance."""

    def __init__(self, gateway: ComputeGateway):
        self.gateway = gateway

    def snapshot_volumes(self, ctx: RunContext, instance: Instance) -> List[str]:
        """
        Back up every attached volume of ``instance``.

        The first failure aborts the stage. Backups already created for
        earlier volumes are kept.

        Returns:
            List of backup ids, in attachment order.
        """
        description = backup_description(instance.instance_id)
        backup_ids: List[str] = []

        for attachment in instance.volumes:
            if not attachment.is_snapshot_capable:
                logger.debug(
                    "Skipping volume %s on %s (attachment state %s)",
                    attachment.volume_id,
                    instance.instance_id,
                    attachment.lifecycle_state,
                )
                continue

            try:
                backup_id = self.gateway.create_snapshot(
                    ctx,
                    attachment.volume_id,
                    description,
                    kind=attachment.kind,
                    tags={SOURCE_TAG: instance.instance_id},
                )
            except MigrationCancelled:
                raise
            except MigrationError as exc:
                raise ProviderError(
                    f"create snapshot: {exc}",
                    code=getattr(exc, "code", None),
                    status=getattr(exc, "status", None),
                ) from exc
            backup_ids.append(backup_id)

        logger.info("Backed up %d volume(s) of %s", len(backup_ids), instance.instance_id)
        return backup_ids
