"""
Compute provider gateway.

``ComputeGateway`` is the boundary the migration core talks to. Every method
takes the run context first and raises :class:`ProviderError` on failure.
``OCIComputeGateway`` implements it with the OCI Python SDK.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, TypeVar

import oci
from oci.pagination import list_call_get_all_results
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from .client import OCIClient
from .context import RunContext
from .exceptions import MigrationError, ProviderError
from .models import Instance, LifecycleState, VolumeAttachment, VolumeKind

logger = logging.getLogger(__name__)

T = TypeVar("T")

SKIPPED_LISTING_STATES = {LifecycleState.TERMINATED, LifecycleState.TERMINATING}


def _is_transient(exc: BaseException) -> bool:
    return isinstance(exc, ProviderError) and exc.is_transient


# Applied to read-only calls; mutations are never replayed.
read_retry = retry(
    retry=retry_if_exception(_is_transient),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    reraise=True,
)


class ComputeGateway(ABC):
    """Capabilities of the compute provider consumed by the migration core."""

    @abstractmethod
    def describe_images_by_tag(self, ctx: RunContext, tag_key: str, tag_value: str) -> List[str]:
        """Return ids of images carrying ``tag_key=tag_value``."""

    @abstractmethod
    def describe_instances_by_tag(
        self, ctx: RunContext, tag_key: str, tag_value: str
    ) -> List[Instance]:
        """Return live instances carrying ``tag_key=tag_value``."""

    @abstractmethod
    def describe_instance(self, ctx: RunContext, instance_id: str) -> Instance:
        """Return the current view of one instance."""

    @abstractmethod
    def describe_instance_state(self, ctx: RunContext, instance_id: str) -> LifecycleState:
        """Return only the lifecycle state of one instance."""

    @abstractmethod
    def create_snapshot(
        self,
        ctx: RunContext,
        volume_id: str,
        description: str,
        kind: VolumeKind = VolumeKind.BLOCK,
        tags: Optional[Dict[str, str]] = None,
    ) -> str:
        """Back up one volume and return the backup id."""

    @abstractmethod
    def run_instance(self, ctx: RunContext, image_id: str, template: Instance) -> Instance:
        """Launch exactly one instance of ``image_id`` shaped and placed like ``template``."""

    @abstractmethod
    def terminate_instance(self, ctx: RunContext, instance_id: str) -> None:
        """Terminate an instance."""

    @abstractmethod
    def stop_instance(self, ctx: RunContext, instance_id: str) -> None:
        """Request a stop without waiting for it."""

    @abstractmethod
    def start_instance(self, ctx: RunContext, instance_id: str) -> None:
        """Request a start without waiting for it."""

    @abstractmethod
    def create_tags(self, ctx: RunContext, resource_id: str, tags: Dict[str, str]) -> None:
        """Add or overwrite tags on an instance, leaving other keys intact."""

    @abstractmethod
    def tag_image(self, ctx: RunContext, image_id: str, tags: Dict[str, str]) -> None:
        """Add or overwrite tags on an image."""

    def close(self) -> None:
        """Release provider connections."""

    def __enter__(self) -> "ComputeGateway":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()


class OCIComputeGateway(ComputeGateway):
    """ComputeGateway backed by the OCI compute and block storage APIs.

    Service clients are built per worker thread from ``client_factory`` so
    concurrent tasks never share an HTTP session. ``client``, when given, is
    used by the constructing thread. Every client is closed by :meth:`close`.
    """

    def __init__(
        self,
        client_factory: Callable[[], OCIClient],
        compartment_id: str,
        client: Optional[OCIClient] = None,
    ):
        self.client_factory = client_factory
        self.compartment_id = compartment_id
        self._local = threading.local()
        self._clients: List[OCIClient] = []
        self._clients_lock = threading.Lock()
        if client is not None:
            self._track(client)

    def _track(self, client: OCIClient) -> None:
        self._local.client = client
        with self._clients_lock:
            self._clients.append(client)

    @property
    def client(self) -> OCIClient:
        client = getattr(self._local, "client", None)
        if client is None:
            try:
                client = self.client_factory()
            except Exception as exc:
                raise ProviderError.wrap("create client", exc) from exc
            self._track(client)
        return client

    def _service(self, name: str) -> Any:
        """Return a lazily built SDK service client of the current thread's client."""
        client = self.client
        try:
            return getattr(client, name)
        except Exception as exc:
            raise ProviderError.wrap("create client", exc) from exc

    def close(self) -> None:
        with self._clients_lock:
            clients, self._clients = self._clients, []
        for client in clients:
            client.close()
        self._local = threading.local()

    def _call(self, ctx: RunContext, operation: str, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        ctx.check()
        try:
            return fn(*args, **kwargs)
        except MigrationError:
            raise
        except Exception as exc:
            error = ProviderError.wrap(operation, exc)
            logger.debug("%s failed: %s", operation, error)
            raise error from exc

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @read_retry
    def describe_images_by_tag(self, ctx: RunContext, tag_key: str, tag_value: str) -> List[str]:
        response = self._call(
            ctx,
            "describe images",
            list_call_get_all_results,
            self._service("compute_client").list_images,
            compartment_id=self.compartment_id,
            lifecycle_state="AVAILABLE",
        )
        return [
            image.id
            for image in response.data
            if (image.freeform_tags or {}).get(tag_key) == tag_value
        ]

    @read_retry
    def describe_instances_by_tag(
        self, ctx: RunContext, tag_key: str, tag_value: str
    ) -> List[Instance]:
        response = self._call(
            ctx,
            "describe instances",
            list_call_get_all_results,
            self._service("compute_client").list_instances,
            compartment_id=self.compartment_id,
        )

        instances: List[Instance] = []
        for raw in response.data:
            if (raw.freeform_tags or {}).get(tag_key) != tag_value:
                continue
            if LifecycleState.parse(raw.lifecycle_state) in SKIPPED_LISTING_STATES:
                logger.debug("Ignoring instance %s in state %s", raw.id, raw.lifecycle_state)
                continue
            instances.append(self._hydrate(ctx, raw))

        logger.info(
            "Found %d instance(s) tagged %s=%s in %s",
            len(instances),
            tag_key,
            tag_value,
            self.compartment_id,
        )
        return instances

    @read_retry
    def describe_instance(self, ctx: RunContext, instance_id: str) -> Instance:
        raw = self._call(
            ctx, "describe instance", self._service("compute_client").get_instance, instance_id
        ).data
        return self._hydrate(ctx, raw)

    @read_retry
    def describe_instance_state(self, ctx: RunContext, instance_id: str) -> LifecycleState:
        raw = self._call(
            ctx, "describe instance", self._service("compute_client").get_instance, instance_id
        ).data
        return LifecycleState.parse(raw.lifecycle_state)

    def _hydrate(self, ctx: RunContext, raw: Any) -> Instance:
        """Attach volume and subnet details to a raw SDK instance."""
        volumes = self._list_boot_volumes(ctx, raw) + self._list_block_volumes(ctx, raw)
        shape_config = getattr(raw, "shape_config", None)
        return Instance(
            instance_id=raw.id,
            lifecycle_state=LifecycleState.parse(raw.lifecycle_state),
            shape=raw.shape,
            compartment_id=raw.compartment_id,
            availability_domain=raw.availability_domain,
            subnet_id=self._primary_subnet(ctx, raw),
            display_name=raw.display_name,
            ocpus=getattr(shape_config, "ocpus", None),
            memory_in_gbs=getattr(shape_config, "memory_in_gbs", None),
            volumes=volumes,
            tags=dict(raw.freeform_tags or {}),
        )

    def _list_boot_volumes(self, ctx: RunContext, raw: Any) -> List[VolumeAttachment]:
        attachments = self._call(
            ctx,
            "list boot volume attachments",
            list_call_get_all_results,
            self._service("compute_client").list_boot_volume_attachments,
            availability_domain=raw.availability_domain,
            compartment_id=raw.compartment_id,
            instance_id=raw.id,
        ).data
        return [
            VolumeAttachment(
                volume_id=attachment.boot_volume_id,
                kind=VolumeKind.BOOT,
                device="boot",
                lifecycle_state=attachment.lifecycle_state,
            )
            for attachment in attachments
        ]

    def _list_block_volumes(self, ctx: RunContext, raw: Any) -> List[VolumeAttachment]:
        attachments = self._call(
            ctx,
            "list volume attachments",
            list_call_get_all_results,
            self._service("compute_client").list_volume_attachments,
            compartment_id=raw.compartment_id,
            instance_id=raw.id,
        ).data
        return [
            VolumeAttachment(
                volume_id=attachment.volume_id,
                kind=VolumeKind.BLOCK,
                device=attachment.device,
                lifecycle_state=attachment.lifecycle_state,
            )
            for attachment in attachments
        ]

    def _primary_subnet(self, ctx: RunContext, raw: Any) -> Optional[str]:
        vnic_attachments = self._call(
            ctx,
            "list vnic attachments",
            list_call_get_all_results,
            self._service("compute_client").list_vnic_attachments,
            compartment_id=raw.compartment_id,
            instance_id=raw.id,
        ).data
        for attachment in vnic_attachments:
            if attachment.lifecycle_state == "ATTACHED":
                return attachment.subnet_id
        return None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_snapshot(
        self,
        ctx: RunContext,
        volume_id: str,
        description: str,
        kind: VolumeKind = VolumeKind.BLOCK,
        tags: Optional[Dict[str, str]] = None,
    ) -> str:
        blockstorage = self._service("blockstorage_client")
        display_name = description[:255]
        if kind == VolumeKind.BOOT:
            details = oci.core.models.CreateBootVolumeBackupDetails(
                boot_volume_id=volume_id,
                display_name=display_name,
                type="FULL",
                freeform_tags=tags or {},
            )
            backup = self._call(
                ctx, "create boot volume backup", blockstorage.create_boot_volume_backup, details
            ).data
        else:
            details = oci.core.models.CreateVolumeBackupDetails(
                volume_id=volume_id,
                display_name=display_name,
                type="FULL",
                freeform_tags=tags or {},
            )
            backup = self._call(
                ctx, "create volume backup", blockstorage.create_volume_backup, details
            ).data
        logger.info("Created backup %s of %s volume %s", backup.id, kind.value.lower(), volume_id)
        return backup.id

    def run_instance(self, ctx: RunContext, image_id: str, template: Instance) -> Instance:
        details = oci.core.models.LaunchInstanceDetails(
            compartment_id=template.compartment_id or self.compartment_id,
            availability_domain=template.availability_domain,
            shape=template.shape,
            display_name=template.display_name,
            source_details=oci.core.models.InstanceSourceViaImageDetails(
                source_type="image", image_id=image_id
            ),
        )
        if template.subnet_id:
            details.create_vnic_details = oci.core.models.CreateVnicDetails(
                subnet_id=template.subnet_id
            )
        if template.ocpus or template.memory_in_gbs:
            details.shape_config = oci.core.models.LaunchInstanceShapeConfigDetails(
                ocpus=template.ocpus, memory_in_gbs=template.memory_in_gbs
            )

        raw = self._call(
            ctx, "launch instance", self._service("compute_client").launch_instance, details
        ).data
        logger.info("Launched instance %s from image %s (shape %s)", raw.id, image_id, raw.shape)
        return Instance(
            instance_id=raw.id,
            lifecycle_state=LifecycleState.parse(raw.lifecycle_state),
            shape=raw.shape,
            compartment_id=raw.compartment_id,
            availability_domain=raw.availability_domain,
            subnet_id=template.subnet_id,
            display_name=raw.display_name,
            ocpus=template.ocpus,
            memory_in_gbs=template.memory_in_gbs,
            tags=dict(raw.freeform_tags or {}),
        )

    def terminate_instance(self, ctx: RunContext, instance_id: str) -> None:
        self._call(
            ctx,
            "terminate instance",
            self._service("compute_client").terminate_instance,
            instance_id,
            preserve_boot_volume=False,
        )
        logger.info("Terminated instance %s", instance_id)

    def stop_instance(self, ctx: RunContext, instance_id: str) -> None:
        self._call(
            ctx, "stop instance", self._service("compute_client").instance_action, instance_id, "STOP"
        )

    def start_instance(self, ctx: RunContext, instance_id: str) -> None:
        self._call(
            ctx, "start instance", self._service("compute_client").instance_action, instance_id, "START"
        )

    def create_tags(self, ctx: RunContext, resource_id: str, tags: Dict[str, str]) -> None:
        compute = self._service("compute_client")
        current = self._call(ctx, "create tags", compute.get_instance, resource_id).data
        merged = dict(current.freeform_tags or {})
        merged.update(tags)
        self._call(
            ctx,
            "create tags",
            compute.update_instance,
            resource_id,
            oci.core.models.UpdateInstanceDetails(freeform_tags=merged),
        )

    def tag_image(self, ctx: RunContext, image_id: str, tags: Dict[str, str]) -> None:
        compute = self._service("compute_client")
        current = self._call(ctx, "tag image", compute.get_image, image_id).data
        merged = dict(current.freeform_tags or {})
        merged.update(tags)
        self._call(
            ctx,
            "tag image",
            compute.update_image,
            image_id,
            oci.core.models.UpdateImageDetails(freeform_tags=merged),
        )
        logger.info("Tagged image %s with %s", image_id, tags)
