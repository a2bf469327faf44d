"""OCI SDK client wrapper with lazily created service clients."""

import logging
from typing import Any, Dict, Optional

import oci

from .auth import OCIAuthenticator
from .models import OCIConfig

logger = logging.getLogger(__name__)


class OCIClient:
    """Authenticated holder for the compute and block storage clients."""

    def __init__(
        self,
        region: Optional[str] = None,
        profile_name: str = "DEFAULT",
        config_file: Optional[str] = None,
        retry_strategy: Optional[oci.retry.RetryStrategyBuilder] = None,
    ):
        """
        Initialize OCI client with authentication.

        Args:
            region: OCI region name (e.g., 'us-phoenix-1'); defaults to the profile's region
            profile_name: OCI config profile name
            config_file: Optional path to config file (defaults to ~/.oci/config)
            retry_strategy: Optional retry strategy for API calls
        """
        self.config = OCIConfig(region=region, profile_name=profile_name, config_file=config_file)
        self.authenticator = OCIAuthenticator(self.config)
        self.oci_config: Optional[Dict[str, Any]] = None
        self.signer: Optional[Any] = None

        self.retry_strategy = retry_strategy or oci.retry.DEFAULT_RETRY_STRATEGY

        self._compute_client: Optional[oci.core.ComputeClient] = None
        self._blockstorage_client: Optional[oci.core.BlockstorageClient] = None

        self._authenticate()

    def _authenticate(self) -> None:
        try:
            self.oci_config, self.signer = self.authenticator.authenticate()
        except Exception as e:
            logger.error("Authentication failed: %s", e)
            raise

    def _build(self, client_cls: Any) -> Any:
        return client_cls(self.oci_config, signer=self.signer, retry_strategy=self.retry_strategy)

    @property
    def compute_client(self) -> oci.core.ComputeClient:
        """Lazy-load compute client."""
        if not self._compute_client:
            self._compute_client = self._build(oci.core.ComputeClient)
        return self._compute_client

    @property
    def blockstorage_client(self) -> oci.core.BlockstorageClient:
        """Lazy-load block storage client."""
        if not self._blockstorage_client:
            self._blockstorage_client = self._build(oci.core.BlockstorageClient)
        return self._blockstorage_client

    @property
    def region(self) -> Optional[str]:
        return self.config.region

    def __enter__(self) -> "OCIClient":
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the HTTP sessions of every service client built so far."""
        for client in (self._compute_client, self._blockstorage_client):
            session = getattr(getattr(client, "base_client", None), "session", None)
            if session is not None:
                session.close()
