"""Authentication against OCI using a profile from the local config file."""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import oci
from oci.auth.signers import SecurityTokenSigner
from rich.console import Console

from .models import AuthType, OCIConfig

logger = logging.getLogger(__name__)
console = Console(stderr=True)

DEFAULT_CONFIG_FILE = Path.home() / ".oci" / "config"


class OCIAuthenticator:
    """Handle OCI authentication for session token and API key profiles."""

    def __init__(self, config: OCIConfig):
        self.config = config
        self.oci_config: Optional[Dict[str, Any]] = None
        self.signer: Optional[Any] = None

    def authenticate(self) -> Tuple[Dict[str, Any], Any]:
        """
        Load the profile and build a request signer.

        Returns:
            Tuple of (config_dict, signer_object)

        Raises:
            RuntimeError: If the profile cannot be loaded or has no usable credentials
        """
        try:
            self.oci_config = self._load_config()
            auth_type = self._determine_auth_type()
            self.signer = self._create_signer(auth_type)
            logger.debug(
                "Authenticated using %s for profile '%s'", auth_type.value, self.config.profile_name
            )
            return self.oci_config, self.signer
        except Exception as e:
            logger.error("Authentication failed: %s", e)
            self._print_auth_help()
            raise RuntimeError(f"Failed to authenticate with OCI: {e}") from e

    def _load_config(self) -> Dict[str, Any]:
        """Load OCI configuration from file."""
        config_file = Path(self.config.config_file) if self.config.config_file else DEFAULT_CONFIG_FILE
        if not config_file.exists():
            raise FileNotFoundError(f"OCI config file not found: {config_file}")

        oci_config = oci.config.from_file(
            file_location=str(config_file), profile_name=self.config.profile_name
        )

        if self.config.region:
            oci_config["region"] = self.config.region
        else:
            self.config.region = oci_config.get("region")

        self.config.tenancy = oci_config.get("tenancy")
        self.config.user = oci_config.get("user")
        self.config.fingerprint = oci_config.get("fingerprint")
        self.config.key_file = oci_config.get("key_file")
        self.config.security_token_file = oci_config.get("security_token_file")
        self.config.pass_phrase = oci_config.get("pass_phrase")

        return oci_config

    def _determine_auth_type(self) -> AuthType:
        if self.config.security_token_file:
            token_file = Path(self.config.security_token_file).expanduser()
            if not token_file.exists():
                raise FileNotFoundError(
                    f"Security token file not found: {token_file}\n"
                    f"Please run: oci session authenticate --profile-name {self.config.profile_name}"
                )
            return AuthType.SESSION_TOKEN

        if self.config.key_file and self.config.fingerprint:
            key_file = Path(self.config.key_file).expanduser()
            if not key_file.exists():
                raise FileNotFoundError(f"Private key file not found: {key_file}")
            return AuthType.API_KEY

        raise ValueError(
            f"Unable to determine auth type for profile '{self.config.profile_name}'. "
            f"Config must have either security_token_file or (key_file + fingerprint)."
        )

    def _create_signer(self, auth_type: AuthType) -> Any:
        if auth_type == AuthType.SESSION_TOKEN:
            token = Path(self.config.security_token_file).expanduser().read_text().strip()
            private_key = oci.signer.load_private_key_from_file(
                self.config.key_file, pass_phrase=self.config.pass_phrase
            )
            return SecurityTokenSigner(token, private_key)

        return oci.signer.Signer(
            tenancy=self.config.tenancy,
            user=self.config.user,
            fingerprint=self.config.fingerprint,
            private_key_file_location=self.config.key_file,
            pass_phrase=self.config.pass_phrase,
        )

    def _print_auth_help(self) -> None:
        console.print("\n[red]Authentication Setup Instructions:[/red]")
        console.print(
            f"\n1. For session token authentication (recommended):\n"
            f"   [cyan]oci session authenticate --profile-name {self.config.profile_name}"
            f"{' --region ' + self.config.region if self.config.region else ''}[/cyan]\n"
        )
        console.print(
            f"2. For API key authentication, add user, fingerprint, tenancy, region and\n"
            f"   key_file to the [cyan][{self.config.profile_name}][/cyan] section of ~/.oci/config\n"
        )
