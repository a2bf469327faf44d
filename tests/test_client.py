"""Tests for main client module."""

from unittest.mock import Mock, patch

import pytest

from oci_migrate.client import OCIClient


class TestOCIClient:
    """Test OCI Client."""

    @pytest.fixture
    def mock_auth_response(self):
        """Mock authentication response."""
        mock_config = {"region": "us-phoenix-1", "tenancy": "ocid1.tenancy.oc1..xxxxx"}
        mock_signer = Mock()
        return mock_config, mock_signer

    @pytest.fixture
    def mock_client(self, mock_auth_response):
        """Create a mock client instance."""
        with patch("oci_migrate.client.OCIAuthenticator") as mock_auth:
            mock_auth.return_value.authenticate.return_value = mock_auth_response
            client = OCIClient(region="us-phoenix-1", profile_name="test_profile")
            return client

    @patch("oci_migrate.client.OCIAuthenticator")
    def test_client_initialization(self, mock_auth):
        """Test client initialization."""
        mock_auth.return_value.authenticate.return_value = ({}, Mock())

        client = OCIClient(region="us-phoenix-1", profile_name="test_profile")

        assert client.config.region == "us-phoenix-1"
        assert client.config.profile_name == "test_profile"
        assert client.region == "us-phoenix-1"
        mock_auth.return_value.authenticate.assert_called_once()

    @patch("oci_migrate.client.OCIAuthenticator")
    def test_client_initialization_with_retry_strategy(self, mock_auth):
        """Test client initialization with custom retry strategy."""
        import oci.retry

        mock_auth.return_value.authenticate.return_value = ({}, Mock())
        custom_retry = oci.retry.NoneRetryStrategy()

        client = OCIClient(profile_name="test_profile", retry_strategy=custom_retry)

        assert client.retry_strategy is custom_retry

    @patch("oci_migrate.client.OCIAuthenticator")
    def test_authentication_failure_propagates(self, mock_auth):
        """Test that authentication errors are raised from the constructor."""
        mock_auth.return_value.authenticate.side_effect = RuntimeError("no profile")

        with pytest.raises(RuntimeError, match="no profile"):
            OCIClient(profile_name="missing")

    def test_lazy_loading_compute_client(self, mock_client, mock_auth_response):
        """Test lazy loading of compute client."""
        with patch("oci_migrate.client.oci.core.ComputeClient") as mock_compute:
            assert mock_client._compute_client is None

            _ = mock_client.compute_client
            _ = mock_client.compute_client

            mock_compute.assert_called_once_with(
                mock_auth_response[0],
                signer=mock_auth_response[1],
                retry_strategy=mock_client.retry_strategy,
            )

    def test_lazy_loading_blockstorage_client(self, mock_client):
        """Test lazy loading of block storage client."""
        with patch("oci_migrate.client.oci.core.BlockstorageClient") as mock_blockstorage:
            assert mock_client._blockstorage_client is None

            _ = mock_client.blockstorage_client
            mock_blockstorage.assert_called_once()

            _ = mock_client.blockstorage_client
            assert mock_blockstorage.call_count == 1

    def test_context_manager_closes_sessions(self, mock_client):
        """Test that leaving the context closes SDK sessions."""
        compute = Mock()
        mock_client._compute_client = compute

        with mock_client as client:
            assert client is mock_client

        compute.base_client.session.close.assert_called_once()

    def test_close_skips_clients_never_built(self, mock_client):
        """Test that close only touches service clients that exist."""
        blockstorage = Mock()
        mock_client._blockstorage_client = blockstorage

        mock_client.close()

        assert mock_client._compute_client is None
        blockstorage.base_client.session.close.assert_called_once()
