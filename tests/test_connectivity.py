"""
Tests for connectivity module.

Tests the internet connectivity check used by the network isolation probe:
- Successful connection scenarios
- Fallback through the public DNS resolvers
- Connection failures
- Socket cleanup
"""

import pytest
import socket
from unittest.mock import patch, Mock
from pathlib import Path

# Add parent directory to path for imports
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from examengine.connectivity import DNS_HOSTS, DNS_PORT, check_internet_connectivity


class TestConnectivitySuccess:
    """Test successful connectivity scenarios."""

    @patch('socket.create_connection')
    def test_first_resolver_success(self, mock_connection):
        """Test successful connection to the first resolver."""
        mock_connection.return_value = Mock()

        result = check_internet_connectivity()

        assert result is True
        mock_connection.assert_called_once_with(("1.1.1.1", 53), timeout=2.0)

    @patch('socket.create_connection')
    def test_custom_timeout_is_passed(self, mock_connection):
        """Test connectivity check with custom timeout."""
        mock_connection.return_value = Mock()

        result = check_internet_connectivity(timeout=0.5)

        assert result is True
        mock_connection.assert_called_once_with(("1.1.1.1", 53), timeout=0.5)

    @patch('socket.create_connection')
    def test_connection_is_closed(self, mock_connection):
        """Test that the probing socket is closed after a successful connect."""
        mock_conn = Mock()
        mock_connection.return_value = mock_conn

        check_internet_connectivity()

        mock_conn.close.assert_called_once()


class TestConnectivityFallback:
    """Test fallback through alternative DNS servers."""

    @patch('socket.create_connection')
    def test_fallback_to_second_resolver(self, mock_connection):
        """Test fallback to Google DNS when Cloudflare fails."""
        mock_connection.side_effect = [OSError("Connection failed"), Mock()]

        result = check_internet_connectivity()

        assert result is True
        calls = mock_connection.call_args_list
        assert calls[0][0] == (("1.1.1.1", 53),)
        assert calls[1][0] == (("8.8.8.8", 53),)

    @patch('socket.create_connection')
    def test_last_resolver_tried(self, mock_connection):
        """Test that every resolver is tried in order before giving up."""
        mock_connection.side_effect = [OSError("fail")] * (len(DNS_HOSTS) - 1) + [Mock()]

        result = check_internet_connectivity()

        assert result is True
        hosts = [call[0][0][0] for call in mock_connection.call_args_list]
        assert hosts == DNS_HOSTS

    @patch('socket.create_connection')
    def test_all_resolvers_fail(self, mock_connection):
        """Test when all DNS servers fail to connect."""
        mock_connection.side_effect = OSError("Connection failed")

        result = check_internet_connectivity()

        assert result is False
        assert mock_connection.call_count == len(DNS_HOSTS)

    @patch('socket.create_connection')
    def test_all_use_dns_port(self, mock_connection):
        """Test that all checks use port 53."""
        mock_connection.side_effect = OSError("Fail")

        check_internet_connectivity()

        ports = [call[0][0][1] for call in mock_connection.call_args_list]
        assert ports == [DNS_PORT] * len(DNS_HOSTS)
        assert DNS_PORT == 53


class TestConnectivityErrorTypes:
    """Test different types of network errors."""

    @pytest.mark.parametrize("error", [
        OSError("[Errno 101] Network is unreachable"),
        ConnectionRefusedError("[Errno 111] Connection refused"),
        socket.timeout("Connection timed out"),
        socket.gaierror("Name or service not known"),
        PermissionError("Permission denied"),
    ])
    @patch('socket.create_connection')
    def test_oserror_subclasses_mean_offline(self, mock_connection, error):
        """Every OSError subclass counts as no connectivity."""
        mock_connection.side_effect = error

        assert check_internet_connectivity() is False

    @patch('socket.create_connection')
    def test_alternating_success_failure(self, mock_connection):
        """Test consecutive calls are independent."""
        mock_connection.side_effect = [Mock()] + [OSError("Failed")] * len(DNS_HOSTS) + [Mock()]

        assert check_internet_connectivity() is True
        assert check_internet_connectivity() is False
        assert check_internet_connectivity() is True


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
