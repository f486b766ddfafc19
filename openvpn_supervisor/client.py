"""Client to communicate with the supervisor control server."""

import json
import socket
from typing import Optional

from .identity import ConfigIdentity
from .platform import get_socket_path


class SupervisorError(Exception):
    """Error communicating with supervisor."""
    pass


class SupervisorNotRunning(SupervisorError):
    """Supervisor is not running."""
    pass


class SupervisorClient:
    """Client for sending commands to the supervisor."""

    def __init__(self, socket_path: Optional[str] = None, timeout: float = 30.0):
        """Initialize client.

        Args:
            socket_path: Control socket, defaults to the platform path
            timeout: Socket timeout in seconds
        """
        self._socket_path = socket_path or get_socket_path()
        self._timeout = timeout

    def _send(self, command: dict) -> dict:
        """Send command to supervisor and return response.

        Args:
            command: Command dictionary

        Returns:
            Response dictionary

        Raises:
            SupervisorNotRunning: If supervisor is not running
            SupervisorError: If communication fails
        """
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self._timeout)

        try:
            sock.connect(self._socket_path)
        except FileNotFoundError:
            sock.close()
            raise SupervisorNotRunning(
                "Supervisor not running. Start with: openvpn-supervisor serve"
            )
        except ConnectionRefusedError:
            sock.close()
            raise SupervisorNotRunning(
                "Supervisor not responding. Restart with: openvpn-supervisor serve"
            )
        except OSError as e:
            sock.close()
            raise SupervisorError(f"Cannot connect to supervisor: {e}")

        try:
            sock.sendall(json.dumps(command).encode("utf-8"))

            chunks = []
            while True:
                chunk = sock.recv(65536)
                if not chunk:
                    break
                chunks.append(chunk)
                # Try to parse - if valid JSON, we're done
                try:
                    return json.loads(b"".join(chunks).decode("utf-8"))
                except json.JSONDecodeError:
                    continue

            data = b"".join(chunks).decode("utf-8")
            if not data:
                raise SupervisorError("Empty response from supervisor")
            return json.loads(data)

        except socket.timeout:
            raise SupervisorError("Timeout waiting for supervisor response")
        except json.JSONDecodeError as e:
            raise SupervisorError(f"Invalid response from supervisor: {e}")
        except OSError as e:
            raise SupervisorError(f"Communication error: {e}")
        finally:
            sock.close()

    def _config_command(self, command: str, config, **params) -> dict:
        request = {"command": command, "config": ConfigIdentity.from_path(config).path}
        request.update(params)
        return self._send(request)

    def start(self, config) -> dict:
        """Start the daemon for a config.

        Returns:
            Response dict with 'success', 'alive' or 'error'
        """
        return self._config_command("start", config)

    def stop(self, config) -> dict:
        return self._config_command("stop", config)

    def state(self, config) -> dict:
        """Query daemon state.

        Returns:
            Response dict with 'success', 'state'
        """
        return self._config_command("state", config)

    def passphrase(self, config, secret: str) -> dict:
        return self._config_command("passphrase", config, secret=secret)

    def username_password(self, config, username: str, secret: str) -> dict:
        return self._config_command("userpass", config, username=username, secret=secret)

    def status(self, config=None) -> dict:
        """Get supervisor or per-daemon status.

        Returns:
            Response dict with 'running', 'daemons' or, for one config,
            'alive', 'fault'
        """
        if config is None:
            return self._send({"command": "status"})
        return self._config_command("status", config)

    def is_supervisor_running(self) -> bool:
        """Check if the supervisor is responding."""
        try:
            self.status()
            return True
        except SupervisorError:
            return False
