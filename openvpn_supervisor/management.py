"""Client for the OpenVPN management interface."""

import logging
import socket
from typing import List

log = logging.getLogger(__name__)


class ManagementError(Exception):
    """Error talking to the openvpn management interface."""
    pass


class ManagementNotAvailable(ManagementError):
    """Management socket does not exist or refuses connections."""
    pass


def quote(value: str) -> str:
    """Quote a value for a management command.

    Backslashes and double quotes are escaped, line breaks are dropped
    since each command is one line.
    """
    value = value.replace("\r", "").replace("\n", "").replace("\x00", "")
    value = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{value}"'


class ManagementClient:
    """Sends single commands over the management Unix socket."""

    def __init__(self, socket_path: str, timeout: float = 5.0):
        """Initialize client.

        Args:
            socket_path: Path given to openvpn with --management <path> unix
            timeout: Socket timeout in seconds
        """
        self._socket_path = socket_path
        self._timeout = timeout

    def _send(self, command: str, multiline: bool = False) -> List[str]:
        """Send one command and collect its reply.

        Args:
            command: Management command line (without line terminator)
            multiline: Reply is a block terminated by END

        Returns:
            Reply lines (without SUCCESS:/END framing for block replies)

        Raises:
            ManagementNotAvailable: If the socket cannot be reached
            ManagementError: If openvpn answers ERROR or the exchange fails
        """
        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        sock.settimeout(self._timeout)

        try:
            sock.connect(self._socket_path)
        except (FileNotFoundError, ConnectionRefusedError) as e:
            sock.close()
            raise ManagementNotAvailable(f"Management interface not available: {e}")
        except OSError as e:
            sock.close()
            raise ManagementError(f"Cannot connect to management interface: {e}")

        try:
            stream = sock.makefile("rw", encoding="utf-8", newline="\n")
            stream.write(command + "\n")
            stream.flush()

            lines = []
            for raw in stream:
                line = raw.rstrip("\r\n")
                if line.startswith(">"):
                    # Real-time notification, not part of the reply
                    log.debug(f"[management] {line}")
                    continue
                if line.startswith("ERROR:"):
                    raise ManagementError(line[len("ERROR:"):].strip())
                if multiline:
                    if line == "END":
                        return lines
                    lines.append(line)
                elif line.startswith("SUCCESS:"):
                    return [line[len("SUCCESS:"):].strip()]
            raise ManagementError("Connection closed before reply")

        except socket.timeout:
            raise ManagementError("Timeout waiting for management reply")
        except OSError as e:
            raise ManagementError(f"Communication error: {e}")
        finally:
            sock.close()

    def state(self) -> str:
        """Get the current connection state name, e.g. CONNECTED."""
        lines = self._send("state", multiline=True)
        for line in reversed(lines):
            fields = line.split(",")
            if len(fields) > 1:
                return fields[1]
        raise ManagementError("Empty state reply")

    def password(self, realm: str, secret: str) -> str:
        """Answer a password query for the given realm."""
        return self._send(f"password {quote(realm)} {quote(secret)}")[0]

    def username(self, realm: str, user: str) -> str:
        """Answer a username query for the given realm."""
        return self._send(f"username {quote(realm)} {quote(user)}")[0]

    def signal(self, name: str = "SIGTERM") -> str:
        return self._send(f"signal {name}")[0]
