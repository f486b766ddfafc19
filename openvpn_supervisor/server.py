"""Control server for the supervisor.

Listens on a Unix socket for JSON commands from the CLI and routes them
to the supervisor: starting and stopping daemons, querying their state
and passing credentials through.
"""

import json
import logging
import os
import signal
import socket
import threading
from typing import Optional

from .identity import ConfigIdentity
from .platform import get_log_file, get_socket_path
from .supervisor import DaemonCommandError, Supervisor
from .validator import validate_request

log = logging.getLogger(__name__)


def setup_logging(debug: bool = False):
    """Log to stderr and the supervisor log file."""
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(get_log_file()),
        ],
    )


class SupervisorServer:
    """Serves supervisor commands on a Unix socket."""

    def __init__(self, supervisor: Supervisor, socket_path: Optional[str] = None):
        self._supervisor = supervisor
        self._socket_path = socket_path or get_socket_path()
        self._running = True
        self._lock = threading.Lock()
        self._socket: Optional[socket.socket] = None

    def serve(self):
        """Start the supervisor and serve commands until signalled."""
        signal.signal(signal.SIGTERM, self._handle_signal)
        signal.signal(signal.SIGINT, self._handle_signal)

        # Cleanup old socket
        if os.path.exists(self._socket_path):
            os.remove(self._socket_path)

        self._socket = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        self._socket.bind(self._socket_path)
        os.chmod(self._socket_path, 0o600)
        self._socket.listen(5)
        self._socket.settimeout(1.0)  # Allow periodic check of _running

        log.info(f"Listening on {self._socket_path}")

        try:
            self._supervisor.start()
            while self._running:
                try:
                    conn, _ = self._socket.accept()
                except socket.timeout:
                    continue
                except OSError as e:
                    if self._running:
                        log.error(f"Accept error: {e}")
                    continue
                threading.Thread(
                    target=self._handle_connection,
                    args=(conn,),
                    daemon=True,
                ).start()
        finally:
            self._supervisor.shutdown()
            self._cleanup()

    def stop(self):
        self._running = False

    def _handle_signal(self, signum, frame):
        log.info(f"Received signal {signum}, shutting down...")
        self.stop()

    def _cleanup(self):
        if self._socket:
            self._socket.close()
        if os.path.exists(self._socket_path):
            os.remove(self._socket_path)
        log.info("Server stopped")

    def _handle_connection(self, conn: socket.socket):
        """Handle a client connection."""
        try:
            conn.settimeout(30.0)
            data = conn.recv(65536)
            if not data:
                return

            try:
                request = json.loads(data.decode("utf-8"))
            except UnicodeDecodeError as e:
                log.error(f"Invalid encoding: {e}")
                response = {"success": False, "error": "Request must be UTF-8"}
            except json.JSONDecodeError as e:
                log.error(f"Invalid JSON: {e}")
                response = {"success": False, "error": "Invalid JSON"}
            else:
                response = self.handle_request(request)

            conn.sendall(json.dumps(response).encode("utf-8"))

        except Exception as e:
            log.error(f"Connection handler error: {e}")
            try:
                conn.sendall(json.dumps({"success": False, "error": str(e)}).encode("utf-8"))
            except OSError:
                pass
        finally:
            conn.close()

    def handle_request(self, request: dict) -> dict:
        """Validate a request and dispatch it to the supervisor."""
        valid, error = validate_request(request)
        if not valid:
            log.warning(f"Invalid request: {error}")
            return {"success": False, "error": error}

        command = request["command"]
        # Secrets never reach the log
        log.info(f"Received command: {command} {request.get('config', '')}")

        with self._lock:
            try:
                return self._dispatch(command, request)
            except DaemonCommandError as e:
                return {"success": False, "error": str(e)}

    def _dispatch(self, command: str, request: dict) -> dict:
        sup = self._supervisor
        identity = None
        if request.get("config"):
            identity = ConfigIdentity.from_path(request["config"])

        if command == "start":
            sup.daemon_start(identity)
            return {"success": True, "alive": sup.is_daemon_started(identity)}
        if command == "stop":
            sup.daemon_stop(identity)
            return {"success": True, "alive": sup.is_daemon_started(identity)}
        if command == "state":
            return {"success": True, "state": sup.daemon_query_state(identity)}
        if command == "passphrase":
            sup.daemon_passphrase(identity, request["secret"])
            return {"success": True}
        if command == "userpass":
            sup.daemon_username_password(identity, request["username"], request["secret"])
            return {"success": True}

        # status
        if identity is not None:
            return {
                "success": True,
                "alive": sup.is_daemon_started(identity),
                "fault": sup.get_fault(identity),
            }
        return {
            "success": True,
            "running": sup.has_daemons_started(),
            "daemons": sup.list_daemons(),
        }
