"""Daemon monitors: one openvpn process per configuration.

The supervisor only talks to monitors through the DaemonMonitor protocol
and obtains them from a DaemonMonitorFactory, so alternate
implementations (including test doubles) can be injected.
"""

import logging
import shutil
import subprocess
import threading
from pathlib import Path
from typing import List, Optional, Protocol, runtime_checkable

import psutil

from .identity import ConfigIdentity
from .management import ManagementClient, ManagementError, ManagementNotAvailable
from .platform import (
    find_openvpn_for_config,
    get_management_socket,
    get_pid_file,
    is_process_alive,
    kill_process,
    openvpn_process_for_pid,
    read_pid_file,
)
from .preferences import Preferences

log = logging.getLogger(__name__)

STATE_UNKNOWN = "unknown"
STATE_DISCONNECTED = "disconnected"

OPENVPN_PATHS = [
    "/usr/sbin/openvpn",
    "/usr/local/sbin/openvpn",
    "/opt/homebrew/sbin/openvpn",
]

MAX_OUTPUT_LINES = 100


@runtime_checkable
class DaemonMonitor(Protocol):
    """Handle owning the lifecycle of one daemon process."""

    def start(self) -> None:
        """Start the daemon unless it is already alive."""
        ...

    def stop(self) -> None:
        """Stop the daemon unless it is already stopped."""
        ...

    def is_alive(self) -> bool:
        ...

    def get_config_identity(self) -> ConfigIdentity:
        ...

    def query_state(self) -> str:
        """Report the daemon's current status."""
        ...

    def supply_passphrase(self, secret: str) -> None:
        ...

    def supply_username_password(self, user: str, secret: str) -> None:
        ...

    def switch_to_intended_state(self) -> None:
        """Start or stop the daemon to match its persisted intended state."""
        ...


@runtime_checkable
class DaemonMonitorFactory(Protocol):
    """Creates a monitor bound to a configuration."""

    def create_daemon_monitor_for(self, identity: ConfigIdentity) -> DaemonMonitor:
        ...


def find_openvpn_binary() -> Optional[str]:
    """Find the openvpn binary in PATH or standard locations."""
    found = shutil.which("openvpn")
    if found:
        return found
    for path in OPENVPN_PATHS:
        if Path(path).exists():
            return path
    return None


class OpenVpnDaemonMonitor:
    """Monitor driving a real openvpn process.

    Creating the monitor looks for an openvpn process already running
    with this config (e.g. one that survived a supervisor restart) and
    adopts it.
    """

    def __init__(
        self,
        identity: ConfigIdentity,
        preferences: Preferences,
        openvpn_bin: Optional[str] = None,
        management_timeout: float = 5.0,
    ):
        self._identity = identity
        self._preferences = preferences
        self._openvpn_bin = openvpn_bin
        self._lock = threading.Lock()
        self._process: Optional[subprocess.Popen] = None
        self._pid: Optional[int] = None
        self._adopted: Optional[psutil.Process] = None
        self._output_lines: List[str] = []
        self._output_thread: Optional[threading.Thread] = None
        self._pid_file = get_pid_file(identity.safe_name())
        self._management_socket = get_management_socket(identity.safe_name())
        self._management = ManagementClient(self._management_socket, management_timeout)
        self.last_state: Optional[str] = None

        self._detect_running()

    def __repr__(self) -> str:
        return f"OpenVpnDaemonMonitor({self._identity.path!r}, pid={self._pid})"

    def _detect_running(self):
        """Detect an openvpn process already running for this config."""
        pid = read_pid_file(self._pid_file)
        proc = openvpn_process_for_pid(pid, self._identity.path) if pid else None
        if proc is None:
            proc = find_openvpn_for_config(self._identity.path)
        self._adopted = proc
        self._pid = proc.pid if proc else None

        if self._pid:
            log.info(f"Found running openvpn for {self._identity.name} (PID {self._pid})")
        elif self._pid_file.exists():
            self._pid_file.unlink()

    def get_config_identity(self) -> ConfigIdentity:
        return self._identity

    def is_alive(self) -> bool:
        if self._process is not None:
            return self._process.poll() is None
        return self._adopted is not None and is_process_alive(self._adopted)

    def output_lines(self) -> List[str]:
        """Recent openvpn output lines."""
        return list(self._output_lines)

    def _build_command(self, openvpn_bin: str) -> List[str]:
        return [
            openvpn_bin,
            "--config", self._identity.path,
            "--cd", self._identity.directory,
            "--management", self._management_socket, "unix",
            "--management-query-passwords",
            "--writepid", str(self._pid_file),
        ]

    def start(self) -> None:
        with self._lock:
            if self.is_alive():
                log.debug(f"{self._identity.name} already running")
                return

            openvpn_bin = self._openvpn_bin or find_openvpn_binary()
            if not openvpn_bin:
                raise FileNotFoundError("openvpn not found in PATH")

            cmd = self._build_command(openvpn_bin)
            log.info(f"Starting openvpn for {self._identity.name}")
            log.debug(f"Command: {' '.join(cmd)}")

            self._output_lines = []
            self._process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                bufsize=1,
            )
            self._adopted = None
            self._pid = self._process.pid
            self._pid_file.parent.mkdir(parents=True, exist_ok=True)
            self._pid_file.write_text(str(self._pid))

            self._output_thread = threading.Thread(
                target=self._read_output,
                args=(self._process,),
                daemon=True,
            )
            self._output_thread.start()
            log.info(f"openvpn for {self._identity.name} started (PID {self._pid})")

    def _read_output(self, process: subprocess.Popen):
        """Read openvpn stdout in background thread."""
        if not process.stdout:
            return
        try:
            for line in process.stdout:
                line = line.rstrip("\n")
                self._output_lines.append(line)
                if len(self._output_lines) > MAX_OUTPUT_LINES:
                    self._output_lines.pop(0)
                log.debug(f"[openvpn {self._identity.name}] {line}")
        except (OSError, ValueError):
            # Stream closed while the process was being stopped
            return
        log.info(f"openvpn for {self._identity.name} exited ({process.poll()})")

    def stop(self) -> None:
        with self._lock:
            if not self.is_alive():
                log.debug(f"{self._identity.name} already stopped")
                self._forget_process()
                return

            pid = self._pid
            log.info(f"Stopping openvpn for {self._identity.name} (PID {pid})")
            if not kill_process(self._adopted or pid):
                raise RuntimeError(f"Failed to stop openvpn (PID {pid})")
            if self._process is not None:
                self._process.wait()
            self._forget_process()
            log.info(f"openvpn for {self._identity.name} stopped")

    def _forget_process(self):
        self._process = None
        self._adopted = None
        self._pid = None
        if self._pid_file.exists():
            self._pid_file.unlink()

    def query_state(self) -> str:
        if not self.is_alive():
            self.last_state = STATE_DISCONNECTED
            return self.last_state
        try:
            self.last_state = self._management.state()
        except ManagementNotAvailable:
            self.last_state = STATE_UNKNOWN
        except ManagementError as e:
            log.warning(f"State query for {self._identity.name} failed: {e}")
            self.last_state = STATE_UNKNOWN
        log.debug(f"{self._identity.name} state: {self.last_state}")
        return self.last_state

    def supply_passphrase(self, secret: str) -> None:
        if not self.is_alive():
            log.warning(f"Dropping passphrase for {self._identity.name}: not running")
            return
        self._management.password("Private Key", secret)
        log.info(f"Passphrase supplied to {self._identity.name}")

    def supply_username_password(self, user: str, secret: str) -> None:
        if not self.is_alive():
            log.warning(f"Dropping credentials for {self._identity.name}: not running")
            return
        self._management.username("Auth", user)
        self._management.password("Auth", secret)
        log.info(f"Credentials for {user} supplied to {self._identity.name}")

    def switch_to_intended_state(self) -> None:
        intended = self._preferences.get_intended_state(self._identity)
        alive = self.is_alive()
        if intended and not alive:
            self.start()
        elif not intended and alive:
            self.stop()


class OpenVpnDaemonMonitorFactory:
    """Default factory producing OpenVpnDaemonMonitor instances."""

    def __init__(self, preferences: Preferences, openvpn_bin: Optional[str] = None):
        self._preferences = preferences
        self._openvpn_bin = openvpn_bin

    def create_daemon_monitor_for(self, identity: ConfigIdentity) -> OpenVpnDaemonMonitor:
        return OpenVpnDaemonMonitor(identity, self._preferences, self._openvpn_bin)
