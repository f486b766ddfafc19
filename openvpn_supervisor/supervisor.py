"""Daemon supervisor: lifecycle and command routing.

The supervisor owns the registry of daemon monitors. On start it
reconciles every discovered configuration against its intended state,
then routes start/stop/state/credential commands to the monitor of the
addressed configuration until shutdown.
"""

import logging
import threading
from typing import Dict, List, Optional

from .config import ConfigDirectory
from .identity import ConfigIdentity
from .monitor import (
    STATE_UNKNOWN,
    DaemonMonitor,
    DaemonMonitorFactory,
    OpenVpnDaemonMonitorFactory,
)
from .preferences import Preferences, PreferencesError
from .reconcile import ConfigDiscovery, Reconciler, ReconcileReport
from .registry import DaemonRegistry

log = logging.getLogger(__name__)

# Lifecycle states
STATE_STOPPED = "stopped"
STATE_STARTING = "starting"
STATE_RUNNING = "running"


class DaemonCommandError(Exception):
    """A monitor failed to carry out a routed command."""

    def __init__(self, identity: ConfigIdentity, command: str, cause: Exception):
        super().__init__(f"{command} failed for {identity.name}: {cause}")
        self.identity = identity
        self.command = command
        self.cause = cause


class LifecycleFlag:
    """Process-wide "supervisor is active" flag."""

    def __init__(self):
        self._value = False
        self._lock = threading.Lock()

    def arm(self):
        with self._lock:
            self._value = True

    def disarm(self):
        with self._lock:
            self._value = False

    def is_set(self) -> bool:
        with self._lock:
            return self._value


_lifecycle_flag = LifecycleFlag()


def is_supervisor_running() -> bool:
    """Check whether a supervisor is active in this process."""
    return _lifecycle_flag.is_set()


class Supervisor:
    """Keeps openvpn daemons in line with their intended state."""

    def __init__(
        self,
        preferences: Optional[Preferences] = None,
        discovery: Optional[ConfigDiscovery] = None,
        factory: Optional[DaemonMonitorFactory] = None,
        exclusive: bool = False,
    ):
        """Initialize the supervisor.

        Args:
            preferences: Intended-state store
            discovery: Config discovery, defaults to the user config dir
            factory: Monitor factory, defaults to real openvpn monitors
            exclusive: Allow at most one running daemon
        """
        self.preferences = preferences or Preferences()
        self.discovery = discovery or ConfigDirectory()
        self.exclusive = exclusive
        self.registry = DaemonRegistry(factory or OpenVpnDaemonMonitorFactory(self.preferences))
        self._state = STATE_STOPPED
        self._state_lock = threading.Lock()
        self._faults: Dict[ConfigIdentity, str] = {}
        self._faults_lock = threading.Lock()
        self.last_report: Optional[ReconcileReport] = None

    @property
    def state(self) -> str:
        return self._state

    def __enter__(self) -> "Supervisor":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.shutdown()

    # Lifecycle

    def start(self) -> bool:
        """Start the supervisor and reconcile all daemons.

        Returns:
            True if started, False if it was not stopped
        """
        with self._state_lock:
            if self._state != STATE_STOPPED:
                log.debug(f"Supervisor start ignored in state {self._state}")
                return False
            self._state = STATE_STARTING

        log.info("Supervisor starting")
        with self._faults_lock:
            self._faults.clear()
        try:
            _lifecycle_flag.arm()
            self.preferences.set_enabled(True)
            reconciler = Reconciler(
                self.registry,
                self.discovery,
                self.preferences,
                exclusive=self.exclusive,
                on_fault=self._record_fault,
            )
            self.last_report = reconciler.reconcile()
        except Exception:
            _lifecycle_flag.disarm()
            with self._state_lock:
                self._state = STATE_STOPPED
            raise

        with self._state_lock:
            self._state = STATE_RUNNING
        log.info("Supervisor running")
        return True

    def shutdown(self) -> None:
        """Stop supervising. Running daemons are left alone."""
        with self._state_lock:
            if self._state == STATE_STOPPED:
                return
            self._state = STATE_STOPPED

        _lifecycle_flag.disarm()
        try:
            self.preferences.set_enabled(False)
        except PreferencesError as e:
            log.error(f"Cannot clear enabled flag: {e}")
        log.info("Supervisor stopped")

    def stop_all(self) -> None:
        """Stop every running daemon, isolating failures."""
        for monitor in self.registry.all():
            identity = monitor.get_config_identity()
            try:
                if monitor.is_alive():
                    monitor.stop()
            except Exception as e:
                self._record_fault(identity, e)

    # Faults

    def _record_fault(self, identity: ConfigIdentity, error: Exception):
        log.error(f"Daemon fault for {identity.name}: {error}")
        with self._faults_lock:
            self._faults[identity] = str(error)

    def _clear_fault(self, identity: ConfigIdentity):
        with self._faults_lock:
            self._faults.pop(identity, None)

    def get_fault(self, identity: ConfigIdentity) -> Optional[str]:
        """Last error recorded for a daemon, if any."""
        with self._faults_lock:
            return self._faults.get(identity)

    def _run(self, identity: ConfigIdentity, command: str, monitor: DaemonMonitor, *args):
        try:
            result = getattr(monitor, command)(*args)
        except Exception as e:
            self._record_fault(identity, e)
            raise DaemonCommandError(identity, command, e) from e
        self._clear_fault(identity)
        return result

    # Commands

    def daemon_start(self, identity: ConfigIdentity) -> None:
        monitor = self.registry.get_or_create(identity)
        if self.exclusive:
            for other in self.registry.all():
                if other is not monitor and other.is_alive():
                    log.info(f"Stopping {other.get_config_identity().name} before starting {identity.name}")
                    self._run(other.get_config_identity(), "stop", other)
        self._run(identity, "start", monitor)

    def daemon_stop(self, identity: ConfigIdentity) -> None:
        monitor = self.registry.get_or_create(identity)
        self._run(identity, "stop", monitor)

    def daemon_query_state(self, identity: ConfigIdentity) -> str:
        monitor = self.registry.get(identity)
        if monitor is None:
            return STATE_UNKNOWN
        return self._run(identity, "query_state", monitor)

    def daemon_passphrase(self, identity: ConfigIdentity, secret: str) -> None:
        monitor = self.registry.get(identity)
        if monitor is None:
            log.debug(f"No daemon for {identity.name}, passphrase dropped")
            return
        self._run(identity, "supply_passphrase", monitor, secret)

    def daemon_username_password(self, identity: ConfigIdentity, user: str, secret: str) -> None:
        monitor = self.registry.get(identity)
        if monitor is None:
            log.debug(f"No daemon for {identity.name}, credentials dropped")
            return
        self._run(identity, "supply_username_password", monitor, user, secret)

    def is_daemon_started(self, identity: ConfigIdentity) -> bool:
        monitor = self.registry.get(identity)
        return monitor is not None and monitor.is_alive()

    def has_daemons_started(self) -> bool:
        return any(monitor.is_alive() for monitor in self.registry.all())

    def list_daemons(self) -> List[dict]:
        """Summary of every registered daemon."""
        daemons = []
        for monitor in self.registry.all():
            identity = monitor.get_config_identity()
            daemons.append({
                "config": identity.path,
                "name": identity.name,
                "alive": monitor.is_alive(),
                "intended": self.preferences.get_intended_state(identity),
                "fault": self.get_fault(identity),
            })
        return daemons
