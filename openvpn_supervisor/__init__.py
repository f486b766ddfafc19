"""OpenVPN Supervisor - keeps OpenVPN daemons in their intended state."""

from .config import ConfigDirectory
from .identity import ConfigIdentity
from .monitor import (
    DaemonMonitor,
    DaemonMonitorFactory,
    OpenVpnDaemonMonitor,
    OpenVpnDaemonMonitorFactory,
)
from .preferences import Preferences
from .registry import DaemonRegistry
from .supervisor import DaemonCommandError, Supervisor, is_supervisor_running

__all__ = [
    "ConfigDirectory",
    "ConfigIdentity",
    "DaemonMonitor",
    "DaemonMonitorFactory",
    "OpenVpnDaemonMonitor",
    "OpenVpnDaemonMonitorFactory",
    "Preferences",
    "DaemonRegistry",
    "DaemonCommandError",
    "Supervisor",
    "is_supervisor_running",
]
