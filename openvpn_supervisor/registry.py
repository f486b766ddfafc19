"""Registry of live daemon monitors, one per configuration."""

import logging
import threading
from typing import Dict, List, Optional

from .identity import ConfigIdentity
from .monitor import DaemonMonitor, DaemonMonitorFactory

log = logging.getLogger(__name__)


class DaemonRegistry:
    """Maps configuration identity to its single monitor handle.

    Lookup, creation and insertion happen under one lock, so concurrent
    first-time lookups for the same identity still create one monitor.
    Entries are kept in insertion order and never removed.
    """

    def __init__(self, factory: DaemonMonitorFactory):
        self._factory = factory
        self._monitors: Dict[ConfigIdentity, DaemonMonitor] = {}
        self._lock = threading.Lock()

    @property
    def factory(self) -> DaemonMonitorFactory:
        return self._factory

    def get_or_create(self, identity: ConfigIdentity) -> DaemonMonitor:
        """Get the monitor for an identity, creating it if needed."""
        with self._lock:
            monitor = self._monitors.get(identity)
            if monitor is None:
                monitor = self._factory.create_daemon_monitor_for(identity)
                self._monitors[identity] = monitor
                log.debug(f"Registered monitor for {identity}")
            return monitor

    def get(self, identity: ConfigIdentity) -> Optional[DaemonMonitor]:
        with self._lock:
            return self._monitors.get(identity)

    def all(self) -> List[DaemonMonitor]:
        """All registered monitors in insertion order."""
        with self._lock:
            return list(self._monitors.values())

    def __contains__(self, identity: ConfigIdentity) -> bool:
        with self._lock:
            return identity in self._monitors

    def __len__(self) -> int:
        with self._lock:
            return len(self._monitors)
