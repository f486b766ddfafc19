"""Startup reconciliation of daemon state against intended state."""

import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Protocol

from .identity import ConfigIdentity
from .preferences import Preferences
from .registry import DaemonRegistry

log = logging.getLogger(__name__)


class ConfigDiscovery(Protocol):
    def list_configurations(self) -> List[ConfigIdentity]:
        ...


@dataclass
class ReconcileReport:
    """Outcome of one reconciliation pass."""

    converged: List[ConfigIdentity] = field(default_factory=list)
    exclusive_stopped: List[ConfigIdentity] = field(default_factory=list)
    faults: Dict[ConfigIdentity, str] = field(default_factory=dict)


class Reconciler:
    """Converges every discovered daemon to its intended state.

    Identities are processed one by one in discovery order; each one is
    inspected, then its intended state is re-read and applied. A failure
    for one identity is recorded and does not stop the others.

    With exclusive=True at most one daemon stays alive: the first
    identity found alive after its own convergence keeps running. Later
    ones are never started, and are stopped if already running.
    """

    def __init__(
        self,
        registry: DaemonRegistry,
        discovery: ConfigDiscovery,
        preferences: Preferences,
        exclusive: bool = False,
        on_fault: Optional[Callable[[ConfigIdentity, Exception], None]] = None,
    ):
        self._registry = registry
        self._discovery = discovery
        self._preferences = preferences
        self._exclusive = exclusive
        self._on_fault = on_fault

    def _discover(self) -> List[ConfigIdentity]:
        try:
            return list(self._discovery.list_configurations())
        except Exception as e:
            log.error(f"Config discovery failed, reconciling nothing: {e}")
            return []

    def reconcile(self) -> ReconcileReport:
        report = ReconcileReport()
        identities = self._discover()
        log.info(f"Reconciling {len(identities)} configs")

        keeper: Optional[ConfigIdentity] = None
        for identity in identities:
            try:
                monitor = self._registry.get_or_create(identity)
                intended = self._preferences.get_intended_state(identity)
                log.debug(
                    f"{identity.name}: alive={monitor.is_alive()} intended={intended}"
                )
                if keeper is not None:
                    # Never started, only stopped if it is already running
                    if monitor.is_alive():
                        log.warning(
                            f"Stopping {identity.name}: {keeper.name} is already running"
                        )
                        monitor.stop()
                        report.exclusive_stopped.append(identity)
                    continue

                monitor.switch_to_intended_state()
                report.converged.append(identity)
                if self._exclusive and monitor.is_alive():
                    keeper = identity
            except Exception as e:
                log.error(f"Reconciling {identity.name} failed: {e}")
                report.faults[identity] = str(e)
                if self._on_fault:
                    self._on_fault(identity, e)

        log.info(
            f"Reconciled {len(report.converged)} configs, "
            f"{len(report.faults)} faults"
        )
        return report
