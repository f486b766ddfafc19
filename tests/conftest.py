"""Shared fixtures: fake monitors standing in for openvpn processes."""

import pytest

from openvpn_supervisor.identity import ConfigIdentity
from openvpn_supervisor.preferences import Preferences
from openvpn_supervisor.supervisor import Supervisor


class FakeDaemonMonitor:
    """In-memory monitor recording every routed call."""

    def __init__(self, identity, preferences, alive=False, fail=False):
        self.identity = identity
        self.preferences = preferences
        self.alive = alive
        self.fail = fail
        self.start_calls = 0
        self.stop_calls = 0
        self.state_queries = 0
        self.passphrases = []
        self.credentials = []

    def _check(self):
        if self.fail:
            raise RuntimeError(f"monitor for {self.identity.name} broken")

    def start(self):
        self._check()
        self.start_calls += 1
        self.alive = True

    def stop(self):
        self._check()
        self.stop_calls += 1
        self.alive = False

    def is_alive(self):
        return self.alive

    def get_config_identity(self):
        return self.identity

    def query_state(self):
        self._check()
        self.state_queries += 1
        return "CONNECTED" if self.alive else "disconnected"

    def supply_passphrase(self, secret):
        self.passphrases.append(secret)

    def supply_username_password(self, user, secret):
        self.credentials.append((user, secret))

    def switch_to_intended_state(self):
        self._check()
        intended = self.preferences.get_intended_state(self.identity)
        if intended and not self.alive:
            self.start()
        elif not intended and self.alive:
            self.stop()


class FakeMonitorFactory:
    """Creates FakeDaemonMonitors; configs listed in `alive` start alive."""

    def __init__(self, preferences, alive=(), failing=()):
        self.preferences = preferences
        self.alive = set(alive)
        self.failing = set(failing)
        self.created = []

    def create_daemon_monitor_for(self, identity):
        monitor = FakeDaemonMonitor(
            identity,
            self.preferences,
            alive=identity in self.alive,
            fail=identity in self.failing,
        )
        self.created.append(monitor)
        return monitor

    @property
    def last_created(self):
        return self.created[-1]


class StaticDiscovery:
    def __init__(self, configs=()):
        self.configs = list(configs)

    def list_configurations(self):
        return list(self.configs)


def config(name):
    return ConfigIdentity.from_path(f"/etc/openvpn/{name}.conf")


@pytest.fixture
def prefs(tmp_path):
    return Preferences(tmp_path / "preferences.json")


@pytest.fixture
def factory(prefs):
    return FakeMonitorFactory(prefs)


@pytest.fixture
def discovery():
    return StaticDiscovery()


@pytest.fixture
def supervisor(prefs, discovery, factory):
    sup = Supervisor(preferences=prefs, discovery=discovery, factory=factory)
    yield sup
    sup.shutdown()
