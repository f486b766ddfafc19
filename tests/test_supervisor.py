"""Tests for supervisor lifecycle and command routing."""

import pytest

from openvpn_supervisor.monitor import STATE_UNKNOWN
from openvpn_supervisor.preferences import PreferencesError
from openvpn_supervisor.supervisor import (
    STATE_RUNNING,
    STATE_STOPPED,
    DaemonCommandError,
    Supervisor,
    is_supervisor_running,
)

from conftest import FakeMonitorFactory, StaticDiscovery, config


class TestLifecycle:

    def test_start_sets_running_flag(self, supervisor):
        assert not is_supervisor_running()

        supervisor.start()

        assert is_supervisor_running()
        assert supervisor.state == STATE_RUNNING

    def test_shutdown_clears_running_flag(self, supervisor):
        supervisor.start()
        supervisor.shutdown()

        assert not is_supervisor_running()
        assert supervisor.state == STATE_STOPPED

    def test_start_sets_enabled_preference(self, supervisor, prefs):
        prefs.set_enabled(False)

        supervisor.start()

        assert prefs.is_enabled()

    def test_shutdown_clears_enabled_preference(self, supervisor, prefs):
        prefs.set_enabled(False)

        supervisor.start()
        supervisor.shutdown()

        assert not prefs.is_enabled()

    def test_shutdown_is_idempotent(self, supervisor):
        supervisor.start()
        supervisor.shutdown()
        supervisor.shutdown()

        assert not is_supervisor_running()

    def test_shutdown_without_start_is_noop(self, supervisor, prefs):
        prefs.set_enabled(True)

        supervisor.shutdown()

        assert prefs.is_enabled()
        assert not is_supervisor_running()

    def test_shutdown_survives_unwritable_preferences(self, supervisor, prefs, monkeypatch):
        supervisor.start()

        def read_only(enabled):
            raise PreferencesError("Cannot write preferences: read-only file system")
        monkeypatch.setattr(prefs, "set_enabled", read_only)

        supervisor.shutdown()

        assert not is_supervisor_running()
        assert supervisor.state == STATE_STOPPED

    def test_second_start_is_ignored(self, supervisor):
        assert supervisor.start() is True
        assert supervisor.start() is False

    def test_context_manager(self, prefs, factory):
        with Supervisor(preferences=prefs, discovery=StaticDiscovery(), factory=factory):
            assert is_supervisor_running()
        assert not is_supervisor_running()

    def test_start_attaches_to_alive_intended_daemon(self, prefs):
        dead, alive = config("test0-DEAD"), config("test1-ALIVE")
        prefs.set_intended_state(dead, False)
        prefs.set_intended_state(alive, True)
        factory = FakeMonitorFactory(prefs, alive=[alive])
        sup = Supervisor(prefs, StaticDiscovery([alive]), factory)

        sup.start()
        try:
            assert factory.last_created.is_alive()
            assert factory.last_created.get_config_identity() == alive
            assert factory.last_created.start_calls == 0
        finally:
            sup.shutdown()

    def test_example_scenario(self, prefs):
        a, b = config("a"), config("b")
        prefs.set_intended_state(a, False)
        prefs.set_intended_state(b, True)
        factory = FakeMonitorFactory(prefs, alive=[b])
        sup = Supervisor(prefs, StaticDiscovery([a, b]), factory)

        sup.start()
        try:
            assert not sup.is_daemon_started(a)
            assert sup.is_daemon_started(b)
            assert sup.has_daemons_started()
        finally:
            sup.shutdown()

    def test_shutdown_leaves_daemons_running(self, supervisor):
        supervisor.start()
        supervisor.daemon_start(config("a"))

        supervisor.shutdown()

        assert supervisor.registry.get(config("a")).is_alive()

    def test_stop_all(self, supervisor):
        supervisor.start()
        supervisor.daemon_start(config("a"))
        supervisor.daemon_start(config("b"))

        supervisor.stop_all()

        assert not supervisor.has_daemons_started()

    def test_reconcile_fault_is_recorded(self, prefs):
        prefs.set_intended_state(config("a"), True)
        factory = FakeMonitorFactory(prefs, failing=[config("a")])
        sup = Supervisor(prefs, StaticDiscovery([config("a")]), factory)

        sup.start()
        try:
            assert "broken" in sup.get_fault(config("a"))
            assert sup.state == STATE_RUNNING
        finally:
            sup.shutdown()


class TestCommands:

    @pytest.fixture(autouse=True)
    def started(self, supervisor):
        supervisor.start()

    def test_daemon_start(self, supervisor):
        supervisor.daemon_start(config("a"))

        monitor = supervisor.registry.get(config("a"))
        assert monitor.is_alive()
        assert monitor.get_config_identity() == config("a")

    def test_daemon_start_twice_keeps_one_monitor(self, supervisor, factory):
        supervisor.daemon_start(config("a"))
        supervisor.daemon_start(config("a"))

        assert len(factory.created) == 1
        assert supervisor.is_daemon_started(config("a"))

    def test_daemon_stop(self, supervisor):
        supervisor.daemon_start(config("a"))

        supervisor.daemon_stop(config("a"))
        supervisor.daemon_stop(config("a"))

        assert not supervisor.registry.get(config("a")).is_alive()
        assert config("a") in supervisor.registry

    def test_daemon_query_state(self, supervisor):
        supervisor.daemon_start(config("a"))

        assert supervisor.daemon_query_state(config("a")) == "CONNECTED"
        assert supervisor.registry.get(config("a")).state_queries == 1

    def test_query_state_without_entry_is_unknown(self, supervisor, factory):
        assert supervisor.daemon_query_state(config("ghost")) == STATE_UNKNOWN
        assert factory.created == []

    def test_daemon_passphrase_routes_to_one_daemon(self, supervisor):
        supervisor.daemon_start(config("a"))
        supervisor.daemon_start(config("b"))

        supervisor.daemon_passphrase(config("a"), "s3cret")

        assert supervisor.registry.get(config("a")).passphrases == ["s3cret"]
        assert supervisor.registry.get(config("b")).passphrases == []

    def test_daemon_username_password(self, supervisor):
        supervisor.daemon_start(config("a"))

        supervisor.daemon_username_password(config("a"), "alice", "pw")

        assert supervisor.registry.get(config("a")).credentials == [("alice", "pw")]

    def test_credentials_without_entry_are_dropped(self, supervisor, factory):
        supervisor.daemon_passphrase(config("ghost"), "s3cret")
        supervisor.daemon_username_password(config("ghost"), "alice", "pw")

        assert factory.created == []

    def test_is_daemon_started(self, supervisor):
        assert not supervisor.is_daemon_started(config("a"))

        supervisor.daemon_start(config("a"))
        assert supervisor.is_daemon_started(config("a"))

        supervisor.daemon_stop(config("a"))
        assert not supervisor.is_daemon_started(config("a"))

    def test_has_daemons_started(self, supervisor):
        assert not supervisor.has_daemons_started()

        supervisor.daemon_start(config("a"))
        assert supervisor.has_daemons_started()

        supervisor.daemon_stop(config("a"))
        assert not supervisor.has_daemons_started()

    def test_monitor_failure_raises_and_records_fault(self, supervisor, factory):
        factory.failing.add(config("bad"))

        with pytest.raises(DaemonCommandError):
            supervisor.daemon_start(config("bad"))

        assert supervisor.get_fault(config("bad"))
        assert supervisor.get_fault(config("a")) is None

    def test_successful_command_clears_fault(self, supervisor, factory):
        factory.failing.add(config("bad"))
        with pytest.raises(DaemonCommandError):
            supervisor.daemon_start(config("bad"))

        supervisor.registry.get(config("bad")).fail = False
        supervisor.daemon_start(config("bad"))

        assert supervisor.get_fault(config("bad")) is None

    def test_list_daemons(self, supervisor, prefs):
        prefs.set_intended_state(config("a"), True)
        supervisor.daemon_start(config("a"))
        supervisor.daemon_stop(config("b"))

        daemons = supervisor.list_daemons()

        assert [d["name"] for d in daemons] == ["a", "b"]
        assert daemons[0]["alive"] and daemons[0]["intended"]
        assert not daemons[1]["alive"]


class TestExclusive:

    def test_start_stops_other_daemon(self, prefs, factory):
        sup = Supervisor(prefs, StaticDiscovery(), factory, exclusive=True)
        sup.start()
        try:
            sup.daemon_start(config("a"))
            sup.daemon_start(config("b"))

            assert not sup.is_daemon_started(config("a"))
            assert sup.is_daemon_started(config("b"))
        finally:
            sup.shutdown()
