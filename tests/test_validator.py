"""Tests for control request validation."""

import pytest

from openvpn_supervisor.validator import validate_request


class TestValidateRequest:

    @pytest.mark.parametrize("request_", [
        {"command": "start", "config": "/etc/openvpn/office.conf"},
        {"command": "state", "config": "/etc/openvpn/office.ovpn"},
        {"command": "status"},
        {"command": "passphrase", "config": "/etc/openvpn/a.conf", "secret": "p a$$"},
        {"command": "userpass", "config": "/etc/openvpn/a.conf",
         "username": "alice@example.com", "secret": "pw"},
    ])
    def test_valid(self, request_):
        assert validate_request(request_) == (True, None)

    def test_not_a_dict(self):
        valid, error = validate_request(["start"])
        assert not valid
        assert "JSON object" in error

    def test_unknown_command(self):
        valid, error = validate_request({"command": "reboot"})
        assert not valid
        assert "Invalid command" in error

    def test_missing_config(self):
        assert validate_request({"command": "start"})[0] is False

    def test_relative_config(self):
        valid, error = validate_request({"command": "stop", "config": "office.conf"})
        assert not valid
        assert "absolute" in error

    def test_config_with_newline(self):
        assert validate_request({"command": "stop", "config": "/a\n.conf"})[0] is False

    def test_wrong_extension(self):
        assert validate_request({"command": "start", "config": "/etc/passwd"})[0] is False

    def test_bad_username(self):
        valid, error = validate_request({
            "command": "userpass",
            "config": "/etc/openvpn/a.conf",
            "username": "alice\nbob",
            "secret": "pw",
        })
        assert not valid
        assert "username" in error

    def test_secret_with_control_chars(self):
        valid, _ = validate_request({
            "command": "passphrase",
            "config": "/etc/openvpn/a.conf",
            "secret": "line1\nline2",
        })
        assert not valid
