"""Command line interface for openvpn-supervisor."""

import argparse
import getpass
import os
import sys

from .client import SupervisorClient, SupervisorError
from .config import ConfigDirectory
from .identity import ConfigIdentity
from .preferences import Preferences

GREEN = "\033[32m"
RED = "\033[31m"
YELLOW = "\033[33m"
NC = "\033[0m"


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").lower() in ("1", "true", "yes", "on")


def _resolve_config(value: str, config_dir: ConfigDirectory) -> ConfigIdentity:
    """Accept a config name (e.g. 'office') or a path."""
    if os.sep not in value and not value.endswith((".conf", ".ovpn")):
        for identity in config_dir.list_configurations():
            if identity.name == value:
                return identity
        print(f"{RED}No config named '{value}' in {config_dir.path}{NC}")
        sys.exit(1)
    return ConfigIdentity.from_path(value)


def _check(response: dict) -> dict:
    if not response.get("success"):
        print(f"{RED}Error: {response.get('error', 'unknown error')}{NC}")
        sys.exit(1)
    return response


def cmd_serve(args):
    from .server import SupervisorServer, setup_logging
    from .supervisor import Supervisor

    setup_logging(args.debug)
    supervisor = Supervisor(
        preferences=Preferences(),
        discovery=ConfigDirectory(args.config_dir),
        exclusive=args.exclusive or _env_flag("OPENVPN_SUPERVISOR_EXCLUSIVE"),
    )
    SupervisorServer(supervisor, args.socket).serve()


def cmd_list(args):
    config_dir = ConfigDirectory(args.config_dir)
    prefs = Preferences()
    configs = config_dir.list_configurations()
    if not configs:
        print(f"{YELLOW}No configs found in {config_dir.path}{NC}")
        return
    for identity in configs:
        mark = f"{GREEN}enabled{NC}" if prefs.get_intended_state(identity) else "disabled"
        print(f"  {identity.name:<24} {mark}  {identity.path}")


def cmd_intent(args, intended: bool):
    identity = _resolve_config(args.config, ConfigDirectory(args.config_dir))
    Preferences().set_intended_state(identity, intended)
    word = "enabled" if intended else "disabled"
    print(f"{GREEN}{identity.name} {word}{NC}")


def cmd_client(args):
    client = SupervisorClient(args.socket)
    config_dir = ConfigDirectory(args.config_dir)

    if args.command == "status":
        if args.config:
            resp = _check(client.status(_resolve_config(args.config, config_dir)))
            state = f"{GREEN}running{NC}" if resp["alive"] else "stopped"
            print(f"{args.config}: {state}")
            if resp.get("fault"):
                print(f"{RED}Last error: {resp['fault']}{NC}")
            return
        resp = _check(client.status())
        for daemon in resp["daemons"]:
            state = f"{GREEN}running{NC}" if daemon["alive"] else "stopped"
            print(f"  {daemon['name']:<24} {state}")
            if daemon.get("fault"):
                print(f"    {RED}{daemon['fault']}{NC}")
        if not resp["running"]:
            print(f"{YELLOW}No daemons running{NC}")
        return

    identity = _resolve_config(args.config, config_dir)

    if args.command == "start":
        _check(client.start(identity))
        print(f"{GREEN}Started {identity.name}{NC}")
    elif args.command == "stop":
        _check(client.stop(identity))
        print(f"{GREEN}Stopped {identity.name}{NC}")
    elif args.command == "state":
        print(_check(client.state(identity))["state"])
    elif args.command == "passphrase":
        secret = getpass.getpass("Private key passphrase: ")
        _check(client.passphrase(identity, secret))
    elif args.command == "userpass":
        username = args.username or input("Username: ")
        secret = getpass.getpass("Password: ")
        _check(client.username_password(identity, username, secret))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="openvpn-supervisor",
        description="Keep OpenVPN daemons running according to their intended state",
    )
    parser.add_argument("--config-dir", help="Directory holding .conf/.ovpn files")
    parser.add_argument("--socket", help="Supervisor control socket path")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the supervisor")
    serve.add_argument("--exclusive", action="store_true", help="Allow only one running daemon")

    sub.add_parser("list", help="List configs and their intended state")

    for name, help_text in [
        ("enable", "Mark a config as intended to run"),
        ("disable", "Mark a config as intended to be stopped"),
        ("start", "Start the daemon for a config"),
        ("stop", "Stop the daemon for a config"),
        ("state", "Query the daemon state"),
    ]:
        sub.add_parser(name, help=help_text).add_argument("config")

    passphrase = sub.add_parser("passphrase", help="Supply a private key passphrase")
    passphrase.add_argument("config")

    userpass = sub.add_parser("userpass", help="Supply username and password")
    userpass.add_argument("config")
    userpass.add_argument("--username", "-u")

    status = sub.add_parser("status", help="Show daemon status")
    status.add_argument("config", nargs="?")

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    if args.command == "serve":
        cmd_serve(args)
    elif args.command == "list":
        cmd_list(args)
    elif args.command in ("enable", "disable"):
        cmd_intent(args, args.command == "enable")
    else:
        try:
            cmd_client(args)
        except SupervisorError as e:
            print(f"{RED}{e}{NC}")
            sys.exit(1)


if __name__ == "__main__":
    main()
