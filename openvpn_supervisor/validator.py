"""Input validation for supervisor control commands."""

import re
from typing import Optional, Tuple

from .config import CONFIG_SUFFIXES

# Valid commands
VALID_COMMANDS = {"start", "stop", "state", "passphrase", "userpass", "status"}

# Commands addressing one configuration
CONFIG_COMMANDS = {"start", "stop", "state", "passphrase", "userpass"}

# Username: email or simple username (e.g., user@company.com, john_doe)
RE_USERNAME = re.compile(r"^[a-zA-Z0-9@._+-]+$")

# Secret: anything printable on a single line
RE_SECRET = re.compile(r"^[^\x00-\x1f]+$")

# Length limits
MAX_PATH_LEN = 4096
MAX_USERNAME_LEN = 254
MAX_SECRET_LEN = 1024


def _validate_config(config) -> Optional[str]:
    if not isinstance(config, str) or not config:
        return "Missing 'config' parameter"
    if len(config) > MAX_PATH_LEN or any(c in config for c in "\x00\n\r"):
        return "Invalid config path"
    if not config.startswith("/"):
        return "Config path must be absolute"
    if not config.endswith(CONFIG_SUFFIXES):
        return "Config must be a .conf or .ovpn file"
    return None


def _validate_secret(secret) -> Optional[str]:
    if not isinstance(secret, str) or not secret:
        return "Missing 'secret' parameter"
    if len(secret) > MAX_SECRET_LEN or not RE_SECRET.match(secret):
        return "Invalid secret format"
    return None


def validate_request(request: dict) -> Tuple[bool, Optional[str]]:
    """Validate an incoming request.

    Returns:
        (True, None) if valid, (False, error_message) if invalid
    """
    if not isinstance(request, dict):
        return False, "Request must be a JSON object"

    command = request.get("command")
    if not command or command not in VALID_COMMANDS:
        return False, f"Invalid command: {command}"

    config = request.get("config")
    if command in CONFIG_COMMANDS or config is not None:
        error = _validate_config(config)
        if error:
            return False, error

    if command in ("passphrase", "userpass"):
        error = _validate_secret(request.get("secret"))
        if error:
            return False, error

    if command == "userpass":
        username = request.get("username")
        if not isinstance(username, str) or not username:
            return False, "Missing 'username' parameter"
        if len(username) > MAX_USERNAME_LEN or not RE_USERNAME.match(username):
            return False, "Invalid username format"

    return True, None
