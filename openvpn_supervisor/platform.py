"""Cross-platform paths and process helpers."""

import os
import sys
from pathlib import Path
from typing import Optional, Union

import psutil
from platformdirs import (
    user_config_dir,
    user_log_dir,
    user_runtime_dir,
    user_state_dir,
)

APP_NAME = "openvpn-supervisor"
OPENVPN_NAMES = {"openvpn", "openvpn.exe"}


# === Paths ===

def get_config_dir() -> Path:
    """Get directory holding OpenVPN configuration files."""
    override = os.environ.get("OPENVPN_SUPERVISOR_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path(user_config_dir(APP_NAME)) / "configs"


def get_preferences_file() -> Path:
    """Get path of the intended-state preferences file."""
    return Path(user_state_dir(APP_NAME)) / "preferences.json"


def get_runtime_dir() -> Path:
    """Get directory for sockets and PID files."""
    if sys.platform == "win32":
        base = Path(os.environ.get("PROGRAMDATA", "C:/ProgramData")) / APP_NAME
    else:
        base = Path(user_runtime_dir(APP_NAME))
    base.mkdir(parents=True, exist_ok=True)
    return base


def get_socket_path() -> str:
    """Get supervisor control socket path."""
    override = os.environ.get("OPENVPN_SUPERVISOR_SOCKET")
    if override:
        return override
    return str(get_runtime_dir() / "supervisor.sock")


def get_pid_file(safe_name: str) -> Path:
    """Get PID file path for one openvpn daemon."""
    return get_runtime_dir() / f"openvpn-{safe_name}.pid"


def get_management_socket(safe_name: str) -> str:
    """Get management interface socket path for one openvpn daemon."""
    return str(get_runtime_dir() / f"openvpn-{safe_name}.mgmt")


def get_log_file() -> Path:
    """Get supervisor log file path."""
    base = Path(user_log_dir(APP_NAME))
    base.mkdir(parents=True, exist_ok=True)
    return base / "supervisor.log"


# === Process Management ===

def find_openvpn_for_config(config_path: str) -> Optional[psutil.Process]:
    """Find a running openvpn process started with the given config.

    Args:
        config_path: Absolute config file path

    Returns:
        Process object or None
    """
    for proc in psutil.process_iter(["name", "pid", "cmdline"]):
        try:
            if proc.info["name"] not in OPENVPN_NAMES:
                continue
            if _cmdline_uses_config(proc.info["cmdline"] or [], config_path):
                return proc
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
            continue
    return None


def _cmdline_uses_config(cmdline: list, config_path: str) -> bool:
    for i, arg in enumerate(cmdline):
        if arg == "--config" and i + 1 < len(cmdline):
            value = cmdline[i + 1]
        elif arg.startswith("--config="):
            value = arg.split("=", 1)[1]
        else:
            continue
        if os.path.abspath(value) == config_path:
            return True
    return False


def read_pid_file(pid_file: Path) -> Optional[int]:
    """Read a PID file, returning None when missing or malformed."""
    try:
        return int(pid_file.read_text().strip())
    except (ValueError, OSError):
        return None


def kill_process(pid: Union[int, psutil.Process], timeout: float = 10.0) -> bool:
    """Terminate a process gracefully, then forcefully.

    Uses SIGTERM first so openvpn can restore routes and DNS, then
    SIGKILL if it does not exit within the timeout.

    Args:
        pid: Process ID, or a Process object obtained earlier so a
            reused PID is never signalled
        timeout: Seconds to wait before force kill

    Returns:
        True if process is dead
    """
    if isinstance(pid, psutil.Process):
        proc = pid
        if not proc.is_running():
            return True  # Already dead, PID may belong to someone else now
    else:
        try:
            proc = psutil.Process(pid)
        except psutil.NoSuchProcess:
            return True  # Already dead

    try:
        proc.terminate()
        proc.wait(timeout=timeout)
        return True
    except psutil.TimeoutExpired:
        pass
    except psutil.NoSuchProcess:
        return True

    try:
        proc.kill()
        proc.wait(timeout=timeout)
        return True
    except psutil.NoSuchProcess:
        return True
    except (psutil.TimeoutExpired, psutil.AccessDenied):
        return False


def openvpn_process_for_pid(pid: int, config_path: str) -> Optional[psutil.Process]:
    """Get the process with this PID if it is openvpn running the config.

    A PID file can outlive its process and the PID be reused by an
    unrelated program, so name and command line must both match.

    Args:
        pid: Process ID read from a PID file
        config_path: Absolute config file path

    Returns:
        Process object or None
    """
    try:
        proc = psutil.Process(pid)
        if proc.name() in OPENVPN_NAMES and _cmdline_uses_config(proc.cmdline(), config_path):
            return proc
    except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
        pass
    return None


def is_process_alive(proc: psutil.Process) -> bool:
    """Check if a process is still running.

    psutil compares the creation time, so a reused PID reports False.

    Args:
        proc: Process object obtained earlier

    Returns:
        True if running
    """
    try:
        return proc.is_running() and proc.status() != psutil.STATUS_ZOMBIE
    except (psutil.NoSuchProcess, psutil.AccessDenied):
        return False
