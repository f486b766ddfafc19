"""Configuration identity used as registry and preference key."""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Union


@dataclass(frozen=True, order=True)
class ConfigIdentity:
    """Stable key naming one OpenVPN configuration file.

    Two identities are equal when they point at the same normalised path.
    """

    path: str

    @classmethod
    def from_path(cls, path: Union[str, Path, "ConfigIdentity"]) -> "ConfigIdentity":
        """Build an identity from a path, normalising it.

        Args:
            path: Config file path (relative paths are resolved against cwd)

        Returns:
            ConfigIdentity instance
        """
        if isinstance(path, ConfigIdentity):
            return path
        return cls(os.path.abspath(os.path.expanduser(str(path))))

    @property
    def name(self) -> str:
        """Config name without directory and extension."""
        return Path(self.path).stem

    @property
    def directory(self) -> str:
        return os.path.dirname(self.path)

    def safe_name(self) -> str:
        """Name usable inside runtime file names."""
        return self.name.replace("/", "_").replace(":", "_").replace(" ", "_")

    def __str__(self) -> str:
        return self.path
