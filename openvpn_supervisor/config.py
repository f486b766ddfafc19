"""Discovery of OpenVPN configuration files."""

import logging
from pathlib import Path
from typing import List, Optional, Union

from .identity import ConfigIdentity
from .platform import get_config_dir

log = logging.getLogger(__name__)

CONFIG_SUFFIXES = (".conf", ".ovpn")


class ConfigDirectory:
    """Lists the configurations found in one directory."""

    def __init__(self, path: Optional[Union[str, Path]] = None):
        """Initialize discovery.

        Args:
            path: Directory to scan, defaults to the user config dir
        """
        self.path = Path(path) if path else get_config_dir()

    def list_configurations(self) -> List[ConfigIdentity]:
        """List configuration identities, sorted by file name.

        Returns:
            List of identities; empty if the directory does not exist
        """
        if not self.path.is_dir():
            log.info(f"Config directory {self.path} does not exist")
            return []

        configs = [
            ConfigIdentity.from_path(p)
            for p in sorted(self.path.iterdir())
            if p.is_file() and p.suffix in CONFIG_SUFFIXES
        ]
        log.debug(f"Discovered {len(configs)} configs in {self.path}")
        return configs

    def __repr__(self) -> str:
        return f"ConfigDirectory({str(self.path)!r})"
