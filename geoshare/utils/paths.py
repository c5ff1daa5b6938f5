"""
Where GeoShare keeps its config and logs.

Modes (GEOSHARE_PATH_MODE, set by main.py from --xdg / --dot-data-dir):
- dev: ./geoshare_dev_paths/<kind>/ next to main.py (default)
- xdg: ~/.config/geoshare/ and ~/.local/share/geoshare/
- dot: ~/.geoshare/<kind>/

Non-default profiles get their own subdirectory in every mode.
"""

import os
from pathlib import Path
from typing import Dict, Optional


PATH_MODES = ('dev', 'xdg', 'dot')
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


def get_path_mode() -> str:
    mode = os.getenv('GEOSHARE_PATH_MODE', 'dev').lower()
    return mode if mode in PATH_MODES else 'dev'


class Paths:
    """Directories and well-known files of one profile."""

    def __init__(self, profile: str = 'default', mode: Optional[str] = None):
        """
        Args:
            profile: Profile name ('default' uses the base directories directly)
            mode: One of PATH_MODES (default: from GEOSHARE_PATH_MODE)
        """
        self.profile = profile
        self.mode = mode or get_path_mode()

    def _root(self, kind: str) -> Path:
        home = Path.home()
        if self.mode == 'xdg':
            if kind == 'config':
                return home / '.config' / 'geoshare'
            return home / '.local' / 'share' / 'geoshare' / kind
        if self.mode == 'dot':
            return home / '.geoshare' / kind
        return PROJECT_ROOT / 'geoshare_dev_paths' / kind

    def _profile_dir(self, kind: str) -> Path:
        path = self._root(kind)
        if self.profile != 'default':
            path = path / self.profile
        path.mkdir(parents=True, exist_ok=True, mode=0o700)
        return path

    @property
    def config_dir(self) -> Path:
        return self._profile_dir('config')

    @property
    def log_dir(self) -> Path:
        return self._profile_dir('logs')

    @property
    def config_path(self) -> Path:
        """Default config file (geoshare.yaml in the config dir)."""
        return self.config_dir / 'geoshare.yaml'

    def main_log_path(self) -> Path:
        return self.log_dir / 'geoshare.log'

    def xml_log_path(self) -> Path:
        """Raw XMPP stream log, only written when logging.xml is enabled."""
        return self.log_dir / 'xmpp-protocol.log'


_paths_by_profile: Dict[str, Paths] = {}


def get_paths(profile: str = 'default') -> Paths:
    """Shared Paths instance for a profile."""
    if profile not in _paths_by_profile:
        _paths_by_profile[profile] = Paths(profile)
    return _paths_by_profile[profile]
