"""
YAML configuration for GeoShare.

Example:

    xmpp:
      jid: alice@example.org
      password: secret          # or GEOSHARE_PASSWORD
      endpoint: wss://example.org:5281/xmpp-websocket   # optional
      server: xmpp.example.org  # optional, direct TCP
      port: 5222
      discover: true            # XEP-0156 lookup when no endpoint/server is given
    sharing:
      interval_seconds: 30
      autostart: false
    location:
      lat: 51.5
      lon: -0.09
      accuracy: 25
      # or: file: location.yaml
    logging:
      level: INFO
      console: {enabled: true}
      file: {enabled: true, path: geoshare.log}
      xml: {enabled: false, path: xmpp-protocol.log}
      retention_days: 14
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from geoloc_xmpp.constants import DEFAULT_ACCURACY_METERS, DEFAULT_CLIENT_PORT
from geoloc_xmpp.models import Endpoint


logger = logging.getLogger('geoshare.config')

DEFAULT_INTERVAL_SECONDS = 30
MIN_INTERVAL_SECONDS = 5
LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


class ConfigError(Exception):
    """Configuration file missing, unreadable or invalid."""


@dataclass
class XMPPConfig:
    jid: str
    password: str
    endpoint: Optional[str] = None
    server: Optional[str] = None
    port: int = DEFAULT_CLIENT_PORT
    discover: bool = True

    @property
    def domain(self) -> str:
        return self.jid.split('/', 1)[0].rpartition('@')[2]

    def manual_endpoint(self) -> Optional[Endpoint]:
        """Endpoint given in the config (endpoint wins over server/port), if any."""
        if self.endpoint:
            return Endpoint.parse(self.endpoint)
        if self.server:
            return Endpoint.direct(self.server, self.port)
        return None


@dataclass
class SharingConfig:
    interval_seconds: int = DEFAULT_INTERVAL_SECONDS
    autostart: bool = False


@dataclass
class LocationConfig:
    """Fixed position, or a file that other tools keep updated."""
    lat: Optional[float] = None
    lon: Optional[float] = None
    accuracy: float = DEFAULT_ACCURACY_METERS
    altitude: Optional[float] = None
    speed: Optional[float] = None
    file: Optional[Path] = None

    @property
    def is_configured(self) -> bool:
        return self.file is not None or (self.lat is not None and self.lon is not None)


@dataclass
class LoggingConfig:
    level: str = 'INFO'
    console: bool = True
    file_enabled: bool = True
    file_path: Optional[Path] = None
    xml_enabled: bool = False
    xml_path: Optional[Path] = None
    retention_days: int = 0


@dataclass
class AppConfig:
    xmpp: XMPPConfig
    sharing: SharingConfig = field(default_factory=SharingConfig)
    location: LocationConfig = field(default_factory=LocationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    config_dir: Path = field(default_factory=Path.cwd)


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name) or {}
    if not isinstance(value, dict):
        raise ConfigError(f"'{name}' must be a mapping")
    return value


def _number(section: Dict[str, Any], key: str, where: str, default=None) -> Optional[float]:
    value = section.get(key, default)
    if value is None:
        return None
    if isinstance(value, bool):
        raise ConfigError(f"{where}.{key} must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{where}.{key} must be a number, got {value!r}")


def _path(value: Optional[str], config_dir: Path) -> Optional[Path]:
    """Relative paths are resolved against the config file's directory."""
    if not value:
        return None
    path = Path(value).expanduser()
    return path if path.is_absolute() else config_dir / path


def _parse_xmpp(section: Dict[str, Any]) -> XMPPConfig:
    jid = str(section.get('jid') or '').strip()
    if not jid or '@' not in jid:
        raise ConfigError("xmpp.jid is required (user@domain)")

    password = os.getenv('GEOSHARE_PASSWORD') or section.get('password')
    if not password:
        raise ConfigError("xmpp.password is required (or set GEOSHARE_PASSWORD)")

    port = section.get('port', DEFAULT_CLIENT_PORT)
    if isinstance(port, bool) or not isinstance(port, int) or not 0 < port < 65536:
        raise ConfigError(f"xmpp.port must be a TCP port, got {port!r}")

    config = XMPPConfig(
        jid=jid,
        password=str(password),
        endpoint=section.get('endpoint') or None,
        server=section.get('server') or None,
        port=port,
        discover=bool(section.get('discover', True)),
    )
    if config.endpoint:
        try:
            Endpoint.parse(config.endpoint)
        except ValueError as e:
            raise ConfigError(f"xmpp.endpoint: {e}")
    return config


def _parse_sharing(section: Dict[str, Any]) -> SharingConfig:
    interval = section.get('interval_seconds', DEFAULT_INTERVAL_SECONDS)
    if isinstance(interval, bool) or not isinstance(interval, (int, float)):
        raise ConfigError(f"sharing.interval_seconds must be a number, got {interval!r}")
    if interval < MIN_INTERVAL_SECONDS:
        raise ConfigError(f"sharing.interval_seconds must be at least {MIN_INTERVAL_SECONDS}")
    return SharingConfig(interval_seconds=int(interval), autostart=bool(section.get('autostart', False)))


def _parse_location(section: Dict[str, Any], config_dir: Path) -> LocationConfig:
    location = LocationConfig(
        lat=_number(section, 'lat', 'location'),
        lon=_number(section, 'lon', 'location'),
        accuracy=_number(section, 'accuracy', 'location', DEFAULT_ACCURACY_METERS),
        altitude=_number(section, 'altitude', 'location'),
        speed=_number(section, 'speed', 'location'),
        file=_path(section.get('file'), config_dir),
    )
    if (location.lat is None) != (location.lon is None):
        raise ConfigError("location needs both lat and lon")
    if location.lat is not None and not -90 <= location.lat <= 90:
        raise ConfigError(f"location.lat out of range: {location.lat}")
    if location.lon is not None and not -180 <= location.lon <= 180:
        raise ConfigError(f"location.lon out of range: {location.lon}")
    if location.accuracy < 0:
        raise ConfigError("location.accuracy must not be negative")
    return location


def _toggle(section: Dict[str, Any], key: str) -> Dict[str, Any]:
    """'console: false' is shorthand for 'console: {enabled: false}'."""
    value = section.get(key)
    if isinstance(value, bool):
        return {'enabled': value}
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"logging.{key} must be a mapping or a boolean")
    return value


def _parse_logging(section: Dict[str, Any], config_dir: Path) -> LoggingConfig:
    level = str(section.get('level', 'INFO')).upper()
    if level not in LOG_LEVELS:
        raise ConfigError(f"logging.level must be one of {', '.join(LOG_LEVELS)}")

    console = _toggle(section, 'console')
    file_section = _toggle(section, 'file')
    xml_section = _toggle(section, 'xml')

    retention = section.get('retention_days', 0)
    if isinstance(retention, bool) or not isinstance(retention, int) or retention < 0:
        raise ConfigError("logging.retention_days must be a non-negative integer")

    return LoggingConfig(
        level=level,
        console=bool(console.get('enabled', True)),
        file_enabled=bool(file_section.get('enabled', True)),
        file_path=_path(file_section.get('path'), config_dir),
        xml_enabled=bool(xml_section.get('enabled', False)),
        xml_path=_path(xml_section.get('path'), config_dir),
        retention_days=retention,
    )


def parse_config(data: Optional[Dict[str, Any]], config_dir: Optional[Path] = None) -> AppConfig:
    """
    Validate a loaded YAML document.

    Args:
        data: Parsed YAML mapping
        config_dir: Base for relative paths (default: current directory)

    Raises:
        ConfigError: On missing or invalid values
    """
    if not isinstance(data, dict):
        raise ConfigError("Config must be a YAML mapping")

    config_dir = config_dir or Path.cwd()
    return AppConfig(
        xmpp=_parse_xmpp(_section(data, 'xmpp')),
        sharing=_parse_sharing(_section(data, 'sharing')),
        location=_parse_location(_section(data, 'location'), config_dir),
        logging=_parse_logging(_section(data, 'logging'), config_dir),
        config_dir=config_dir,
    )


def load_config(config_path) -> AppConfig:
    """
    Load and validate a YAML config file.

    Raises:
        ConfigError: File missing, not valid YAML, or invalid values
    """
    config_file = Path(config_path)
    if not config_file.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_file, 'r') as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}")

    config = parse_config(data, config_file.parent.absolute())
    logger.debug(f"Loaded config from {config_file}")
    return config
