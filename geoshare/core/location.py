"""
Local location providers for the periodic publisher.

FixedLocation publishes a configured position; FileLocation re-reads a
YAML/JSON file on every tick so an external tool (GPS daemon, script) can
keep it current.
"""

import logging
from pathlib import Path
from typing import Optional

import yaml

from geoloc_xmpp.constants import DEFAULT_ACCURACY_METERS
from geoloc_xmpp.models import LocalLocation, parse_timestamp, utcnow

from .config import LocationConfig


logger = logging.getLogger('geoshare.location')


class LocationProvider:
    """Source of the local user's current position."""

    def current(self) -> Optional[LocalLocation]:
        raise NotImplementedError


class FixedLocation(LocationProvider):
    """Always the same position, freshly timestamped."""

    def __init__(self, lat: float, lon: float, accuracy: float = DEFAULT_ACCURACY_METERS,
                 altitude: Optional[float] = None, speed: Optional[float] = None):
        self.lat = lat
        self.lon = lon
        self.accuracy = accuracy
        self.altitude = altitude
        self.speed = speed

    def current(self) -> Optional[LocalLocation]:
        return LocalLocation(
            lat=self.lat,
            lon=self.lon,
            accuracy=self.accuracy,
            altitude=self.altitude,
            speed=self.speed,
            timestamp=utcnow()
        )


class FileLocation(LocationProvider):
    """
    Position read from a file with the same keys as the config's location
    section (lat, lon, accuracy, altitude, speed) plus an optional timestamp.
    """

    def __init__(self, path: Path):
        self.path = Path(path)

    def current(self) -> Optional[LocalLocation]:
        try:
            with open(self.path, 'r') as f:
                data = yaml.safe_load(f)
        except OSError as e:
            logger.warning(f"Cannot read location file {self.path}: {e}")
            return None
        except yaml.YAMLError as e:
            logger.warning(f"Invalid location file {self.path}: {e}")
            return None

        if not isinstance(data, dict):
            logger.warning(f"Location file {self.path} is not a mapping")
            return None

        try:
            lat = float(data['lat'])
            lon = float(data['lon'])
            accuracy = float(data.get('accuracy', DEFAULT_ACCURACY_METERS))
            altitude = float(data['altitude']) if data.get('altitude') is not None else None
            speed = float(data['speed']) if data.get('speed') is not None else None
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Location file {self.path} has no usable position: {e}")
            return None

        timestamp = parse_timestamp(str(data['timestamp'])) if data.get('timestamp') else None
        return LocalLocation(
            lat=lat,
            lon=lon,
            accuracy=accuracy,
            altitude=altitude,
            speed=speed,
            timestamp=timestamp or utcnow()
        )


def provider_from_config(config: LocationConfig) -> Optional[LocationProvider]:
    """Build the provider described by the config, or None if no location is configured."""
    if not config.is_configured:
        return None
    if config.file is not None:
        return FileLocation(config.file)
    return FixedLocation(config.lat, config.lon, config.accuracy, config.altitude, config.speed)
