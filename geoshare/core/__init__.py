"""
Core application logic for GeoShare.
"""

from .config import AppConfig, ConfigError, load_config, parse_config
from .controller import GeoShareController
from .location import FixedLocation, FileLocation, LocationProvider, provider_from_config
from .view import ConsoleView

__all__ = [
    'AppConfig',
    'ConfigError',
    'load_config',
    'parse_config',
    'GeoShareController',
    'FixedLocation',
    'FileLocation',
    'LocationProvider',
    'provider_from_config',
    'ConsoleView',
]
