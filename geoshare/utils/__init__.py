"""
Utility modules for GeoShare.
"""

from .paths import get_paths, get_path_mode, Paths
from .logger import (
    setup_main_logger,
    setup_xml_logger,
    cleanup_old_logs
)
from .jid_utils import generate_resource, full_jid

__all__ = [
    'get_paths',
    'get_path_mode',
    'Paths',
    'setup_main_logger',
    'setup_xml_logger',
    'cleanup_old_logs',
    'generate_resource',
    'full_jid',
]
