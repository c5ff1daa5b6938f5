"""
Version information for GeoShare.
"""

import os

# Version info - update for releases
VERSION = os.getenv('GEOSHARE_VERSION', '0.1.0')
APP_NAME = 'GeoShare'

# XEPs supported by this client
SUPPORTED_XEPS = [
    ('0030', 'Service Discovery'),
    ('0060', 'Publish-Subscribe'),
    ('0080', 'User Location'),
    ('0082', 'XMPP Date and Time Profiles'),
    ('0115', 'Entity Capabilities'),
    ('0156', 'Discovering Alternative XMPP Connection Methods'),
    ('0163', 'Personal Eventing Protocol'),
]


def get_version_string():
    """Get formatted version string."""
    return f"{APP_NAME} {VERSION}"

