"""
GeoShare - share your location with XMPP contacts.
"""

from .version import VERSION as __version__
