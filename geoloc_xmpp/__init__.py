"""
GEOLOC-XMPP - location sharing over XMPP pub/sub

Module map:
- session.py: GeolocSession state machine (connect/disconnect, dispatch)
- discovery.py / geoloc.py: mixins for disco#info + caps and geoloc pub/sub
- roster.py: roster and presence tracking
- caps.py: XEP-0115 verification hash
- host_meta.py: XEP-0156 endpoint discovery
- transport.py: slixmpp-backed transport
"""

from .caps import CapabilitySet, compute_caps_hash, get_default_capabilities
from .errors import (
    GeolocXMPPError,
    DiscoveryUnavailable,
    AuthenticationFailed,
    ConnectionFailed,
    RequestFailed,
    RequestTimeout,
    MalformedLocationPayload,
    InvalidStateError
)
from .host_meta import discover_endpoint, guess_websocket_endpoint
from .models import (
    ConnectionState,
    Endpoint,
    EndpointScheme,
    LocalLocation,
    LocationRecord,
    RosterEntry,
    Subscription,
    TransportStatus,
    format_time_ago
)
from .session import GeolocSession, SessionView

__version__ = "0.1.0"
__all__ = [
    "GeolocSession",
    "SessionView",
    "CapabilitySet",
    "compute_caps_hash",
    "get_default_capabilities",
    "discover_endpoint",
    "guess_websocket_endpoint",
    "ConnectionState",
    "Endpoint",
    "EndpointScheme",
    "LocalLocation",
    "LocationRecord",
    "RosterEntry",
    "Subscription",
    "TransportStatus",
    "format_time_ago",
    "GeolocXMPPError",
    "DiscoveryUnavailable",
    "AuthenticationFailed",
    "ConnectionFailed",
    "RequestFailed",
    "RequestTimeout",
    "MalformedLocationPayload",
    "InvalidStateError",
]
