"""
Exceptions raised by geoloc-xmpp.

Only InvalidStateError escapes to callers of the session API. The others are
raised at the transport/discovery boundary and converted into log entries,
toasts and state transitions by the session.
"""

from typing import Optional


class GeolocXMPPError(Exception):
    """Base class for all geoloc-xmpp errors."""
    pass


class DiscoveryUnavailable(GeolocXMPPError):
    """host-meta could not be fetched or parsed (non-fatal, fall back to manual entry)."""
    pass


class AuthenticationFailed(GeolocXMPPError):
    """SASL authentication was rejected by the server."""
    pass


class ConnectionFailed(GeolocXMPPError):
    """The transport could not reach the server."""
    pass


class RequestFailed(GeolocXMPPError):
    """An IQ round-trip returned an error stanza."""

    def __init__(self, condition: Optional[str] = None, text: Optional[str] = None):
        self.condition = condition or 'undefined-condition'
        self.text = text
        message = self.condition if not text else f"{self.condition}: {text}"
        super().__init__(message)


class RequestTimeout(GeolocXMPPError):
    """An IQ round-trip got no answer in time."""
    pass


class MalformedLocationPayload(GeolocXMPPError):
    """A geoloc item is missing lat/lon or has non-numeric coordinates."""
    pass


class InvalidStateError(GeolocXMPPError):
    """Operation not valid in the current connection state."""
    pass
