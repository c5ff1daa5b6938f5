"""
Data model for geoloc-xmpp.

Pure data objects - no I/O, no protocol logic. The session owns the mutable
maps of RosterEntry/LocationRecord; everything handed to the outside world is
a copy (see GeolocSession.roster_snapshot / locations_snapshot).
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from urllib.parse import urlsplit

from .constants import DEFAULT_CLIENT_PORT


class EndpointScheme(str, Enum):
    """Connection binding of an endpoint."""
    WEBSOCKET = 'websocket'   # RFC 7395
    BOSH = 'bosh'             # XEP-0124/0206
    TCP = 'tcp'               # RFC 6120 direct client-to-server

    @classmethod
    def from_url(cls, url: str) -> Optional['EndpointScheme']:
        """
        Guess the binding from a URL scheme.

        Examples:
            >>> EndpointScheme.from_url('wss://example.org/ws')
            <EndpointScheme.WEBSOCKET: 'websocket'>
            >>> EndpointScheme.from_url('https://example.org/http-bind')
            <EndpointScheme.BOSH: 'bosh'>
            >>> EndpointScheme.from_url('xmpp://example.org:5222')
            <EndpointScheme.TCP: 'tcp'>
        """
        scheme = urlsplit(url).scheme.lower()
        if scheme in ('ws', 'wss'):
            return cls.WEBSOCKET
        if scheme in ('http', 'https'):
            return cls.BOSH
        if scheme == 'xmpp':
            return cls.TCP
        return None


@dataclass(frozen=True)
class Endpoint:
    """Where to connect. Immutable once a connection attempt starts."""
    scheme: EndpointScheme
    url: str

    @classmethod
    def parse(cls, value: str) -> 'Endpoint':
        """
        Build an endpoint from user input.

        Accepts ws(s)://, http(s)://, xmpp://host[:port] and bare host[:port].

        Raises:
            ValueError: If the value is empty or has an unknown scheme
        """
        value = (value or '').strip()
        if not value:
            raise ValueError("Endpoint is empty")

        if '://' not in value:
            value = f"xmpp://{value}"

        scheme = EndpointScheme.from_url(value)
        if scheme is None:
            raise ValueError(f"Unsupported endpoint scheme: {value}")
        return cls(scheme=scheme, url=value)

    @classmethod
    def direct(cls, host: str, port: int = DEFAULT_CLIENT_PORT) -> 'Endpoint':
        """Direct TCP endpoint for a configured server/port pair."""
        return cls(scheme=EndpointScheme.TCP, url=f"xmpp://{host}:{port}")

    @property
    def is_secure(self) -> bool:
        return urlsplit(self.url).scheme.lower() in ('wss', 'https')

    @property
    def host(self) -> Optional[str]:
        return urlsplit(self.url).hostname

    @property
    def port(self) -> int:
        return urlsplit(self.url).port or DEFAULT_CLIENT_PORT


class ConnectionState(str, Enum):
    """Session connection state."""
    DISCONNECTED = 'disconnected'
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    FAILED = 'failed'


class TransportStatus(str, Enum):
    """Status values delivered by the transport status callback."""
    CONNECTING = 'connecting'
    CONNECTED = 'connected'
    CONNECTION_FAILED = 'connection-failed'
    AUTH_FAILED = 'auth-failed'
    DISCONNECTING = 'disconnecting'
    DISCONNECTED = 'disconnected'


class Subscription(str, Enum):
    """
    Roster subscription direction (RFC 6121 §2.1.2.5).

    Values match the 'subscription' attribute of roster items.
    """
    NONE = 'none'
    TO = 'to'        # We see their presence/location
    FROM = 'from'    # They see ours
    BOTH = 'both'

    @classmethod
    def normalize(cls, value) -> 'Subscription':
        """
        Normalize a raw attribute value.

        Anything outside the four-element enumeration (including None and
        'remove') is treated as NONE.

        Examples:
            >>> Subscription.normalize('Both')
            <Subscription.BOTH: 'both'>
            >>> Subscription.normalize('remove')
            <Subscription.NONE: 'none'>
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.NONE

    @property
    def label(self) -> str:
        """Human-readable description for roster views."""
        return {
            Subscription.BOTH: 'Can share locations',
            Subscription.TO: 'You follow them',
            Subscription.FROM: 'They follow you',
            Subscription.NONE: 'Not connected',
        }[self]


@dataclass
class RosterEntry:
    """A roster contact with presence-driven online flag."""
    jid: str
    name: str
    subscription: Subscription = Subscription.NONE
    online: bool = False


@dataclass
class LocationRecord:
    """Last known location of a contact (XEP-0080 subset)."""
    jid: str
    lat: float
    lon: float
    accuracy: float
    timestamp: datetime
    altitude: Optional[float] = None
    speed: Optional[float] = None

    def time_ago(self, now: Optional[datetime] = None) -> str:
        return format_time_ago(self.timestamp, now)


@dataclass
class LocalLocation:
    """
    Location of the local user, as handed to publish_location().

    accuracy is in meters; altitude/speed are only published when not None.
    """
    lat: float
    lon: float
    accuracy: float
    altitude: Optional[float] = None
    speed: Optional[float] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """
    Parse an XEP-0082 DateTime string.

    Returns:
        Timezone-aware datetime, or None if the value is missing or invalid
    """
    if not value:
        return None
    text = value.strip()
    if text.endswith('Z') or text.endswith('z'):
        text = text[:-1] + '+00:00'
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    """Format a datetime as XEP-0082 UTC DateTime with millisecond precision."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    value = value.astimezone(timezone.utc)
    return value.strftime('%Y-%m-%dT%H:%M:%S.') + f"{value.microsecond // 1000:03d}Z"


def format_time_ago(timestamp: datetime, now: Optional[datetime] = None) -> str:
    """
    Human-readable elapsed time: '42s ago' below a minute, '3m ago' above.
    """
    now = now or utcnow()
    seconds = math.floor((now - timestamp).total_seconds() + 0.5)
    if seconds < 60:
        return f"{seconds}s ago"
    return f"{math.floor(seconds / 60 + 0.5)}m ago"
