"""
Geolocation session: connection lifecycle, roster/presence and location
pub/sub for one account.

States: disconnected -> connecting -> connected -> disconnected, with
connecting -> failed -> disconnected on authentication or connection errors.
State changes are driven only by transport status callbacks. The session
generation is bumped on every connect and teardown; late results from a
previous generation are dropped instead of touching the current maps.
"""

import asyncio
import functools
import logging
from typing import Callable, Dict, List, Optional, Set

from slixmpp.xmlstream import ET

from .caps import CapabilitySet, get_default_capabilities
from .constants import NS_DISCO_INFO, NS_PUBSUB_EVENT
from .discovery import DiscoInfoMixin
from .errors import (
    AuthenticationFailed, ConnectionFailed, GeolocXMPPError, InvalidStateError,
    RequestFailed, RequestTimeout
)
from .events import (
    DiscoInfoQuery, GeolocItem, GeolocRetract, InboundEvent, PresenceUpdate,
    classify_stanza
)
from .geoloc import GeolocMixin
from .models import ConnectionState, Endpoint, LocationRecord, RosterEntry, TransportStatus
from .roster import RosterTracker
from .stanzas import build_roster_query, parse_roster
from .transport import default_transport_factory


# (name, stanza kind, child namespace, type) of the handlers installed per connection
STANZA_HANDLERS = (
    ('geoloc-disco-info', 'iq', NS_DISCO_INFO, 'get'),
    ('geoloc-pubsub-event', 'message', NS_PUBSUB_EVENT, None),
    ('geoloc-pubsub-event-headline', 'message', NS_PUBSUB_EVENT, 'headline'),
    ('geoloc-presence', 'presence', None, None),
)


class SessionView:
    """
    Receiver for everything the session wants to show.

    All methods are no-ops; UIs override what they need. Snapshots are
    copies, never live references to session state.
    """

    def on_state_changed(self, state: ConnectionState):
        pass

    def on_roster_changed(self, entries: List[RosterEntry]):
        pass

    def on_locations_changed(self, records: Dict[str, LocationRecord]):
        pass

    def on_toast(self, message: str, level: str = 'info'):
        pass


class GeolocSession(DiscoInfoMixin, GeolocMixin):
    """
    Location sharing session for a single account.

    Owned by the application controller; nothing else writes to its roster
    or location maps.
    """

    def __init__(self, transport_factory: Callable = default_transport_factory,
                 view: Optional[SessionView] = None,
                 capabilities: Optional[CapabilitySet] = None):
        """
        Args:
            transport_factory: Callable (jid, password, endpoint) -> transport
            view: UI collaborator (default: no-op SessionView)
            capabilities: Advertised capability set (default: process-wide set)
        """
        self.transport_factory = transport_factory
        self.view = view or SessionView()
        self.capabilities = capabilities or get_default_capabilities()
        self.logger = logging.getLogger('geoloc-xmpp.session')

        self.state = ConnectionState.DISCONNECTED
        self.local_jid = ''
        self.generation = 0
        self.transport = None
        self.roster = RosterTracker()
        self.locations: Dict[str, LocationRecord] = {}
        self.last_error: Optional[GeolocXMPPError] = None

        self._handler_names: List[str] = []
        self._tasks: Set[asyncio.Task] = set()

    # ============================================================================
    # Lifecycle
    # ============================================================================

    def connect(self, jid: str, password: str, endpoint: Optional[Endpoint] = None):
        """
        Start connecting. Progress arrives through on_status().

        Args:
            jid: Account JID
            password: Account password
            endpoint: Endpoint to use (None = SRV lookup)

        Raises:
            InvalidStateError: Session is not disconnected
            ConnectionFailed: The transport could not be built or started
                (e.g. a JID the transport rejects); the session is back in
                disconnected when this is raised
        """
        if self.state != ConnectionState.DISCONNECTED:
            raise InvalidStateError(f"connect() not allowed while {self.state.value}")

        self.logger.debug(f"Using caps ver={self.capabilities.ver}")
        self.generation += 1
        self.last_error = None
        self._set_state(ConnectionState.CONNECTING)

        target = endpoint.url if endpoint else 'SRV lookup'
        self.logger.info(f"Connecting as {jid} ({target})...")
        try:
            self.transport = self.transport_factory(jid, password, endpoint)
            self.transport.start(functools.partial(self.on_status, generation=self.generation))
        except Exception as e:
            error = ConnectionFailed(f"Could not start connection: {e}")
            self._fail(error)
            raise error from e

    def disconnect(self):
        """
        Retract our location (best effort) and close the connection.

        Roster and locations are cleared before this returns.

        Returns:
            Whatever the transport returns from stop() (slixmpp: a future
            resolved once the stream is closed), or None

        Raises:
            InvalidStateError: Session is neither connecting nor connected
        """
        if self.state not in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            raise InvalidStateError(f"disconnect() not allowed while {self.state.value}")

        transport = self.transport
        if self.state == ConnectionState.CONNECTED:
            self.retract_own_location()

        self.logger.info("Disconnecting...")
        self._teardown()
        if transport is not None:
            return transport.stop()
        return None

    def on_status(self, status: TransportStatus, generation: Optional[int] = None):
        """
        Transport status callback.

        Args:
            status: New transport status
            generation: Generation the callback was bound to; stale ones are ignored
        """
        if generation is not None and generation != self.generation:
            self.logger.debug(f"Ignoring {status.value} from a previous connection")
            return

        if status == TransportStatus.CONNECTING:
            self.logger.debug("Transport connecting")

        elif status == TransportStatus.CONNECTED:
            if self.state != ConnectionState.CONNECTING:
                return
            self._on_connected()

        elif status == TransportStatus.AUTH_FAILED:
            self._fail(AuthenticationFailed("Authentication failed, check JID/password"))

        elif status == TransportStatus.CONNECTION_FAILED:
            self._fail(ConnectionFailed("Could not connect to server"))

        elif status == TransportStatus.DISCONNECTING:
            self.logger.debug("Transport disconnecting")

        elif status == TransportStatus.DISCONNECTED:
            if self.state == ConnectionState.DISCONNECTED:
                return
            if self.state == ConnectionState.CONNECTED:
                self._toast("Disconnected from server", 'warning')
            self._teardown()

    def _on_connected(self):
        self.local_jid = self.transport.bare_jid
        self._register_handlers()
        self._set_state(ConnectionState.CONNECTED)
        self.logger.info(f"Connected as {self.local_jid}")
        self._toast("Connected!", 'success')

        self.send_caps_presence()
        self._spawn(self._request_roster())

    def _fail(self, error: GeolocXMPPError):
        if self.state not in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            return
        self.last_error = error
        self.logger.error(str(error))
        self._set_state(ConnectionState.FAILED)
        self._toast(str(error), 'error')
        self._teardown()

    def _teardown(self):
        """Drop everything belonging to the current connection."""
        self._unregister_handlers()
        self.generation += 1
        self.transport = None
        self.local_jid = ''
        self.roster.clear()
        self.locations.clear()
        self._set_state(ConnectionState.DISCONNECTED)
        self._notify_roster()
        self._notify_locations()

    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    # ============================================================================
    # Inbound stanzas
    # ============================================================================

    def _register_handlers(self):
        for name, stanza, namespace, stanza_type in STANZA_HANDLERS:
            self.transport.add_handler(name, self._on_stanza, stanza,
                                       namespace=namespace, stanza_type=stanza_type)
            self._handler_names.append(name)

    def _unregister_handlers(self):
        if self.transport is not None:
            for name in self._handler_names:
                self.transport.remove_handler(name)
        self._handler_names = []

    def _on_stanza(self, xml: ET.Element):
        event = classify_stanza(xml)
        if event is not None:
            self.dispatch(event)

    def dispatch(self, event: InboundEvent):
        """Route a classified inbound event to its handler."""
        if not self.is_connected():
            return

        if isinstance(event, DiscoInfoQuery):
            self._on_disco_info_query(event)
        elif isinstance(event, GeolocItem):
            self._on_geoloc_item(event)
        elif isinstance(event, GeolocRetract):
            self._on_geoloc_retract(event)
        elif isinstance(event, PresenceUpdate):
            self._on_presence(event)
        else:
            raise TypeError(f"Unknown inbound event: {event!r}")

    # ============================================================================
    # Roster / presence
    # ============================================================================

    async def _request_roster(self):
        generation = self.generation
        transport = self.transport
        self.logger.info("Requesting roster...")

        try:
            result = await transport.send_iq('get', build_roster_query())
        except (RequestFailed, RequestTimeout) as e:
            if generation == self.generation:
                self.logger.error(f"Roster request failed: {e}")
                self._toast("Roster request failed", 'error')
            return

        if generation != self.generation:
            self.logger.debug("Dropping stale roster result")
            return

        self.roster.replace(parse_roster(result))
        self._notify_roster()

    def _on_presence(self, event: PresenceUpdate):
        if event.from_jid == self.local_jid or event.from_jid not in self.roster:
            return

        if self.roster.apply_presence(event.from_jid, event.presence_type):
            self.logger.info(f"{event.from_jid.split('@')[0]} is online")
            self._spawn(self.request_contact_geoloc(event.from_jid))

        self._notify_roster()

    # ============================================================================
    # Snapshots
    # ============================================================================

    def roster_snapshot(self) -> List[RosterEntry]:
        """Roster copy, online first, then by name."""
        return self.roster.snapshot()

    def locations_snapshot(self) -> Dict[str, LocationRecord]:
        """Copy of the known contact locations keyed by bare JID."""
        return {jid: LocationRecord(**vars(record)) for jid, record in self.locations.items()}

    # ============================================================================
    # Helpers
    # ============================================================================

    def _spawn(self, coro) -> asyncio.Task:
        """Run a coroutine in the background and keep a reference until it finishes."""
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task):
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.logger.error(f"Background task failed: {exc!r}", exc_info=exc)

    async def drain(self):
        """Wait for all background tasks (pull requests, publishes) to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _set_state(self, state: ConnectionState):
        if state == self.state:
            return
        self.logger.debug(f"State {self.state.value} -> {state.value}")
        self.state = state
        self._call_view('on_state_changed', state)

    def _notify_roster(self):
        self._call_view('on_roster_changed', self.roster_snapshot())

    def _notify_locations(self):
        self._call_view('on_locations_changed', self.locations_snapshot())

    def _toast(self, message: str, level: str = 'info'):
        self._call_view('on_toast', message, level)

    def _call_view(self, method: str, *args):
        try:
            getattr(self.view, method)(*args)
        except Exception as e:
            self.logger.exception(f"Error in view callback {method}: {e}")
