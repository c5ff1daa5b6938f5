"""
Top-level controller: owns the GeolocSession, the periodic location
publisher and the view.

The session reports to the controller (it is the session's view); the
controller reacts to state changes (autostart sharing) and forwards
everything to the UI view.
"""

import asyncio
import inspect
import logging
from typing import Callable, Dict, List, Optional

from geoloc_xmpp.errors import ConnectionFailed
from geoloc_xmpp.host_meta import discover_endpoint
from geoloc_xmpp.models import ConnectionState, Endpoint, LocationRecord, RosterEntry
from geoloc_xmpp.session import GeolocSession, SessionView
from geoloc_xmpp.transport import default_transport_factory, is_supported_endpoint

from ..utils.jid_utils import full_jid
from .config import AppConfig
from .location import LocationProvider, provider_from_config


class GeoShareController(SessionView):
    """Glue between configuration, session, publisher and UI."""

    def __init__(self, config: AppConfig, view: Optional[SessionView] = None,
                 transport_factory: Callable = default_transport_factory,
                 provider: Optional[LocationProvider] = None):
        """
        Args:
            config: Loaded application config
            view: UI collaborator receiving forwarded session updates
            transport_factory: Passed through to GeolocSession
            provider: Location source (default: built from config.location)
        """
        self.config = config
        self.view = view or SessionView()
        self.provider = provider or provider_from_config(config.location)
        self.session = GeolocSession(transport_factory, view=self)
        self.logger = logging.getLogger('geoshare.controller')

        self.sharing = False
        self._share_task: Optional[asyncio.Task] = None
        self._state_changed = asyncio.Event()

    # ============================================================================
    # SessionView (forwarded to the UI)
    # ============================================================================

    def on_state_changed(self, state: ConnectionState):
        self._state_changed.set()
        self.view.on_state_changed(state)

        if state == ConnectionState.CONNECTED and self.config.sharing.autostart and not self.sharing:
            self.start_sharing()

    def on_roster_changed(self, entries: List[RosterEntry]):
        self.view.on_roster_changed(entries)

    def on_locations_changed(self, records: Dict[str, LocationRecord]):
        self.view.on_locations_changed(records)

    def on_toast(self, message: str, level: str = 'info'):
        self.view.on_toast(message, level)

    # ============================================================================
    # Connection
    # ============================================================================

    async def resolve_endpoint(self) -> Optional[Endpoint]:
        """
        Endpoint from the config, else XEP-0156 discovery if enabled.

        Returns:
            Endpoint, or None to let the transport use SRV lookup
        """
        xmpp = self.config.xmpp
        endpoint = xmpp.manual_endpoint()
        if endpoint is not None:
            self.logger.info(f"Using configured endpoint {endpoint.url}")
            return endpoint

        if not xmpp.discover:
            return None

        endpoint = await discover_endpoint(xmpp.domain)
        if endpoint is None:
            self.on_toast(f"No endpoint discovered for {xmpp.domain}, using DNS SRV", 'warning')
        return endpoint

    async def connect(self, timeout: float = 30.0) -> bool:
        """
        Connect and wait until the attempt settles.

        Returns:
            True if connected
        """
        endpoint = await self.resolve_endpoint()
        if endpoint is not None and not is_supported_endpoint(endpoint):
            self.on_toast(f"{endpoint.scheme.value} endpoint {endpoint.url} is not supported, "
                          f"connecting via DNS SRV instead", 'warning')

        self._state_changed.clear()
        try:
            self.session.connect(full_jid(self.config.xmpp.jid), self.config.xmpp.password, endpoint)
        except ConnectionFailed:
            # Already logged and reported by the session
            return False
        return await self.wait_for_state(ConnectionState.CONNECTED, timeout=timeout)

    async def wait_for_state(self, target: ConnectionState, timeout: float = 30.0) -> bool:
        """
        Wait until the session reaches target or falls back to disconnected.

        Returns:
            True if the session is in the target state
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while self.session.state != target:
            if target != ConnectionState.DISCONNECTED and self.session.state == ConnectionState.DISCONNECTED:
                return False
            remaining = deadline - loop.time()
            if remaining <= 0:
                self.logger.warning(f"Timed out waiting for {target.value}")
                return False
            self._state_changed.clear()
            try:
                await asyncio.wait_for(self._state_changed.wait(), remaining)
            except asyncio.TimeoutError:
                continue
        return True

    async def disconnect(self, timeout: float = 5.0):
        """Stop the publisher and disconnect (retracting our location)."""
        await self._cancel_share_task()
        self.sharing = False

        if self.session.state not in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            return

        closed = self.session.disconnect()
        if inspect.isawaitable(closed):
            try:
                await asyncio.wait_for(closed, timeout)
            except asyncio.TimeoutError:
                self.logger.warning("Stream did not close in time")

        # The retraction is never answered once the stream is gone
        try:
            await asyncio.wait_for(self.session.drain(), timeout)
        except asyncio.TimeoutError:
            self.logger.debug("Dropped pending requests after disconnect")

    # ============================================================================
    # Sharing
    # ============================================================================

    def start_sharing(self) -> bool:
        """Start publishing our location every sharing.interval_seconds."""
        if self.provider is None:
            self.on_toast("No location configured, cannot share", 'error')
            return False
        if self.sharing:
            return True

        self.sharing = True
        self._share_task = asyncio.create_task(self._share_loop())
        self.logger.info(f"Sharing location every {self.config.sharing.interval_seconds}s")
        self.on_toast("Location sharing started", 'success')
        return True

    async def stop_sharing(self, clear: bool = True):
        """
        Stop the publisher.

        Args:
            clear: Overwrite the published item with an empty location
        """
        await self._cancel_share_task()
        if not self.sharing:
            return
        self.sharing = False

        if clear and self.session.is_connected():
            await self.session.publish_empty_geoloc()
        self.on_toast("Location sharing stopped", 'info')

    async def share_now(self) -> bool:
        """Publish the current location once."""
        if self.provider is None:
            self.on_toast("No location configured", 'error')
            return False

        location = self.provider.current()
        if location is None:
            self.on_toast("Current location unavailable", 'warning')
            return False
        return await self.session.publish_location(location)

    async def _share_loop(self):
        interval = self.config.sharing.interval_seconds
        while True:
            if self.session.is_connected():
                await self.share_now()
            await asyncio.sleep(interval)

    async def _cancel_share_task(self):
        task = self._share_task
        self._share_task = None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    def refresh(self) -> int:
        """Pull every candidate contact's location."""
        return self.session.refresh_all_locations()
