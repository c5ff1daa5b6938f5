"""
Geolocation pub/sub module for the geolocation session.

XEP-0080: User Location
XEP-0060: Publish-Subscribe (items request, publish, retract)
XEP-0163: Personal Eventing Protocol (notifications)

Every publish goes to the same item id, so contacts only ever see the
latest location. Pull requests are tagged with the session generation and
their results are dropped if the session was torn down meanwhile.
"""

from typing import Optional

from slixmpp.xmlstream import ET

from .constants import NS_GEOLOC
from .errors import MalformedLocationPayload, RequestFailed, RequestTimeout
from .events import GeolocItem, GeolocRetract
from .models import LocalLocation, LocationRecord, utcnow
from .stanzas import (
    build_empty_geoloc_publish, build_geoloc_publish, build_geoloc_request,
    build_geoloc_retract, find_geoloc_in_items, parse_geoloc
)


class GeolocMixin:
    """
    Mixin providing location publish/subscribe.

    Requirements (provided by GeolocSession):
    - self.transport: Connected transport (None when disconnected)
    - self.roster: RosterTracker
    - self.locations: Dict[str, LocationRecord]
    - self.local_jid: Own bare JID
    - self.generation: Session generation counter
    - self.logger: Logger instance
    - self._spawn(coro): Schedule a tracked task
    - self._notify_locations(), self._toast(message, level)
    """

    # ============================================================================
    # Inbound notifications
    # ============================================================================

    def _on_geoloc_item(self, event: GeolocItem):
        if event.from_jid == self.local_jid or event.node != NS_GEOLOC:
            return
        self._apply_geoloc(event.from_jid, event.payload)

    def _on_geoloc_retract(self, event: GeolocRetract):
        if event.from_jid == self.local_jid or event.node != NS_GEOLOC:
            return
        self.logger.info(f"{event.from_jid.split('@')[0]} cleared location")
        self._remove_location(event.from_jid)

    def _apply_geoloc(self, jid: str, geoloc: Optional[ET.Element]) -> Optional[LocationRecord]:
        """
        Store a contact's <geoloc/> payload.

        A missing payload or one without usable coordinates removes the
        contact's record instead, exactly like a retraction.

        Returns:
            The stored record, or None if the payload acted as a retraction
        """
        if geoloc is None:
            self._remove_location(jid)
            return None

        try:
            record = parse_geoloc(jid, geoloc, received_at=utcnow())
        except MalformedLocationPayload as e:
            self.logger.debug(f"Treating payload as retraction: {e}")
            self._remove_location(jid)
            return None

        self.locations[jid] = record
        self.logger.info(f"Geoloc from {jid.split('@')[0]}: {record.lat:.4f}, {record.lon:.4f}")
        self._notify_locations()
        return record

    def _remove_location(self, jid: str):
        # No record means nothing to do, not even a view update
        if self.locations.pop(jid, None) is not None:
            self._notify_locations()

    # ============================================================================
    # Pull
    # ============================================================================

    async def request_contact_geoloc(self, jid: str) -> Optional[LocationRecord]:
        """
        Fetch the latest item of a contact's geoloc node.

        A failed request is logged and leaves any known location untouched.

        Args:
            jid: Bare JID of the contact

        Returns:
            The updated LocationRecord, or None (no item, failure, stale result)
        """
        if self.transport is None:
            return None

        generation = self.generation
        transport = self.transport
        name = jid.split('@')[0]

        try:
            result = await transport.send_iq('get', build_geoloc_request(), to=jid)
        except RequestFailed as e:
            if e.condition == 'item-not-found':
                self.logger.debug(f"{name} has not published a location")
            else:
                self.logger.warning(f"Geoloc request for {name} failed: {e.condition}")
            return None
        except RequestTimeout:
            self.logger.warning(f"Geoloc request for {name} timed out")
            return None

        if generation != self.generation:
            self.logger.debug(f"Dropping stale geoloc result for {jid}")
            return None

        geoloc = find_geoloc_in_items(result)
        if geoloc is None:
            return None
        return self._apply_geoloc(jid, geoloc)

    def refresh_all_locations(self) -> int:
        """
        Pull the location of every contact that is online or has a mutual
        subscription.

        Returns:
            Number of requests issued
        """
        if self.transport is None:
            return 0

        self.logger.info("Refreshing all locations...")
        candidates = self.roster.location_candidates()
        for jid in candidates:
            self._spawn(self.request_contact_geoloc(jid))
        self._toast("Refreshing locations...", 'info')
        return len(candidates)

    # ============================================================================
    # Publish
    # ============================================================================

    async def _publish(self, payload: ET.Element, what: str) -> bool:
        if self.transport is None:
            self.logger.warning(f"Cannot publish {what}: not connected")
            return False

        generation = self.generation
        try:
            await self.transport.send_iq('set', payload)
        except RequestFailed as e:
            if generation == self.generation:
                self.logger.error(f"Failed to publish {what}: {e.condition}")
                self._toast(f"Failed to publish {what}", 'error')
            return False
        except RequestTimeout:
            if generation == self.generation:
                self.logger.error(f"Publishing {what} timed out")
                self._toast(f"Publishing {what} timed out", 'error')
            return False
        return generation == self.generation

    async def publish_location(self, location: LocalLocation) -> bool:
        """
        Publish the local user's location to the geoloc node.

        Args:
            location: Position to publish; altitude/speed are omitted when None

        Returns:
            True if the server accepted the publish
        """
        published = await self._publish(build_geoloc_publish(location), 'location')
        if published:
            self.logger.info(f"Published location {location.lat:.4f}, {location.lon:.4f} "
                             f"(accuracy {round(location.accuracy)}m)")
        return published

    async def publish_empty_geoloc(self) -> bool:
        """
        Overwrite the published item with an empty <geoloc/>.

        Contacts that only look at item content treat this as "stopped sharing".
        """
        published = await self._publish(build_empty_geoloc_publish(), 'empty location')
        if published:
            self.logger.info("Published empty location")
        return published

    def retract_own_location(self):
        """Retract our geoloc item without waiting for the answer."""
        if self.transport is None:
            return
        self._spawn(self._send_retract(self.transport))

    async def _send_retract(self, transport):
        try:
            await transport.send_iq('set', build_geoloc_retract())
            self.logger.debug("Own location retracted")
        except (RequestFailed, RequestTimeout) as e:
            self.logger.debug(f"Location retraction not confirmed: {e}")
