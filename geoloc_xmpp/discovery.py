"""
Capability advertisement for the geolocation session.

XEP-0030: Service Discovery (disco#info responder)
XEP-0115: Entity Capabilities (caps in initial presence)

Peers see the caps hash in our presence and may ask for the full feature
list to verify it, so the responder is required, not optional.
"""

from .events import DiscoInfoQuery
from .stanzas import build_caps, build_disco_info


class DiscoInfoMixin:
    """
    Mixin answering disco#info queries and announcing capabilities.

    Requirements (provided by GeolocSession):
    - self.transport: Connected transport
    - self.capabilities: CapabilitySet advertised by this client
    - self.logger: Logger instance
    """

    # ============================================================================
    # XEP-0115: Entity Capabilities
    # ============================================================================

    def send_caps_presence(self) -> bool:
        """
        Send available presence carrying the capability hash.

        Returns:
            True if the presence was handed to the transport
        """
        if self.transport is None:
            return False

        self.transport.send_presence_payload(build_caps(self.capabilities))
        self.logger.info(f"Presence sent with caps ver={self.capabilities.ver}")
        return True

    # ============================================================================
    # XEP-0030: Service Discovery
    # ============================================================================

    def _on_disco_info_query(self, event: DiscoInfoQuery):
        """Answer a disco#info get with our identity and sorted features."""
        if self.transport is None:
            return

        self.transport.reply_iq_result(
            event.from_jid,
            event.query_id,
            build_disco_info(self.capabilities, node=event.node)
        )
        self.logger.debug(f"Disco response sent to {event.from_jid}")
