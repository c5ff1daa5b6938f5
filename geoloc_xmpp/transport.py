"""
slixmpp-backed transport for the geolocation session.

The session only sees a narrow surface: start/stop with a status callback,
Strophe-style handler registration that delivers raw XML elements, and
send helpers for presence, IQ requests and IQ results. Everything
slixmpp-specific stays in this module, including the translation of
IqError/IqTimeout into our own exceptions.
"""

import logging
from typing import Callable, Optional, Set

from slixmpp import ClientXMPP
from slixmpp.exceptions import IqError, IqTimeout
from slixmpp.xmlstream import ET, ElementBase
from slixmpp.xmlstream.handler import Callback
from slixmpp.xmlstream.matcher.base import MatcherBase

from .constants import NS_CLIENT, IQ_TIMEOUT
from .errors import RequestFailed, RequestTimeout
from .models import Endpoint, EndpointScheme, TransportStatus


StatusCallback = Callable[[TransportStatus], None]
StanzaCallback = Callable[[ET.Element], None]


def is_supported_endpoint(endpoint: Optional[Endpoint]) -> bool:
    """True if the transport connects to endpoint directly (slixmpp speaks the TCP binding only)."""
    return endpoint is not None and endpoint.scheme == EndpointScheme.TCP


class MatchStanza(MatcherBase):
    """
    Match stanzas by kind, child namespace and type attribute.

    criteria: (stanza kind, namespace or None, type or None)
    A namespace matches when any direct child element lives in it.
    """

    def match(self, xml) -> bool:
        if isinstance(xml, ElementBase):
            xml = xml.xml

        kind, namespace, stanza_type = self._criteria
        if xml.tag != f"{{{NS_CLIENT}}}{kind}":
            return False
        if stanza_type is not None and xml.get('type') != stanza_type:
            return False
        if namespace is not None:
            return any(child.tag.startswith(f"{{{namespace}}}") for child in xml)
        return True


class XMPPTransport(ClientXMPP):
    """
    One connection attempt to one endpoint.

    A new transport is built for every connect(), so the handler table never
    carries anything over from a previous connection.
    """

    def __init__(self, jid: str, password: str, endpoint: Optional[Endpoint] = None,
                 sasl_mech: Optional[str] = None):
        """
        Args:
            jid: Account JID (bare or full)
            password: Account password
            endpoint: Where to connect; None means SRV lookup of the JID domain
            sasl_mech: Optional forced SASL mechanism
        """
        super().__init__(jid, password, sasl_mech=sasl_mech)

        self.endpoint = endpoint
        self.logger = logging.getLogger('geoloc-xmpp.transport')
        self._status_callback: Optional[StatusCallback] = None
        self._handler_names: Set[str] = set()

        self.add_event_handler("connecting", self._on_connecting)
        self.add_event_handler("session_start", self._on_session_start)
        self.add_event_handler("connection_failed", self._on_connection_failed)
        self.add_event_handler("failed_auth", self._on_failed_auth)
        self.add_event_handler("disconnected", self._on_disconnected)

    # ============================================================================
    # Connection lifecycle
    # ============================================================================

    def start(self, status_callback: StatusCallback):
        """Open the connection; progress is reported through status_callback."""
        self._status_callback = status_callback

        if is_supported_endpoint(self.endpoint):
            self.logger.info(f"Connecting to {self.endpoint.host}:{self.endpoint.port}...")
            return self.connect(host=self.endpoint.host, port=self.endpoint.port)

        if self.endpoint is not None:
            self.logger.warning(
                f"{self.endpoint.scheme.value} endpoint {self.endpoint.url} is not supported "
                f"by this transport, using SRV lookup for {self.boundjid.domain}"
            )
        else:
            self.logger.info(f"Connecting via SRV lookup for {self.boundjid.domain}...")
        return self.connect()

    def stop(self, wait: float = 2.0):
        """Close the connection after flushing the send queue."""
        self._notify(TransportStatus.DISCONNECTING)
        self.cancel_connection_attempt()
        return self.disconnect(wait=wait)

    @property
    def bare_jid(self) -> str:
        return self.boundjid.bare

    def _notify(self, status: TransportStatus):
        if self._status_callback is None:
            return
        try:
            self._status_callback(status)
        except Exception as e:
            self.logger.exception(f"Error in status callback ({status.value}): {e}")

    def _on_connecting(self, event):
        self._notify(TransportStatus.CONNECTING)

    def _on_session_start(self, event):
        self.logger.info(f"Session started as {self.boundjid.bare}")
        self._notify(TransportStatus.CONNECTED)

    def _on_connection_failed(self, event):
        self.logger.error(f"Connection failed: {event}")
        self._notify(TransportStatus.CONNECTION_FAILED)
        # Retry policy belongs to the caller, stop slixmpp's reconnect loop
        self.cancel_connection_attempt()

    def _on_failed_auth(self, event):
        self.logger.critical("XMPP authentication failed! Check JID/password.")
        self._notify(TransportStatus.AUTH_FAILED)
        self.abort()

    def _on_disconnected(self, event):
        self.logger.info("Disconnected from XMPP server")
        self._notify(TransportStatus.DISCONNECTED)

    # ============================================================================
    # Handlers
    # ============================================================================

    def add_handler(self, name: str, callback: StanzaCallback, stanza: str,
                    namespace: Optional[str] = None, stanza_type: Optional[str] = None):
        """
        Register an inbound stanza handler.

        Args:
            name: Unique handler name (used by remove_handler)
            callback: Called with the raw XML element of each matching stanza
            stanza: 'iq', 'message' or 'presence'
            namespace: Only stanzas with a child in this namespace
            stanza_type: Only stanzas with this type attribute
        """
        def deliver(stanza_obj):
            try:
                callback(stanza_obj.xml)
            except Exception as e:
                self.logger.exception(f"Error in handler {name}: {e}")

        self.register_handler(Callback(name, MatchStanza((stanza, namespace, stanza_type)), deliver))
        self._handler_names.add(name)

    def remove_handler(self, name: str) -> bool:
        if name not in self._handler_names:
            return False
        self._handler_names.discard(name)
        return super().remove_handler(name)

    # ============================================================================
    # Outbound
    # ============================================================================

    def send_presence_payload(self, payload: Optional[ET.Element] = None):
        """Send an available presence, optionally carrying a child payload."""
        presence = self.make_presence()
        if payload is not None:
            presence.append(payload)
        presence.send()

    def reply_iq_result(self, to: str, iq_id: str, payload: Optional[ET.Element] = None):
        """Answer an IQ get with a result carrying payload."""
        iq = self.make_iq_result(id=iq_id, ito=to)
        if payload is not None:
            iq.append(payload)
        iq.send()

    async def send_iq(self, itype: str, payload: ET.Element, to: Optional[str] = None,
                      timeout: Optional[float] = None) -> ET.Element:
        """
        Send an IQ request and wait for the result.

        Args:
            itype: 'get' or 'set'
            payload: Child element of the IQ
            to: Recipient (None = own account/server)
            timeout: Seconds to wait (default IQ_TIMEOUT)

        Returns:
            The result <iq/> element

        Raises:
            RequestFailed: The peer answered with an error
            RequestTimeout: No answer in time
        """
        if itype == 'get':
            iq = self.make_iq_get(ito=to)
        else:
            iq = self.make_iq_set(ito=to)
        iq.append(payload)

        try:
            result = await iq.send(timeout=timeout or IQ_TIMEOUT)
        except IqError as e:
            raise RequestFailed(e.iq['error']['condition'], e.iq['error']['text'] or None)
        except IqTimeout:
            raise RequestTimeout(f"No answer to IQ {itype} from {to or 'server'}")
        return result.xml


def default_transport_factory(jid: str, password: str,
                              endpoint: Optional[Endpoint]) -> XMPPTransport:
    return XMPPTransport(jid, password, endpoint)
