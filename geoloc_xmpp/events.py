"""
Inbound event kinds.

Raw stanzas are classified exactly once, at the transport boundary, into a
closed set of event types. The session dispatches on the type and never looks
at namespaces again.
"""

from dataclasses import dataclass
from typing import Optional, Union

from slixmpp.xmlstream import ET

from .constants import NS_DISCO_INFO
from .stanzas import event_items, find_geoloc_in_event_item


def bare_jid(jid: Optional[str]) -> str:
    """'user@example.org/res' -> 'user@example.org'"""
    return (jid or '').split('/', 1)[0].strip()


@dataclass(frozen=True)
class DiscoInfoQuery:
    """Someone asked what we support (XEP-0030 disco#info get)."""
    from_jid: str            # full JID, the answer goes back to it
    query_id: str
    node: Optional[str] = None


@dataclass(frozen=True)
class GeolocItem:
    """A pubsub#event item notification (or an items result routed the same way)."""
    from_jid: str            # bare JID of the publisher
    node: str
    payload: Optional[ET.Element] = None    # <geoloc/>, None if the item carries none


@dataclass(frozen=True)
class GeolocRetract:
    """A pubsub#event retraction notification."""
    from_jid: str
    node: str


@dataclass(frozen=True)
class PresenceUpdate:
    """A presence stanza from a contact; presence_type None means available."""
    from_jid: str
    presence_type: Optional[str] = None


InboundEvent = Union[DiscoInfoQuery, GeolocItem, GeolocRetract, PresenceUpdate]


def _local_name(tag: str) -> str:
    return tag.rsplit('}', 1)[-1]


def classify_stanza(xml: ET.Element) -> Optional[InboundEvent]:
    """
    Classify a raw stanza.

    Args:
        xml: Stanza element (<iq/>, <message/> or <presence/> in jabber:client)

    Returns:
        An InboundEvent, or None for stanzas the session does not care about
    """
    kind = _local_name(xml.tag)
    sender = xml.get('from') or ''

    if kind == 'iq':
        if xml.get('type') != 'get':
            return None
        query = xml.find(f"{{{NS_DISCO_INFO}}}query")
        if query is None:
            return None
        return DiscoInfoQuery(from_jid=sender, query_id=xml.get('id') or '', node=query.get('node'))

    if kind == 'message':
        items = event_items(xml)
        if items is None:
            return None
        node = items.get('node') or ''
        publisher = bare_jid(sender)
        for child in items:
            name = _local_name(child.tag)
            if name == 'retract':
                return GeolocRetract(from_jid=publisher, node=node)
            if name == 'item':
                return GeolocItem(from_jid=publisher, node=node,
                                  payload=find_geoloc_in_event_item(child))
        return None

    if kind == 'presence':
        if not sender:
            return None
        return PresenceUpdate(from_jid=bare_jid(sender), presence_type=xml.get('type'))

    return None
