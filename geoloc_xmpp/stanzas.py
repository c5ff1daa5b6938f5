"""
Wire payloads produced and consumed by the session.

Builders return bare XML payload elements; the transport wraps them into
<iq/> or <presence/> stanzas. Parsers take payload elements and return model
objects. Nothing in here touches the network.
"""

import math
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from slixmpp.xmlstream import ET

from .caps import CapabilitySet
from .constants import (
    NS_CAPS, NS_DISCO_INFO, NS_GEOLOC, NS_PUBSUB, NS_PUBSUB_EVENT, NS_ROSTER,
    CAPS_HASH_ALGORITHM, GEOLOC_ITEM_ID, DEFAULT_ACCURACY_METERS
)
from .errors import MalformedLocationPayload
from .models import (
    LocalLocation, LocationRecord, Subscription,
    format_timestamp, parse_timestamp, utcnow
)


def _tag(namespace: str, name: str) -> str:
    return f"{{{namespace}}}{name}"


def format_decimal(value: float) -> str:
    """
    Plain decimal text for a number, never scientific notation.

    Examples:
        >>> format_decimal(51.5)
        '51.5'
        >>> format_decimal(1e-05)
        '0.00001'
        >>> format_decimal(25.0)
        '25'
    """
    text = format(Decimal(repr(float(value))), 'f')
    if '.' in text:
        text = text.rstrip('0').rstrip('.')
    if text in ('-0', ''):
        text = '0'
    return text


# ============================================================================
# Builders
# ============================================================================

def build_caps(caps: CapabilitySet) -> ET.Element:
    """<c xmlns='http://jabber.org/protocol/caps' hash='sha-1' node=... ver=.../>"""
    return ET.Element(_tag(NS_CAPS, 'c'), {
        'hash': CAPS_HASH_ALGORITHM,
        'node': caps.node,
        'ver': caps.ver,
    })


def build_disco_info(caps: CapabilitySet, node: Optional[str] = None) -> ET.Element:
    """
    disco#info result payload: identity followed by the sorted feature list.

    Args:
        caps: Advertised capabilities
        node: Requested node attribute, echoed back when present
    """
    query = ET.Element(_tag(NS_DISCO_INFO, 'query'))
    if node:
        query.set('node', node)

    category, itype, name = caps.identity
    ET.SubElement(query, _tag(NS_DISCO_INFO, 'identity'), {
        'category': category,
        'type': itype,
        'name': name,
    })
    for feature in caps.features:
        ET.SubElement(query, _tag(NS_DISCO_INFO, 'feature'), {'var': feature})
    return query


def build_roster_query() -> ET.Element:
    return ET.Element(_tag(NS_ROSTER, 'query'))


def build_geoloc_request() -> ET.Element:
    """Single-item retrieve of a contact's geoloc node (XEP-0060 §6.5.7)."""
    pubsub = ET.Element(_tag(NS_PUBSUB, 'pubsub'))
    ET.SubElement(pubsub, _tag(NS_PUBSUB, 'items'), {
        'node': NS_GEOLOC,
        'max_items': '1',
    })
    return pubsub


def _build_publish() -> Tuple[ET.Element, ET.Element]:
    pubsub = ET.Element(_tag(NS_PUBSUB, 'pubsub'))
    publish = ET.SubElement(pubsub, _tag(NS_PUBSUB, 'publish'), {'node': NS_GEOLOC})
    item = ET.SubElement(publish, _tag(NS_PUBSUB, 'item'), {'id': GEOLOC_ITEM_ID})
    geoloc = ET.SubElement(item, _tag(NS_GEOLOC, 'geoloc'))
    return pubsub, geoloc


def build_geoloc_publish(location: LocalLocation) -> ET.Element:
    """
    Publish payload for the local location.

    Always uses the fixed item id so each publish overwrites the previous one.
    Accuracy is rounded to whole meters. alt/speed are omitted when None.
    """
    pubsub, geoloc = _build_publish()

    fields = [
        ('lat', format_decimal(location.lat)),
        ('lon', format_decimal(location.lon)),
        ('accuracy', str(math.floor(location.accuracy + 0.5))),
        ('timestamp', format_timestamp(location.timestamp)),
    ]
    if location.altitude is not None:
        fields.append(('alt', format_decimal(location.altitude)))
    if location.speed is not None:
        fields.append(('speed', format_decimal(location.speed)))

    for name, text in fields:
        ET.SubElement(geoloc, _tag(NS_GEOLOC, name)).text = text
    return pubsub


def build_empty_geoloc_publish() -> ET.Element:
    """Publish an empty <geoloc/> to the fixed item (retraction by overwrite)."""
    pubsub, _ = _build_publish()
    return pubsub


def build_geoloc_retract() -> ET.Element:
    """Protocol-level retraction of the fixed item, with notification."""
    pubsub = ET.Element(_tag(NS_PUBSUB, 'pubsub'))
    retract = ET.SubElement(pubsub, _tag(NS_PUBSUB, 'retract'), {
        'node': NS_GEOLOC,
        'notify': 'true',
    })
    ET.SubElement(retract, _tag(NS_PUBSUB, 'item'), {'id': GEOLOC_ITEM_ID})
    return pubsub


# ============================================================================
# Parsers
# ============================================================================

def parse_roster(result: ET.Element) -> List[Tuple[str, str, Subscription]]:
    """
    Extract (jid, name, subscription) from a roster result.

    Accepts either the <iq/> or its <query/> child. Missing names default to
    the JID's local part, unknown subscription values become NONE.
    """
    query = result if result.tag == _tag(NS_ROSTER, 'query') else result.find(_tag(NS_ROSTER, 'query'))
    if query is None:
        return []

    contacts = []
    for item in query.findall(_tag(NS_ROSTER, 'item')):
        jid = (item.get('jid') or '').strip()
        if not jid:
            continue
        name = item.get('name') or jid.split('@')[0]
        contacts.append((jid, name, Subscription.normalize(item.get('subscription'))))
    return contacts


def find_geoloc_in_items(result: ET.Element) -> Optional[ET.Element]:
    """
    Locate <geoloc/> inside a pubsub items result (pubsub/items/item/geoloc).

    Returns:
        The geoloc element, or None if the node has no item
    """
    steps = [
        _tag(NS_PUBSUB, 'items'),
        _tag(NS_PUBSUB, 'item'),
        _tag(NS_GEOLOC, 'geoloc'),
    ]
    if result.tag != _tag(NS_PUBSUB, 'pubsub'):
        steps.insert(0, _tag(NS_PUBSUB, 'pubsub'))
    return result.find('/'.join(steps))


def find_geoloc_in_event_item(item: ET.Element) -> Optional[ET.Element]:
    """Locate <geoloc/> inside a pubsub#event <item/>."""
    return item.find(_tag(NS_GEOLOC, 'geoloc'))


def _child_text(geoloc: ET.Element, name: str) -> Optional[str]:
    child = geoloc.find(_tag(NS_GEOLOC, name))
    if child is None or child.text is None:
        return None
    text = child.text.strip()
    return text or None


def _optional_float(geoloc: ET.Element, name: str) -> Optional[float]:
    text = _child_text(geoloc, name)
    if text is None:
        return None
    try:
        value = float(text)
    except ValueError:
        return None
    return value if math.isfinite(value) else None


def parse_geoloc(jid: str, geoloc: ET.Element,
                 received_at: Optional[datetime] = None) -> LocationRecord:
    """
    Turn a <geoloc/> payload into a LocationRecord.

    Missing accuracy defaults to 10 m, a missing or invalid timestamp to the
    time of reception.

    Raises:
        MalformedLocationPayload: lat or lon missing or not a finite number
    """
    lat_text = _child_text(geoloc, 'lat')
    lon_text = _child_text(geoloc, 'lon')
    if lat_text is None or lon_text is None:
        raise MalformedLocationPayload(f"geoloc from {jid} has no coordinates")

    try:
        lat = float(lat_text)
        lon = float(lon_text)
    except ValueError:
        raise MalformedLocationPayload(f"geoloc from {jid} has non-numeric coordinates")
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise MalformedLocationPayload(f"geoloc from {jid} has non-finite coordinates")

    accuracy = _optional_float(geoloc, 'accuracy')
    timestamp = parse_timestamp(_child_text(geoloc, 'timestamp'))

    return LocationRecord(
        jid=jid,
        lat=lat,
        lon=lon,
        accuracy=accuracy if accuracy is not None else DEFAULT_ACCURACY_METERS,
        timestamp=timestamp or received_at or utcnow(),
        altitude=_optional_float(geoloc, 'alt'),
        speed=_optional_float(geoloc, 'speed'),
    )


def event_items(message: ET.Element) -> Optional[ET.Element]:
    """<event xmlns='...pubsub#event'><items node=.../></event> of a message, or None."""
    path = f"{_tag(NS_PUBSUB_EVENT, 'event')}/{_tag(NS_PUBSUB_EVENT, 'items')}"
    return message.find(path)
