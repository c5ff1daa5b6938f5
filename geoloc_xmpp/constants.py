"""
Protocol constants for geoloc-xmpp.

Centralized place for namespaces, the advertised identity/features and the
fixed pub/sub item id, so the session, stanza builders and tests never
disagree on magic strings.
"""

# XMPP namespaces
NS_CLIENT = 'jabber:client'
NS_GEOLOC = 'http://jabber.org/protocol/geoloc'           # XEP-0080
NS_GEOLOC_NOTIFY = 'http://jabber.org/protocol/geoloc+notify'
NS_PUBSUB = 'http://jabber.org/protocol/pubsub'           # XEP-0060
NS_PUBSUB_EVENT = 'http://jabber.org/protocol/pubsub#event'
NS_DISCO_INFO = 'http://jabber.org/protocol/disco#info'   # XEP-0030
NS_CAPS = 'http://jabber.org/protocol/caps'               # XEP-0115
NS_ROSTER = 'jabber:iq:roster'                            # RFC 6121

# XEP-0030 identity for this client: (category, type, name)
DISCO_IDENTITY = ('client', 'web', 'XMPP Location Share')

# XEP-0030 features advertised by this client (hashing sorts them again)
DISCO_FEATURES = tuple(sorted([
    NS_DISCO_INFO,
    NS_GEOLOC,
    NS_GEOLOC_NOTIFY,
    NS_PUBSUB_EVENT,
    NS_CAPS,
]))

# XEP-0115 node URI and hash algorithm name
CAPS_NODE = 'https://xmpp-location.app'
CAPS_HASH_ALGORITHM = 'sha-1'

# Every publish overwrites this item, contacts only ever see the latest location
GEOLOC_ITEM_ID = 'current'

# XEP-0156 link relations
REL_WEBSOCKET = 'urn:xmpp:alt-connections:websocket'
REL_BOSH = 'urn:xmpp:alt-connections:xbosh'

# host-meta documents (XEP-0156 §3)
HOST_META_JSON_URL = 'https://{domain}/.well-known/host-meta.json'
HOST_META_XML_URL = 'https://{domain}/.well-known/host-meta'
HOST_META_PLACEHOLDER = '{host}'

# Conventional websocket endpoint used when nothing else is known
DEFAULT_WEBSOCKET_URL = 'wss://{domain}:5281/xmpp-websocket'

# Standard client-to-server port (RFC 6120)
DEFAULT_CLIENT_PORT = 5222

# Fallback accuracy for payloads without one, and the IQ round-trip timeout
DEFAULT_ACCURACY_METERS = 10.0
IQ_TIMEOUT = 10
