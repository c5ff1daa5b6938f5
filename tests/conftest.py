import asyncio

import pytest
from slixmpp.xmlstream import ET

from geoloc_xmpp.constants import NS_CLIENT, NS_PUBSUB, NS_ROSTER
from geoloc_xmpp.errors import RequestFailed
from geoloc_xmpp.models import TransportStatus
from geoloc_xmpp.session import GeolocSession, SessionView
from geoloc_xmpp.transport import MatchStanza


def _q(namespace, name):
    return f"{{{namespace}}}{name}"


class FakeTransport:
    """In-memory transport: records what the session sends and answers IQs.

    Pub/sub items live in ``items[(owner, node)][item_id]``, so publishing twice
    to the same item id overwrites, like a real PEP service.
    """

    def __init__(self, jid, password, endpoint, server):
        self.jid = jid
        self.password = password
        self.endpoint = endpoint
        self.server = server
        self.status_callback = None
        self.handlers = {}
        self.presences = []
        self.iq_results = []
        self.iqs = []
        self.stopped = False

    @property
    def bare_jid(self):
        return self.jid.split('/', 1)[0]

    def start(self, status_callback):
        self.status_callback = status_callback

    def stop(self):
        self.stopped = True
        self.status_callback(TransportStatus.DISCONNECTING)

    def emit(self, status):
        self.status_callback(status)

    def add_handler(self, name, callback, stanza, namespace=None, stanza_type=None):
        self.handlers[name] = (callback, MatchStanza((stanza, namespace, stanza_type)))

    def remove_handler(self, name):
        return self.handlers.pop(name, None) is not None

    def deliver(self, xml):
        """Run every matching handler, like the real stream does."""
        for callback, matcher in list(self.handlers.values()):
            if matcher.match(xml):
                callback(xml)

    def send_presence_payload(self, payload=None):
        self.presences.append(payload)

    def reply_iq_result(self, to, iq_id, payload=None):
        self.iq_results.append((to, iq_id, payload))

    async def send_iq(self, itype, payload, to=None, timeout=None):
        self.iqs.append((itype, payload, to))
        return await self.server.answer(self, itype, payload, to)

    def requests(self, child):
        """IQs whose pubsub payload has the given child ('items', 'publish', 'retract')."""
        return [
            (itype, payload, to) for itype, payload, to in self.iqs
            if payload.find(_q(NS_PUBSUB, child)) is not None
        ]


class FakeServer:
    """Server side shared by all transports of a test."""

    def __init__(self):
        self.roster = []
        self.items = {}
        self.failures = {}
        self.gate = None

    def publish(self, owner, node, item_id, payload):
        self.items.setdefault((owner, node), {})[item_id] = payload

    async def answer(self, transport, itype, payload, to):
        await asyncio.sleep(0)
        if self.gate is not None:
            await self.gate.wait()

        failure = self.failures.get(to)
        if failure is not None:
            raise failure

        result = ET.Element(_q(NS_CLIENT, 'iq'), {'type': 'result'})
        if payload.tag == _q(NS_ROSTER, 'query'):
            query = ET.SubElement(result, _q(NS_ROSTER, 'query'))
            for jid, name, subscription in self.roster:
                attrs = {'jid': jid, 'subscription': subscription}
                if name:
                    attrs['name'] = name
                ET.SubElement(query, _q(NS_ROSTER, 'item'), attrs)
            return result

        owner = to or transport.bare_jid
        for child in payload:
            node = child.get('node')
            store = self.items.setdefault((owner, node), {})
            if child.tag == _q(NS_PUBSUB, 'publish'):
                item = child.find(_q(NS_PUBSUB, 'item'))
                store[item.get('id')] = next(iter(item), None)
            elif child.tag == _q(NS_PUBSUB, 'retract'):
                store.pop(child.find(_q(NS_PUBSUB, 'item')).get('id'), None)
            elif child.tag == _q(NS_PUBSUB, 'items'):
                if not store:
                    raise RequestFailed('item-not-found')
                pubsub = ET.SubElement(result, _q(NS_PUBSUB, 'pubsub'))
                items = ET.SubElement(pubsub, _q(NS_PUBSUB, 'items'), {'node': node})
                for item_id, item_payload in store.items():
                    item = ET.SubElement(items, _q(NS_PUBSUB, 'item'), {'id': item_id})
                    if item_payload is not None:
                        item.append(item_payload)
        return result


class RecordingView(SessionView):
    def __init__(self):
        self.states = []
        self.rosters = []
        self.locations = []
        self.toasts = []

    def on_state_changed(self, state):
        self.states.append(state)

    def on_roster_changed(self, entries):
        self.rosters.append(entries)

    def on_locations_changed(self, records):
        self.locations.append(records)

    def on_toast(self, message, level='info'):
        self.toasts.append((message, level))


@pytest.fixture
def server():
    return FakeServer()


@pytest.fixture
def transports():
    return []


@pytest.fixture
def transport_factory(server, transports):
    def factory(jid, password, endpoint):
        transport = FakeTransport(jid, password, endpoint, server)
        transports.append(transport)
        return transport
    return factory


@pytest.fixture
def view():
    return RecordingView()


@pytest.fixture
def session(transport_factory, view):
    return GeolocSession(transport_factory, view=view)


@pytest.fixture
def connect(session, transports):
    """Connect the session as alice and wait for the roster round-trip."""
    async def _connect(jid='alice@example.org/geoshare', wait_roster=True):
        session.connect(jid, 'secret', None)
        transport = transports[-1]
        transport.emit(TransportStatus.CONNECTED)
        if wait_roster:
            await session.drain()
        return transport
    return _connect
