import asyncio

import pytest

from geoloc_xmpp.constants import NS_GEOLOC
from geoloc_xmpp.models import ConnectionState, Endpoint, EndpointScheme, TransportStatus
from geoshare.core import controller as controller_module
from geoshare.core.config import parse_config
from geoshare.core.controller import GeoShareController
from geoshare.core.view import ConsoleView

from stanza_factory import geoloc, geoloc_event


def make_config(**sections):
    data = {'xmpp': {'jid': 'alice@example.org', 'password': 'secret', 'discover': False}}
    data.update(sections)
    return parse_config(data)


def make_controller(transport_factory, **sections):
    view = ConsoleView()
    return GeoShareController(make_config(**sections), view=view, transport_factory=transport_factory), view


async def connected(controller, transports):
    connecting = asyncio.create_task(controller.connect(timeout=5))
    await asyncio.sleep(0)
    transports[-1].emit(TransportStatus.CONNECTED)
    assert await connecting
    await controller.session.drain()
    return transports[-1]


@pytest.mark.asyncio
async def test_connect_uses_full_jid_and_configured_endpoint(transport_factory, transports):
    controller, view = make_controller(
        transport_factory, xmpp={'jid': 'alice@example.org', 'password': 'secret', 'server': 'xmpp.example.org'}
    )

    transport = await connected(controller, transports)

    assert transport.jid.startswith('alice@example.org/geoshare.')
    assert transport.endpoint == Endpoint.direct('xmpp.example.org', 5222)
    assert view.state == ConnectionState.CONNECTED


@pytest.mark.asyncio
async def test_connect_reports_failure(transport_factory, transports):
    controller, view = make_controller(transport_factory)

    connecting = asyncio.create_task(controller.connect(timeout=5))
    await asyncio.sleep(0)
    transports[-1].emit(TransportStatus.AUTH_FAILED)

    assert await connecting is False
    assert view.state == ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_discovery_used_when_no_endpoint(monkeypatch, transport_factory):
    discovered = Endpoint(EndpointScheme.WEBSOCKET, 'wss://example.org/ws')

    async def fake_discover(domain, session=None, timeout=None):
        assert domain == 'example.org'
        return discovered

    monkeypatch.setattr(controller_module, 'discover_endpoint', fake_discover)
    controller, _ = make_controller(transport_factory, xmpp={'jid': 'alice@example.org', 'password': 'x'})

    assert await controller.resolve_endpoint() == discovered


@pytest.mark.asyncio
async def test_sharing_publishes_and_clears(server, transport_factory, transports):
    controller, _ = make_controller(
        transport_factory,
        location={'lat': 51.5, 'lon': -0.09, 'accuracy': 25},
        sharing={'interval_seconds': 60},
    )
    await connected(controller, transports)

    assert controller.start_sharing()
    await asyncio.sleep(0.01)
    item = server.items[('alice@example.org', NS_GEOLOC)]['current']
    assert {child.tag.split('}')[1]: child.text for child in item}['lat'] == '51.5'

    await controller.stop_sharing()

    assert controller.sharing is False
    assert len(server.items[('alice@example.org', NS_GEOLOC)]['current']) == 0


@pytest.mark.asyncio
async def test_autostart_sharing_on_connect(server, transport_factory, transports):
    controller, _ = make_controller(
        transport_factory,
        location={'lat': 1, 'lon': 2},
        sharing={'autostart': True},
    )

    await connected(controller, transports)
    await asyncio.sleep(0.01)

    assert controller.sharing
    assert ('alice@example.org', NS_GEOLOC) in server.items
    await controller.disconnect()


@pytest.mark.asyncio
async def test_share_without_location(transport_factory, transports):
    controller, _ = make_controller(transport_factory)

    assert controller.start_sharing() is False
    assert await controller.share_now() is False


@pytest.mark.asyncio
async def test_disconnect_stops_everything(server, transport_factory, transports):
    controller, view = make_controller(transport_factory, location={'lat': 1, 'lon': 2})
    transport = await connected(controller, transports)
    controller.start_sharing()
    transport.deliver(geoloc_event('bob@example.org', geoloc(lat=3, lon=4)))
    assert view.locations

    await controller.disconnect()

    assert controller.sharing is False
    assert controller.session.state == ConnectionState.DISCONNECTED
    assert view.locations == {}
    assert transport.requests('retract')


def test_console_view_rendering():
    view = ConsoleView()

    assert view.render_roster() == ["No contacts"]
    assert view.render_locations() == ["No active location shares"]


@pytest.mark.asyncio
async def test_connect_returns_false_when_transport_cannot_be_built(transport_factory, transports, view):
    def rejecting_factory(jid, password, endpoint):
        raise ValueError("invalid JID")

    controller = GeoShareController(make_config(), view=view, transport_factory=rejecting_factory)

    assert await controller.connect(timeout=5) is False
    assert controller.session.state == ConnectionState.DISCONNECTED
    assert view.toasts[-1][1] == 'error'

    # The next attempt starts from a clean state
    controller.session.transport_factory = transport_factory
    assert await connected(controller, transports)


@pytest.mark.asyncio
async def test_unsupported_endpoint_is_reported_before_connecting(transport_factory, transports, view):
    config = make_config(xmpp={'jid': 'alice@example.org', 'password': 'secret',
                               'endpoint': 'wss://example.org/ws'})
    controller = GeoShareController(config, view=view, transport_factory=transport_factory)

    await connected(controller, transports)

    assert ('websocket endpoint wss://example.org/ws is not supported, '
            'connecting via DNS SRV instead', 'warning') in view.toasts
    assert transports[-1].endpoint.url == 'wss://example.org/ws'


@pytest.mark.asyncio
async def test_tcp_endpoint_is_not_reported(transport_factory, transports, view):
    config = make_config(xmpp={'jid': 'alice@example.org', 'password': 'secret',
                               'server': 'xmpp.example.org'})
    controller = GeoShareController(config, view=view, transport_factory=transport_factory)

    await connected(controller, transports)

    assert not [message for message, level in view.toasts if level == 'warning']
