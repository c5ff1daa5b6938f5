import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from geoloc_xmpp import host_meta
from geoloc_xmpp.constants import REL_BOSH, REL_WEBSOCKET
from geoloc_xmpp.errors import DiscoveryUnavailable
from geoloc_xmpp.host_meta import (
    HostMetaLink, discover_endpoint, guess_websocket_endpoint,
    parse_host_meta_json, parse_host_meta_xml, select_endpoint
)
from geoloc_xmpp.models import EndpointScheme


JSON_URL = 'https://example.org/.well-known/host-meta.json'
XML_URL = 'https://example.org/.well-known/host-meta'


def fake_fetch(documents):
    """_fetch_text replacement serving documents by URL; missing URLs fail."""
    requested = []

    async def fetch(session, url, timeout=None):
        requested.append(url)
        if url not in documents:
            raise DiscoveryUnavailable(f"{url} returned HTTP 404")
        return documents[url]

    fetch.requested = requested
    return fetch


def fake_http_session(bodies):
    """aiohttp-like session answering 200 with raw bytes, decoded strictly like aiohttp."""
    def get(url, **kwargs):
        response = MagicMock(status=200)
        response.text = AsyncMock(side_effect=lambda: bodies[url].decode('utf-8'))
        context = MagicMock()
        context.__aenter__ = AsyncMock(return_value=response)
        context.__aexit__ = AsyncMock(return_value=False)
        return context

    session = MagicMock()
    session.get.side_effect = get
    return session


def test_parse_json_links():
    text = json.dumps({'links': [
        {'rel': REL_WEBSOCKET, 'href': 'wss://example.org/ws'},
        {'rel': REL_BOSH, 'href': 'https://example.org/bosh'},
        {'rel': 'lrdd', 'template': 'https://example.org/{uri}'},
    ]})

    links = parse_host_meta_json(text)

    assert HostMetaLink(REL_WEBSOCKET, 'wss://example.org/ws') in links
    assert HostMetaLink(REL_BOSH, 'https://example.org/bosh') in links


def test_parse_json_rejects_garbage():
    with pytest.raises(DiscoveryUnavailable):
        parse_host_meta_json('<html>not json</html>')


def test_parse_xml_links_with_template():
    text = (
        "<?xml version='1.0' encoding='utf-8'?>"
        "<XRD xmlns='http://docs.oasis-open.org/ns/xri/xrd-1.0'>"
        f"<Link rel='{REL_WEBSOCKET}' template='wss://{{host}}/xmpp-websocket'/>"
        "</XRD>"
    )

    assert parse_host_meta_xml(text) == [HostMetaLink(REL_WEBSOCKET, 'wss://{host}/xmpp-websocket')]


def test_secure_websocket_wins_regardless_of_order():
    links = [
        HostMetaLink(REL_WEBSOCKET, 'ws://example.org/ws'),
        HostMetaLink(REL_WEBSOCKET, 'wss://example.org/ws'),
    ]

    assert select_endpoint(links, 'example.org').url == 'wss://example.org/ws'
    assert select_endpoint(list(reversed(links)), 'example.org').url == 'wss://example.org/ws'


def test_first_secure_websocket_is_kept():
    links = [
        HostMetaLink(REL_WEBSOCKET, 'wss://one.example.org/ws'),
        HostMetaLink(REL_WEBSOCKET, 'wss://two.example.org/ws'),
    ]

    assert select_endpoint(links, 'example.org').url == 'wss://one.example.org/ws'


def test_websocket_preferred_over_bosh():
    links = [
        HostMetaLink(REL_BOSH, 'https://example.org/bosh'),
        HostMetaLink(REL_WEBSOCKET, 'ws://example.org/ws'),
    ]

    endpoint = select_endpoint(links, 'example.org')

    assert endpoint.scheme == EndpointScheme.WEBSOCKET


def test_bosh_used_as_fallback():
    links = [HostMetaLink(REL_BOSH, 'https://example.org/bosh')]

    endpoint = select_endpoint(links, 'example.org')

    assert endpoint.scheme == EndpointScheme.BOSH
    assert endpoint.url == 'https://example.org/bosh'


def test_empty_targets_are_unusable():
    links = [HostMetaLink(REL_WEBSOCKET, ''), HostMetaLink(REL_BOSH, None)]

    assert select_endpoint(links, 'example.org') is None


def test_unrelated_relations_give_none():
    assert select_endpoint([HostMetaLink('lrdd', 'https://example.org/x')], 'example.org') is None


def test_guess_websocket_endpoint():
    assert guess_websocket_endpoint('example.org').url == 'wss://example.org:5281/xmpp-websocket'
    assert guess_websocket_endpoint('localhost') is None


@pytest.mark.asyncio
async def test_discover_prefers_wss_from_json(monkeypatch):
    fetch = fake_fetch({JSON_URL: json.dumps({'links': [
        {'rel': REL_WEBSOCKET, 'href': 'ws://example.org/ws'},
        {'rel': REL_WEBSOCKET, 'href': 'wss://example.org/ws'},
    ]})})
    monkeypatch.setattr(host_meta, '_fetch_text', fetch)

    endpoint = await discover_endpoint('example.org', session=object())

    assert endpoint.url == 'wss://example.org/ws'
    assert fetch.requested == [JSON_URL]


@pytest.mark.asyncio
async def test_discover_falls_back_to_xml_template(monkeypatch):
    fetch = fake_fetch({XML_URL: (
        "<XRD xmlns='http://docs.oasis-open.org/ns/xri/xrd-1.0'>"
        f"<Link rel='{REL_WEBSOCKET}' template='wss://{{host}}:5281/xmpp-websocket'/>"
        "</XRD>"
    )})
    monkeypatch.setattr(host_meta, '_fetch_text', fetch)

    endpoint = await discover_endpoint('example.org', session=object())

    assert endpoint.url == 'wss://example.org:5281/xmpp-websocket'
    assert fetch.requested == [JSON_URL, XML_URL]


@pytest.mark.asyncio
async def test_discover_falls_back_to_xml_on_malformed_json(monkeypatch):
    fetch = fake_fetch({
        JSON_URL: '{"links": ',
        XML_URL: f"<XRD><Link rel='{REL_BOSH}' href='https://example.org/bosh'/></XRD>",
    })
    monkeypatch.setattr(host_meta, '_fetch_text', fetch)

    endpoint = await discover_endpoint('example.org', session=object())

    assert endpoint.scheme == EndpointScheme.BOSH


@pytest.mark.asyncio
async def test_discover_without_relations_returns_none(monkeypatch):
    monkeypatch.setattr(host_meta, '_fetch_text', fake_fetch({
        JSON_URL: json.dumps({'links': [{'rel': 'lrdd', 'href': 'https://example.org/x'}]}),
    }))

    assert await discover_endpoint('example.org', session=object()) is None


@pytest.mark.asyncio
async def test_discover_network_failure_returns_none(monkeypatch):
    monkeypatch.setattr(host_meta, '_fetch_text', fake_fetch({}))

    assert await discover_endpoint('example.org', session=object()) is None


def test_parse_json_ignores_non_string_values():
    text = json.dumps({'links': [
        {'rel': REL_WEBSOCKET, 'href': 123},
        {'rel': REL_WEBSOCKET, 'href': ['wss://example.org/ws']},
        {'rel': 42, 'href': 'wss://example.org/ws'},
        {'rel': REL_BOSH, 'href': None, 'template': 'https://{host}/bosh'},
    ]})

    links = parse_host_meta_json(text)

    assert links[0] == HostMetaLink(REL_WEBSOCKET, None)
    assert links[1] == HostMetaLink(REL_WEBSOCKET, None)
    assert links[2] == HostMetaLink(None, 'wss://example.org/ws')
    assert links[3] == HostMetaLink(REL_BOSH, 'https://{host}/bosh')


@pytest.mark.asyncio
async def test_discover_numeric_href_is_not_found(monkeypatch):
    monkeypatch.setattr(host_meta, '_fetch_text', fake_fetch({
        JSON_URL: json.dumps({'links': [{'rel': REL_WEBSOCKET, 'href': 123}]}),
    }))

    assert await discover_endpoint('example.org', session=object()) is None


@pytest.mark.asyncio
async def test_discover_undecodable_json_falls_back_to_xml():
    session = fake_http_session({
        JSON_URL: b'\xff\xfe{"links": []}',
        XML_URL: f"<XRD><Link rel='{REL_WEBSOCKET}' href='wss://example.org/ws'/></XRD>".encode(),
    })

    endpoint = await discover_endpoint('example.org', session=session)

    assert endpoint.url == 'wss://example.org/ws'
    assert [c.args[0] for c in session.get.call_args_list] == [JSON_URL, XML_URL]


@pytest.mark.asyncio
async def test_discover_undecodable_documents_give_none():
    session = fake_http_session({JSON_URL: b'\xff\xfe\x00', XML_URL: b'\xff\xfe<XRD/>'})

    assert await discover_endpoint('example.org', session=session) is None
