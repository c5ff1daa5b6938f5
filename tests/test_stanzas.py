from datetime import datetime, timezone

import pytest

from geoloc_xmpp.caps import CapabilitySet
from geoloc_xmpp.constants import (
    CAPS_NODE, NS_CAPS, NS_DISCO_INFO, NS_GEOLOC, NS_PUBSUB
)
from geoloc_xmpp.errors import MalformedLocationPayload
from geoloc_xmpp.models import LocalLocation, Subscription
from geoloc_xmpp.stanzas import (
    build_caps, build_disco_info, build_empty_geoloc_publish, build_geoloc_publish,
    build_geoloc_request, build_geoloc_retract, find_geoloc_in_items, format_decimal,
    parse_geoloc, parse_roster
)

from stanza_factory import geoloc, items_result, q, roster_result


T = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def geoloc_fields(pubsub):
    element = pubsub.find(f"{q(NS_PUBSUB, 'publish')}/{q(NS_PUBSUB, 'item')}/{q(NS_GEOLOC, 'geoloc')}")
    return {child.tag.split('}')[1]: child.text for child in element}


def test_format_decimal_is_plain_text():
    assert format_decimal(51.5) == '51.5'
    assert format_decimal(-0.09) == '-0.09'
    assert format_decimal(1e-05) == '0.00001'
    assert format_decimal(25.0) == '25'
    assert format_decimal(-0.0) == '0'


def test_caps_element():
    caps = CapabilitySet()
    element = build_caps(caps)

    assert element.tag == q(NS_CAPS, 'c')
    assert element.get('hash') == 'sha-1'
    assert element.get('node') == CAPS_NODE
    assert element.get('ver') == caps.ver


def test_disco_info_lists_identity_and_sorted_features():
    caps = CapabilitySet(features=('urn:b', 'urn:a'))
    query = build_disco_info(caps, node=f"{CAPS_NODE}#{caps.ver}")

    assert query.get('node') == f"{CAPS_NODE}#{caps.ver}"
    identity = query.find(q(NS_DISCO_INFO, 'identity'))
    assert (identity.get('category'), identity.get('type'), identity.get('name')) == caps.identity
    assert [f.get('var') for f in query.findall(q(NS_DISCO_INFO, 'feature'))] == ['urn:a', 'urn:b']


def test_disco_info_without_node():
    assert build_disco_info(CapabilitySet()).get('node') is None


def test_geoloc_request_asks_for_one_item():
    items = build_geoloc_request().find(q(NS_PUBSUB, 'items'))

    assert items.get('node') == NS_GEOLOC
    assert items.get('max_items') == '1'


def test_publish_uses_fixed_item_and_rounds_accuracy():
    pubsub = build_geoloc_publish(LocalLocation(lat=51.5, lon=-0.09, accuracy=24.6, timestamp=T))

    item = pubsub.find(f"{q(NS_PUBSUB, 'publish')}/{q(NS_PUBSUB, 'item')}")
    assert item.get('id') == 'current'
    assert geoloc_fields(pubsub) == {
        'lat': '51.5',
        'lon': '-0.09',
        'accuracy': '25',
        'timestamp': '2024-05-01T12:00:00.000Z',
    }


def test_publish_includes_optional_fields_only_when_present():
    with_extras = build_geoloc_publish(
        LocalLocation(lat=1, lon=2, accuracy=3, altitude=0.0, speed=1.25, timestamp=T)
    )

    fields = geoloc_fields(with_extras)
    assert fields['alt'] == '0'
    assert fields['speed'] == '1.25'

    without = geoloc_fields(build_geoloc_publish(LocalLocation(lat=1, lon=2, accuracy=3, timestamp=T)))
    assert 'alt' not in without
    assert 'speed' not in without


def test_empty_publish_has_empty_geoloc():
    pubsub = build_empty_geoloc_publish()

    assert geoloc_fields(pubsub) == {}
    assert pubsub.find(f"{q(NS_PUBSUB, 'publish')}/{q(NS_PUBSUB, 'item')}").get('id') == 'current'


def test_retract_notifies():
    retract = build_geoloc_retract().find(q(NS_PUBSUB, 'retract'))

    assert retract.get('node') == NS_GEOLOC
    assert retract.get('notify') == 'true'
    assert retract.find(q(NS_PUBSUB, 'item')).get('id') == 'current'


def test_parse_roster_defaults():
    result = roster_result(
        ('bob@example.org', 'Bob', 'both'),
        ('carol@example.org', None, 'remove'),
        ('dave@example.org', None, None),
    )

    assert parse_roster(result) == [
        ('bob@example.org', 'Bob', Subscription.BOTH),
        ('carol@example.org', 'carol', Subscription.NONE),
        ('dave@example.org', 'dave', Subscription.NONE),
    ]


def test_find_geoloc_in_items_result():
    payload = geoloc(lat=1, lon=2)

    assert find_geoloc_in_items(items_result(NS_GEOLOC, [('current', payload)])) is payload
    assert find_geoloc_in_items(items_result(NS_GEOLOC, [])) is None


def test_parse_geoloc_full():
    record = parse_geoloc('bob@example.org', geoloc(
        lat='51.5', lon='-0.09', accuracy='25', timestamp='2024-05-01T12:00:00Z', alt='12.5', speed='3'
    ))

    assert (record.lat, record.lon, record.accuracy) == (51.5, -0.09, 25.0)
    assert record.timestamp == T
    assert record.altitude == 12.5
    assert record.speed == 3.0


def test_parse_geoloc_defaults():
    record = parse_geoloc('bob@example.org', geoloc(lat='1', lon='2'), received_at=T)

    assert record.accuracy == 10.0
    assert record.timestamp == T
    assert record.altitude is None


@pytest.mark.parametrize('fields', [
    {},
    {'lat': '51.5'},
    {'lon': '-0.09'},
    {'lat': 'north', 'lon': '1'},
    {'lat': 'nan', 'lon': '1'},
])
def test_parse_geoloc_without_usable_coordinates(fields):
    with pytest.raises(MalformedLocationPayload):
        parse_geoloc('bob@example.org', geoloc(**fields))
