"""
XEP-0156: Discovering Alternative XMPP Connection Methods.

Resolves a domain to a websocket (preferred) or BOSH endpoint by fetching
the domain's host-meta document, JSON form first, XML form as fallback.

Discovery is advisory: every failure (network, timeout, HTTP status, parse
error) collapses to None and the caller falls back to a manual endpoint.
"""

import asyncio
import json
import logging
import xml.etree.ElementTree as ET
from typing import List, NamedTuple, Optional

import aiohttp

from .constants import (
    REL_WEBSOCKET, REL_BOSH,
    HOST_META_JSON_URL, HOST_META_XML_URL, HOST_META_PLACEHOLDER,
    DEFAULT_WEBSOCKET_URL
)
from .errors import DiscoveryUnavailable
from .models import Endpoint, EndpointScheme

logger = logging.getLogger('geoloc-xmpp.host-meta')


class HostMetaLink(NamedTuple):
    """A typed link from a host-meta document."""
    rel: Optional[str]
    target: Optional[str]


def parse_host_meta_json(text: str) -> List[HostMetaLink]:
    """
    Parse a host-meta.json body: {"links": [{"rel": ..., "href": ...}, ...]}.

    Raises:
        DiscoveryUnavailable: If the body is not valid JSON
    """
    try:
        doc = json.loads(text)
    except ValueError as e:
        raise DiscoveryUnavailable(f"Malformed host-meta.json: {e}")

    links = doc.get('links') if isinstance(doc, dict) else None
    if not isinstance(links, list):
        return []

    result = []
    for link in links:
        if not isinstance(link, dict):
            continue
        # Non-string values count as missing
        rel, href, template = (
            value if isinstance(value, str) else None
            for value in (link.get('rel'), link.get('href'), link.get('template'))
        )
        result.append(HostMetaLink(rel, href or template))
    return result


def parse_host_meta_xml(text: str) -> List[HostMetaLink]:
    """
    Parse an XRD host-meta body: <XRD><Link rel="..." href="..."/></XRD>.

    'template' is accepted in place of 'href'. Link elements are matched by
    local name so both namespaced and bare XRD documents work.

    Raises:
        DiscoveryUnavailable: If the body is not well-formed XML
    """
    try:
        root = ET.fromstring(text)
    except ET.ParseError as e:
        raise DiscoveryUnavailable(f"Malformed host-meta: {e}")

    result = []
    for element in root.iter():
        tag = element.tag.rsplit('}', 1)[-1] if isinstance(element.tag, str) else ''
        if tag != 'Link':
            continue
        result.append(HostMetaLink(element.get('rel'), element.get('href') or element.get('template')))
    return result


def select_endpoint(links: List[HostMetaLink], domain: str) -> Optional[Endpoint]:
    """
    Pick the endpoint to use from a list of links.

    Rules:
    - '{host}' in a target is replaced by the literal domain; empty targets are unusable
    - A websocket link replaces an already-found one only when it upgrades
      from an insecure to a secure scheme (ws:// -> wss://)
    - The best BOSH link is tracked the same way as a fallback
    - Websocket beats BOSH

    Returns:
        Endpoint, or None if no usable link was found
    """
    websocket = None
    bosh = None

    for link in links:
        if not link.rel:
            continue

        target = (link.target or '').replace(HOST_META_PLACEHOLDER, domain).strip()
        if not target:
            continue

        if link.rel == REL_WEBSOCKET:
            candidate = Endpoint(EndpointScheme.WEBSOCKET, target)
            if websocket is None or (candidate.is_secure and not websocket.is_secure):
                websocket = candidate
        elif link.rel == REL_BOSH:
            candidate = Endpoint(EndpointScheme.BOSH, target)
            if bosh is None or (candidate.is_secure and not bosh.is_secure):
                bosh = candidate

    return websocket or bosh


def guess_websocket_endpoint(domain: str) -> Optional[Endpoint]:
    """Conventional websocket URL for a domain, used to pre-fill manual entry."""
    domain = (domain or '').strip()
    if not domain or '.' not in domain:
        return None
    return Endpoint(EndpointScheme.WEBSOCKET, DEFAULT_WEBSOCKET_URL.format(domain=domain))


async def _fetch_text(session: aiohttp.ClientSession, url: str,
                      timeout: Optional[float] = None) -> str:
    """
    GET a URL and return its body.

    Raises:
        DiscoveryUnavailable: On network error, timeout, non-2xx status or undecodable body
    """
    # Without an explicit timeout the session default applies
    extra = {'timeout': aiohttp.ClientTimeout(total=timeout)} if timeout else {}
    try:
        async with session.get(url, headers={'Cache-Control': 'no-cache'}, **extra) as response:
            if response.status < 200 or response.status >= 300:
                raise DiscoveryUnavailable(f"{url} returned HTTP {response.status}")
            return await response.text()
    except aiohttp.ClientError as e:
        raise DiscoveryUnavailable(f"{url}: {e}")
    except UnicodeDecodeError as e:
        raise DiscoveryUnavailable(f"{url}: undecodable body ({e.reason})")
    except asyncio.TimeoutError:
        raise DiscoveryUnavailable(f"{url}: timeout")


async def _fetch_links(session: aiohttp.ClientSession, domain: str,
                       timeout: Optional[float]) -> List[HostMetaLink]:
    json_url = HOST_META_JSON_URL.format(domain=domain)
    try:
        text = await _fetch_text(session, json_url, timeout)
        return parse_host_meta_json(text)
    except DiscoveryUnavailable as e:
        logger.debug(f"JSON host-meta not usable, trying XML: {e}")

    xml_url = HOST_META_XML_URL.format(domain=domain)
    text = await _fetch_text(session, xml_url, timeout)
    return parse_host_meta_xml(text)


async def discover_endpoint(domain: str,
                            session: Optional[aiohttp.ClientSession] = None,
                            timeout: Optional[float] = None) -> Optional[Endpoint]:
    """
    Discover the connection endpoint for a domain (XEP-0156).

    Args:
        domain: Account domain (e.g., 'example.org')
        session: Optional aiohttp session to reuse (a private one is created otherwise)
        timeout: Optional total timeout per request in seconds (aiohttp default if None)

    Returns:
        Endpoint (websocket preferred over BOSH), or None if not found
    """
    domain = (domain or '').strip()
    if not domain:
        return None

    logger.info(f"Discovering endpoints for {domain}...")

    try:
        if session is None:
            async with aiohttp.ClientSession() as own_session:
                links = await _fetch_links(own_session, domain, timeout)
        else:
            links = await _fetch_links(session, domain, timeout)
    except DiscoveryUnavailable as e:
        logger.warning(f"Endpoint discovery failed for {domain}: {e}")
        return None

    endpoint = select_endpoint(links, domain)
    if endpoint:
        logger.info(f"Found endpoint: {endpoint.url} ({endpoint.scheme.value})")
    else:
        logger.warning(f"No endpoints found for {domain}")
    return endpoint
