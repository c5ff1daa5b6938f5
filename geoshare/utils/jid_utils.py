"""
JID utility functions.
"""

import zlib


def generate_resource(bare_jid: str) -> str:
    """
    Generate a deterministic resource identifier for an account.

    Uses CRC32 of the bare JID for an 8-character hex suffix, so the same
    account always binds the same resource.
    Format: geoshare.{8-hex-chars}

    Args:
        bare_jid: The bare JID (user@domain) without resource

    Returns:
        Resource string
    """
    crc = zlib.crc32(bare_jid.encode('utf-8')) & 0xffffffff
    return f"geoshare.{crc:08x}"


def full_jid(jid: str) -> str:
    """Add the generated resource to a bare JID; full JIDs are returned as-is."""
    if '/' in jid:
        return jid
    return f"{jid}/{generate_resource(jid)}"
