"""
Roster and presence tracking (RFC 6121).

Holds the contact list fetched from the server with a presence-driven online
flag on top. The roster is replaced wholesale on every roster result, so no
entry from a previous session survives a reconnect.
"""

import copy
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from .models import RosterEntry, Subscription


logger = logging.getLogger('geoloc-xmpp.roster')


def is_online_presence(presence_type: Optional[str]) -> bool:
    """A presence without type, or with type 'available', means online."""
    return not presence_type or presence_type == 'available'


def roster_sort_key(entry: RosterEntry):
    """Online before offline, then by display name."""
    return (not entry.online, entry.name.casefold(), entry.name)


class RosterTracker:
    """Contact list + online flags for one session."""

    def __init__(self):
        self._entries: Dict[str, RosterEntry] = {}

    def __contains__(self, jid: str) -> bool:
        return jid in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, jid: str) -> Optional[RosterEntry]:
        entry = self._entries.get(jid)
        return copy.copy(entry) if entry else None

    def replace(self, contacts: Iterable[Tuple[str, str, Subscription]]):
        """
        Replace the whole roster with a fresh server result.

        Every contact starts offline; presence received afterwards flips it.

        Args:
            contacts: (jid, display name, subscription) tuples
        """
        entries = {}
        for jid, name, subscription in contacts:
            entries[jid] = RosterEntry(
                jid=jid,
                name=name or jid.split('@')[0],
                subscription=Subscription.normalize(subscription),
                online=False
            )
        self._entries = entries
        logger.info(f"Roster: {len(entries)} contacts")

    def apply_presence(self, jid: str, presence_type: Optional[str]) -> bool:
        """
        Update a contact's online flag from a presence stanza.

        Args:
            jid: Bare JID of the contact (must be in the roster)
            presence_type: Presence 'type' attribute (None = available)

        Returns:
            True only on an offline -> online edge
        """
        entry = self._entries.get(jid)
        if entry is None:
            return False

        was_online = entry.online
        entry.online = is_online_presence(presence_type)
        return entry.online and not was_online

    def location_candidates(self) -> List[str]:
        """JIDs worth pulling a location from: online, or mutual subscription."""
        return [
            jid for jid, entry in self._entries.items()
            if entry.online or entry.subscription == Subscription.BOTH
        ]

    def snapshot(self) -> List[RosterEntry]:
        """Sorted copy of the roster, recomputed on every call."""
        return sorted((copy.copy(e) for e in self._entries.values()), key=roster_sort_key)

    def clear(self):
        self._entries = {}
