"""
Console UI collaborator.

Keeps the latest snapshots pushed by the session and renders them as
text lines for the command loop. Toasts go to the 'geoshare' log at a
level matching their severity.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from geoloc_xmpp.models import ConnectionState, LocationRecord, RosterEntry
from geoloc_xmpp.session import SessionView


TOAST_LEVELS = {
    'info': logging.INFO,
    'success': logging.INFO,
    'warning': logging.WARNING,
    'error': logging.ERROR,
}


class ConsoleView(SessionView):
    """Text rendering of connection state, roster and shared locations."""

    def __init__(self):
        self.logger = logging.getLogger('geoshare.view')
        self.state = ConnectionState.DISCONNECTED
        self.roster: List[RosterEntry] = []
        self.locations: Dict[str, LocationRecord] = {}

    def on_state_changed(self, state: ConnectionState):
        self.state = state
        self.logger.info(f"Connection state: {state.value}")

    def on_roster_changed(self, entries: List[RosterEntry]):
        self.roster = entries

    def on_locations_changed(self, records: Dict[str, LocationRecord]):
        self.locations = records

    def on_toast(self, message: str, level: str = 'info'):
        self.logger.log(TOAST_LEVELS.get(level, logging.INFO), message)

    def render_roster(self) -> List[str]:
        """One line per contact, online first, then by name."""
        if not self.roster:
            return ["No contacts"]

        lines = []
        for entry in self.roster:
            status = 'online ' if entry.online else 'offline'
            lines.append(f"  [{status}] {entry.name} <{entry.jid}> - {entry.subscription.label}")
        return lines

    def render_locations(self, now: Optional[datetime] = None) -> List[str]:
        """One line per contact sharing a location, with a 'time ago' label."""
        if not self.locations:
            return ["No active location shares"]

        lines = []
        for jid, record in sorted(self.locations.items()):
            name = jid.split('@')[0]
            line = f"  {name}: {record.lat:.5f}, {record.lon:.5f} ±{round(record.accuracy)}m"
            if record.altitude is not None:
                line += f", alt {record.altitude:g}m"
            if record.speed is not None:
                line += f", {record.speed:g}m/s"
            lines.append(f"{line} ({record.time_ago(now)})")
        return lines
