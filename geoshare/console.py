"""
Interactive command loop for GeoShare.

Reads commands from stdin without blocking the event loop and maps them to
controller/session operations.
"""

import asyncio
import logging

from geoloc_xmpp.errors import InvalidStateError

from .core.controller import GeoShareController
from .core.view import ConsoleView


logger = logging.getLogger('geoshare')

COMMANDS = [
    ("/connect", "Connect to the server"),
    ("/disconnect", "Retract location and disconnect"),
    ("/status", "Show connection and sharing state"),
    ("/roster", "Show contacts (online first)"),
    ("/locations", "Show contacts sharing a location"),
    ("/refresh", "Pull locations of online/mutual contacts"),
    ("/pull <jid>", "Pull one contact's location"),
    ("/share start|stop|now", "Control periodic location publishing"),
    ("/clear", "Publish an empty location"),
    ("/help", "Show this help"),
    ("/quit", "Disconnect and exit"),
]


def print_help():
    print("\nCommands:")
    for command, description in COMMANDS:
        print(f"  {command:<24} - {description}")
    print()


async def handle_command(command: str, controller: GeoShareController, view: ConsoleView) -> bool:
    """
    Execute one command line.

    Returns:
        False when the loop should stop
    """
    session = controller.session
    parts = command.split()
    name, args = parts[0], parts[1:]

    if name == "/help":
        print_help()

    elif name == "/quit":
        await controller.disconnect()
        return False

    elif name == "/connect":
        if await controller.connect():
            logger.info(f"Connected as {session.local_jid}")
        else:
            logger.error("Connection failed")

    elif name == "/disconnect":
        await controller.disconnect()
        logger.info("Disconnected. Use /connect to reconnect.")

    elif name == "/status":
        logger.info(f"  State: {session.state.value}")
        logger.info(f"  JID: {session.local_jid or '-'}")
        logger.info(f"  Sharing: {controller.sharing} (every {controller.config.sharing.interval_seconds}s)")
        logger.info(f"  Caps ver: {session.capabilities.ver}")

    elif name == "/roster":
        for line in view.render_roster():
            print(line)

    elif name in ("/locations", "/users"):
        for line in view.render_locations():
            print(line)

    elif name == "/refresh":
        count = controller.refresh()
        logger.info(f"Requested {count} locations")

    elif name == "/pull":
        if len(args) != 1:
            logger.error("Usage: /pull <jid>")
            return True
        record = await session.request_contact_geoloc(args[0])
        if record:
            logger.info(f"{args[0]}: {record.lat:.5f}, {record.lon:.5f} ({record.time_ago()})")
        else:
            logger.info(f"No location for {args[0]}")

    elif name == "/share":
        action = args[0] if args else 'now'
        if action == 'start':
            controller.start_sharing()
        elif action == 'stop':
            await controller.stop_sharing()
        elif action == 'now':
            if await controller.share_now():
                logger.info("Location published")
        else:
            logger.error("Usage: /share start|stop|now")

    elif name == "/clear":
        if await session.publish_empty_geoloc():
            logger.info("Published empty location")

    else:
        logger.error(f"Unknown command: {command}")

    return True


async def run_console(controller: GeoShareController, view: ConsoleView):
    """Run the command loop until /quit, EOF or Ctrl+C."""
    print_help()
    loop = asyncio.get_running_loop()

    while True:
        try:
            command = await loop.run_in_executor(None, input, "geoshare> ")
        except EOFError:
            await controller.disconnect()
            break
        except KeyboardInterrupt:
            logger.info("Received Ctrl+C, disconnecting...")
            await controller.disconnect()
            break

        command = command.strip()
        if not command:
            continue

        try:
            if not await handle_command(command, controller, view):
                break
        except InvalidStateError as e:
            logger.error(f"Not possible right now: {e}")
        except Exception as e:
            logger.exception(f"Error: {e}")

    logger.info("Goodbye!")
