"""LISTEN on a dedicated connection until one matching notification arrives."""

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from .exceptions import PgQueryError
from .types import Notification

if TYPE_CHECKING:
    from .pool import PgQuery

logger = logging.getLogger(__name__)


async def wait_for_notification(query: "PgQuery", channel: str) -> Notification:
    """Open a dedicated connection, LISTEN on ``channel`` and wait.

    Resolves with the first notification whose channel equals ``channel``;
    notifications for other channels are ignored. There is no timeout. The
    dedicated connection is closed once the call completes, fails, or is
    cancelled.

    Raises:
        PgConnectionError: If the dedicated connection cannot be opened.
        PgQueryError: If the subscription fails.
    """
    handle = await query.acquire_dedicated_connection()
    connection = handle.connection
    received: asyncio.Future = asyncio.get_running_loop().create_future()

    def on_notification(conn: Any, pid: int, name: str, payload: str) -> None:
        if name == channel and not received.done():
            received.set_result(Notification(channel=name, payload=payload, pid=pid))

    subscribed = False
    try:
        try:
            await connection.add_listener(channel, on_notification)
        except Exception as e:
            raise PgQueryError("Query error", f"LISTEN {channel}", cause=e) from e
        subscribed = True
        logger.debug(f"Listening on channel {channel}")

        notification = await received
        logger.debug(f"Notification received on channel {channel}")
        return notification
    finally:
        try:
            if subscribed:
                await connection.remove_listener(channel, on_notification)
        except Exception as e:
            logger.warning(f"Unlisten on channel {channel} failed: {e}")
        finally:
            await handle.release()
