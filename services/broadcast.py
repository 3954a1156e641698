import logging
from collections import defaultdict
from typing import Any, Dict, Set

logger = logging.getLogger(__name__)


class BroadcastHub:
    """Live WebSocket connections grouped into named broadcast groups.

    A connection always sits in its owner's personal group and joins a
    session group only when the client asks to. Nothing is buffered for
    disconnected clients; they re-fetch on reconnect.
    """

    def __init__(self):
        self._groups: Dict[str, Set[Any]] = defaultdict(set)
        self._memberships: Dict[Any, Set[str]] = defaultdict(set)

    @staticmethod
    def session_group(session_id: str) -> str:
        return f"session:{session_id}"

    @staticmethod
    def user_group(user_id: str) -> str:
        return f"user:{user_id}"

    def join(self, group: str, connection) -> None:
        self._groups[group].add(connection)
        self._memberships[connection].add(group)

    def leave_all(self, connection) -> None:
        for group in self._memberships.pop(connection, set()):
            members = self._groups.get(group)
            if members is None:
                continue
            members.discard(connection)
            if not members:
                del self._groups[group]

    def members(self, group: str) -> Set[Any]:
        return set(self._groups.get(group, ()))

    async def broadcast(self, group: str, event: str, payload: Any) -> int:
        """Send ``{"event", "data"}`` to every connection in ``group``.

        Connections that fail to receive are dropped from all their groups.
        Returns the number of connections reached.
        """
        delivered = 0
        dead = []
        for connection in self.members(group):
            try:
                await connection.send_json({"event": event, "data": payload})
                delivered += 1
            except Exception:
                logger.warning("Dropping connection in %s after failed send", group, exc_info=True)
                dead.append(connection)
        for connection in dead:
            self.leave_all(connection)
        return delivered


hub = BroadcastHub()
