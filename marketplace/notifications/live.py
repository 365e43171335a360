"""
Registry of live websocket connections, keyed by user id and by role.

Route handlers run in worker threads, so pushes are scheduled onto the
event loop that owns the sockets and never awaited: delivery is best-effort
and a dropped push is only logged.
"""
import asyncio
import logging
import threading
from collections import defaultdict
from typing import Any, Dict, Optional, Set

logger = logging.getLogger(__name__)


def _log_push_failure(future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.warning(f"Live push dropped: {exc!r}")


class ConnectionRegistry:
    def __init__(self):
        self._lock = threading.Lock()
        self._by_user: Dict[int, Set[Any]] = defaultdict(set)
        self._by_role: Dict[str, Set[Any]] = defaultdict(set)
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        self._loop = loop

    def register(self, websocket, user_id: int, role: Optional[str] = None) -> None:
        with self._lock:
            self._by_user[user_id].add(websocket)
            if role:
                self._by_role[role].add(websocket)
        logger.info(f"Live connection registered for user {user_id}")

    def unregister(self, websocket, user_id: int, role: Optional[str] = None) -> None:
        with self._lock:
            self._by_user.get(user_id, set()).discard(websocket)
            if not self._by_user.get(user_id):
                self._by_user.pop(user_id, None)
            if role:
                self._by_role.get(role, set()).discard(websocket)
                if not self._by_role.get(role):
                    self._by_role.pop(role, None)
        logger.info(f"Live connection closed for user {user_id}")

    def connection_count(self, user_id: int) -> int:
        with self._lock:
            return len(self._by_user.get(user_id, ()))

    def total_connections(self) -> int:
        with self._lock:
            return sum(len(sockets) for sockets in self._by_user.values())

    def clear(self) -> None:
        with self._lock:
            self._by_user.clear()
            self._by_role.clear()

    def send_to_user(self, user_id: int, message: dict) -> int:
        with self._lock:
            sockets = list(self._by_user.get(user_id, ()))
        return self._send(sockets, message)

    def send_to_role(self, role: str, message: dict) -> int:
        with self._lock:
            sockets = list(self._by_role.get(role, ()))
        return self._send(sockets, message)

    def _send(self, sockets, message: dict) -> int:
        """Returns how many pushes were scheduled."""
        if not sockets:
            return 0

        loop = self._loop
        if loop is None or loop.is_closed() or not loop.is_running():
            logger.info("No running event loop bound; live push skipped")
            return 0

        scheduled = 0
        for websocket in sockets:
            future = asyncio.run_coroutine_threadsafe(websocket.send_json(message), loop)
            future.add_done_callback(_log_push_failure)
            scheduled += 1
        return scheduled


registry = ConnectionRegistry()
