"""
Live-session directory

Process-local bookkeeping of which customers are on a call right now, so a
supervisor's answer can be spoken to them before they hang up. Nothing here
is persisted.
"""

import threading
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from src.core.logging import get_plain_logger
from src.models.records import utcnow

logger = get_plain_logger(__name__)


@dataclass
class LiveSession:
    customer_phone: str
    session_handle: Any  # anything with a say(message) method
    room_name: str
    connected_at: datetime = field(default_factory=utcnow)


class SessionDirectory:
    """
    At most one live session per customer phone

    Voice jobs and the poller run on different threads, so every access goes
    through one lock.
    """

    def __init__(self):
        self._sessions: Dict[str, LiveSession] = {}
        self._lock = threading.Lock()

    def register(self, customer_phone: str, session_handle: Any, room_name: str) -> LiveSession:
        live = LiveSession(customer_phone, session_handle, room_name)
        with self._lock:
            replaced = customer_phone in self._sessions
            self._sessions[customer_phone] = live
        if replaced:
            logger.info(f"Replacing stale session for {customer_phone}")
        logger.info(f"Registered session for {customer_phone} in room {room_name}")
        return live

    def unregister(self, customer_phone: str, session_handle: Any = None) -> bool:
        """
        Forget a customer's session

        With ``session_handle`` only that exact registration is removed, so a
        late disconnect from an old call cannot evict a newer one.
        """
        with self._lock:
            live = self._sessions.get(customer_phone)
            if live is None:
                return False
            if session_handle is not None and live.session_handle is not session_handle:
                return False
            del self._sessions[customer_phone]
        logger.info(f"Unregistered session for {customer_phone}")
        return True

    def get(self, customer_phone: str) -> Optional[LiveSession]:
        with self._lock:
            return self._sessions.get(customer_phone)

    def is_active(self, customer_phone: str) -> bool:
        with self._lock:
            return customer_phone in self._sessions

    def all_sessions(self) -> List[LiveSession]:
        with self._lock:
            return list(self._sessions.values())

    def count(self) -> int:
        with self._lock:
            return len(self._sessions)
