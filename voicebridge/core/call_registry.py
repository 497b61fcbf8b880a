"""
Registry of live call sessions, keyed by call id.

A session is present exactly while its control channel is open: intake
registers it after the channel opens and unregisters it when the receive loop
exits.
"""

from typing import Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)


class CallRegistry:
    def __init__(self):
        self._sessions: Dict[str, object] = {}

    def register(self, session) -> None:
        call_id = session.call_id
        existing = self._sessions.get(call_id)
        if existing is not None and existing is not session:
            logger.warning("Replacing existing session for call", call_id=call_id)
        self._sessions[call_id] = session
        logger.debug("Session registered", call_id=call_id, active=len(self._sessions))

    def unregister(self, call_id: str, session=None) -> bool:
        """
        Remove a call. When session is given, only that exact session is
        removed, so a late close cannot evict a newer session for the same id.
        """
        current = self._sessions.get(call_id)
        if current is None:
            return False
        if session is not None and current is not session:
            return False
        del self._sessions[call_id]
        logger.debug("Session unregistered", call_id=call_id, active=len(self._sessions))
        return True

    def get(self, call_id: str) -> Optional[object]:
        return self._sessions.get(call_id)

    def call_ids(self) -> List[str]:
        return list(self._sessions.keys())

    def __contains__(self, call_id: object) -> bool:
        return call_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
