"""Journey record store boundary.

The durable session store is an external collaborator; the engine only relies
on lookup by id, saving closed sessions and filtered queries.
"""
from __future__ import annotations
import asyncio
import copy
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Protocol
from journey_analyzer.models.journey import JourneySession, SessionOutcome

logger = logging.getLogger(__name__)


class JourneyStore(Protocol):
    async def get_session(self, session_id: str) -> Optional[JourneySession]:
        ...

    async def save_session(self, session: JourneySession) -> None:
        ...

    async def query_sessions(self, outcome: Optional[SessionOutcome] = None,
                             start: Optional[datetime] = None,
                             end: Optional[datetime] = None,
                             client_ids: Optional[Iterable[str]] = None) -> List[JourneySession]:
        ...


class InMemoryJourneyStore:
    """Dict-backed store; returns copies so callers see read-only snapshots."""

    def __init__(self, sessions: Optional[Iterable[JourneySession]] = None):
        self._sessions: Dict[str, JourneySession] = {}
        self._lock = asyncio.Lock()
        for session in sessions or []:
            self._sessions[session.session_id] = copy.deepcopy(session)

    def __len__(self) -> int:
        return len(self._sessions)

    async def get_session(self, session_id: str) -> Optional[JourneySession]:
        session = self._sessions.get(session_id)
        return copy.deepcopy(session) if session else None

    async def save_session(self, session: JourneySession) -> None:
        async with self._lock:
            self._sessions[session.session_id] = copy.deepcopy(session)
        logger.debug(f"Stored session {session.session_id} ({session.final_outcome.value})")

    async def query_sessions(self, outcome: Optional[SessionOutcome] = None,
                             start: Optional[datetime] = None,
                             end: Optional[datetime] = None,
                             client_ids: Optional[Iterable[str]] = None) -> List[JourneySession]:
        wanted_clients = set(client_ids) if client_ids else None
        results = []
        for session in self._sessions.values():
            if outcome is not None and session.final_outcome != outcome:
                continue
            if start is not None and session.session_start < start:
                continue
            if end is not None and session.session_start > end:
                continue
            if wanted_clients is not None and session.client_id not in wanted_clients:
                continue
            results.append(copy.deepcopy(session))
        results.sort(key=lambda s: s.session_start)
        return results
