"""
Session Manager for the MCP transport.

Owns every session record. Callers only ever get snapshots back, so the
record itself is mutated exclusively under this manager's lock. The lock is
never held across an ``await``; remote calls for one session cannot stall
another.

Lifecycle: NEW -> ACTIVE -> IDLE -> CLOSED. Closed identifiers are never
reissued or revived.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import threading
import time
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..utils.errors import UnknownSessionError

logger = logging.getLogger("mcp_wp.sessions")


class SessionState(str, Enum):
    NEW = "new"
    ACTIVE = "active"
    IDLE = "idle"
    CLOSED = "closed"


@dataclass
class Session:
    session_id: str
    created_at: float
    last_activity: float
    state: SessionState = SessionState.NEW
    request_count: int = 0
    client_info: Dict[str, Any] = field(default_factory=dict)

    def idle_for(self, now: float) -> float:
        return now - self.last_activity


def new_session_id() -> str:
    return secrets.token_hex(16)


class SessionManager:
    def __init__(
        self,
        idle_timeout: float = 1800.0,
        sweep_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.idle_timeout = idle_timeout
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()
        self._sweep_task: asyncio.Task | None = None

    def _expired(self, session: Session, now: float) -> bool:
        return session.idle_for(now) >= self.idle_timeout

    def _snapshot(self, session: Session, now: float) -> Session:
        snap = replace(session, client_info=dict(session.client_info))
        if snap.state != SessionState.CLOSED and self._expired(session, now):
            snap.state = SessionState.IDLE
        return snap

    def resolve_or_create(self, candidate_id: Optional[str]) -> Tuple[Session, bool]:
        """Return ``(session, created)`` for the id presented by a request.

        A known id is refreshed. A present but unknown, closed or expired id
        raises UnknownSessionError. No id mints a new session.
        """
        now = self._clock()
        with self._lock:
            if candidate_id:
                session = self._sessions.get(candidate_id)
                if session is None:
                    raise UnknownSessionError(candidate_id)
                if self._expired(session, now):
                    del self._sessions[candidate_id]
                    session.state = SessionState.CLOSED
                    logger.info("Session %s expired after %.0fs idle", _short(candidate_id), session.idle_for(now))
                    raise UnknownSessionError(candidate_id)
                session.last_activity = now
                session.request_count += 1
                return self._snapshot(session, now), False

            session_id = new_session_id()
            while session_id in self._sessions:
                session_id = new_session_id()
            session = Session(session_id=session_id, created_at=now, last_activity=now, request_count=1)
            self._sessions[session_id] = session

        logger.info("Session %s created", _short(session_id))
        return self._snapshot(session, now), True

    def activate(self, session_id: str, client_info: Optional[Dict[str, Any]] = None) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                return
            if session.state == SessionState.NEW:
                session.state = SessionState.ACTIVE
            if client_info:
                session.client_info = dict(client_info)

    def get(self, session_id: str) -> Optional[Session]:
        now = self._clock()
        with self._lock:
            session = self._sessions.get(session_id)
            return self._snapshot(session, now) if session else None

    def close(self, session_id: str) -> bool:
        """Close a session. Idempotent; returns True if it was live."""
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        session.state = SessionState.CLOSED
        logger.info("Session %s closed", _short(session_id))
        return True

    def close_all(self) -> int:
        with self._lock:
            count = len(self._sessions)
            for session in self._sessions.values():
                session.state = SessionState.CLOSED
            self._sessions.clear()
        if count:
            logger.info("Closed %d sessions on shutdown", count)
        return count

    def sweep(self) -> List[str]:
        """Close every session idle for longer than the timeout."""
        now = self._clock()
        with self._lock:
            expired = [sid for sid, session in self._sessions.items() if self._expired(session, now)]
            for sid in expired:
                self._sessions.pop(sid).state = SessionState.CLOSED
        for sid in expired:
            logger.info("Session %s expired (idle sweep)", _short(sid))
        return expired

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    # ------------------------------------------------------------------
    # Background sweep
    # ------------------------------------------------------------------

    def start_sweeper(self) -> None:
        """Start the background task that expires idle sessions."""
        if self._sweep_task and not self._sweep_task.done():
            return
        loop = asyncio.get_running_loop()
        self._sweep_task = loop.create_task(self._sweep_loop())
        logger.info("Started session sweeper every %.0f seconds (idle timeout %.0fs)", self.sweep_interval, self.idle_timeout)

    async def stop_sweeper(self) -> None:
        """Cancel the background sweep task if running."""
        if not self._sweep_task:
            return
        task = self._sweep_task
        self._sweep_task = None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Stopped session sweeper")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                self.sweep()
            except Exception:
                logger.exception("Session sweep failed; retrying next interval")


def _short(session_id: str) -> str:
    return session_id[:8]
