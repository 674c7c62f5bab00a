"""
Session Manager — runs one inbound message through the session's phase machine.

Per message, under that session's lock:
- CLOSED sessions are acknowledged and left untouched
- AWAITING_CLASSIFICATION: external messages go to the classifier; a scam
  verdict with hand-off moves the session to ENGAGED
- ENGAGED: external messages are mined for intelligence and answered
- the stop policy is checked last; closing flags the report as due
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

from honeypot.agent import HoneyPotAgent
from honeypot.intel_extractor import extract_all_intelligence
from honeypot.models import LookupVerdict
from honeypot.session_store import (
    Phase,
    Sender,
    SessionState,
    SessionStore,
    parse_timestamp,
)
from honeypot.stop_conditions import MAX_TURNS, should_end

logger = logging.getLogger(__name__)


@dataclass
class ProcessResult:
    """Outcome of one processed message."""
    status: str = "success"
    scam_detected: bool = False
    session_closed: bool = False
    reply: Optional[str] = None
    report_due: bool = False

    def to_response(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "scamDetected": self.scam_detected,
            "sessionClosed": self.session_closed,
            "reply": self.reply,
        }


class SessionManager:
    """Owns the session store and serialises work per session."""

    def __init__(
        self,
        agent: HoneyPotAgent,
        store: Optional[SessionStore] = None,
        max_turns: int = MAX_TURNS,
    ):
        self.agent = agent
        self.store = store if store is not None else SessionStore()
        self.max_turns = max_turns
        self._locks: Dict[str, asyncio.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, session_id: str) -> asyncio.Lock:
        with self._locks_guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = asyncio.Lock()
                self._locks[session_id] = lock
            return lock

    async def process_message(
        self,
        session_id: str,
        text: str,
        sender: Optional[str] = None,
        timestamp: Any = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ProcessResult:
        """Process one inbound message and return what the caller should answer."""
        async with self._lock_for(session_id):
            session = self.store.get_or_create(session_id)

            if session.phase is Phase.CLOSED:
                logger.info("Session %s already closed, acknowledging only", session_id)
                return ProcessResult(scam_detected=True, session_closed=True)

            if metadata and session.metadata is None:
                session.metadata = metadata

            inbound = Sender.from_raw(sender)
            session.add_turn(inbound, text, parse_timestamp(timestamp))

            if session.phase is Phase.AWAITING_CLASSIFICATION and inbound is Sender.EXTERNAL:
                verdict = await self._classify(session)
                if verdict.engages:
                    session.begin_engagement(verdict)
                    logger.info(
                        "Session %s engaged as %s (confidence %.2f)",
                        session_id, session.scam_type, verdict.confidence,
                    )
                else:
                    session.record_verdict(verdict)

            reply = None
            if session.phase is Phase.ENGAGED and inbound is Sender.EXTERNAL:
                extract_all_intelligence(text, session.intelligence)
                reply = await self._reply(session)
                session.add_turn(Sender.AGENT, reply)

            result = ProcessResult(
                scam_detected=session.phase is Phase.ENGAGED,
                reply=reply,
            )

            if should_end(session, self.max_turns):
                session.close()
                result.session_closed = True
                result.report_due = True
                logger.info(
                    "Session %s closed after %d messages",
                    session_id, session.metrics.total_messages,
                )

            return result

    async def _classify(self, session: SessionState) -> LookupVerdict:
        try:
            return await self.agent.classify(session)
        except Exception as e:
            logger.exception("Classifier raised for session %s", session.session_id)
            return LookupVerdict.uncertain(f"Classification failed: {e}")

    async def _reply(self, session: SessionState) -> str:
        try:
            reply = await self.agent.generate_reply(session)
        except Exception:
            logger.exception("Reply generator raised for session %s", session.session_id)
            reply = None
        if not reply or not reply.strip():
            return self.agent.fallback_reply(session)
        return reply

    def delete_session(self, session_id: str) -> bool:
        """Forget a session and its lock."""
        with self._locks_guard:
            self._locks.pop(session_id, None)
        return self.store.delete(session_id)

    def get_session(self, session_id: str) -> Optional[SessionState]:
        return self.store.get(session_id)

    def active_sessions(self) -> int:
        return self.store.active_count()
