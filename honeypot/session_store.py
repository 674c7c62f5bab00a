"""
Session state and the in-memory session store.

A session moves AWAITING_CLASSIFICATION -> ENGAGED -> CLOSED and never back.
The transition methods on SessionState enforce that order, together with the
one-shot fields that go with each transition (category, engagement start,
report delivery).
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from honeypot.models import ExtractedIntelligence, LookupVerdict

logger = logging.getLogger(__name__)


class Phase(Enum):
    AWAITING_CLASSIFICATION = "awaiting_classification"
    ENGAGED = "engaged"
    CLOSED = "closed"


class Sender(Enum):
    EXTERNAL = "external"
    AGENT = "agent"

    @classmethod
    def from_raw(cls, raw: Optional[str]) -> "Sender":
        """Map an inbound sender label. Anyone who isn't our agent is external."""
        if raw and raw.strip().lower() in ("user", "agent", "honeypot"):
            return cls.AGENT
        return cls.EXTERNAL


class InvalidTransition(Exception):
    """A phase change was requested out of order."""


def parse_timestamp(value: Any, default: Optional[float] = None) -> float:
    """Epoch seconds from epoch seconds/milliseconds or an ISO-8601 string."""
    if value is not None:
        try:
            ts = float(value)
            if ts > 1e12:
                ts = ts / 1000.0
            return ts
        except (ValueError, TypeError):
            pass
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value.replace("Z", "+00:00")).timestamp()
            except ValueError:
                pass
    return default if default is not None else time.time()


@dataclass
class Turn:
    sender: Sender
    text: str
    timestamp: float


@dataclass
class SessionMetrics:
    total_messages: int = 0
    engagement_started_at: Optional[float] = None
    last_message_at: Optional[float] = None
    closed_at: Optional[float] = None


@dataclass
class SessionState:
    """Per-session state tracking."""
    session_id: str
    phase: Phase = Phase.AWAITING_CLASSIFICATION
    conversation: List[Turn] = field(default_factory=list)
    classification: Optional[LookupVerdict] = None
    scam_type: Optional[str] = None
    intelligence: ExtractedIntelligence = field(default_factory=ExtractedIntelligence)
    metrics: SessionMetrics = field(default_factory=SessionMetrics)
    metadata: Optional[Dict[str, Any]] = None
    report_sent: bool = False
    dispatch_started: bool = False
    created_at: float = field(default_factory=time.time)

    @property
    def turns(self) -> int:
        """Conversational turns: one external + one agent message each."""
        return self.metrics.total_messages // 2

    @property
    def is_closed(self) -> bool:
        return self.phase is Phase.CLOSED

    def add_turn(self, sender: Sender, text: str, timestamp: Optional[float] = None) -> Turn:
        now = time.time()
        turn = Turn(sender=sender, text=text, timestamp=timestamp if timestamp is not None else now)
        self.conversation.append(turn)
        self.metrics.total_messages += 1
        self.metrics.last_message_at = now
        return turn

    def record_verdict(self, verdict: LookupVerdict) -> None:
        if self.phase is not Phase.AWAITING_CLASSIFICATION:
            raise InvalidTransition(f"classification is frozen once {self.phase.value}")
        self.classification = verdict

    def begin_engagement(self, verdict: LookupVerdict, now: Optional[float] = None) -> None:
        if self.phase is not Phase.AWAITING_CLASSIFICATION:
            raise InvalidTransition(f"cannot engage from {self.phase.value}")
        self.classification = verdict
        self.scam_type = verdict.scamType if verdict.scamType != "none" else "other"
        self.metrics.engagement_started_at = now if now is not None else time.time()
        self.phase = Phase.ENGAGED

    def close(self, now: Optional[float] = None) -> None:
        if self.phase is not Phase.ENGAGED:
            raise InvalidTransition(f"cannot close from {self.phase.value}")
        self.metrics.closed_at = now if now is not None else time.time()
        self.phase = Phase.CLOSED

    def mark_report_sent(self) -> None:
        if self.phase is not Phase.CLOSED:
            raise InvalidTransition("report can only be sent for a closed session")
        if self.report_sent:
            raise InvalidTransition("report already sent")
        self.report_sent = True


class SessionStore:
    """Live sessions keyed by id. Safe for concurrent insert/lookup."""

    def __init__(self):
        self._sessions: Dict[str, SessionState] = {}
        self._lock = threading.Lock()

    def get_or_create(self, session_id: str) -> SessionState:
        """Get existing session or create new one."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                session = SessionState(session_id=session_id)
                self._sessions[session_id] = session
                logger.info("New session created: %s", session_id)
            return session

    def get(self, session_id: str) -> Optional[SessionState]:
        with self._lock:
            return self._sessions.get(session_id)

    def delete(self, session_id: str) -> bool:
        with self._lock:
            existed = self._sessions.pop(session_id, None) is not None
        if existed:
            logger.info("Session deleted: %s", session_id)
        return existed

    def active_count(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions
