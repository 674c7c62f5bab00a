"""When to stop engaging a session."""

import logging

from honeypot.models import ExtractedIntelligence
from honeypot.session_store import Phase, SessionState

logger = logging.getLogger(__name__)

MAX_TURNS = 10


def intel_coverage(intel: ExtractedIntelligence) -> int:
    """How many of the eight evidence categories have at least one item."""
    return intel.coverage()


def should_end(session: SessionState, max_turns: int = MAX_TURNS) -> bool:
    """End an engaged session once it reaches `max_turns` full turns.

    Coverage is only logged; it never ends or extends a session.
    """
    if session.phase is not Phase.ENGAGED:
        return False
    turns = session.turns
    if turns >= max_turns:
        logger.info(
            "Max turns reached for %s (%d turns, %d intel types collected)",
            session.session_id, turns, intel_coverage(session.intelligence),
        )
        return True
    return False
