"""
Report delivery — posts the final evidence report to the configured webhook.

At most one delivery per session: the first call claims the session by setting
`dispatch_started`, later calls return immediately. `report_sent` is only set on
a confirmed 2xx response. Exhausting the retries is terminal for the session.
"""

import asyncio
import logging
from typing import Callable, Optional

import requests

from honeypot.report import build_final_report
from honeypot.retry import DISPATCH_RETRY, RetryError, RetryPolicy
from honeypot.session_store import Phase, SessionState

logger = logging.getLogger(__name__)


class DispatchError(Exception):
    """The webhook answered with a non-2xx status."""


class CallbackDispatcher:
    """Send the final report for closed sessions, once."""

    def __init__(
        self,
        url: Optional[str],
        policy: RetryPolicy = DISPATCH_RETRY,
        timeout: float = 10.0,
        post: Callable = requests.post,
    ):
        self.url = url
        self.policy = policy
        self.timeout = timeout
        self._post = post

    async def send_final_report(self, session: SessionState) -> bool:
        """Deliver the session's report. Returns True only on confirmed delivery."""
        sid = session.session_id
        if session.phase is not Phase.CLOSED:
            logger.warning("Refusing to report session %s in phase %s", sid, session.phase.value)
            return False
        if session.report_sent or session.dispatch_started:
            logger.info("Report already dispatched for session %s, skipping", sid)
            return False
        session.dispatch_started = True

        if not self.url:
            logger.error("FINAL_CALLBACK_URL not configured, report for %s dropped", sid)
            return False

        payload = build_final_report(session).model_dump()
        logger.info(
            "Sending final report for %s (%d intel items)",
            sid, session.intelligence.total_items(),
        )

        async def attempt() -> None:
            response = await asyncio.to_thread(
                self._post,
                self.url,
                json=payload,
                timeout=self.timeout,
                headers={"Content-Type": "application/json"},
            )
            if not response.ok:
                raise DispatchError(f"HTTP {response.status_code}")

        try:
            await self.policy.run(attempt, label=f"Callback for {sid}")
        except RetryError as e:
            logger.critical(
                "Failed to send report after %d attempts for session %s: %s",
                e.attempts, sid, e.last_error,
            )
            return False

        session.mark_report_sent()
        logger.info("Report delivered for session %s", sid)
        return True
