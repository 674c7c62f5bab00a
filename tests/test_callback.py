"""
Tests for the report dispatcher and the retry policy it runs on.
"""

from types import SimpleNamespace

import pytest
import requests

from honeypot.callback import CallbackDispatcher
from honeypot.retry import RetryError, RetryPolicy


class FakePost:
    """Stands in for requests.post; answers with queued status codes or raises."""

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def __call__(self, url, json=None, timeout=None, headers=None):
        self.calls.append({"url": url, "json": json})
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return SimpleNamespace(ok=200 <= outcome < 300, status_code=outcome)


@pytest.fixture
def closed(engaged_session):
    engaged_session.close()
    return engaged_session


class TestCallbackDispatcher:
    @pytest.mark.asyncio
    async def test_delivers_once(self, closed, no_wait):
        post = FakePost([200])
        dispatcher = CallbackDispatcher("http://hook.test/report", policy=no_wait, post=post)

        assert await dispatcher.send_final_report(closed) is True
        assert await dispatcher.send_final_report(closed) is False

        assert len(post.calls) == 1
        assert post.calls[0]["json"]["sessionId"] == "sess-engaged"
        assert closed.report_sent is True

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self, closed, no_wait):
        post = FakePost([requests.ConnectionError("refused"), 503, 200])
        dispatcher = CallbackDispatcher("http://hook.test/report", policy=no_wait, post=post)
        assert await dispatcher.send_final_report(closed) is True
        assert len(post.calls) == 3

    @pytest.mark.asyncio
    async def test_exhaustion_is_terminal(self, closed, no_wait):
        post = FakePost([500])
        dispatcher = CallbackDispatcher("http://hook.test/report", policy=no_wait, post=post)
        assert await dispatcher.send_final_report(closed) is False
        assert await dispatcher.send_final_report(closed) is False
        assert len(post.calls) == 3
        assert closed.report_sent is False
        assert closed.dispatch_started is True

    @pytest.mark.asyncio
    async def test_refuses_open_session(self, engaged_session, no_wait):
        post = FakePost([200])
        dispatcher = CallbackDispatcher("http://hook.test/report", policy=no_wait, post=post)
        assert await dispatcher.send_final_report(engaged_session) is False
        assert post.calls == []
        assert engaged_session.dispatch_started is False

    @pytest.mark.asyncio
    async def test_missing_url(self, closed, no_wait):
        post = FakePost([200])
        dispatcher = CallbackDispatcher(None, policy=no_wait, post=post)
        assert await dispatcher.send_final_report(closed) is False
        assert post.calls == []


class TestRetryPolicy:
    def test_linear_delays(self):
        policy = RetryPolicy(base_delay=0.6)
        assert [policy.delay_for(n) for n in (1, 2)] == pytest.approx([0.6, 1.2])

    def test_exponential_delays_capped(self):
        policy = RetryPolicy(base_delay=1.0, backoff="exponential", max_delay=3.0)
        assert [policy.delay_for(n) for n in (1, 2, 3)] == [1.0, 2.0, 3.0]

    @pytest.mark.asyncio
    async def test_sleeps_between_attempts_only(self):
        slept = []

        async def fake_sleep(delay):
            slept.append(delay)

        async def always_fails():
            raise ValueError("nope")

        policy = RetryPolicy(max_attempts=3, base_delay=0.5)
        with pytest.raises(RetryError) as info:
            await policy.run(always_fails, label="test", sleep=fake_sleep)

        assert slept == [0.5, 1.0]
        assert info.value.attempts == 3
        assert isinstance(info.value.last_error, ValueError)

    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        calls = []

        async def flaky():
            calls.append(1)
            if len(calls) < 2:
                raise RuntimeError("transient")
            return "done"

        policy = RetryPolicy(base_delay=0.0)
        assert await policy.run(flaky) == "done"
        assert len(calls) == 2
