import pytest

from honeypot.agent import HoneyPotAgent
from honeypot.models import LookupVerdict
from honeypot.retry import RetryPolicy
from honeypot.session_store import SessionState, SessionStore


def scam_verdict(scam_type="bank_fraud", confidence=0.92):
    return LookupVerdict(
        scamDetected=True,
        handoffToHandler=True,
        intent="scam",
        confidence=confidence,
        reason="Asks for OTP under threat of account block",
        scamType=scam_type,
    )


class FakeAgent(HoneyPotAgent):
    """Scripted classifier/generator. Verdicts are consumed in order; the last one repeats."""

    def __init__(self, verdicts=None, reply="Who is this? Which bank are you calling from?"):
        super().__init__(client=object())
        self.verdicts = list(verdicts or [LookupVerdict.uncertain("too early")])
        self.reply = reply
        self.classify_calls = 0
        self.reply_calls = 0

    async def classify(self, session):
        self.classify_calls += 1
        if len(self.verdicts) > 1:
            return self.verdicts.pop(0)
        return self.verdicts[0]

    async def generate_reply(self, session):
        self.reply_calls += 1
        return self.reply


NO_WAIT = RetryPolicy(max_attempts=3, base_delay=0.0)


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def session():
    return SessionState(session_id="sess-001")


@pytest.fixture
def engaged_session():
    s = SessionState(session_id="sess-engaged")
    s.begin_engagement(scam_verdict(), now=1000.0)
    return s


@pytest.fixture
def make_verdict():
    return scam_verdict


@pytest.fixture
def fake_agent():
    return FakeAgent


@pytest.fixture
def no_wait():
    return NO_WAIT
