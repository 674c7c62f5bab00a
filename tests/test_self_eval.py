"""
Self-evaluation tests — replays a bank-fraud conversation over HTTP and checks
the response contract, request validation, auth enforcement and report dispatch.
"""

import pytest
from fastapi.testclient import TestClient

from honeypot.callback import CallbackDispatcher
from honeypot.config import Settings
from honeypot.main import create_app, redact
from honeypot.session_manager import SessionManager


class RecordingDispatcher(CallbackDispatcher):
    def __init__(self):
        super().__init__("http://hook.test/report")
        self.sent = []

    async def send_final_report(self, session):
        self.sent.append(session.session_id)
        return True


# ── Setup ────────────────────────────────────────────────────────

@pytest.fixture
def stack(fake_agent, make_verdict):
    agent = fake_agent(verdicts=[make_verdict("bank_fraud")], reply="Oh no! Which branch is this?")
    manager = SessionManager(agent, max_turns=3)
    dispatcher = RecordingDispatcher()
    app = create_app(Settings(max_turns=3), manager=manager, dispatcher=dispatcher)
    return TestClient(app), manager, dispatcher


@pytest.fixture
def client(stack):
    return stack[0]


@pytest.fixture
def auth_client(fake_agent):
    manager = SessionManager(fake_agent())
    app = create_app(Settings(api_key="test-secret-key-123"), manager=manager, dispatcher=RecordingDispatcher())
    return TestClient(app)


# ── Bank Fraud Scenario Replay ──────────────────────────────────

BANK_FRAUD_MESSAGES = [
    "URGENT: Your SBI account has been compromised. Your account will be blocked in 2 hours. Share OTP immediately.",
    "Transfer the verification amount to account 123456789012345 or UPI sbi.verify@oksbi.",
    "Call me back at +91-9876543210, complaint number: 778899. Hurry!",
]


class TestScenarioReplay:
    def test_full_conversation(self, stack):
        client, manager, dispatcher = stack
        responses = []
        for i, text in enumerate(BANK_FRAUD_MESSAGES):
            resp = client.post("/honeypot", json={
                "sessionId": "replay-1",
                "message": {"sender": "scammer", "text": text, "timestamp": 1771585363308 + i * 5000},
                "metadata": {"channel": "SMS", "language": "English", "locale": "IN"},
            })
            assert resp.status_code == 200
            responses.append(resp.json())

        assert all(r["scamDetected"] for r in responses)
        assert all(r["reply"] == "Oh no! Which branch is this?" for r in responses)
        assert [r["sessionClosed"] for r in responses] == [False, False, True]
        assert dispatcher.sent == ["replay-1"]

        report = client.get("/final-output/replay-1").json()
        intel = report["extractedIntelligence"]
        assert intel["bankAccounts"] == ["123456789012345"]
        assert intel["upiIds"] == ["sbi.verify@oksbi"]
        assert intel["phoneNumbers"] == ["+91-9876543210"]
        assert intel["caseIds"] == ["778899"]
        assert report["engagementMetrics"]["totalMessagesExchanged"] == 6

    def test_after_close_reply_is_null(self, stack):
        client, _, dispatcher = stack
        body = {"sessionId": "replay-2", "message": {"sender": "scammer", "text": "pay now"}}
        for _ in range(3):
            client.post("/", json=body)
        resp = client.post("/", json=body)
        assert resp.json() == {"status": "success", "scamDetected": True, "sessionClosed": True, "reply": None}
        assert dispatcher.sent == ["replay-2"]

    def test_final_output_404_while_open(self, client):
        client.post("/honeypot", json={"sessionId": "open-1", "message": {"text": "hello"}})
        assert client.get("/final-output/open-1").status_code == 404
        assert client.get("/final-output/missing").status_code == 404


# ── Validation ──────────────────────────────────────────────────

class TestValidation:
    @pytest.mark.parametrize("body", [
        {"message": {"text": "hi"}},
        {"sessionId": "   ", "message": {"text": "hi"}},
        {"sessionId": "v1"},
        {"sessionId": "v1", "message": {"text": "  "}},
        {"sessionId": 42, "message": {"text": "hi"}},
    ])
    def test_bad_body_is_400(self, stack, body):
        client, manager, _ = stack
        resp = client.post("/honeypot", json=body)
        assert resp.status_code == 400
        assert resp.json()["error"] == "Invalid request body"
        assert resp.json()["details"]
        assert manager.active_sessions() == 0

    def test_malformed_json_is_400(self, client):
        resp = client.post("/honeypot", content=b"{not json", headers={"Content-Type": "application/json"})
        assert resp.status_code == 400


# ── Auth ────────────────────────────────────────────────────────

class TestAuth:
    BODY = {"sessionId": "auth-1", "message": {"text": "hello"}}

    def test_missing_key_rejected(self, auth_client):
        resp = auth_client.post("/honeypot", json=self.BODY)
        assert resp.status_code == 401
        assert resp.json() == {"detail": "Unauthorized"}

    def test_wrong_key_rejected(self, auth_client):
        resp = auth_client.post("/honeypot", json=self.BODY, headers={"x-api-key": "nope"})
        assert resp.status_code == 401

    def test_valid_key_accepted(self, auth_client):
        resp = auth_client.post("/honeypot", json=self.BODY, headers={"x-api-key": "test-secret-key-123"})
        assert resp.status_code == 200

    def test_health_is_open(self, auth_client):
        for path in ("/", "/health"):
            resp = auth_client.get(path)
            assert resp.status_code == 200
            assert resp.json()["status"] == "Honeypot Active"

    def test_final_output_protected(self, auth_client):
        assert auth_client.get("/final-output/x").status_code == 401


# ── Misc ────────────────────────────────────────────────────────

class TestHealthAndErrors:
    def test_health_counts_sessions(self, client):
        client.post("/honeypot", json={"sessionId": "h1", "message": {"text": "hi"}})
        assert client.get("/health").json()["activeSessions"] == 1

    def test_unexpected_error_is_500(self, fake_agent):
        manager = SessionManager(fake_agent())

        async def boom(*args, **kwargs):
            raise RuntimeError("kaboom")

        manager.process_message = boom
        app = create_app(Settings(), manager=manager, dispatcher=RecordingDispatcher())
        client = TestClient(app, raise_server_exceptions=False)
        resp = client.post("/honeypot", json={"sessionId": "e1", "message": {"text": "hi"}})
        assert resp.status_code == 500
        assert resp.json() == {"error": "Internal Server Error"}

    def test_redact(self):
        masked = redact("call +91 98765 43210 or mail a.b@scam.co, acct 123456789012")
        assert "98765" not in masked
        assert "a.b@scam.co" not in masked
        assert "123456789012" not in masked
