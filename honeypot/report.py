"""
Final evidence report for a closed session.
Pure projection of session state; delivery lives in callback.py.
"""

import math
import time
from typing import Optional

from honeypot.models import EngagementMetrics, FinalReport
from honeypot.session_store import Phase, SessionState


SCAM_TYPE_DESCRIPTIONS = {
    "bank_fraud": "Banking/financial institution impersonation scam",
    "upi_fraud": "UPI payment fraud with reverse payment trick",
    "phishing_link": "Phishing link-based credential/data theft attempt",
    "kyc_fraud": "KYC verification fraud targeting account details",
    "job_scam": "Fake job offer scam with upfront fee demand",
    "lottery_scam": "Lottery/prize claim scam with processing fee demand",
    "electricity_bill": "Electricity disconnection threat scam",
    "govt_scheme": "Fake government scheme/benefit scam",
    "crypto_investment": "Cryptocurrency investment fraud",
    "investment_fraud": "Investment/stock market fraud scheme",
    "customs_parcel": "Fake customs/parcel clearance fee scam",
    "tech_support": "Tech support impersonation and remote access scam",
    "loan_approval": "Fake loan approval with upfront fee demand",
    "income_tax": "Income Tax Department impersonation scam",
    "refund_scam": "Fake refund scam targeting bank/UPI details",
    "other": "Unclassified scam pattern with financial fraud intent",
}


def _confidence_qualifier(confidence: Optional[float]) -> Optional[str]:
    if not confidence:
        return None
    if confidence >= 0.9:
        return "Detected with very high confidence"
    if confidence >= 0.75:
        return "Detected with high confidence"
    return f"Detected with moderate confidence ({round(confidence * 100)}%)"


def _tactics(session: SessionState) -> list:
    intel = session.intelligence
    tactics = []
    if intel.phoneNumbers:
        tactics.append("provided contact number for off-platform communication")
    if intel.phishingLinks:
        tactics.append("shared malicious/phishing links")
    if intel.upiIds or intel.bankAccounts:
        tactics.append("requested or shared financial/payment details")
    if intel.emailAddresses:
        tactics.append("provided email for ongoing contact")
    if intel.caseIds:
        tactics.append("referenced official-sounding case/reference IDs to appear legitimate")
    if intel.policyNumbers:
        tactics.append("cited policy numbers to add credibility")
    if intel.orderNumbers:
        tactics.append("used order/shipment IDs as social proof")
    return tactics


def build_agent_notes(session: SessionState) -> str:
    """Free-text summary of what the engagement revealed."""
    notes = []
    verdict = session.classification
    scam_type = session.scam_type

    if scam_type and scam_type != "none":
        notes.append(SCAM_TYPE_DESCRIPTIONS.get(scam_type, "Scam detected with financial fraud intent"))

    qualifier = _confidence_qualifier(verdict.confidence if verdict else None)
    if qualifier:
        notes.append(qualifier)

    tactics = _tactics(session)
    if tactics:
        notes.append(f"Scammer tactics: {'; '.join(tactics)}")

    keywords = session.intelligence.suspiciousKeywords
    if keywords:
        notes.append(f"Red flags detected, suspicious keywords used: {', '.join(keywords)}")

    notes.append(
        f"Extracted {session.intelligence.total_items()} intelligence items "
        f"over {session.turns} conversation turns"
    )

    if verdict and verdict.reason:
        notes.append(f"Detection basis: {verdict.reason}")

    return ". ".join(notes) + "."


def engagement_duration(session: SessionState, now: Optional[float] = None) -> int:
    """Seconds from engagement to close, or to `now` while still open."""
    started = session.metrics.engagement_started_at
    if started is None:
        return 0
    if session.metrics.closed_at is not None:
        now = session.metrics.closed_at
    elif now is None:
        now = time.time()
    return max(0, math.floor(now - started))


def build_final_report(session: SessionState, now: Optional[float] = None) -> FinalReport:
    """Build the evidence report for a CLOSED session."""
    if session.phase is not Phase.CLOSED:
        raise ValueError(f"session {session.session_id} is {session.phase.value}, not closed")

    verdict = session.classification
    return FinalReport(
        sessionId=session.session_id,
        scamDetected=True,
        extractedIntelligence=session.intelligence.non_empty(),
        engagementMetrics=EngagementMetrics(
            engagementDurationSeconds=engagement_duration(session, now),
            totalMessagesExchanged=session.metrics.total_messages,
        ),
        agentNotes=build_agent_notes(session),
        scamType=session.scam_type or "other",
        confidenceLevel=verdict.confidence if verdict else None,
    )
