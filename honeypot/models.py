"""
Pydantic models for the Honeypot Conversation Intelligence Engine.
Covers the message-intake request schema, the per-session entity store,
the tagged verdict/reply results returned by the text-completion service,
and the final evidence report.
"""

from typing import List, Optional, Dict, Any, Literal
from pydantic import BaseModel, Field, field_validator


SCAM_TYPES = (
    "bank_fraud", "upi_fraud", "phishing_link", "kyc_fraud", "job_scam",
    "lottery_scam", "electricity_bill", "govt_scheme", "crypto_investment",
    "investment_fraud", "customs_parcel", "tech_support", "loan_approval",
    "income_tax", "refund_scam", "other", "none",
)

ScamType = Literal[
    "bank_fraud", "upi_fraud", "phishing_link", "kyc_fraud", "job_scam",
    "lottery_scam", "electricity_bill", "govt_scheme", "crypto_investment",
    "investment_fraud", "customs_parcel", "tech_support", "loan_approval",
    "income_tax", "refund_scam", "other", "none",
]

# Typed evidence categories, in report order
INTEL_FIELDS = (
    "phoneNumbers", "bankAccounts", "upiIds", "phishingLinks",
    "emailAddresses", "caseIds", "policyNumbers", "orderNumbers",
)


# ── Request Models ──────────────────────────────────────────────

class MessageItem(BaseModel):
    """A single inbound message."""
    sender: Optional[str] = None
    text: Optional[str] = None
    timestamp: Optional[Any] = None


class HoneypotRequest(BaseModel):
    """Incoming message-intake request."""
    sessionId: Optional[str] = None
    message: Optional[MessageItem] = None
    metadata: Optional[Dict[str, Any]] = None


def validate_request(incoming: HoneypotRequest) -> List[str]:
    """Return a list of validation errors; empty when the request is usable."""
    errors = []
    if not incoming.sessionId or not incoming.sessionId.strip():
        errors.append("sessionId is required and must be a non-empty string")
    if incoming.message is None:
        errors.append("message object is required")
    elif not incoming.message.text or not incoming.message.text.strip():
        errors.append("message.text is required and must be a non-empty string")
    return errors


# ── Intelligence Store ──────────────────────────────────────────

class ExtractedIntelligence(BaseModel):
    """All intelligence extracted from one conversation, de-duplicated, in insertion order."""
    phoneNumbers: List[str] = Field(default_factory=list)
    bankAccounts: List[str] = Field(default_factory=list)
    upiIds: List[str] = Field(default_factory=list)
    phishingLinks: List[str] = Field(default_factory=list)
    emailAddresses: List[str] = Field(default_factory=list)
    caseIds: List[str] = Field(default_factory=list)
    policyNumbers: List[str] = Field(default_factory=list)
    orderNumbers: List[str] = Field(default_factory=list)
    suspiciousKeywords: List[str] = Field(default_factory=list)

    def total_items(self) -> int:
        """Number of typed evidence items (keywords excluded)."""
        return sum(len(getattr(self, name)) for name in INTEL_FIELDS)

    def coverage(self) -> int:
        """Number of typed categories holding at least one item."""
        return sum(1 for name in INTEL_FIELDS if getattr(self, name))

    def non_empty(self) -> Dict[str, List[str]]:
        """Categories with entries only; empty ones are omitted entirely."""
        result = {}
        for name in (*INTEL_FIELDS, "suspiciousKeywords"):
            values = getattr(self, name)
            if values:
                result[name] = list(values)
        return result


# ── External Service Results ────────────────────────────────────

class LookupVerdict(BaseModel):
    """Structured classifier verdict. Any field violation is a failed call."""
    scamDetected: bool
    handoffToHandler: bool
    intent: Literal["scam", "legitimate", "uncertain"]
    confidence: float = Field(ge=0.0, le=1.0)
    reason: str
    scamType: ScamType

    @property
    def engages(self) -> bool:
        return self.scamDetected and self.handoffToHandler

    @classmethod
    def uncertain(cls, reason: str) -> "LookupVerdict":
        """Verdict used when the classifier is unavailable or has nothing to judge."""
        return cls(
            scamDetected=False,
            handoffToHandler=False,
            intent="uncertain",
            confidence=0.0,
            reason=reason,
            scamType="none",
        )


class HandlerReply(BaseModel):
    """Reply generator output."""
    reply: str

    @field_validator("reply")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("reply must be a non-empty string")
        return value


# ── Final Output Model ──────────────────────────────────────────

class EngagementMetrics(BaseModel):
    engagementDurationSeconds: int = 0
    totalMessagesExchanged: int = 0


class FinalReport(BaseModel):
    """Evidence report dispatched once per closed session."""
    sessionId: str
    scamDetected: bool = True
    extractedIntelligence: Dict[str, List[str]] = Field(default_factory=dict)
    engagementMetrics: EngagementMetrics = Field(default_factory=EngagementMetrics)
    agentNotes: str = ""
    scamType: str = "other"
    confidenceLevel: Optional[float] = None
