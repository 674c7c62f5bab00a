"""
Honeypot Agent — classifier and reply generator over the OpenAI chat API.

Two calls, both JSON-mode and both validated before anything touches session state:
  - classify(): silent lookup of the latest external message, returns a LookupVerdict
  - generate_reply(): in-character victim reply for an engaged session

Both calls retry with linear backoff. When retries run out the classifier
answers "uncertain" and the generator answers from a scripted, category-keyed
fallback, so an engaged conversation never goes silent.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from openai import OpenAI

from honeypot.models import HandlerReply, LookupVerdict
from honeypot.retry import CLASSIFIER_RETRY, GENERATOR_RETRY, RetryError, RetryPolicy
from honeypot.session_store import Sender, SessionState

logger = logging.getLogger(__name__)


LOOKUP_SYSTEM_PROMPT = """You are a silent cybercrime classification agent. You read a conversation
between an unknown SENDER and a RECIPIENT and decide whether the SENDER is attempting fraud.
You never reply to the sender. You only output a JSON classification.

Work in any language (English, Hindi, Hinglish, Tamil, Telugu, Bengali, ...).
Look at the whole conversation: scams escalate from bait, to urgency and authority
claims, to requests for OTPs, PINs, payments, app installs or link clicks.

SCAM TYPES (pick the most specific):
- bank_fraud: bank impersonation, account blocked/frozen, asks for card or account details
- upi_fraud: collect requests, "enter UPI PIN to receive money", reverse-payment tricks
- phishing_link: suspicious or look-alike links to verify, claim, update or download
- kyc_fraud: KYC pending/expired, SIM or wallet block threats, asks for Aadhaar/PAN
- job_scam: easy high-paying job with a registration or training fee
- lottery_scam: prize or lucky-draw win that needs a processing fee
- electricity_bill: power disconnection tonight unless paid now
- govt_scheme: fake subsidy or government benefit needing a fee or bank details
- crypto_investment: guaranteed crypto returns, trading bots, Telegram groups
- investment_fraud: stock tips, fake SEBI advisors, guaranteed returns
- customs_parcel: parcel held at customs, pay duty to release
- tech_support: device "hacked", install AnyDesk/TeamViewer
- loan_approval: instant loan approved, pay processing fee first
- income_tax: IT department notice, arrest or seizure threats, fake refunds
- refund_scam: refund for a purchase or subscription, needs bank/UPI details
- other: any other deceptive pattern with financial or data-theft intent
- none: legitimate conversation

RULES:
- Scam: scamDetected=true, handoffToHandler=true, intent="scam", confidence 0.70-1.00
- Legitimate: scamDetected=false, handoffToHandler=false, intent="legitimate", scamType="none"
- Uncertain (too early, weak signals): scamDetected=false, handoffToHandler=false,
  intent="uncertain", scamType="none", confidence 0.10-0.60
- reason: one short sentence quoting what in the messages drove the decision

OUTPUT ONLY this JSON:
{"scamDetected": bool, "handoffToHandler": bool, "intent": "scam"|"legitimate"|"uncertain",
 "confidence": number, "reason": string, "scamType": string}"""


# ── Persona profiles per scam type ──────────────────────────────

SCAM_PROFILES: Dict[str, Dict[str, Optional[str]]] = {
    "bank_fraud": {
        "label": "Banking Fraud",
        "persona": "an anxious bank customer afraid of losing access to their savings",
        "tone": "worried, a little panicked, cooperative",
        "extra_intel": None,
    },
    "upi_fraud": {
        "label": "UPI Fraud",
        "persona": "a customer who is confused about how the cashback or refund works",
        "tone": "curious, eager to receive the money, slightly naive",
        "extra_intel": None,
    },
    "phishing_link": {
        "label": "Phishing",
        "persona": "a careful customer who wants to verify before clicking anything",
        "tone": "interested but cautious",
        "extra_intel": None,
    },
    "kyc_fraud": {
        "label": "KYC Fraud",
        "persona": "a subscriber scared that their SIM or wallet will be blocked",
        "tone": "worried and eager to finish the update",
        "extra_intel": None,
    },
    "job_scam": {
        "label": "Job Scam",
        "persona": "a job seeker excited about the offer",
        "tone": "hopeful, enthusiastic",
        "extra_intel": None,
    },
    "lottery_scam": {
        "label": "Lottery Scam",
        "persona": "a thrilled winner who can't believe their luck",
        "tone": "overjoyed, keen to claim",
        "extra_intel": None,
    },
    "electricity_bill": {
        "label": "Electricity Bill Scam",
        "persona": "a household member panicking about the power being cut tonight",
        "tone": "panicked, urgent",
        "extra_intel": None,
    },
    "govt_scheme": {
        "label": "Govt Scheme Scam",
        "persona": "a citizen hopeful about a government benefit",
        "tone": "interested, asks how the scheme works",
        "extra_intel": None,
    },
    "crypto_investment": {
        "label": "Crypto Investment Scam",
        "persona": "a curious but skeptical first-time crypto investor",
        "tone": "cautiously interested",
        "extra_intel": None,
    },
    "investment_fraud": {
        "label": "Investment Fraud",
        "persona": "an investor attracted by the returns but wanting proof of registration",
        "tone": "interested, careful",
        "extra_intel": None,
    },
    "customs_parcel": {
        "label": "Customs/Parcel Scam",
        "persona": "a confused recipient unsure which parcel this is",
        "tone": "confused, slightly worried",
        "extra_intel": "Ask for the ORDER NUMBER, TRACKING ID or SHIPMENT REFERENCE so you can check the parcel is yours.",
    },
    "tech_support": {
        "label": "Tech Support Scam",
        "persona": "a non-technical user frightened that their phone is hacked",
        "tone": "scared, wants it fixed",
        "extra_intel": None,
    },
    "loan_approval": {
        "label": "Loan Scam",
        "persona": "someone who badly needs the loan and is relieved it was approved",
        "tone": "relieved, eager to proceed",
        "extra_intel": "Ask for the CASE ID or LOAN APPLICATION REFERENCE so you can track your application.",
    },
    "income_tax": {
        "label": "Income Tax Scam",
        "persona": "a frightened taxpayer who wants to avoid legal trouble",
        "tone": "scared, very cooperative",
        "extra_intel": "Ask for the CASE NUMBER or NOTICE REFERENCE so you can check the official portal.",
    },
    "refund_scam": {
        "label": "Refund Scam",
        "persona": "a happy customer expecting money back",
        "tone": "pleased, cooperative",
        "extra_intel": "Ask for the ORDER ID or POLICY NUMBER the refund belongs to, for your records.",
    },
    "other": {
        "label": "Unknown Scam",
        "persona": "a curious, slightly cautious person who wants to know more",
        "tone": "curious, asks for verification",
        "extra_intel": None,
    },
}

# Refusal phrases that indicate the model broke character
REFUSAL_PHRASES = [
    "i can't help",
    "i cannot help",
    "i'm sorry, but i can't",
    "i'm sorry, but i cannot",
    "as an ai",
    "i'm an ai",
    "i am an ai",
    "i cannot assist",
    "i can't assist",
    "i must decline",
    "as a language model",
    "i'm a language model",
]


class HoneyPotAgent:
    """
    Client for the external text-completion service. Classifies incoming
    messages and, once a session is engaged, writes the victim's replies.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        lookup_window: int = 8,
        max_turns: int = 10,
        client: Any = None,
        classifier_retry: RetryPolicy = CLASSIFIER_RETRY,
        generator_retry: RetryPolicy = GENERATOR_RETRY,
    ):
        if client is not None:
            self.client = client
        elif api_key:
            self.client = OpenAI(api_key=api_key)
        else:
            logger.warning("OPENAI_API_KEY not set. Agent will use fallback responses.")
            self.client = None

        self.model = model
        self.lookup_window = lookup_window
        self.max_turns = max_turns
        self.classifier_retry = classifier_retry
        self.generator_retry = generator_retry

    # ── Raw completion call ─────────────────────────────────────

    def _complete(self, messages: List[Dict[str, str]], temperature: float) -> str:
        completion = self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            response_format={"type": "json_object"},
            temperature=temperature,
            max_tokens=300,
            timeout=20,
        )
        content = completion.choices[0].message.content
        if not content or not content.strip():
            raise ValueError("Empty response from completion service")
        return content

    # ── Classification ──────────────────────────────────────────

    def _build_lookup_messages(self, session: SessionState) -> List[Dict[str, str]]:
        def tag(turn):
            role = "SENDER" if turn.sender is Sender.EXTERNAL else "RECIPIENT"
            return f"[{role}]: {turn.text}"

        window = session.conversation[-self.lookup_window:]
        earlier = session.conversation[:-self.lookup_window] if len(session.conversation) > self.lookup_window else []

        parts = []
        if earlier:
            parts.append("Earlier conversation (for context):\n" + "\n".join(tag(t) for t in earlier))
        parts.append("Recent messages:\n" + "\n".join(tag(t) for t in window))

        user_content = (
            "Analyze this conversation and classify the sender's intent:\n\n"
            + "\n\n".join(parts)
            + "\n\nFocus on the LATEST message but consider the full conversation for escalation patterns."
        )
        return [
            {"role": "system", "content": LOOKUP_SYSTEM_PROMPT},
            {"role": "user", "content": user_content},
        ]

    async def classify(self, session: SessionState) -> LookupVerdict:
        """Classify the latest external message. Never raises."""
        last = session.conversation[-1] if session.conversation else None
        if last is None or last.sender is not Sender.EXTERNAL:
            return LookupVerdict.uncertain("No external message to evaluate")
        if self.client is None:
            return LookupVerdict.uncertain("Classifier unavailable")

        messages = self._build_lookup_messages(session)

        async def attempt() -> LookupVerdict:
            content = await asyncio.to_thread(self._complete, messages, 0.0)
            return LookupVerdict.model_validate_json(content)

        try:
            verdict = await self.classifier_retry.run(attempt, label="Lookup")
        except RetryError as e:
            logger.error("Lookup retries exhausted for %s: %s", session.session_id, e.last_error)
            return LookupVerdict.uncertain(f"Classification failed after retries: {e.last_error}")

        logger.info(
            "Lookup verdict for %s: scam=%s type=%s confidence=%.2f",
            session.session_id, verdict.scamDetected, verdict.scamType, verdict.confidence,
        )
        return verdict

    # ── Reply generation ────────────────────────────────────────

    def _build_system_prompt(self, session: SessionState) -> str:
        profile = SCAM_PROFILES.get(session.scam_type or "other", SCAM_PROFILES["other"])
        intel = session.intelligence
        turns = session.turns
        remaining = max(0, self.max_turns - turns)

        collected = []
        missing = []
        for values, label, ask in [
            (intel.phoneNumbers, "Phone", "phone number"),
            (intel.upiIds, "UPI", "UPI ID"),
            (intel.bankAccounts, "Bank Account", "bank account"),
            (intel.emailAddresses, "Email", "email address"),
            (intel.phishingLinks, "Links", "any links/websites they mention"),
        ]:
            if values:
                collected.append(f"{label}: {', '.join(values)}")
            else:
                missing.append(ask)
        for values, label in [
            (intel.caseIds, "Case/Ref ID"),
            (intel.policyNumbers, "Policy No"),
            (intel.orderNumbers, "Order No"),
        ]:
            if values:
                collected.append(f"{label}: {', '.join(values)}")

        if remaining <= 2:
            urgency = "Only 1-2 turns left. Ask for the most important missing detail NOW."
        elif remaining <= 4:
            urgency = "Getting close to the end. Be a little more direct about missing details."
        else:
            urgency = "You have time. Keep it natural and build rapport while asking."

        extra = f"\nSCAM-SPECIFIC TARGET:\n{profile['extra_intel']}\n" if profile["extra_intel"] else ""
        collected_text = "\n".join(f"  - {c}" for c in collected) if collected else "  - Nothing collected yet"
        missing_text = "\n".join(f"  - {m}" for m in missing) if missing else "  - Nothing essential missing"

        return f"""You are a real person replying to someone who contacted you. Keep them talking and
get their real contact and payment details.

## YOUR CHARACTER
Situation: {profile['label']}
You are: {profile['persona']}
Tone: {profile['tone']}

## STATUS
Turn {turns + 1} of {self.max_turns} ({remaining} remaining). {urgency}

Collected so far:
{collected_text}

Still needed:
{missing_text}
{extra}
## HOW TO ASK
1. Phone number first ("what is your direct helpline number?")
2. UPI ID or bank account, in the context of the payment/refund
3. Official email address
4. Any website or link they refer to
5. Case/reference/order/policy IDs when they fit the story
Respond to what they just said before asking anything. At most 2 questions per message.

## ABSOLUTE RULES
1. NEVER reveal you are an AI, a bot or an anti-fraud system
2. NEVER use the words "scam", "fraud", "trap" or "intelligence"
3. NEVER confirm details they ask you to confirm; say you need to check
4. Match their language (Hindi/Hinglish if they use it)
5. Sound human: emotional, not robotic, not too long

## OUTPUT FORMAT
Output ONLY this JSON: {{"reply": "your message"}}"""

    def _build_reply_messages(self, session: SessionState) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": self._build_system_prompt(session)}]
        for turn in session.conversation:
            if turn.text:
                role = "user" if turn.sender is Sender.EXTERNAL else "assistant"
                messages.append({"role": role, "content": turn.text})
        return messages

    def _is_refusal(self, reply: str) -> bool:
        lowered = reply.lower()
        return any(phrase in lowered for phrase in REFUSAL_PHRASES)

    async def generate_reply(self, session: SessionState) -> str:
        """Generate the next victim reply. Never raises, never returns empty."""
        if self.client is None:
            return self.fallback_reply(session)

        messages = self._build_reply_messages(session)

        async def attempt() -> str:
            content = await asyncio.to_thread(self._complete, messages, 0.75)
            reply = HandlerReply.model_validate_json(content).reply
            if self._is_refusal(reply):
                raise ValueError("model broke character")
            return reply

        logger.info(
            "Handler turn %d/%d for %s (type %s)",
            session.turns + 1, self.max_turns, session.session_id, session.scam_type,
        )
        try:
            return await self.generator_retry.run(attempt, label="Handler")
        except RetryError as e:
            logger.error("Handler retries exhausted for %s, using fallback: %s", session.session_id, e.last_error)
            return self.fallback_reply(session)

    # ── Scripted fallback ───────────────────────────────────────

    def fallback_reply(self, session: SessionState) -> str:
        """Deterministic reply keyed by scam type and what has already been captured."""
        intel = session.intelligence
        has_phone = bool(intel.phoneNumbers)
        has_payment = bool(intel.upiIds or intel.bankAccounts)

        fallbacks = {
            "bank_fraud": (
                "Okay, I will call that number. But first tell me your employee ID so I can verify when I call?"
                if has_phone else
                "This is really scaring me! Please give me your employee ID and your direct helpline number?"
            ),
            "upi_fraud": (
                "Alright, I am trying it now. What is your official email in case something goes wrong?"
                if has_payment else
                "I want to receive it! Which UPI ID or account should I use? And what is your contact number?"
            ),
            "phishing_link": "Before I open anything, can you tell me your employee ID and the official website? I need to be sure it is safe.",
            "kyc_fraud": (
                "Please don't block my SIM! What else do you need? What is the reference number for my KYC?"
                if has_phone else
                "Please help me update it fast! What is your direct number and employee ID?"
            ),
            "job_scam": (
                "Great! What is the company email and official website? I want to read about the role."
                if has_phone else
                "This sounds wonderful! What is the HR contact number and the company email?"
            ),
            "lottery_scam": (
                "I still can't believe it! What is the claim ID, and is there an official email for the prize team?"
                if has_phone else
                "I am so excited!! What is your contact number and my claim ID? How do I get the prize?"
            ),
            "electricity_bill": "Please don't cut the power! What is the exact amount and your employee ID? I will pay right now!",
            "govt_scheme": (
                "Wonderful! What is the official website for this scheme and the registration code?"
                if has_phone else
                "That is great news! What is your officer ID and the department helpline to confirm?"
            ),
            "crypto_investment": (
                "Okay, I am a little interested. Can you send the platform link and your registration number?"
                if has_phone else
                "Those returns are impressive! What is your contact number and the trading website?"
            ),
            "investment_fraud": (
                "I might invest. What is your SEBI registration number and company website?"
                if has_phone else
                "The returns sound good. What is your advisor ID and a number I can call?"
            ),
            "customs_parcel": "I am confused about this parcel. What is the tracking number and the customs helpline? And your employee ID?",
            "tech_support": (
                "This is frightening! What exactly did you find on my phone? What is your technician ID?"
                if has_phone else
                "Is my phone really hacked?! What is your helpline number and technician ID?"
            ),
            "loan_approval": (
                "Finally good news! What is the company website and your agent code?"
                if has_phone else
                "Approved, really? What is your direct number and agent ID? What do I do next?"
            ),
            "income_tax": "I want to cooperate fully! What is your officer ID and the department email? I will sort it out today.",
            "refund_scam": (
                "Okay, what is the reference number for this refund? And your official email?"
                if has_payment else
                "Oh good, I could use that refund! What is your agent ID and how will the money come?"
            ),
            "other": (
                "I see. Can you also give me your official email and registration number?"
                if has_phone else
                "Can you give me your contact number and official ID so I know this is genuine?"
            ),
        }
        return fallbacks.get(
            session.scam_type or "other",
            "I want to understand this better. Can you share your contact details and official ID?",
        )
