"""
Intelligence extraction module.
Uses regex patterns + validation to pull evidentiary data out of scammer text.
Covers: phone numbers, bank accounts, UPI IDs, phishing links, email addresses,
case IDs, policy numbers, order numbers and suspicious keywords.

Every extractor is a pure function over the raw text. `extract_all_intelligence`
composes them into a session's store, applying de-duplication and the
cross-category rules:
- a phone-shaped digit run is never also a bank account
- an @-token lives in either upiIds or emailAddresses, never both
"""

import logging
import re
from typing import Callable, List, Tuple

from honeypot.models import ExtractedIntelligence

logger = logging.getLogger(__name__)


# ── Vocabularies ────────────────────────────────────────────────

SUSPICIOUS_KEYWORDS = [
    "urgent", "verify", "blocked", "suspended", "account", "upi", "otp",
    "click", "download", "immediately", "kyc", "lottery", "refund", "loan",
    "prize", "reward", "confirm", "expires", "limited", "congratulations",
    "winner", "claim", "payment", "transfer", "security",
]

# Known UPI PSP handles
UPI_HANDLES = {
    "okaxis", "okhdfcbank", "okicici", "oksbi", "paytm", "ybl", "ibl",
    "axisbank", "hdfcbank", "icici", "sbi", "upi", "fbl", "rbl",
    "apl", "barodampay", "cbin", "cboi", "centralbank", "cnrb",
    "cosb", "dbs", "dcb", "ezeepay", "freecharge", "idbi", "idfc",
    "indus", "jiomoney", "kotak", "mahb", "myicici", "nsdl",
    "pingpay", "postbank", "pnb", "sib", "ubi", "unionbank", "utbi",
    "ucobank", "vijb", "waaxis", "wahdfcbank", "waicici", "wasbi",
    "jupiteraxis", "slice", "fi", "niyoicici", "naviaxis", "bhim",
    "abfspay", "airtel", "airtelpaymentsbank", "amazonpay", "gpay",
    "phonepe", "superyes", "tapicici", "fakeupi", "fakebank",
}

# Suffixes (and provider fragments) that mark an @-token as an email
EMAIL_TLDS = {
    "com", "in", "org", "net", "edu", "gov", "co", "io", "info",
    "biz", "me", "uk", "us", "au", "de", "fr", "jp", "cn", "ru",
    "gmail", "yahoo", "hotmail", "outlook", "icloud", "rediffmail",
}

# Known email domains
EMAIL_DOMAINS = {
    "gmail.com", "yahoo.com", "yahoo.in", "hotmail.com", "outlook.com",
    "icloud.com", "rediffmail.com", "ymail.com", "live.com", "msn.com",
    "protonmail.com", "tutanota.com",
}

# ── Regex Patterns ──────────────────────────────────────────────

# Indian mobile: optional +91 / 91 / trunk 0, then 10 digits starting 6-9,
# either unbroken or grouped 5-5 (98765 43210, 98765-43210). ASCII digits only.
PHONE_PATTERN = re.compile(r'(?<![\d+])(?:\+?91[\s-]?|0)?[6-9]\d{4}[\s-]?\d{5}(?!\d)', re.ASCII)

# Bank accounts: 11-18 digit standalone runs
BANK_ACCT_PATTERN = re.compile(r'\b\d{11,18}\b', re.ASCII)

# Anything shaped like local@domain
AT_TOKEN_PATTERN = re.compile(r'\b([a-zA-Z0-9._+\-]{2,})@([a-zA-Z0-9.\-]+)\b')

UPI_DOMAIN_PATTERN = re.compile(r'^[a-z0-9._\-]+$')

URL_PATTERN = re.compile(r'https?://[^\s"\'<>)\]]+')
URL_TRAILING = re.compile(r'[.,;)\]>]+$')
MIN_URL_LENGTH = 11

FOUR_DIGITS = re.compile(r'\d{4,}', re.ASCII)

# Case/Reference IDs: short keyword glued to a value with 4+ digits (REF2026001, TKT/7890)
# or a long keyword with an optional label (reference ID 12345, GRIEVANCE ID: GR9876)
CASE_ID_PATTERNS = [
    re.compile(r'\b((?:REF|CASE|CAS|TKT|INC|SR|GR|CLAIM)[-/]?[A-Z0-9]*\d{4,}[A-Z0-9]*)\b', re.IGNORECASE),
    re.compile(r'\b(?:REFERENCE|COMPLAINT|TICKET|INCIDENT|GRIEVANCE)\s+(?:ID|NUMBER|NO|#)?[\s\-#:/]*([A-Z]{0,5}\d{4,}[A-Z0-9]*)\b', re.IGNORECASE),
]

# Policy numbers: full keyword or named insurer only
POLICY_PATTERNS = [
    re.compile(r'\b(?:POLICY(?:[\s-]?(?:NO|NUMBER|ID))?|INSURANCE(?:[\s-]?(?:NO|NUMBER|ID))?)[\s\-#:/]+([A-Z0-9]*\d{4,}[A-Z0-9]*)\b', re.IGNORECASE),
    re.compile(r'\b(?:LIC|HDFC[\s-]LIFE|SBI[\s-]LIFE|TATA[\s-]AIA)[\s-]?(\d{8,15})\b', re.IGNORECASE),
]

# Order numbers: logistics keyword, or the Flipkart OD prefix
ORDER_PATTERNS = [
    re.compile(r'\b(?:ORDER(?:[\s-]?(?:NO|ID|NUMBER))?|BOOKING(?:[\s-]?(?:NO|ID|NUMBER))?|SHIPMENT(?:[\s-]?(?:NO|ID))?|TRACKING(?:[\s-]?(?:NO|ID))?)[\s\-#:/]+([A-Z0-9]*\d{4,}[A-Z0-9]*)\b', re.IGNORECASE),
    re.compile(r'\b(OD\d[A-Z0-9]{7,15})\b'),
]


# ── Helper Functions ────────────────────────────────────────────

def _digits(value: str) -> str:
    return re.sub(r'\D', '', value)


def add_unique(values: List[str], candidate: str, numeric: bool = False) -> bool:
    """
    Append `candidate` unless an entry already matches it case-insensitively
    after trimming. With numeric=True, entries are compared on digits only.
    Returns True when the candidate was stored.
    """
    if not candidate:
        return False
    trimmed = candidate.strip()
    if not trimmed:
        return False
    if numeric:
        key = _digits(trimmed)
        if any(_digits(existing) == key for existing in values):
            return False
    else:
        key = trimmed.lower()
        if any(existing.lower() == key for existing in values):
            return False
    values.append(trimmed)
    return True


def format_phone(raw: str) -> str:
    """Canonical +91-XXXXXXXXXX form, or '' when the digits are not an Indian mobile."""
    digits = _digits(raw)
    if len(digits) == 10:
        mobile = digits
    elif len(digits) == 11 and digits.startswith("0"):
        mobile = digits[1:]
    elif len(digits) == 12 and digits.startswith("91"):
        mobile = digits[2:]
    else:
        return ""
    if not re.match(r'^[6-9]\d{9}$', mobile):
        return ""
    return f"+91-{mobile}"


def is_likely_phone(number: str) -> bool:
    """True when a digit string has the shape of an Indian mobile number."""
    d = _digits(number)
    if len(d) == 10 and d[0] in "6789":
        return True
    if len(d) == 11 and d.startswith("0") and d[1] in "6789":
        return True
    if len(d) == 12 and d.startswith("91") and d[2] in "6789":
        return True
    return False


def classify_at_token(domain: str) -> str:
    """Classify an @-token by its domain: 'email', 'upi' or 'skip'."""
    domain = domain.lower()
    if "." in domain:
        tld = domain.rsplit(".", 1)[-1]
        if domain not in EMAIL_DOMAINS and tld not in EMAIL_TLDS:
            logger.debug("Unrecognised email suffix %r, keeping as email", tld)
        return "email"
    if domain in UPI_HANDLES:
        return "upi"
    if 2 <= len(domain) <= 20 and UPI_DOMAIN_PATTERN.match(domain):
        return "upi"
    return "skip"


def _keyword_values(patterns: List[re.Pattern], text: str) -> List[str]:
    found = []
    for pattern in patterns:
        for match in pattern.finditer(text):
            value = match.group(1).strip().upper()
            if FOUR_DIGITS.search(value) and value not in found:
                found.append(value)
    return found


# ── Extraction Functions ────────────────────────────────────────

def extract_phone_numbers(text: str) -> List[str]:
    """Extract Indian mobile numbers in canonical +91- form."""
    phones = []
    for match in PHONE_PATTERN.finditer(text):
        formatted = format_phone(match.group(0))
        if formatted and formatted not in phones:
            phones.append(formatted)
    return phones


def extract_bank_accounts(text: str) -> List[str]:
    """Extract 11-18 digit account numbers, excluding anything phone-shaped."""
    accounts = []
    for match in BANK_ACCT_PATTERN.finditer(text):
        number = match.group(0)
        if is_likely_phone(number):
            continue
        if number not in accounts:
            accounts.append(number)
    return accounts


def extract_at_tokens(text: str) -> List[Tuple[str, str]]:
    """Extract @-tokens as (kind, value) pairs, kind being 'upi' or 'email'."""
    tokens = []
    for match in AT_TOKEN_PATTERN.finditer(text):
        start = match.start()
        if start > 0 and text[start - 1] in "/:":
            continue
        kind = classify_at_token(match.group(2))
        if kind == "skip":
            continue
        pair = (kind, match.group(0).lower())
        if pair not in tokens:
            tokens.append(pair)
    return tokens


def extract_urls(text: str) -> List[str]:
    """Extract http(s) links with trailing punctuation trimmed."""
    links = []
    for match in URL_PATTERN.finditer(text):
        url = URL_TRAILING.sub('', match.group(0))
        if len(url) >= MIN_URL_LENGTH and url not in links:
            links.append(url)
    return links


def extract_case_ids(text: str) -> List[str]:
    """Extract case/reference/ticket IDs, upper-cased."""
    return _keyword_values(CASE_ID_PATTERNS, text)


def extract_policy_numbers(text: str) -> List[str]:
    """Extract insurance policy numbers, upper-cased."""
    return _keyword_values(POLICY_PATTERNS, text)


def extract_order_numbers(text: str) -> List[str]:
    """Extract order/tracking numbers, upper-cased."""
    return _keyword_values(ORDER_PATTERNS, text)


def extract_suspicious_keywords(text: str) -> List[str]:
    lowered = text.lower()
    return [keyword for keyword in SUSPICIOUS_KEYWORDS if keyword in lowered]


# ── Main Extraction Entry Point ─────────────────────────────────

def _merge_phones(text: str, intel: ExtractedIntelligence) -> None:
    for phone in extract_phone_numbers(text):
        add_unique(intel.phoneNumbers, phone, numeric=True)


def _merge_at_tokens(text: str, intel: ExtractedIntelligence) -> None:
    for kind, value in extract_at_tokens(text):
        if kind == "email":
            if value not in intel.upiIds:
                add_unique(intel.emailAddresses, value)
        elif value not in intel.emailAddresses:
            add_unique(intel.upiIds, value)


def _merger(extractor: Callable[[str], List[str]], field_name: str):
    def merge(text: str, intel: ExtractedIntelligence) -> None:
        target = getattr(intel, field_name)
        for value in extractor(text):
            add_unique(target, value)
    merge.__name__ = f"merge_{field_name}"
    return merge


MERGERS = [
    _merge_phones,
    _merge_at_tokens,
    _merger(extract_bank_accounts, "bankAccounts"),
    _merger(extract_urls, "phishingLinks"),
    _merger(extract_case_ids, "caseIds"),
    _merger(extract_policy_numbers, "policyNumbers"),
    _merger(extract_order_numbers, "orderNumbers"),
    _merger(extract_suspicious_keywords, "suspiciousKeywords"),
]


def extract_all_intelligence(text: str, intel: ExtractedIntelligence) -> None:
    """
    Extract ALL types of intelligence from a single message into `intel`.
    Never raises: a failing extractor is logged and contributes nothing.
    Re-running on the same text adds nothing new.
    """
    if not text or not isinstance(text, str) or intel is None:
        return

    for merge in MERGERS:
        try:
            merge(text, intel)
        except Exception:
            logger.exception("Extractor %s failed, skipping", merge.__name__)
