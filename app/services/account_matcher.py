"""
Account matching between Xero bank accounts and local accounts

Scores how likely a Xero account and a local account are the same real
account. Everything here is a pure function of its inputs.

Rules, first hit wins:
1. Normalized account numbers equal
2. Name similarity at or above exact_name_similarity
3. One name significantly contains the other
4. Name similarity at or above similar_name_floor
5. Compatible account types with some name similarity
"""
import re
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from rapidfuzz.distance import Levenshtein

from app.config import MatchThresholds

DEFAULT_THRESHOLDS = MatchThresholds()

# (Xero BankAccountType/Type, local account_type) pairs that describe the same kind of account
COMPATIBLE_TYPES = {
    ("BANK", "bank"),
    ("CREDITCARD", "credit"),
    ("PAYPAL", "bank"),
}

# Xero account types imported as local credit accounts; everything else is a bank account
CREDIT_TYPES = {"CREDITCARD", "CREDIT"}


@dataclass(frozen=True)
class MatchResult:
    confidence: int
    reason: Optional[str] = None


@dataclass(frozen=True)
class BestMatch:
    account: Optional[Any]
    confidence: int = 0
    reason: Optional[str] = None


def normalize_account_number(value: Optional[str]) -> str:
    """Strip spaces, dashes and leading zeros; lowercase"""
    if not value:
        return ""
    return re.sub(r"[\s-]", "", value).lstrip("0").lower()


def normalize_name(value: Optional[str]) -> str:
    """Lowercase, trim and collapse whitespace"""
    if not value:
        return ""
    return re.sub(r"\s+", " ", value.strip().lower())


def string_similarity(a: Optional[str], b: Optional[str]) -> int:
    """Similarity between two names as an integer percentage (0-100)"""
    normal_a = normalize_name(a)
    normal_b = normalize_name(b)

    if not normal_a or not normal_b:
        return 0
    if normal_a == normal_b:
        return 100

    max_length = max(len(normal_a), len(normal_b))
    distance = Levenshtein.distance(normal_a, normal_b)
    return round((1 - distance / max_length) * 100)


def contains_significant_match(a: Optional[str], b: Optional[str]) -> bool:
    """
    True when one name contains the other, or enough of their words overlap

    Words of three or more characters are compared by substring in either
    direction; at least half of the shorter name's words must find a partner.
    """
    normal_a = normalize_name(a)
    normal_b = normalize_name(b)

    if not normal_a or not normal_b:
        return False

    if normal_a in normal_b or normal_b in normal_a:
        return True

    words_a = [word for word in normal_a.split(" ") if len(word) > 2]
    words_b = [word for word in normal_b.split(" ") if len(word) > 2]
    if not words_a or not words_b:
        return False

    matching_words = [
        word for word in words_a
        if any(word_b in word or word in word_b for word_b in words_b)
    ]
    return len(matching_words) >= min(len(words_a), len(words_b)) / 2


def xero_account_type(xero_account: Dict[str, Any]) -> str:
    return (xero_account.get("BankAccountType") or xero_account.get("Type") or "").upper()


def calculate_account_match(
    xero_account: Dict[str, Any],
    local_account: Any,
    thresholds: Optional[MatchThresholds] = None,
) -> MatchResult:
    """
    Score a Xero account against one local account

    Args:
        xero_account: Xero Accounts payload (Name, BankAccountNumber, Type, BankAccountType)
        local_account: Anything with name, account_number and account_type attributes
        thresholds: Confidence rules; defaults to MatchThresholds()

    Returns:
        MatchResult with confidence in [0, 100] and a human-readable reason
    """
    t = thresholds or DEFAULT_THRESHOLDS

    xero_number = normalize_account_number(xero_account.get("BankAccountNumber"))
    local_number = normalize_account_number(getattr(local_account, "account_number", None))
    if xero_number and local_number and xero_number == local_number:
        return MatchResult(t.account_number_confidence, "Account number matches exactly")

    xero_name = xero_account.get("Name")
    local_name = getattr(local_account, "name", None)
    similarity = string_similarity(xero_name, local_name)
    if similarity >= t.exact_name_similarity:
        return MatchResult(t.exact_name_confidence, "Account name matches exactly")

    if contains_significant_match(xero_name, local_name):
        return MatchResult(t.containment_confidence, f'Name match: "{local_name}" similar to "{xero_name}"')

    if similarity >= t.similar_name_floor:
        return MatchResult(round(similarity * t.similar_name_scale), f"Name similarity: {similarity}%")

    local_type = (getattr(local_account, "account_type", None) or "").lower()
    if (xero_account_type(xero_account), local_type) in COMPATIBLE_TYPES and similarity >= t.type_match_similarity_floor:
        return MatchResult(
            round(similarity * t.type_match_scale),
            f"Account type matches with {similarity}% name similarity",
        )

    return MatchResult(0)


def find_best_match(
    xero_account: Dict[str, Any],
    local_accounts: Sequence[Any],
    thresholds: Optional[MatchThresholds] = None,
) -> BestMatch:
    """Highest-confidence local account; the first wins ties. Below the actionable threshold there is no match."""
    t = thresholds or DEFAULT_THRESHOLDS

    best = BestMatch(account=None)
    for local_account in local_accounts:
        result = calculate_account_match(xero_account, local_account, t)
        if result.confidence > best.confidence:
            best = BestMatch(local_account, result.confidence, result.reason)

    if best.confidence >= t.actionable:
        return best
    return BestMatch(account=None)


def map_xero_type_to_local(xero_type: Optional[str]) -> str:
    """Local account_type for a Xero account type: credit cards become 'credit', everything else 'bank'"""
    normalized = re.sub(r"[^A-Z]", "", (xero_type or "").upper())
    return "credit" if normalized in CREDIT_TYPES else "bank"
