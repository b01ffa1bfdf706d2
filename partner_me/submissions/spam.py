"""Heuristic spam scoring for anonymous submissions.

The scorer is a pure function: five independent signals each contribute an
equal share of the confidence score, and every triggered signal appends one
reason string in a fixed order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import re
from typing import List, Optional, Tuple


FLAG_THRESHOLD = 0.6
SPAM_THRESHOLD = 0.8

CAPITALIZATION_RATIO = 0.5
CAPITALIZATION_MIN_LETTERS = 10
SPAM_KEYWORD_MIN_COUNT = 1
SUSPICIOUS_URL_MIN_COUNT = 2
PHONE_PATTERN_MIN_DIGITS = 6

SPAM_KEYWORDS: Tuple[str, ...] = (
    "viagra",
    "cialis",
    "casino",
    "lottery",
    "winner",
    "congratulations",
    "click here",
    "buy now",
    "limited time",
    "act now",
    "free money",
    "make money fast",
    "work from home",
    "no experience",
    "guaranteed",
    "risk free",
    "double your",
    "earn extra cash",
    "weight loss",
    "lose weight",
    "bitcoin",
    "cryptocurrency investment",
    "forex trading",
    "binary options",
)

SHORTENER_PATTERN = re.compile(
    r"\b(?:bit\.ly|tinyurl(?:\.com)?|goo\.gl|t\.co|ow\.ly|is\.gd|buff\.ly|adf\.ly)\b",
    re.IGNORECASE,
)
# A character followed by at least four copies of itself.
REPEATED_CHARACTER_PATTERN = re.compile(r"(.)\1{4,}", re.DOTALL)

FAKE_EMAIL_FRAGMENTS: Tuple[str, ...] = (
    "test@test",
    "fake@fake",
    "spam@spam",
    "example@example",
    "temp@temp",
)
FAKE_EMAIL_PREFIXES: Tuple[str, ...] = ("noreply@", "no-reply@", "throwaway@")
FAKE_EMAIL_DOMAINS: Tuple[str, ...] = ("test.com", "fake.com")

REASON_CAPITALIZATION = "Excessive capitalization detected"
REASON_REPEATED = "Repeated characters detected"
REASON_INVALID_CONTACT = "Invalid contact information patterns detected"

SIGNAL_COUNT = 5


@dataclass(frozen=True)
class SpamCheckResult:
    is_spam: bool
    should_flag: bool
    confidence: float
    reasons: List[str] = field(default_factory=list)

    def as_details(self) -> dict:
        return {
            "flagged": self.should_flag,
            "is_spam": self.is_spam,
            "confidence": self.confidence,
            "reasons": list(self.reasons),
        }


def has_excessive_capitalization(text: str) -> bool:
    letters = [char for char in text if char.isascii() and char.isalpha()]
    if len(letters) < CAPITALIZATION_MIN_LETTERS:
        return False
    uppercase = sum(1 for char in letters if char.isupper())
    return uppercase / len(letters) >= CAPITALIZATION_RATIO


def has_repeated_characters(text: str) -> bool:
    return bool(text) and REPEATED_CHARACTER_PATTERN.search(text) is not None


def count_spam_keywords(text: str) -> int:
    lowered = text.lower()
    return sum(1 for keyword in SPAM_KEYWORDS if keyword in lowered)


def count_suspicious_urls(text: str) -> int:
    return len(SHORTENER_PATTERN.findall(text or ""))


def is_fake_email(email: Optional[str]) -> bool:
    normalized = (email or "").strip().lower()
    if not normalized:
        return False
    if any(fragment in normalized for fragment in FAKE_EMAIL_FRAGMENTS):
        return True
    if normalized.startswith(FAKE_EMAIL_PREFIXES):
        return True
    domain = normalized.rsplit("@", 1)[-1]
    return domain in FAKE_EMAIL_DOMAINS


def is_fake_phone(phone: Optional[str]) -> bool:
    digits = [int(char) for char in (phone or "") if char.isdigit()]
    if len(digits) < PHONE_PATTERN_MIN_DIGITS:
        return False
    if len(set(digits)) == 1:
        return True
    steps = {(current - previous) % 10 for previous, current in zip(digits, digits[1:])}
    return steps == {1} or steps == {9}


def detect_spam_patterns(
    *,
    title: Optional[str],
    description: Optional[str],
    contact_email: Optional[str] = None,
    contact_phone: Optional[str] = None,
    flag_threshold: float = FLAG_THRESHOLD,
    spam_threshold: float = SPAM_THRESHOLD,
) -> SpamCheckResult:
    title_text = title or ""
    description_text = description or ""
    combined = f"{title_text} {description_text}".strip()

    reasons: List[str] = []

    if has_excessive_capitalization(combined):
        reasons.append(REASON_CAPITALIZATION)

    if has_repeated_characters(title_text) or has_repeated_characters(description_text):
        reasons.append(REASON_REPEATED)

    keyword_count = count_spam_keywords(combined)
    if keyword_count >= SPAM_KEYWORD_MIN_COUNT:
        reasons.append(f"Spam keywords detected ({keyword_count})")

    url_count = count_suspicious_urls(description_text)
    if url_count >= SUSPICIOUS_URL_MIN_COUNT:
        reasons.append(f"Multiple suspicious URLs detected ({url_count})")

    if is_fake_email(contact_email) or is_fake_phone(contact_phone):
        reasons.append(REASON_INVALID_CONTACT)

    confidence = round(len(reasons) / SIGNAL_COUNT, 2)
    return SpamCheckResult(
        is_spam=confidence >= spam_threshold,
        should_flag=confidence >= flag_threshold,
        confidence=confidence,
        reasons=reasons,
    )


def build_flag_reason(result: SpamCheckResult) -> Optional[str]:
    if not result.should_flag:
        return None
    percent = int(round(result.confidence * 100))
    return f"Spam detection (confidence: {percent}%): {'; '.join(result.reasons)}"
