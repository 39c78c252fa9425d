#!/usr/bin/env python3
"""
Best-effort entity extraction from call transcripts.

Regex matches only: false positives are expected, and nothing returned here
should be treated as verified customer data.
"""

import re
import logging
from typing import List, Iterable

from analysis.models import ExtractedEntities

logger = logging.getLogger(__name__)

MAX_CUSTOMER_NAMES = 5
MIN_LOAN_NUMBER_LENGTH = 7

LOAN_NUMBER_PATTERNS = [
    re.compile(r'\b[0-9]{10,12}\b'),
    re.compile(r'\b[rR][a-zA-Z]{2}[0-9]{7,10}\b'),
    re.compile(r'\bloan\s*#?\s*([0-9]{7,12})\b', re.IGNORECASE),
]
LOAN_PREFIX_PATTERN = re.compile(r'loan\s*#?\s*', re.IGNORECASE)

NAME_PATTERN = re.compile(r'\b([A-Z][a-z]+(?:\s+[A-Z][a-z]+){1,2})\b')
NAME_EXCLUDE_WORDS = {
    'Customer', 'Agent', 'Representative', 'Servicing', 'Payment',
    'Escrow', 'Loan', 'Account', 'Service', 'Team',
}

EMAIL_PATTERN = re.compile(r'\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b')
PHONE_PATTERN = re.compile(r'\b(?:\+?1[-.\s]?)?\(?([0-9]{3})\)?[-.\s]?([0-9]{3})[-.\s]?([0-9]{4})\b')
AMOUNT_PATTERN = re.compile(r'\$\s*([0-9]{1,3}(?:,?[0-9]{3})*(?:\.[0-9]{2})?)\b')

DATE_PATTERNS = [
    re.compile(r'\b(0?[1-9]|1[0-2])[/\-](0?[1-9]|[12][0-9]|3[01])[/\-]([0-9]{2,4})\b'),
    re.compile(r'\b(January|February|March|April|May|June|July|August|September|October|November|December)'
               r'\s+([0-9]{1,2}),?\s+([0-9]{4})\b', re.IGNORECASE),
]

ADDRESS_PATTERN = re.compile(
    r'\b[0-9]+\s+[A-Za-z\s]+(?:Street|St|Avenue|Ave|Road|Rd|Drive|Dr|Lane|Ln|Boulevard|Blvd|Way|Court|Ct)\.?\b',
    re.IGNORECASE,
)


def _full_matches(pattern: re.Pattern, text: str) -> List[str]:
    # findall() would return capture groups; callers want whole matches
    return [m.group(0) for m in pattern.finditer(text)]


def _unique(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(values))


def extract_loan_numbers(text: str) -> List[str]:
    found = []
    for pattern in LOAN_NUMBER_PATTERNS:
        for match in _full_matches(pattern, text):
            cleaned = LOAN_PREFIX_PATTERN.sub('', match).strip()
            if len(cleaned) >= MIN_LOAN_NUMBER_LENGTH:
                found.append(cleaned)
    return _unique(found)


def extract_customer_names(text: str) -> List[str]:
    names = [
        name for name in _full_matches(NAME_PATTERN, text)
        if not any(word in NAME_EXCLUDE_WORDS for word in name.split(' '))
    ]
    return _unique(names)[:MAX_CUSTOMER_NAMES]


def extract_phone_numbers(text: str) -> List[str]:
    return _unique(re.sub(r'\D', '', m) for m in _full_matches(PHONE_PATTERN, text))


def extract_dates(text: str) -> List[str]:
    dates = []
    for pattern in DATE_PATTERNS:
        dates.extend(_full_matches(pattern, text))
    return _unique(dates)


def extract_entities(transcript_text: str) -> ExtractedEntities:
    """
    Extract loan numbers, names, contact details, amounts, dates and addresses

    Args:
        transcript_text: Raw transcript text (casing matters for names)

    Returns:
        ExtractedEntities with de-duplicated values in order of appearance
    """
    text = transcript_text or ""
    return ExtractedEntities(
        loan_numbers=extract_loan_numbers(text),
        customer_names=extract_customer_names(text),
        email_addresses=_unique(_full_matches(EMAIL_PATTERN, text)),
        phone_numbers=extract_phone_numbers(text),
        addresses=_unique(_full_matches(ADDRESS_PATTERN, text)),
        dates=extract_dates(text),
        amounts=_unique(_full_matches(AMOUNT_PATTERN, text)),
    )
