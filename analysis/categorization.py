#!/usr/bin/env python3
"""
Rule-based categorizer for Servicing Insights.

Two-level keyword classification (category -> subcategory) with confidence
scoring, multi-issue tagging and first-statement customer intent. Every
function here is pure: the same text always yields the same result, and
noisy input degrades to the "Other" category instead of raising.
"""

import re
import logging
from typing import Dict, List, Any, Optional, Sequence

from analysis.models import CategoryDefinition, CategorizationResult, ConfidenceWeights
from analysis.category_definitions import DEFAULT_CATEGORY_DEFINITIONS

logger = logging.getLogger(__name__)

GENERAL_INQUIRY = 'General Inquiry'

# Checked in order against the first customer statement only
INTENT_PATTERNS = [
    ('make_payment', re.compile(r"how do i pay|where do i send|make a payment|pay my bill", re.IGNORECASE)),
    ('access_account', re.compile(r"can't log in|forgot password|locked out|reset password", re.IGNORECASE)),
    ('request_payoff', re.compile(r"need a payoff|closing soon|refinancing|payoff quote", re.IGNORECASE)),
    ('understand_issue', re.compile(r"why did|what happened|explain|don't understand", re.IGNORECASE)),
    ('missing_information', re.compile(r"didn't receive|never got|missing|haven't received", re.IGNORECASE)),
    ('escalate_issue', re.compile(r"need to speak|talk to supervisor|escalate|complaint", re.IGNORECASE)),
    ('check_balance', re.compile(r"what is my balance|account balance|how much do i owe", re.IGNORECASE)),
    ('check_due_date', re.compile(r"when is payment due|payment date|due date", re.IGNORECASE)),
]


class Categorizer:
    """Keyword/weight driven classifier over a read-only category table"""

    def __init__(self, definitions: Optional[Sequence[CategoryDefinition]] = None,
                 weights: Optional[ConfidenceWeights] = None):
        """
        Args:
            definitions: Category table, evaluated in order (defaults to the built-in table)
            weights: Confidence coefficients
        """
        self.definitions = tuple(definitions) if definitions else DEFAULT_CATEGORY_DEFINITIONS
        self.weights = weights or ConfidenceWeights()

    def _default_result(self) -> CategorizationResult:
        return CategorizationResult(confidence=self.weights.default_confidence)

    def _confidence(self, matched_keywords: List[str], weight: int) -> float:
        w = self.weights
        avg_length = sum(len(kw) for kw in matched_keywords) / len(matched_keywords)
        specificity_bonus = min(avg_length / w.specificity_divisor, w.max_specificity_bonus)
        match_bonus = min(len(matched_keywords) * w.per_match_bonus, w.max_match_bonus)
        weight_bonus = (weight / 100) * w.weight_share
        return min(w.base + specificity_bonus + match_bonus + weight_bonus, 1.0)

    def categorize(self, text: str, title: Optional[str] = None) -> CategorizationResult:
        """
        Classify text into a category and subcategory.

        A category is only considered when one of its general keywords occurs;
        within it the highest-weight subcategory with a keyword hit wins. The
        best confidence across categories is kept, and on a tie the category
        declared first wins.

        Args:
            text: Ticket description or transcript text
            title: Optional ticket title, prepended to the text

        Returns:
            CategorizationResult (category "Other" when nothing matches)
        """
        text = text or ""
        combined = f"{title} {text}".lower() if title else text.lower()

        best = self._default_result()
        detected_issues = []

        for definition in self.definitions:
            if not any(kw.lower() in combined for kw in definition.keywords):
                continue

            detected_issues.append(definition.name)

            # sorted() is stable, so equal weights keep declaration order
            for subcategory in sorted(definition.subcategories, key=lambda s: s.weight, reverse=True):
                matched = [kw for kw in subcategory.keywords if kw.lower() in combined]
                if not matched:
                    continue

                confidence = self._confidence(matched, subcategory.weight)
                if confidence > best.confidence:
                    best = CategorizationResult(
                        category=definition.name,
                        subcategory=subcategory.name,
                        confidence=confidence,
                        all_issues=tuple(dict.fromkeys(detected_issues)),
                        matched_keywords=tuple(matched),
                    )
                # Lower-weight subcategories are never considered once one matched
                break

        return best

    def detect_all_issues(self, text: str) -> List[str]:
        """
        Every category whose general keywords occur in the text

        Args:
            text: Text to scan

        Returns:
            Category names in table order, or ["General Inquiry"] when none match
        """
        lower_text = (text or "").lower()
        issues = [d.name for d in self.definitions
                  if any(kw.lower() in lower_text for kw in d.keywords)]
        return issues or [GENERAL_INQUIRY]

    def get_all_categories(self) -> List[Dict[str, Any]]:
        return [
            {'category': d.name, 'subcategories': [s.name for s in d.subcategories]}
            for d in self.definitions
        ]

    def is_valid_categorization(self, category: str, subcategory: str) -> bool:
        for definition in self.definitions:
            if definition.name == category:
                return any(s.name == subcategory for s in definition.subcategories)
        return False


def detect_customer_intent(transcript_text: str) -> str:
    """
    Intent of the first customer statement.

    Only the text between the first "customer:" label and the next "agent:"
    label is inspected: the intent answers why the customer called, not
    what the call drifted to later.

    Args:
        transcript_text: Normalized transcript text

    Returns:
        One of the intent names in INTENT_PATTERNS, or "other"
    """
    parts = (transcript_text or "").lower().split('customer:')
    if len(parts) < 2:
        return 'other'

    first_statement = parts[1].split('agent:')[0].strip()
    for intent, pattern in INTENT_PATTERNS:
        if pattern.search(first_statement):
            return intent

    return 'other'


_default_categorizer = Categorizer()


def categorize(text: str, title: Optional[str] = None) -> CategorizationResult:
    """Categorize with the built-in category table"""
    return _default_categorizer.categorize(text, title)


def detect_all_issues(text: str) -> List[str]:
    """Multi-issue tagging with the built-in category table"""
    return _default_categorizer.detect_all_issues(text)
