#!/usr/bin/env python3
"""
Heuristic transcript analyzer for Servicing Insights.

Turn counting, resolution/escalation detection, keyword sentiment,
transcript quality, call quality, topic detection, entity extraction and
self-service opportunities, composed into one TranscriptAnalysisResult.
No I/O and no shared mutable state: safe to call from concurrent workers.
"""

import re
import logging
from typing import Dict, List, Any, Optional, Tuple

from analysis.models import (
    TranscriptAnalysisResult, SelfServiceOpportunity, CUSTOMER,
    RESOLVED, ESCALATED, FOLLOWUP_REQUIRED, UNKNOWN
)
from analysis.normalizer import normalize, parse_conversation, count_speaker_turns
from analysis.categorization import detect_customer_intent
from analysis.entity_extraction import extract_entities
from utils.text.text_processor import TextProcessor

logger = logging.getLogger(__name__)

# ------------------------------
# Phrase tables
# ------------------------------
ESCALATION_PHRASES = [
    'need to escalate', 'transfer to supervisor', 'speak to a manager', 'talk to supervisor',
    'escalate this', 'transfer to manager', 'speak with supervisor', 'i want to speak to',
    'let me talk to', 'get me a supervisor',
]

RESOLUTION_PHRASES = [
    'resolved', 'all set', 'that should do it', "you're all set", 'is there anything else',
    'have i answered', 'glad i could help', 'problem solved', 'issue resolved',
    'that takes care of', 'you should be good', 'everything is set',
]

FOLLOWUP_PHRASES = [
    'call you back', 'research this', 'check and email', 'need to investigate', 'get back to you',
    'follow up', 'look into this', "i'll check on", 'let me find out', 'need to verify',
]

POSITIVE_KEYWORDS = [
    'thank', 'thanks', 'appreciate', 'helpful', 'great', 'excellent', 'wonderful',
    'perfect', 'good', 'happy', 'satisfied', 'pleased', 'awesome',
]

NEGATIVE_KEYWORDS = [
    'frustrated', 'angry', 'upset', 'terrible', 'awful', 'horrible', 'worst', 'unacceptable',
    'ridiculous', 'disappointed', 'dissatisfied', 'complaint', 'furious', 'outraged',
]

NEGATIVE_WEIGHT = 1.5
SENTIMENT_WORDS_PER_UNIT = 50
SENTIMENT_THRESHOLD = 0.2

TOPIC_KEYWORDS = {
    # Payment related
    'payment': ['payment', 'pay ', 'paying', 'paid'],
    'autopay': ['autopay', 'automatic payment', 'recurring payment'],
    'payment_failure': ['declined', 'failed payment', 'bounced', 'nsf'],
    'first_payment': ['first payment', 'initial payment', 'where do i send'],
    # Escrow related
    'escrow': ['escrow', 'impound'],
    'escrow_shortage': ['shortage', 'escrow analysis', 'escrow increase'],
    'property_tax': ['property tax', 'tax bill', 'taxes'],
    'insurance': ['insurance', 'homeowner insurance', 'hazard insurance'],
    # Account access
    'login': ['login', 'log in', 'sign in'],
    'password': ['password', 'reset password', 'forgot password'],
    'locked_account': ['locked', 'locked out', 'account locked'],
    # Loan transfer
    'transfer': ['transfer', 'sold my loan', 'new servicer'],
    'boarding': ['boarding', 'on-boarding', 'welcome letter'],
    'subservicer': ['servicemac', 'cenlar', 'lakeview', 'subservicer'],
    # Documentation
    'payoff': ['payoff', 'payoff quote', 'payoff statement'],
    'statement': ['statement', 'mortgage statement', 'billing statement'],
    'tax_documents': ['1098', 'tax form', 'tax document'],
    'closing_documents': ['closing', 'final bill', 'satisfaction'],
    # Loan information
    'balance': ['balance', 'how much do i owe', 'amount due'],
    'interest_rate': ['interest rate', 'rate', 'apr'],
    'loan_details': ['loan number', 'loan information', 'loan terms'],
    # Modifications
    'modification': ['modification', 'loan mod'],
    'forbearance': ['forbearance', 'payment relief', 'skip payment'],
    'hardship': ['hardship', 'financial difficulty', 'cant pay'],
    # Issues and escalations
    'complaint': ['complaint', 'file a complaint', 'better business bureau'],
    'escalation': ['supervisor', 'manager', 'escalate'],
    'legal': ['attorney', 'lawyer', 'legal'],
    # Self-service
    'online_portal': ['website', 'online', 'portal', 'app'],
    'voice_preference': ['call preference', 'do not call', 'text message'],
}

SELF_SERVICE_INDICATORS = {
    'Online Payment Setup': ['where do i pay', 'how do i pay', 'payment address', 'send payment'],
    'Password Reset': ['reset password', 'forgot password', 'cant log in', 'locked out'],
    'Statement Request': ['need a statement', 'mortgage statement', 'billing statement'],
    'Balance Inquiry': ['how much do i owe', 'current balance', 'payoff amount'],
    'Payment History': ['payment history', 'past payments', 'what i paid'],
    'Account Setup': ['set up account', 'register', 'create account', 'sign up'],
    'AutoPay Enrollment': ['set up autopay', 'automatic payment', 'recurring payment'],
    'Document Download': ['download', 'need a copy', 'send me', 'email me'],
    'Tax Form Access': ['1098', 'tax form', 'tax document'],
    'Payoff Quote': ['payoff quote', 'payoff statement', 'payoff amount'],
}

SPEAKER_LABEL_PATTERN = re.compile(r'\b(agent:|customer:)', re.IGNORECASE)
SPECIAL_CHAR_PATTERN = re.compile(r'[^a-zA-Z0-9\s:.,!?-]')


def _count_occurrences(text: str, keyword: str) -> int:
    return len(re.findall(re.escape(keyword), text))


class TranscriptAnalyzer:
    """Composes the transcript heuristics into a single analysis record"""

    def detect_resolution_status(self, transcript_text: str) -> Dict[str, Any]:
        """
        Resolution state of a call. Escalation wins over resolution, which
        wins over follow-up, so an escalated-then-resolved call is reported
        as escalated.

        Args:
            transcript_text: Normalized transcript text

        Returns:
            Dictionary with resolution_status, was_resolved, was_escalated,
            requires_followup and escalation_reason
        """
        text = (transcript_text or "").lower()

        if any(phrase in text for phrase in ESCALATION_PHRASES):
            reason = 'Customer requested escalation'
            if 'supervisor' in text or 'manager' in text:
                reason = 'Requested supervisor/manager'
            return {
                'resolution_status': ESCALATED,
                'was_resolved': False,
                'was_escalated': True,
                'requires_followup': True,
                'escalation_reason': reason,
            }

        if any(phrase in text for phrase in RESOLUTION_PHRASES):
            status, resolved, followup = RESOLVED, True, False
        elif any(phrase in text for phrase in FOLLOWUP_PHRASES):
            status, resolved, followup = FOLLOWUP_REQUIRED, False, True
        else:
            status, resolved, followup = UNKNOWN, False, False

        return {
            'resolution_status': status,
            'was_resolved': resolved,
            'was_escalated': False,
            'requires_followup': followup,
            'escalation_reason': None,
        }

    def analyze_sentiment(self, text: str) -> Tuple[str, float]:
        """
        Keyword-density sentiment

        Args:
            text: Text to score

        Returns:
            Tuple of (label, score) where score is in [-1, 1] and label is
            positive, negative, mixed or neutral
        """
        text = text or ""
        lower_text = text.lower()

        positive_count = sum(_count_occurrences(lower_text, kw) for kw in POSITIVE_KEYWORDS)
        negative_count = sum(_count_occurrences(lower_text, kw) * NEGATIVE_WEIGHT for kw in NEGATIVE_KEYWORDS)

        total_words = len(TextProcessor.split_words(text))
        density = (positive_count - negative_count) / max(total_words / SENTIMENT_WORDS_PER_UNIT, 1)
        score = max(-1.0, min(1.0, density))

        if score > SENTIMENT_THRESHOLD:
            label = 'positive'
        elif score < -SENTIMENT_THRESHOLD:
            label = 'negative'
        elif positive_count > 0 and negative_count > 0:
            label = 'mixed'
        else:
            label = 'neutral'

        return label, score

    def analyze_customer_sentiment(self, transcript_text: str) -> Tuple[str, float]:
        """Sentiment of customer-attributed text only; "mixed" is reported as neutral"""
        customer_text = ' '.join(
            m.text for m in parse_conversation(transcript_text) if m.role == CUSTOMER
        )
        if not customer_text:
            return 'neutral', 0.0

        label, score = self.analyze_sentiment(customer_text)
        return ('neutral' if label == 'mixed' else label), score

    def assess_transcript_quality(self, transcript_text: str) -> Dict[str, Any]:
        """
        Data-integrity score of the captured transcript (0-100)

        Deductions stack independently; the label is taken before the score
        is floored at zero.

        Args:
            transcript_text: Normalized transcript text

        Returns:
            Dictionary with quality (high/medium/low), score and issues
        """
        text = transcript_text or ""
        issues = []
        score = 100

        words = TextProcessor.split_words(text)
        if len(words) < 10:
            issues.append('Very short transcript (< 10 words)')
            score -= 40
        elif len(words) < 50:
            issues.append('Short transcript (< 50 words)')
            score -= 20

        if not SPEAKER_LABEL_PATTERN.search(text):
            issues.append('Missing speaker labels')
            score -= 30

        avg_word_length = sum(len(word) for word in words) / len(words)
        if avg_word_length < 2:
            issues.append('Very short average word length (possible gibberish)')
            score -= 25
        elif avg_word_length > 15:
            issues.append('Very long average word length (possible encoding issues)')
            score -= 15

        if text and len(SPECIAL_CHAR_PATTERN.findall(text)) / len(text) > 0.1:
            issues.append('Excessive special characters')
            score -= 15

        if score >= 80:
            quality = 'high'
        elif score >= 50:
            quality = 'medium'
        else:
            quality = 'low'

        return {'quality': quality, 'score': max(0, score), 'issues': issues}

    def calculate_call_quality_score(self, duration_seconds: Optional[float], turn_count: int,
                                     resolution_status: str, sentiment: str) -> int:
        """
        Score the call itself (0-100, base 50) from duration, turns, resolution and sentiment
        """
        score = 50

        # Duration is ignored when unknown or zero
        if duration_seconds:
            minutes = duration_seconds / 60
            if 3 <= minutes <= 10:
                score += 20
            elif 2 <= minutes <= 15:
                score += 10
            elif minutes < 1:
                score -= 20
            elif minutes > 30:
                score -= 10

        if 8 <= turn_count <= 30:
            score += 15
        elif 4 <= turn_count <= 40:
            score += 5
        elif turn_count < 4:
            score -= 10

        if resolution_status == RESOLVED:
            score += 20
        elif resolution_status == ESCALATED:
            score -= 15
        elif resolution_status == FOLLOWUP_REQUIRED:
            score -= 5

        if sentiment == 'positive':
            score += 15
        elif sentiment == 'negative':
            score -= 20

        return max(0, min(100, score))

    def detect_topics(self, transcript_text: str) -> Dict[str, Any]:
        """
        Count keyword hits per topic

        Returns:
            Dictionary with topics (sorted by hits, descending), primary_topic
            ("general" when nothing hits) and topic_scores
        """
        text = (transcript_text or "").lower()
        topic_scores = {}

        for topic, keywords in TOPIC_KEYWORDS.items():
            count = sum(_count_occurrences(text, kw) for kw in keywords)
            if count > 0:
                topic_scores[topic] = count

        # Stable sort keeps table order between topics with equal hits
        topics = [topic for topic, _ in sorted(topic_scores.items(), key=lambda item: item[1], reverse=True)]

        return {
            'topics': topics,
            'primary_topic': topics[0] if topics else 'general',
            'topic_scores': topic_scores,
        }

    def detect_self_service_opportunities(self, transcript_text: str) -> SelfServiceOpportunity:
        text = (transcript_text or "").lower()
        opportunities = [
            name for name, phrases in SELF_SERVICE_INDICATORS.items()
            if any(phrase in text for phrase in phrases)
        ]

        if len(opportunities) >= 3:
            potential = 'high'
        elif opportunities:
            potential = 'medium'
        else:
            potential = 'low'

        return SelfServiceOpportunity(
            has_self_service_opportunity=bool(opportunities),
            opportunities=opportunities,
            automation_potential=potential,
        )

    def analyze(self, transcript_text: str, duration_seconds: Optional[float] = None) -> TranscriptAnalysisResult:
        """
        Run every heuristic over one transcript

        Args:
            transcript_text: Raw transcript text
            duration_seconds: Call duration, when known

        Returns:
            TranscriptAnalysisResult
        """
        normalized = normalize(transcript_text)

        turns = count_speaker_turns(normalized)
        resolution = self.detect_resolution_status(normalized)
        overall_label, overall_score = self.analyze_sentiment(normalized)
        customer_label, customer_score = self.analyze_customer_sentiment(normalized)
        quality = self.assess_transcript_quality(normalized)
        topics = self.detect_topics(normalized)
        # Names need the original casing and spacing
        entities = extract_entities(transcript_text)
        self_service = self.detect_self_service_opportunities(normalized)
        call_quality = self.calculate_call_quality_score(
            duration_seconds, turns['total_messages'], resolution['resolution_status'], overall_label
        )

        return TranscriptAnalysisResult(
            agent_turns=turns['agent_turns'],
            customer_turns=turns['customer_turns'],
            total_messages=turns['total_messages'],
            agent_messages=turns['agent_messages'],
            customer_messages=turns['customer_messages'],
            resolution_status=resolution['resolution_status'],
            was_resolved=resolution['was_resolved'],
            was_escalated=resolution['was_escalated'],
            requires_followup=resolution['requires_followup'],
            escalation_reason=resolution['escalation_reason'],
            overall_sentiment=overall_label,
            sentiment_score=overall_score,
            customer_sentiment=customer_label,
            customer_sentiment_score=customer_score,
            transcript_quality=quality['quality'],
            transcript_quality_score=quality['score'],
            quality_issues=quality['issues'],
            call_quality_score=call_quality,
            customer_intent=detect_customer_intent(normalized),
            detected_topics=topics['topics'],
            primary_topic=topics['primary_topic'],
            topic_scores=topics['topic_scores'],
            extracted_entities=entities,
            self_service=self_service,
        )


def analyze_transcript(transcript_text: str, duration_seconds: Optional[float] = None) -> TranscriptAnalysisResult:
    """Convenience wrapper around TranscriptAnalyzer.analyze"""
    return TranscriptAnalyzer().analyze(transcript_text, duration_seconds)
