#!/usr/bin/env python3
"""
Data models for the Servicing Insights analysis engine.

Conversation and classification records are immutable once produced; only
SyncStats is mutated, and only by the pipeline that owns it.
"""

import time
from enum import Enum
from dataclasses import dataclass, field, asdict
from typing import Dict, List, Any, Optional, Tuple

# ------------------------------
# Enumerations
# ------------------------------
AGENT = 'agent'
CUSTOMER = 'customer'
ROLES = (AGENT, CUSTOMER)

RESOLVED = 'Resolved'
ESCALATED = 'Escalated'
FOLLOWUP_REQUIRED = 'Follow-up Required'
UNKNOWN = 'Unknown'

LLM_SENTIMENTS = ('positive', 'neutral', 'negative')


class SyncState(str, Enum):
    """States of a batch/delta sync run"""
    IDLE = 'idle'
    DETERMINE_WINDOW = 'determine_window'
    FETCH = 'fetch'
    IMPORT = 'import'
    SELECT_UNANALYZED = 'select_unanalyzed'
    ANALYZE = 'analyze'
    CHECKPOINT = 'checkpoint'
    DONE = 'done'
    FAILED = 'failed'


# ------------------------------
# Conversations
# ------------------------------
@dataclass(frozen=True)
class ConversationMessage:
    role: str
    text: str
    timestamp: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'role': self.role, 'text': self.text, 'timestamp': self.timestamp}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ConversationMessage':
        # Stored rows written by older importers use "speaker" for the role
        role = data.get('role') or data.get('speaker') or CUSTOMER
        role = AGENT if str(role).lower() == AGENT else CUSTOMER
        return cls(role=role, text=data.get('text') or '', timestamp=data.get('timestamp'))


def conversation_to_text(messages: List[ConversationMessage]) -> str:
    """Render messages as speaker-tagged lines ("agent: ...")"""
    return '\n'.join(f"{m.role}: {m.text}" for m in messages)


# ------------------------------
# Categorization
# ------------------------------
@dataclass(frozen=True)
class SubcategoryDefinition:
    name: str
    keywords: Tuple[str, ...]
    weight: int


@dataclass(frozen=True)
class CategoryDefinition:
    name: str
    keywords: Tuple[str, ...]
    subcategories: Tuple[SubcategoryDefinition, ...]


@dataclass(frozen=True)
class ConfidenceWeights:
    """Coefficients of the categorizer confidence formula"""
    base: float = 0.4
    max_specificity_bonus: float = 0.3
    specificity_divisor: float = 20.0
    per_match_bonus: float = 0.1
    max_match_bonus: float = 0.3
    weight_share: float = 0.4
    default_confidence: float = 0.3


@dataclass(frozen=True)
class CategorizationResult:
    category: str = 'Other'
    subcategory: str = 'Uncategorized'
    confidence: float = 0.3
    all_issues: Tuple[str, ...] = ()
    matched_keywords: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'category': self.category,
            'subcategory': self.subcategory,
            'confidence': self.confidence,
            'all_issues': list(self.all_issues),
            'matched_keywords': list(self.matched_keywords),
        }


# ------------------------------
# Heuristic analysis
# ------------------------------
@dataclass
class ExtractedEntities:
    loan_numbers: List[str] = field(default_factory=list)
    customer_names: List[str] = field(default_factory=list)
    email_addresses: List[str] = field(default_factory=list)
    phone_numbers: List[str] = field(default_factory=list)
    addresses: List[str] = field(default_factory=list)
    dates: List[str] = field(default_factory=list)
    amounts: List[str] = field(default_factory=list)


@dataclass
class SelfServiceOpportunity:
    has_self_service_opportunity: bool = False
    opportunities: List[str] = field(default_factory=list)
    automation_potential: str = 'low'


@dataclass
class TranscriptAnalysisResult:
    # Speaker metrics
    agent_turns: int = 0
    customer_turns: int = 0
    total_messages: int = 0
    agent_messages: int = 0
    customer_messages: int = 0

    # Resolution
    resolution_status: str = UNKNOWN
    was_resolved: bool = False
    was_escalated: bool = False
    requires_followup: bool = False
    escalation_reason: Optional[str] = None

    # Sentiment
    overall_sentiment: str = 'neutral'
    sentiment_score: float = 0.0
    customer_sentiment: str = 'neutral'
    customer_sentiment_score: float = 0.0

    # Quality
    transcript_quality: str = 'low'
    transcript_quality_score: int = 0
    quality_issues: List[str] = field(default_factory=list)
    call_quality_score: int = 50

    customer_intent: str = 'other'

    # Topics
    detected_topics: List[str] = field(default_factory=list)
    primary_topic: str = 'general'
    topic_scores: Dict[str, int] = field(default_factory=dict)

    extracted_entities: ExtractedEntities = field(default_factory=ExtractedEntities)
    self_service: SelfServiceOpportunity = field(default_factory=SelfServiceOpportunity)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ------------------------------
# LLM analysis
# ------------------------------
@dataclass
class AnalysisResult:
    """Structured analysis of one conversation produced by the completion model"""
    agent_sentiment: str
    agent_sentiment_score: float
    agent_sentiment_reason: str
    customer_sentiment: str
    customer_sentiment_score: float
    customer_sentiment_reason: str
    ai_discovered_topic: str
    ai_discovered_subcategory: str
    topic_confidence: float
    key_issues: List[str] = field(default_factory=list)
    resolution: str = ""
    tags: List[str] = field(default_factory=list)
    model: str = ""
    prompt_tokens: int = 0
    completion_tokens: int = 0
    cost: float = 0.0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ------------------------------
# Sync pipeline
# ------------------------------
@dataclass
class Checkpoint:
    job_name: str
    window: str
    processed_count: int = 0
    last_processed_id: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Checkpoint':
        return cls(
            job_name=data.get('job_name', ''),
            window=data.get('window') or data.get('sync_window') or '',
            processed_count=int(data.get('processed_count') or 0),
            last_processed_id=data.get('last_processed_id'),
            updated_at=data.get('updated_at'),
        )


@dataclass
class SyncStats:
    """Run summary, reported even when the run fails part-way"""
    fetched: int = 0
    imported: int = 0
    analyzed: int = 0
    skipped: int = 0
    errors: int = 0
    sync_start_date: Optional[str] = None
    sync_end_date: Optional[str] = None
    start_time: float = field(default_factory=time.time)
    total_tokens: int = 0
    estimated_cost: float = 0.0
    error_details: List[Dict[str, str]] = field(default_factory=list)
    state: str = SyncState.IDLE.value
    cancelled: bool = False
    duration_seconds: float = 0.0

    def record_error(self, record_id: Optional[str], message: str) -> None:
        self.errors += 1
        self.error_details.append({'id': record_id or '', 'error': message})

    def finish(self) -> None:
        self.duration_seconds = round(time.time() - self.start_time, 3)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
