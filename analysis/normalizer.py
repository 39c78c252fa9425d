#!/usr/bin/env python3
"""
Speaker-label normalization for Servicing Insights transcripts.

Every downstream heuristic expects the canonical "agent:" / "customer:"
labels, so raw text goes through normalize() first.
"""

import re
import logging
from typing import List, Dict

from analysis.models import ConversationMessage, AGENT, CUSTOMER
from utils.text.text_processor import TextProcessor

logger = logging.getLogger(__name__)

AGENT_LABEL_PATTERNS = [
    re.compile(r'\brep:', re.IGNORECASE),
    re.compile(r'\brepresentative:', re.IGNORECASE),
    re.compile(r'\bagent\s+\d+:', re.IGNORECASE),
    re.compile(r'\b[a-z]+\s+\(agent\):', re.IGNORECASE),
]

CUSTOMER_LABEL_PATTERNS = [
    re.compile(r'\bcaller:', re.IGNORECASE),
    re.compile(r'\bclient:', re.IGNORECASE),
    re.compile(r'\buser:', re.IGNORECASE),
]

SPEAKER_SPLIT_PATTERN = re.compile(r'\b(agent:|customer:)', re.IGNORECASE)


def normalize(raw_text: str) -> str:
    """
    Map speaker-label variants onto "agent:" / "customer:" and collapse whitespace.

    Args:
        raw_text: Transcript text as captured

    Returns:
        Normalized text (empty string for empty input)
    """
    if not raw_text:
        return ""

    normalized = raw_text
    for pattern in AGENT_LABEL_PATTERNS:
        normalized = pattern.sub('agent:', normalized)
    for pattern in CUSTOMER_LABEL_PATTERNS:
        normalized = pattern.sub('customer:', normalized)

    return TextProcessor.clean_text(normalized)


def parse_conversation(normalized_text: str) -> List[ConversationMessage]:
    """
    Split normalized text into ordered messages.

    Text before the first speaker label has no speaker and is dropped. An
    empty result means the text could not be attributed to anyone.

    Args:
        normalized_text: Output of normalize() (raw text is normalized again)

    Returns:
        Messages in conversation order, with the original casing kept
    """
    parts = SPEAKER_SPLIT_PATTERN.split(normalize(normalized_text))
    messages = []
    current_role = None

    for part in parts:
        stripped = part.strip()
        label = stripped.lower()
        if label == 'agent:':
            current_role = AGENT
        elif label == 'customer:':
            current_role = CUSTOMER
        elif current_role and stripped:
            messages.append(ConversationMessage(role=current_role, text=stripped))

    return messages


def count_speaker_turns(text: str) -> Dict[str, int]:
    """Count speaker labels in the (re-normalized) text"""
    normalized = normalize(text).lower()
    agent_turns = normalized.count('agent:')
    customer_turns = normalized.count('customer:')

    return {
        'agent_turns': agent_turns,
        'customer_turns': customer_turns,
        'agent_messages': agent_turns,
        'customer_messages': customer_turns,
        'total_messages': agent_turns + customer_turns,
    }
