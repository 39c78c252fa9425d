#!/usr/bin/env python3
"""
Raw record transformation for the sync pipeline.

Shapes exported call records (Domo dataset rows) into transcript rows, and
merges the per-transcript analyses into the stored analysis record.
"""

import json
import math
import logging
from typing import Dict, List, Any, Optional

import pandas as pd

from analysis.models import (
    ConversationMessage, AnalysisResult, TranscriptAnalysisResult, CategorizationResult, AGENT, CUSTOMER
)
from utils.text.text_processor import TextProcessor

logger = logging.getLogger(__name__)

RECORD_KEY_FIELD = "VendorCallKey"


def decode_html_entities(text: Optional[str]) -> Optional[str]:
    return TextProcessor.decode_html_entities(text)


def parse_conversation_payload(payload: Any, record_id: str = None) -> Optional[List[ConversationMessage]]:
    """
    Parse the Conversation column of an exported call

    Args:
        payload: JSON string or already-decoded dict with "conversationEntries"
        record_id: Call key, for log messages

    Returns:
        Messages in order, or None if the payload is missing or unreadable
    """
    if payload is None or payload == "":
        return None
    if isinstance(payload, float) and math.isnan(payload):
        return None

    try:
        conversation = json.loads(payload) if isinstance(payload, str) else payload
        entries = conversation.get("conversationEntries")
    except (ValueError, TypeError, AttributeError):
        logger.warning(f"Failed to parse conversation for {record_id}")
        return None

    if not isinstance(entries, list):
        return None

    messages = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        sender = entry.get("sender") or {}
        role = AGENT if isinstance(sender, dict) and sender.get("role") == "Agent" else CUSTOMER
        messages.append(ConversationMessage(
            role=role,
            text=decode_html_entities(entry.get("messageText") or ""),
            timestamp=entry.get("clientTimestamp") or entry.get("serverReceivedTimestamp") or None,
        ))
    return messages


def parse_datetime(value: Any) -> Optional[str]:
    """
    Parse a timestamp into a naive UTC ISO string, or None when unparseable
    """
    if value is None or value == "":
        return None
    try:
        ts = pd.to_datetime(value, errors="coerce", utc=True)
    except (ValueError, TypeError, OverflowError):
        return None
    if ts is None or pd.isna(ts):
        return None
    return ts.tz_convert("UTC").tz_localize(None).isoformat()


def parse_int(value: Any) -> Optional[int]:
    """
    Parse a number and round half up to an int, or None when unparseable
    """
    if value is None or value == "":
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return int(math.floor(number + 0.5))


def _text_or_none(value: Any) -> Optional[str]:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return None
    value = str(value)
    return value or None


def transform_domo_record(raw: Dict[str, Any]) -> Dict[str, Any]:
    """
    Map an exported call record onto the transcripts table

    Args:
        raw: Dataset row keyed by column name

    Returns:
        Transcript row (messages as a ConversationMessage list or None)
    """
    key = raw.get(RECORD_KEY_FIELD)
    return {
        'vendor_call_key': _text_or_none(key),
        'call_start': parse_datetime(raw.get('CallStartDateTime')),
        'call_end': parse_datetime(raw.get('CallEndDateTime')),
        'duration_seconds': parse_int(raw.get('CallDurationInSeconds')),
        'disposition': _text_or_none(raw.get('CallDispositionServicing')),
        'number_of_holds': parse_int(raw.get('NumberOfHolds')),
        'hold_duration': parse_int(raw.get('CustomerHoldDuration')),
        'department': _text_or_none(raw.get('Department')),
        'status': _text_or_none(raw.get('VoiceCallStatus')),
        'agent_name': _text_or_none(raw.get('Name')),
        'agent_role': _text_or_none(raw.get('UserRoleName')),
        'agent_profile': _text_or_none(raw.get('ProfileName')),
        'agent_email': _text_or_none(raw.get('Email')),
        'messages': parse_conversation_payload(raw.get('Conversation'), key),
    }


def build_analysis_record(transcript: Dict[str, Any], analysis: AnalysisResult,
                          heuristic: TranscriptAnalysisResult,
                          categorization: CategorizationResult, attempts: int = 1,
                          all_issues: Optional[List[str]] = None) -> Dict[str, Any]:
    """
    Merge the LLM analysis, heuristic analysis and categorization of one
    transcript into a transcript_analysis row. all_issues is the full multi-issue
    tagging of the text; without it the issues seen by the categorizer are kept.
    """
    return {
        'agent_name': transcript.get('agent_name'),
        'agent_sentiment': analysis.agent_sentiment,
        'agent_sentiment_score': analysis.agent_sentiment_score,
        'agent_sentiment_reason': analysis.agent_sentiment_reason,
        'customer_sentiment': analysis.customer_sentiment,
        'customer_sentiment_score': analysis.customer_sentiment_score,
        'customer_sentiment_reason': analysis.customer_sentiment_reason,
        'ai_discovered_topic': analysis.ai_discovered_topic,
        'ai_discovered_subcategory': analysis.ai_discovered_subcategory,
        'topic_confidence': analysis.topic_confidence,
        'key_issues': analysis.key_issues,
        'resolution': analysis.resolution,
        'tags': analysis.tags,
        'category': categorization.category,
        'subcategory': categorization.subcategory,
        'category_confidence': categorization.confidence,
        'all_issues': list(all_issues if all_issues is not None else categorization.all_issues),
        'customer_intent': heuristic.customer_intent,
        'resolution_status': heuristic.resolution_status,
        'overall_sentiment': heuristic.overall_sentiment,
        'customer_sentiment_heuristic': heuristic.customer_sentiment,
        'transcript_quality': heuristic.transcript_quality,
        'call_quality_score': heuristic.call_quality_score,
        'primary_topic': heuristic.primary_topic,
        'detected_topics': heuristic.detected_topics,
        'entities': heuristic.to_dict()['extracted_entities'],
        'self_service': heuristic.to_dict()['self_service'],
        'model': analysis.model,
        'prompt_tokens': analysis.prompt_tokens,
        'completion_tokens': analysis.completion_tokens,
        'cost': analysis.cost,
        'attempts': attempts,
    }
