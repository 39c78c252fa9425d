#!/usr/bin/env python3
"""
LLM analysis client for Servicing Insights.

Builds the fixed-schema analysis prompt for one conversation, sends it to a
completion collaborator (anything with an async ``complete(prompt)``), and
parses the reply strictly. A reply that cannot be turned into a complete
analysis object is an error, never an empty analysis.
"""

import re
import json
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Any, Optional, Sequence

from analysis.models import AnalysisResult, ConversationMessage, LLM_SENTIMENTS, conversation_to_text
from exceptions import InvalidInputError, ParseError, SchemaError
from utils.text.text_processor import TextProcessor

logger = logging.getLogger(__name__)

DEFAULT_LAST_N_CHARS = 1500

# Response key -> (AnalysisResult attribute, kind)
RESPONSE_FIELDS = {
    'agentSentiment': ('agent_sentiment', 'sentiment'),
    'agentSentimentScore': ('agent_sentiment_score', 'score'),
    'agentSentimentReason': ('agent_sentiment_reason', 'text'),
    'customerSentiment': ('customer_sentiment', 'sentiment'),
    'customerSentimentScore': ('customer_sentiment_score', 'score'),
    'customerSentimentReason': ('customer_sentiment_reason', 'text'),
    'aiDiscoveredTopic': ('ai_discovered_topic', 'text'),
    'aiDiscoveredSubcategory': ('ai_discovered_subcategory', 'text'),
    'topicConfidence': ('topic_confidence', 'score'),
    'keyIssues': ('key_issues', 'list'),
    'resolution': ('resolution', 'text'),
    'tags': ('tags', 'list'),
}

PROMPT_TEMPLATE = """Analyze this customer service call transcript and extract the following information in JSON format:

{{
  "agentSentiment": "positive|neutral|negative",
  "agentSentimentScore": 0.0-1.0,
  "agentSentimentReason": "brief explanation",
  "customerSentiment": "positive|neutral|negative",
  "customerSentimentScore": 0.0-1.0,
  "customerSentimentReason": "brief explanation",
  "aiDiscoveredTopic": "main topic",
  "aiDiscoveredSubcategory": "subcategory if applicable",
  "topicConfidence": 0.0-1.0,
  "keyIssues": ["issue1", "issue2"],
  "resolution": "how was it resolved",
  "tags": ["tag1", "tag2"]
}}

Respond with the JSON object only.
{truncation_note}
Transcript:
{conversation}"""

TRUNCATION_NOTE = "\nOnly the final {chars} characters of the transcript are included.\n"

FENCE_PATTERN = re.compile(r'^\s*```[a-zA-Z0-9_-]*\s*\n?(.*?)\n?\s*```\s*$', re.DOTALL)


# ------------------------------
# Response parsing
# ------------------------------
def strip_code_fences(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence, if there is one"""
    if not text:
        return ""
    match = FENCE_PATTERN.match(text)
    return match.group(1).strip() if match else text.strip()


def extract_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced {...} block in text, ignoring braces inside
    JSON strings, or None when there is none
    """
    start = text.find('{')
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == '\\':
                    escaped = True
                elif char == '"':
                    in_string = False
            elif char == '"':
                in_string = True
            elif char == '{':
                depth += 1
            elif char == '}':
                depth -= 1
                if depth == 0:
                    return text[start:index + 1]
        # Unbalanced from here on; try the next opening brace
        start = text.find('{', start + 1)
    return None


def _to_score(value: Any) -> float:
    score = float(value)
    if score != score:  # NaN
        raise ValueError("score is NaN")
    return max(0.0, min(1.0, score))


def _to_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None]
    raise ValueError(f"expected a list, got {type(value).__name__}")


def _to_sentiment(value: Any) -> str:
    label = str(value or '').strip().lower()
    return label if label in LLM_SENTIMENTS else 'neutral'


@dataclass
class AnalysisParseResult:
    """
    Outcome of parsing one completion: kind is "ok", "parse_error" or
    "schema_error". Callers branch on kind or call unwrap().
    """
    kind: str
    analysis: Optional[AnalysisResult] = None
    raw_text: str = ""
    missing_fields: List[str] = field(default_factory=list)
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.kind == 'ok'

    def unwrap(self) -> AnalysisResult:
        """
        Returns:
            The parsed analysis

        Raises:
            SchemaError: Required fields missing or invalid
            ParseError: No JSON object in the completion
        """
        if self.kind == 'ok':
            return self.analysis
        if self.kind == 'schema_error':
            raise SchemaError(self.message, missing_fields=self.missing_fields, raw_text=self.raw_text)
        raise ParseError(self.message, raw_text=self.raw_text)


def parse_analysis_response(raw_text: str) -> AnalysisParseResult:
    """
    Parse and validate a completion into an AnalysisResult

    Args:
        raw_text: Completion text, possibly fenced or surrounded by prose

    Returns:
        AnalysisParseResult
    """
    raw_text = raw_text or ""
    candidate = strip_code_fences(raw_text)

    data = None
    try:
        data = json.loads(candidate)
    except ValueError:
        block = extract_json_object(candidate)
        if block is not None:
            try:
                data = json.loads(block)
            except ValueError as e:
                return AnalysisParseResult('parse_error', raw_text=raw_text,
                                           message=f"JSON parsing error: {str(e)}")

    if not isinstance(data, dict):
        return AnalysisParseResult('parse_error', raw_text=raw_text,
                                   message="No valid JSON object found in response")

    missing = [key for key in RESPONSE_FIELDS if key not in data]
    if missing:
        return AnalysisParseResult('schema_error', raw_text=raw_text, missing_fields=missing,
                                   message=f"Missing fields: {', '.join(missing)}")

    values = {}
    invalid = []
    for key, (attribute, kind) in RESPONSE_FIELDS.items():
        value = data[key]
        try:
            if kind == 'sentiment':
                values[attribute] = _to_sentiment(value)
            elif kind == 'score':
                values[attribute] = _to_score(value)
            elif kind == 'list':
                values[attribute] = _to_list(value)
            else:
                values[attribute] = '' if value is None else str(value)
        except (TypeError, ValueError):
            invalid.append(key)

    if invalid:
        return AnalysisParseResult('schema_error', raw_text=raw_text, missing_fields=invalid,
                                   message=f"Invalid fields: {', '.join(invalid)}")

    return AnalysisParseResult('ok', analysis=AnalysisResult(**values), raw_text=raw_text)


# ------------------------------
# Client
# ------------------------------
def build_prompt(messages: Sequence[ConversationMessage], last_n_chars: int = DEFAULT_LAST_N_CHARS) -> str:
    """
    Render the analysis prompt for a conversation

    Args:
        messages: Conversation in order
        last_n_chars: Keep only this many trailing characters of the conversation

    Returns:
        Prompt text
    """
    conversation = conversation_to_text(messages)
    truncated = TextProcessor.tail_text(conversation, last_n_chars)
    note = TRUNCATION_NOTE.format(chars=last_n_chars) if len(truncated) < len(conversation) else ""
    return PROMPT_TEMPLATE.format(truncation_note=note, conversation=truncated)


class LLMAnalysisClient:
    """Single-attempt structured analysis of one conversation"""

    def __init__(self, completion_client, last_n_chars: int = DEFAULT_LAST_N_CHARS):
        """
        Args:
            completion_client: Object with ``async complete(prompt)`` returning a
                CompletionResult (see api.clients.openrouter_client)
            last_n_chars: Prompt window over the end of the conversation
        """
        self.completion_client = completion_client
        self.last_n_chars = last_n_chars

    async def analyze(self, messages: Sequence[ConversationMessage]) -> AnalysisResult:
        """
        Analyze one conversation with the completion model

        Args:
            messages: Conversation in order

        Returns:
            AnalysisResult with token usage and cost attached

        Raises:
            InvalidInputError: Empty conversation (the service is not called)
            ParseError: No JSON object in the completion
            SchemaError: JSON object without the required fields
            UpstreamError: Completion service failure (status and body attached)
        """
        if not messages:
            raise InvalidInputError("No conversation messages")

        prompt = build_prompt(messages, self.last_n_chars)
        completion = await self.completion_client.complete(prompt)

        parsed = parse_analysis_response(completion.text)
        if not parsed.ok:
            logger.debug(f"Unusable completion ({parsed.kind}): {parsed.message}")
        analysis = parsed.unwrap()

        analysis.model = completion.model
        analysis.prompt_tokens = completion.prompt_tokens
        analysis.completion_tokens = completion.completion_tokens
        analysis.cost = completion.cost
        return analysis
