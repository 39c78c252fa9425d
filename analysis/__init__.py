#!/usr/bin/env python3
"""
Analysis engine of the Servicing Insights system.
Normalization, rule-based categorization, heuristic and LLM analysis of call transcripts.
"""

from analysis.normalizer import normalize, parse_conversation, count_speaker_turns
from analysis.categorization import Categorizer, categorize, detect_all_issues, detect_customer_intent
from analysis.transcript_analysis import TranscriptAnalyzer, analyze_transcript
from analysis.llm_analysis import LLMAnalysisClient, parse_analysis_response
