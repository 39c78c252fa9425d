#!/usr/bin/env python3
"""
Database Export Utility for the Servicing Insights system
Exports analyzed transcripts and summarizes analysis results.
"""

import os
import json
import logging
from datetime import datetime
from typing import Dict, Any, Optional

import pandas as pd

from config import AppConfig
from utils.file.file_handler import FileHandler

# Configure logging
logger = logging.getLogger(__name__)

EXPORT_FORMATS = ("csv", "json")

# Leading columns of an export; the remaining columns follow in table order
EXPORT_COLUMNS = [
    "vendor_call_key", "call_start", "call_end", "duration_seconds", "agent_name", "department",
    "disposition", "agent_sentiment", "agent_sentiment_score", "customer_sentiment",
    "customer_sentiment_score", "ai_discovered_topic", "ai_discovered_subcategory",
    "topic_confidence", "key_issues", "resolution", "tags", "category", "subcategory",
    "category_confidence", "customer_intent", "resolution_status", "call_quality_score",
]

# List columns are flattened for CSV
LIST_SEPARATOR = "; "


class ExportConfig:
    """Export utility configuration"""

    @classmethod
    def get_output_path(cls, prefix: str, format_type: str) -> str:
        """Generate a timestamped output file path"""
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        export_dir = AppConfig.get_export_dir()
        return os.path.join(export_dir, f"{prefix}_{timestamp}.{format_type}")


def analysis_dataframe(store, start_date: str = None, end_date: str = None) -> pd.DataFrame:
    """
    Completed analyses joined with their transcripts

    Args:
        store: TranscriptStore
        start_date: First call day to include (YYYY-MM-DD)
        end_date: Last call day to include (YYYY-MM-DD)

    Returns:
        DataFrame with EXPORT_COLUMNS first
    """
    rows = store.get_analysis_rows(start_date, end_date)
    df = pd.DataFrame(rows)
    if df.empty:
        return df

    leading = [c for c in EXPORT_COLUMNS if c in df.columns]
    return df[leading + [c for c in df.columns if c not in leading]]


def _flatten_for_csv(df: pd.DataFrame) -> pd.DataFrame:
    df = df.copy()
    for column in df.columns:
        if df[column].map(lambda v: isinstance(v, list)).any():
            df[column] = df[column].map(
                lambda v: LIST_SEPARATOR.join(str(x) for x in v) if isinstance(v, list) else v
            )
        elif df[column].map(lambda v: isinstance(v, dict)).any():
            df[column] = df[column].map(lambda v: json.dumps(v) if isinstance(v, dict) else v)
    return df


def export_analysis(store, output_file: str = None, format_type: str = "csv",
                    start_date: str = None, end_date: str = None) -> Optional[str]:
    """
    Export analyzed transcripts to a file

    Args:
        store: TranscriptStore
        output_file: Path to output file (timestamped file in the export directory if omitted)
        format_type: Output format ('csv' or 'json')
        start_date: First call day to include (YYYY-MM-DD)
        end_date: Last call day to include (YYYY-MM-DD)

    Returns:
        Path to the output file if successful, None otherwise

    Raises:
        ValueError: Unsupported format
    """
    format_type = format_type.lower()
    if format_type not in EXPORT_FORMATS:
        raise ValueError(f"Unsupported format: {format_type}")

    df = analysis_dataframe(store, start_date, end_date)
    if df.empty:
        logger.warning("No analyzed transcripts to export")
        return None

    if not output_file:
        output_file = ExportConfig.get_output_path("transcript_analysis", format_type)

    if format_type == "csv":
        written = FileHandler.safe_write_csv(_flatten_for_csv(df), output_file)
    else:
        written = FileHandler.safe_write_json_records(df, output_file)

    return output_file if written else None


def summarize_analysis(store, start_date: str = None, end_date: str = None,
                       top_n: int = 10) -> Dict[str, Any]:
    """
    Summarize completed analyses

    Args:
        store: TranscriptStore
        start_date: First call day to include (YYYY-MM-DD)
        end_date: Last call day to include (YYYY-MM-DD)
        top_n: Number of AI topics to report

    Returns:
        Dictionary with total, sentiment distributions, average scores,
        top topics and resolution status counts
    """
    df = analysis_dataframe(store, start_date, end_date)
    summary = {
        "total": int(len(df)),
        "agent_sentiment": {},
        "customer_sentiment": {},
        "avg_agent_sentiment_score": None,
        "avg_customer_sentiment_score": None,
        "top_topics": {},
        "resolution_status": {},
        "total_cost": 0.0,
    }
    if df.empty:
        return summary

    def counts(column: str, limit: int = None) -> Dict[str, int]:
        if column not in df.columns:
            return {}
        values = df[column].dropna().value_counts()
        if limit:
            values = values.head(limit)
        return {str(k): int(v) for k, v in values.items()}

    def mean(column: str) -> Optional[float]:
        if column not in df.columns:
            return None
        value = pd.to_numeric(df[column], errors="coerce").mean()
        return None if pd.isna(value) else round(float(value), 3)

    summary["agent_sentiment"] = counts("agent_sentiment")
    summary["customer_sentiment"] = counts("customer_sentiment")
    summary["avg_agent_sentiment_score"] = mean("agent_sentiment_score")
    summary["avg_customer_sentiment_score"] = mean("customer_sentiment_score")
    summary["top_topics"] = counts("ai_discovered_topic", top_n)
    summary["resolution_status"] = counts("resolution_status")
    if "cost" in df.columns:
        summary["total_cost"] = round(float(pd.to_numeric(df["cost"], errors="coerce").fillna(0).sum()), 6)

    return summary
