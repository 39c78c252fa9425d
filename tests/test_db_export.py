#!/usr/bin/env python3
"""
Tests for analysis export and summary.
"""

import os
import sys
import json
import tempfile
import unittest

import pandas as pd

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database_manager import TranscriptStore
from db_export import export_analysis, summarize_analysis, EXPORT_COLUMNS


class TestExport(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.store = TranscriptStore(os.path.join(self.temp_dir.name, "test.db"))

        rows = [
            ("K1", "2025-12-01", "positive", 0.9, "Escrow", "Resolved", 0.01),
            ("K2", "2025-12-02", "negative", 0.2, "Payoff", "Escalated", 0.02),
            ("K3", "2025-12-03", "positive", 0.7, "Escrow", "Resolved", 0.03),
        ]
        for key, day, sentiment, score, topic, status, cost in rows:
            self.store.upsert(key, {"call_start": f"{day}T09:00:00", "agent_name": "Pat"})
            self.store.save_analysis(key, {
                "agent_name": "Pat",
                "agent_sentiment": sentiment,
                "agent_sentiment_score": score,
                "ai_discovered_topic": topic,
                "resolution_status": status,
                "key_issues": ["first", "second"],
                "entities": {"loan_numbers": []},
                "cost": cost,
            })
        self.store.upsert("K4", {"call_start": "2025-12-03T10:00:00"})
        self.store.save_failure("K4", "Parse error")

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_csv_export(self):
        output = os.path.join(self.temp_dir.name, "out", "analysis.csv")
        self.assertEqual(export_analysis(self.store, output, "csv"), output)

        df = pd.read_csv(output)
        self.assertEqual(list(df["vendor_call_key"]), ["K1", "K2", "K3"])
        self.assertEqual(list(df.columns[:2]), EXPORT_COLUMNS[:2])
        self.assertEqual(df.loc[0, "key_issues"], "first; second")

    def test_json_export_with_window(self):
        output = os.path.join(self.temp_dir.name, "analysis.json")
        export_analysis(self.store, output, "JSON", start_date="2025-12-02", end_date="2025-12-02")

        with open(output) as f:
            records = json.load(f)
        self.assertEqual([r["vendor_call_key"] for r in records], ["K2"])
        self.assertEqual(records[0]["key_issues"], ["first", "second"])

    def test_nothing_to_export(self):
        self.assertIsNone(export_analysis(self.store, os.path.join(self.temp_dir.name, "x.csv"),
                                          start_date="2026-01-01"))

    def test_unsupported_format(self):
        with self.assertRaises(ValueError):
            export_analysis(self.store, format_type="xml")

    def test_summary(self):
        summary = summarize_analysis(self.store)
        self.assertEqual(summary["total"], 3)
        self.assertEqual(summary["agent_sentiment"], {"positive": 2, "negative": 1})
        self.assertEqual(summary["avg_agent_sentiment_score"], 0.6)
        self.assertEqual(summary["top_topics"]["Escrow"], 2)
        self.assertEqual(summary["resolution_status"], {"Resolved": 2, "Escalated": 1})
        self.assertAlmostEqual(summary["total_cost"], 0.06)

    def test_empty_summary(self):
        summary = summarize_analysis(self.store, start_date="2026-01-01")
        self.assertEqual(summary["total"], 0)
        self.assertIsNone(summary["avg_agent_sentiment_score"])


if __name__ == "__main__":
    unittest.main()
