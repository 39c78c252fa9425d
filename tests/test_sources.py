#!/usr/bin/env python3
"""
Tests for record sources, raw record transformation and the file checkpoint store.
"""

import os
import sys
import json
import tempfile
import unittest
from unittest.mock import MagicMock, patch

import requests

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from analysis.models import AGENT, CUSTOMER, Checkpoint, AnalysisResult, CategorizationResult
from analysis.transcript_analysis import analyze_transcript
from api.clients.domo_client import DomoClient
from sync.records import parse_conversation_payload, transform_domo_record, build_analysis_record, parse_int
from sync.sources import DomoRecordSource, CsvRecordSource
from sync.checkpoint import FileCheckpointStore
from exceptions import SourceError

CONVERSATION = json.dumps({
    "conversationEntries": [
        {"sender": {"role": "Agent"}, "messageText": "It&#39;s all set", "clientTimestamp": "1733392800000"},
        {"sender": {"role": "EndUser"}, "messageText": "Thanks", "serverReceivedTimestamp": "1733392860000"},
    ]
})


def _http_response(status_code, payload=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload or {}
    response.text = text
    return response


class TestRecords(unittest.TestCase):

    def test_parse_conversation_payload(self):
        messages = parse_conversation_payload(CONVERSATION)
        self.assertEqual([m.role for m in messages], [AGENT, CUSTOMER])
        self.assertEqual(messages[0].text, "It's all set")
        self.assertEqual(messages[1].timestamp, "1733392860000")

    def test_unreadable_payload(self):
        self.assertIsNone(parse_conversation_payload("{not json", "K1"))
        self.assertIsNone(parse_conversation_payload(None))
        self.assertIsNone(parse_conversation_payload('{"other": []}'))

    def test_transform_domo_record(self):
        transcript = transform_domo_record({
            "VendorCallKey": "K1",
            "CallStartDateTime": "2025-12-05T10:00:00Z",
            "CallEndDateTime": "not a date",
            "CallDurationInSeconds": "125.5",
            "NumberOfHolds": "",
            "Name": "Pat Agent",
            "Department": "Servicing",
            "Conversation": CONVERSATION,
        })
        self.assertEqual(transcript["vendor_call_key"], "K1")
        self.assertEqual(transcript["call_start"], "2025-12-05T10:00:00")
        self.assertIsNone(transcript["call_end"])
        self.assertEqual(transcript["duration_seconds"], 126)
        self.assertIsNone(transcript["number_of_holds"])
        self.assertEqual(transcript["agent_name"], "Pat Agent")
        self.assertEqual(len(transcript["messages"]), 2)

    def test_parse_int_rounds_half_up(self):
        self.assertEqual(parse_int("2.5"), 3)
        self.assertEqual(parse_int(7), 7)
        self.assertIsNone(parse_int("abc"))
        self.assertIsNone(parse_int(float("nan")))

    def test_build_analysis_record(self):
        analysis = AnalysisResult(
            agent_sentiment="positive", agent_sentiment_score=0.9, agent_sentiment_reason="r",
            customer_sentiment="neutral", customer_sentiment_score=0.5, customer_sentiment_reason="r",
            ai_discovered_topic="Escrow", ai_discovered_subcategory="Shortage", topic_confidence=0.8,
            key_issues=["escrow"], resolution="explained", tags=["escrow"], model="m",
            prompt_tokens=10, completion_tokens=5, cost=0.01,
        )
        heuristic = analyze_transcript("customer: my escrow went up agent: you're all set")
        categorization = CategorizationResult("Escrow", "General Escrow Inquiry", 0.8, ("Escrow",))

        record = build_analysis_record({"agent_name": "Pat"}, analysis, heuristic, categorization, attempts=2)
        self.assertEqual(record["agent_name"], "Pat")
        self.assertEqual(record["ai_discovered_topic"], "Escrow")
        self.assertEqual(record["category"], "Escrow")
        self.assertEqual(record["all_issues"], ["Escrow"])
        self.assertEqual(record["resolution_status"], "Resolved")
        self.assertEqual(record["attempts"], 2)
        self.assertIn("loan_numbers", record["entities"])

        record = build_analysis_record({}, analysis, heuristic, categorization,
                                       all_issues=["Escrow", "Escalation"])
        self.assertEqual(record["all_issues"], ["Escrow", "Escalation"])


class TestDomoClient(unittest.TestCase):

    def setUp(self):
        self.session = MagicMock()
        self.session.get.return_value = _http_response(200, {"access_token": "token", "expires_in": 3600})
        self.client = DomoClient("id", "secret", session=self.session)

    def test_fetch_dataset(self):
        self.session.post.return_value = _http_response(200, {
            "columns": ["VendorCallKey", "CallStartDateTime"],
            "rows": [["K1", "2025-12-01T10:00:00"], ["K2", "2025-12-02T11:00:00"]],
        })
        records = self.client.fetch_dataset("dataset", "2025-12-01", "2025-12-02")

        self.assertEqual(records[0], {"VendorCallKey": "K1", "CallStartDateTime": "2025-12-01T10:00:00"})
        sql = self.session.post.call_args.kwargs["json"]["sql"]
        self.assertIn("`CallStartDateTime` >= '2025-12-01'", sql)
        self.assertIn("`CallStartDateTime` < '2025-12-03'", sql)
        headers = self.session.post.call_args.kwargs["headers"]
        self.assertEqual(headers["Authorization"], "Bearer token")

    def test_token_reused(self):
        self.session.post.return_value = _http_response(200, {"columns": ["a"], "rows": []})
        self.client.fetch_dataset("dataset")
        self.client.fetch_dataset("dataset")
        self.assertEqual(self.session.get.call_count, 1)

    def test_authentication_failure(self):
        self.session.get.return_value = _http_response(401, text="bad credentials")
        with self.assertRaises(SourceError) as ctx:
            self.client.fetch_dataset("dataset")
        self.assertEqual(ctx.exception.status_code, 401)

    def test_request_exception(self):
        self.session.post.side_effect = requests.ConnectionError("down")
        with self.assertRaises(SourceError):
            self.client.fetch_dataset("dataset")

    def test_query_failure(self):
        self.session.post.return_value = _http_response(500, text="boom")
        with self.assertRaises(SourceError) as ctx:
            self.client.fetch_dataset("dataset")
        self.assertEqual(ctx.exception.status_code, 500)

    def test_invalid_date(self):
        with self.assertRaises(ValueError):
            self.client.build_query("12/01/2025", None)

    @patch("api.clients.domo_client.PAGE_SIZE", 2)
    def test_fetch_all_records_pages(self):
        pages = [
            _http_response(200, {"columns": ["k"], "rows": [["1"], ["2"]]}),
            _http_response(200, {"columns": ["k"], "rows": [["3"]]}),
        ]
        self.session.post.side_effect = pages

        source = DomoRecordSource(self.client, "dataset")
        records = source.fetch_records("2025-12-01", "2025-12-02")

        self.assertEqual([r["k"] for r in records], ["1", "2", "3"])
        self.assertEqual(self.session.post.call_count, 2)
        self.assertIn("OFFSET 2", self.session.post.call_args.kwargs["json"]["sql"])

    def test_source_needs_dataset(self):
        with self.assertRaises(SourceError):
            DomoRecordSource(self.client, "")


class TestCsvRecordSource(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.path = os.path.join(self.temp_dir.name, "export.csv")
        with open(self.path, "w") as f:
            f.write("VendorCallKey,CallStartDateTime,Department\n")
            f.write("K0,2025-11-30T23:00:00Z,Servicing\n")
            f.write("K2,2025-12-02T10:00:00Z,\n")
            f.write("K1,2025-12-01T08:00:00Z,Servicing\n")
            f.write("K3,2025-12-03T10:00:00Z,Servicing\n")

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_window_is_inclusive(self):
        records = CsvRecordSource(self.path).fetch_records("2025-12-01", "2025-12-02")
        self.assertEqual([r["VendorCallKey"] for r in records], ["K1", "K2"])
        self.assertIsNone(records[1]["Department"])

    def test_missing_file(self):
        with self.assertRaises(SourceError):
            CsvRecordSource(os.path.join(self.temp_dir.name, "missing.csv")).fetch_records("2025-12-01", "2025-12-02")

    def test_missing_date_column(self):
        with self.assertRaises(SourceError):
            CsvRecordSource(self.path, date_column="Other").fetch_records("2025-12-01", "2025-12-02")


class TestFileCheckpointStore(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.store = FileCheckpointStore(os.path.join(self.temp_dir.name, "checkpoint.json"))

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_save_and_load(self):
        self.assertIsNone(self.store.load_checkpoint("job"))
        self.store.save_checkpoint(Checkpoint("job", "2025-12-01..2025-12-05", 40, "K40"))
        loaded = self.store.load_checkpoint("job")
        self.assertEqual(loaded.processed_count, 40)
        self.assertEqual(loaded.last_processed_id, "K40")
        self.assertIsNotNone(loaded.updated_at)

    def test_count_never_decreases_within_window(self):
        self.store.save_checkpoint(Checkpoint("job", "w1", 40))
        stored = self.store.save_checkpoint(Checkpoint("job", "w1", 20))
        self.assertEqual(stored.processed_count, 40)
        self.assertEqual(self.store.load_checkpoint("job").processed_count, 40)

    def test_new_window_replaces(self):
        self.store.save_checkpoint(Checkpoint("job", "w1", 40))
        self.store.save_checkpoint(Checkpoint("job", "w2", 0))
        self.assertEqual(self.store.load_checkpoint("job").window, "w2")

    def test_corrupt_file_raises_and_is_kept(self):
        with open(self.store.file_path, "w", encoding="utf-8") as f:
            f.write("{\"job\": {\"window\": ")

        with self.assertRaises(OSError):
            self.store.load_checkpoint("job")
        with self.assertRaises(OSError):
            self.store.save_checkpoint(Checkpoint("job", "w1", 10))

        with open(self.store.file_path, encoding="utf-8") as f:
            self.assertEqual(f.read(), "{\"job\": {\"window\": ")

    def test_non_object_file_raises(self):
        with open(self.store.file_path, "w", encoding="utf-8") as f:
            f.write("[]")
        with self.assertRaises(OSError):
            self.store.load_checkpoint("job")

    def test_clear(self):
        self.store.save_checkpoint(Checkpoint("job", "w1", 1))
        self.assertTrue(self.store.clear_checkpoint("job"))
        self.assertIsNone(self.store.load_checkpoint("job"))


if __name__ == "__main__":
    unittest.main()
