#!/usr/bin/env python3
"""
Tests for the batch/delta sync pipeline.
"""

import os
import sys
import json
import asyncio
import tempfile
import unittest
from datetime import date
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from database_manager import TranscriptStore
from analysis.models import AnalysisResult, SyncState
from sync.pipeline import SyncPipeline, PipelineConfig, is_retryable
from sync.sources import RecordSource
from exceptions import (
    DatabaseError, InvalidInputError, ParseError, UpstreamError, LLMTimeoutError, SourceError, PipelineFault
)

TODAY = date(2025, 12, 10)


def make_records(count, day="2025-12-05"):
    records = []
    for i in range(count):
        key = f"K{i:03d}"
        records.append({
            "VendorCallKey": key,
            "CallStartDateTime": f"{day}T{10 + i // 60:02d}:{i % 60:02d}:00Z",
            "CallDurationInSeconds": "240",
            "Name": "Pat Agent",
            "Conversation": json.dumps({"conversationEntries": [
                {"sender": {"role": "Agent"}, "messageText": f"Thank you for calling, reference {key}"},
                {"sender": {"role": "EndUser"}, "messageText": "My escrow went up this year"},
                {"sender": {"role": "Agent"}, "messageText": "You're all set"},
            ]}),
        })
    return records


class FakeSource(RecordSource):
    def __init__(self, records=None, error=None):
        self.records = records or []
        self.error = error
        self.windows = []

    def fetch_records(self, start_date, end_date):
        self.windows.append((start_date, end_date))
        if self.error:
            raise self.error
        return list(self.records)


class DateFilteringSource(RecordSource):
    """Returns only the records whose call day falls inside the requested window"""

    def __init__(self, records):
        self.records = records
        self.windows = []

    def fetch_records(self, start_date, end_date):
        self.windows.append((start_date, end_date))
        return [r for r in self.records if start_date <= r["CallStartDateTime"][:10] <= end_date]


def make_multi_day_records(days, per_day):
    records = []
    for day in days:
        for record in make_records(per_day, day=day):
            record["VendorCallKey"] = f"{day}-{record['VendorCallKey']}"
            conversation = json.loads(record["Conversation"])
            conversation["conversationEntries"][0]["messageText"] = \
                f"Thank you for calling, reference {record['VendorCallKey']}"
            record["Conversation"] = json.dumps(conversation)
            records.append(record)
    return records


class FakeAnalysisClient:
    """Returns a fixed analysis; failures maps a call key to (error, times), times None for always"""

    def __init__(self, failures=None):
        self.failures = dict(failures or {})
        self.calls = []

    async def analyze(self, messages):
        key = messages[0].text.rsplit(" ", 1)[-1]
        self.calls.append(key)
        if key in self.failures:
            error, times = self.failures[key]
            if times is None or self.calls.count(key) <= times:
                raise error
        return AnalysisResult(
            agent_sentiment="positive", agent_sentiment_score=0.8, agent_sentiment_reason="helpful",
            customer_sentiment="neutral", customer_sentiment_score=0.5, customer_sentiment_reason="calm",
            ai_discovered_topic="Escrow", ai_discovered_subcategory="Payment Change",
            topic_confidence=0.9, key_issues=["escrow increase"], resolution="explained",
            tags=["escrow"], model="test-model", prompt_tokens=100, completion_tokens=20, cost=0.001,
        )


class PipelineTestCase(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.store = TranscriptStore(os.path.join(self.temp_dir.name, "test.db"), job_name="job")
        self.sleeps = []
        self.progress = []

    def tearDown(self):
        self.temp_dir.cleanup()

    async def _sleep(self, seconds):
        self.sleeps.append(seconds)

    def make_pipeline(self, source, client, **settings):
        settings.setdefault("job_name", "job")
        settings.setdefault("batch_size", 2)
        return SyncPipeline(
            store=self.store,
            source=source,
            analysis_client=client,
            config=PipelineConfig(**settings),
            on_progress=lambda done, total: self.progress.append((done, total)),
            sleep=self._sleep,
            clock=lambda: TODAY,
        )


class TestSyncWindow(PipelineTestCase):

    def test_empty_store_starts_at_baseline(self):
        pipeline = self.make_pipeline(FakeSource(), FakeAnalysisClient())
        self.assertEqual(pipeline.determine_window(), ("2025-12-01", "2025-12-10"))

    def test_older_data_never_moves_window_before_baseline(self):
        self.store.upsert("OLD", {"call_start": "2025-11-20T08:00:00"})
        pipeline = self.make_pipeline(FakeSource(), FakeAnalysisClient())
        self.assertEqual(pipeline.determine_window(), ("2025-12-01", "2025-12-10"))

    def test_window_starts_at_most_recent_day(self):
        self.store.upsert("K1", {"call_start": "2025-12-03T08:00:00"})
        self.store.upsert("K2", {"call_start": "2025-12-07T23:59:00"})
        pipeline = self.make_pipeline(FakeSource(), FakeAnalysisClient())
        self.assertEqual(pipeline.determine_window(), ("2025-12-07", "2025-12-10"))


class TestSyncRun(PipelineTestCase):

    async def test_full_run(self):
        source = FakeSource(make_records(5))
        client = FakeAnalysisClient()
        stats = await self.make_pipeline(source, client).run()

        self.assertEqual(stats.state, SyncState.DONE.value)
        self.assertEqual((stats.fetched, stats.imported, stats.analyzed, stats.errors), (5, 5, 5, 0))
        self.assertEqual(stats.total_tokens, 600)
        self.assertEqual(source.windows, [("2025-12-01", "2025-12-10")])
        self.assertEqual(self.progress, [(2, 5), (4, 5), (5, 5)])
        self.assertEqual(self.sleeps, [0.5, 0.5])

        checkpoint = self.store.load_checkpoint("job")
        self.assertEqual(checkpoint.window, "2025-12-01..2025-12-10")
        self.assertEqual(checkpoint.processed_count, 5)
        self.assertEqual(checkpoint.last_processed_id, "K004")

        analysis = self.store.get_analysis("K002")
        self.assertEqual(analysis["analysis_status"], "completed")
        self.assertEqual(analysis["ai_discovered_topic"], "Escrow")
        self.assertEqual(analysis["category"], "Escrow")
        self.assertEqual(analysis["resolution_status"], "Resolved")

        runs = self.store.get_recent_runs(5, "job")
        self.assertEqual(runs[0]["state"], SyncState.DONE.value)
        self.assertEqual(runs[0]["analyzed"], 5)

    async def test_resync_is_idempotent(self):
        records = make_records(5)
        first = FakeAnalysisClient()
        await self.make_pipeline(FakeSource(records), first).run()

        second = FakeAnalysisClient()
        stats = await self.make_pipeline(FakeSource(records), second).run()

        self.assertEqual(second.calls, [])
        self.assertEqual(stats.analyzed, 0)
        self.assertEqual(stats.skipped, 5)
        self.assertEqual(self.store.get_analysis_statistics()["transcripts"], 5)
        self.assertEqual(self.store.get_analysis_statistics()["completed"], 5)

    async def test_resume_after_cancelled_run(self):
        # Calls before the baseline keep the window identical across both runs
        records = make_records(200, day="2025-11-30")
        pipeline = None

        def cancel_after_third_batch(done, total):
            self.progress.append((done, total))
            if done == 60:
                pipeline.cancel()

        pipeline = self.make_pipeline(FakeSource(records), FakeAnalysisClient(), batch_size=20)
        pipeline.on_progress = cancel_after_third_batch
        stats = await pipeline.run()

        self.assertTrue(stats.cancelled)
        self.assertEqual(stats.state, SyncState.DONE.value)
        self.assertEqual(stats.analyzed, 60)
        self.assertEqual(self.store.load_checkpoint("job").processed_count, 60)

        client = FakeAnalysisClient()
        stats = await self.make_pipeline(FakeSource(records), client, batch_size=20).run()

        self.assertEqual(client.calls[0], "K060")
        self.assertEqual(len(client.calls), 140)
        self.assertEqual(stats.analyzed, 140)
        self.assertEqual(stats.skipped, 60)
        self.assertFalse(stats.cancelled)
        self.assertEqual(self.store.load_checkpoint("job").processed_count, 200)

    async def test_interrupted_run_over_several_days_is_finished_by_next_run(self):
        records = make_multi_day_records(["2025-12-02", "2025-12-04", "2025-12-06"], 10)
        pipeline = None

        def cancel_after_first_batch(done, total):
            pipeline.cancel()

        pipeline = self.make_pipeline(DateFilteringSource(records), FakeAnalysisClient(), batch_size=10)
        pipeline.on_progress = cancel_after_first_batch
        stats = await pipeline.run()

        self.assertTrue(stats.cancelled)
        self.assertEqual(stats.analyzed, 10)
        self.assertEqual(len(self.store.find_pending()), 20)

        source = DateFilteringSource(records)
        client = FakeAnalysisClient()
        stats = await self.make_pipeline(source, client, batch_size=10).run()

        # Only the latest day is fetched again, the earlier days come from storage
        self.assertEqual(source.windows, [("2025-12-06", "2025-12-10")])
        self.assertEqual(stats.fetched, 10)
        self.assertEqual(stats.analyzed, 20)
        self.assertEqual(client.calls[0], "2025-12-04-K000")
        self.assertEqual(self.store.find_pending(), [])
        self.assertEqual(self.store.get_analysis_statistics()["completed"], 30)

    async def test_stored_pending_analyzed_when_nothing_fetched(self):
        first = FakeAnalysisClient({"K001": (InvalidInputError("empty conversation"), None)})
        await self.make_pipeline(FakeSource(make_records(2)), first).run()

        client = FakeAnalysisClient()
        stats = await self.make_pipeline(FakeSource([]), client).run()

        self.assertEqual(stats.fetched, 0)
        self.assertEqual(client.calls, ["K001"])
        self.assertEqual(stats.analyzed, 1)
        self.assertEqual(self.store.get_analysis("K001")["analysis_status"], "completed")

    async def test_failed_record_retried_by_next_run(self):
        records = make_records(5)
        first = FakeAnalysisClient({"K003": (ParseError("not json"), None)})
        stats = await self.make_pipeline(FakeSource(records), first).run()

        self.assertEqual(stats.errors, 1)
        self.assertEqual(self.store.get_analysis("K003")["analysis_status"], "failed")

        second = FakeAnalysisClient()
        stats = await self.make_pipeline(FakeSource(records), second).run()

        self.assertEqual(second.calls, ["K003"])
        self.assertEqual(stats.analyzed, 1)
        self.assertEqual(stats.skipped, 4)
        self.assertEqual(self.store.get_analysis("K003")["analysis_status"], "completed")

    async def test_all_issues_lists_every_detected_category(self):
        records = make_records(1)
        conversation = json.loads(records[0]["Conversation"])
        conversation["conversationEntries"][1]["messageText"] = \
            "My escrow analysis shows an escrow shortage and I want to speak to a supervisor"
        records[0]["Conversation"] = json.dumps(conversation)

        await self.make_pipeline(FakeSource(records), FakeAnalysisClient()).run()

        analysis = self.store.get_analysis("K000")
        self.assertIn("Escrow", analysis["all_issues"])
        self.assertIn("Escalation", analysis["all_issues"])
        self.assertIn(analysis["category"], analysis["all_issues"])

    async def test_records_without_key_are_skipped(self):
        records = make_records(2) + [{"CallStartDateTime": "2025-12-05T12:00:00Z"}]
        stats = await self.make_pipeline(FakeSource(records), FakeAnalysisClient()).run()
        self.assertEqual((stats.fetched, stats.imported, stats.skipped, stats.analyzed), (3, 2, 1, 2))

    async def test_no_records(self):
        stats = await self.make_pipeline(FakeSource([]), FakeAnalysisClient()).run()
        self.assertEqual(stats.state, SyncState.DONE.value)
        self.assertEqual(stats.fetched, 0)
        self.assertIsNone(self.store.load_checkpoint("job"))

    async def test_dry_run(self):
        client = FakeAnalysisClient()
        stats = await self.make_pipeline(FakeSource(make_records(3)), client, dry_run=True).run()

        self.assertEqual(stats.state, SyncState.DONE.value)
        self.assertEqual(stats.imported, 3)
        self.assertEqual(stats.analyzed, 0)
        self.assertEqual(client.calls, [])
        self.assertIsNone(self.store.load_checkpoint("job"))


class TestRetries(PipelineTestCase):

    def test_is_retryable(self):
        self.assertTrue(is_retryable(ParseError("bad json")))
        self.assertTrue(is_retryable(UpstreamError("rate limited", status_code=429)))
        self.assertTrue(is_retryable(UpstreamError("server", status_code=503)))
        self.assertTrue(is_retryable(LLMTimeoutError("timeout")))
        self.assertFalse(is_retryable(UpstreamError("bad key", status_code=401)))
        self.assertFalse(is_retryable(InvalidInputError("empty")))

    async def test_parse_error_retried_then_succeeds(self):
        client = FakeAnalysisClient({"K001": (ParseError("not json"), 1)})
        stats = await self.make_pipeline(FakeSource(make_records(3)), client).run()

        self.assertEqual(client.calls.count("K001"), 2)
        self.assertEqual(stats.analyzed, 3)
        self.assertEqual(stats.errors, 0)
        self.assertIn(2.0, self.sleeps)
        self.assertEqual(self.store.get_analysis("K001")["attempts"], 2)

    async def test_retries_exhausted(self):
        client = FakeAnalysisClient({"K001": (ParseError("not json"), None)})
        stats = await self.make_pipeline(FakeSource(make_records(3)), client, batch_size=10).run()

        self.assertEqual(client.calls.count("K001"), 3)
        self.assertEqual(self.sleeps, [2.0, 4.0])
        self.assertEqual(stats.state, SyncState.DONE.value)
        self.assertEqual(stats.analyzed, 2)
        self.assertEqual(stats.errors, 1)
        self.assertEqual(stats.error_details[0]["id"], "K001")

        failed = self.store.get_analysis("K001")
        self.assertEqual(failed["analysis_status"], "failed")
        self.assertEqual(failed["attempts"], 3)
        # Failed records are selected again by the next run
        self.assertEqual([t["vendor_call_key"] for t in self.store.find_unanalyzed(["K000", "K001"])],
                         ["K001"])

    async def test_auth_error_not_retried(self):
        client = FakeAnalysisClient({"K001": (UpstreamError("invalid key", status_code=401), None)})
        stats = await self.make_pipeline(FakeSource(make_records(3)), client, batch_size=10).run()

        self.assertEqual(client.calls.count("K001"), 1)
        self.assertEqual(self.sleeps, [])
        self.assertEqual(stats.errors, 1)
        self.assertEqual(stats.analyzed, 2)

    async def test_invalid_input_not_retried(self):
        client = FakeAnalysisClient({"K000": (InvalidInputError("empty conversation"), None)})
        stats = await self.make_pipeline(FakeSource(make_records(1)), client).run()

        self.assertEqual(client.calls, ["K000"])
        self.assertEqual(stats.errors, 1)
        self.assertEqual(stats.state, SyncState.DONE.value)


class TestFaults(PipelineTestCase):

    async def test_source_failure(self):
        pipeline = self.make_pipeline(FakeSource(error=SourceError("401 from Domo")), FakeAnalysisClient())
        with self.assertRaises(PipelineFault) as ctx:
            await pipeline.run()

        self.assertEqual(ctx.exception.phase, SyncState.FETCH.value)
        self.assertEqual(ctx.exception.stats.state, SyncState.FAILED.value)
        self.assertEqual(pipeline.state, SyncState.FAILED)
        self.assertEqual(self.store.get_recent_runs(1, "job")[0]["state"], SyncState.FAILED.value)

    async def test_storage_failure_determining_window(self):
        pipeline = self.make_pipeline(FakeSource(make_records(1)), FakeAnalysisClient())
        with patch.object(self.store, "find_most_recent", side_effect=DatabaseError("database is locked")):
            with self.assertRaises(PipelineFault) as ctx:
                await pipeline.run()
        self.assertEqual(ctx.exception.phase, SyncState.DETERMINE_WINDOW.value)

    async def test_checkpoint_failure(self):
        pipeline = self.make_pipeline(FakeSource(make_records(3)), FakeAnalysisClient())
        with patch.object(self.store, "save_checkpoint", side_effect=DatabaseError("disk full")):
            with self.assertRaises(PipelineFault) as ctx:
                await pipeline.run()

        self.assertEqual(ctx.exception.phase, SyncState.CHECKPOINT.value)
        # The first batch was stored before the fault
        self.assertEqual(ctx.exception.stats.analyzed, 2)

    async def test_storage_failure_selecting_unanalyzed(self):
        pipeline = self.make_pipeline(FakeSource(make_records(2)), FakeAnalysisClient())
        with patch.object(self.store, "find_unanalyzed", side_effect=DatabaseError("no such table")):
            with self.assertRaises(PipelineFault) as ctx:
                await pipeline.run()
        self.assertEqual(ctx.exception.phase, SyncState.SELECT_UNANALYZED.value)


class TestCancelBeforeRun(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.store = TranscriptStore(os.path.join(self.temp_dir.name, "test.db"), job_name="job")

    def tearDown(self):
        self.temp_dir.cleanup()

    def test_cancel_outside_event_loop(self):
        client = FakeAnalysisClient()
        pipeline = SyncPipeline(
            store=self.store,
            source=FakeSource(make_records(3)),
            analysis_client=client,
            config=PipelineConfig(job_name="job", batch_size=2),
            clock=lambda: TODAY,
        )
        pipeline.cancel()

        stats = asyncio.run(pipeline.run())

        self.assertTrue(stats.cancelled)
        self.assertEqual(stats.state, SyncState.DONE.value)
        self.assertEqual(stats.imported, 3)
        self.assertEqual(stats.analyzed, 0)
        self.assertEqual(client.calls, [])
        self.assertEqual(len(self.store.find_pending()), 3)


if __name__ == "__main__":
    unittest.main()
