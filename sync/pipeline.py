#!/usr/bin/env python3
"""
Batch/delta sync pipeline.

One run walks the states DETERMINE_WINDOW -> FETCH -> IMPORT ->
SELECT_UNANALYZED -> ANALYZE/CHECKPOINT (per batch) -> DONE, or FAILED on a
pipeline-level fault. Per-record failures never fail the run.

Selection: the records just imported plus every stored transcript since the
baseline that still has no completed analysis, so records imported by an
interrupted run, or whose analysis failed, are picked up by the next run
whatever its window. The checkpoint counts the records attempted in a window;
a restart over the same window keeps counting from it.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Any, Optional, Callable, Awaitable, Tuple

from analysis.models import (
    Checkpoint, SyncStats, SyncState, AnalysisResult, ConversationMessage, conversation_to_text
)
from analysis.categorization import Categorizer
from analysis.transcript_analysis import TranscriptAnalyzer
from exceptions import (
    DatabaseError, InvalidInputError, ParseError, UpstreamError, PipelineFault
)
from sync.records import RECORD_KEY_FIELD, transform_domo_record, build_analysis_record
from utils.error.error_handler import async_retry

logger = logging.getLogger(__name__)

BASELINE_DATE = "2025-12-01"


@dataclass
class PipelineConfig:
    """Settings of one sync run"""
    job_name: str = "daily_sync"
    baseline_date: str = BASELINE_DATE
    date_field: str = "call_start"
    batch_size: int = 20
    max_concurrent: int = 20
    max_retries: int = 3
    retry_delay: float = 2.0
    batch_pause: float = 0.5
    dry_run: bool = False


def is_retryable(error: Exception) -> bool:
    """Whether a per-record analysis failure is worth another attempt"""
    if isinstance(error, UpstreamError):
        return bool(error.retryable)
    return isinstance(error, ParseError)


class SyncPipeline:
    """
    Delta sync of call transcripts plus LLM analysis of the new ones

    Collaborators:
        store: TranscriptStore (or any object with the same methods)
        source: RecordSource returning raw records for a date window
        analysis_client: object with ``async analyze(messages) -> AnalysisResult``
        checkpoint_store: object with load_checkpoint/save_checkpoint;
            defaults to the store
    """

    def __init__(self, store, source, analysis_client, config: PipelineConfig = None,
                 checkpoint_store=None, analyzer: TranscriptAnalyzer = None,
                 categorizer: Categorizer = None,
                 on_progress: Optional[Callable[[int, int], None]] = None,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
                 clock: Callable[[], date] = date.today):
        self.store = store
        self.source = source
        self.analysis_client = analysis_client
        self.config = config or PipelineConfig()
        self.checkpoint_store = checkpoint_store or store
        self.analyzer = analyzer or TranscriptAnalyzer()
        self.categorizer = categorizer or Categorizer()
        self.on_progress = on_progress
        self.sleep = sleep
        self.clock = clock

        self.stats = SyncStats()
        self._cancel_event = asyncio.Event()
        self._checkpoint: Optional[Checkpoint] = None

    # ------------------------------
    # Control
    # ------------------------------
    @property
    def state(self) -> SyncState:
        return SyncState(self.stats.state)

    def _enter(self, state: SyncState) -> None:
        logger.debug(f"Sync state: {self.stats.state} -> {state.value}")
        self.stats.state = state.value

    def cancel(self) -> None:
        """Stop issuing new analysis calls; the current batch finishes and is checkpointed"""
        if not self._cancel_event.is_set():
            logger.info("Cancellation requested")
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    # ------------------------------
    # Phases
    # ------------------------------
    def determine_window(self) -> Tuple[str, str]:
        """
        Start at the day of the most recent stored call, never before the baseline;
        end today

        Raises:
            DatabaseError: If storage cannot be queried
        """
        baseline = self.config.baseline_date
        start = baseline

        recent = self.store.find_most_recent(self.config.date_field)
        value = recent.get(self.config.date_field) if recent else None
        if value:
            day = str(value)[:10]
            try:
                date.fromisoformat(day)
            except ValueError:
                logger.warning(f"Unreadable {self.config.date_field} '{value}' in storage, using baseline")
            else:
                start = max(day, baseline)

        return start, self.clock().isoformat()

    def import_records(self, records: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Upsert fetched records; a record that cannot be stored is an error, not a fault

        Returns:
            Stored transcript rows (one per key, last record wins)
        """
        imported = {}
        for raw in records:
            key = raw.get(RECORD_KEY_FIELD)
            if not key:
                self.stats.skipped += 1
                continue

            key = str(key)
            transcript = transform_domo_record(raw)
            try:
                self.store.upsert(key, transcript)
            except DatabaseError as e:
                logger.error(f"Error importing {key}: {str(e)}")
                self.stats.record_error(key, f"import: {str(e)}")
                continue

            self.stats.imported += 1
            imported[key] = transcript
        return list(imported.values())

    def select_pending(self, imported: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        """
        Transcripts to analyze: the imported ones plus every stored transcript since
        the baseline still lacking a completed analysis, oldest call first

        Raises:
            DatabaseError: If storage cannot be queried
        """
        candidates = {t['vendor_call_key']: t.get('call_start') for t in imported}
        for row in self.store.find_pending(self.config.baseline_date):
            candidates.setdefault(row['vendor_call_key'], row.get('call_start'))

        ordered = sorted(candidates, key=lambda key: (candidates[key] or '', key))
        return self.store.find_unanalyzed(ordered)

    def _resume_count(self, window: str) -> int:
        checkpoint = self.checkpoint_store.load_checkpoint(self.config.job_name)
        if checkpoint is None:
            return 0
        if checkpoint.window != window:
            logger.info(f"Ignoring checkpoint of window {checkpoint.window}")
            return 0
        self._checkpoint = checkpoint
        if checkpoint.processed_count:
            logger.info(f"Resuming {self.config.job_name} after {checkpoint.processed_count} processed "
                        f"records (last {checkpoint.last_processed_id})")
        return checkpoint.processed_count

    def _save_checkpoint(self, window: str, processed_count: int, last_id: Optional[str]) -> None:
        self._enter(SyncState.CHECKPOINT)
        checkpoint = Checkpoint(
            job_name=self.config.job_name,
            window=window,
            processed_count=processed_count,
            last_processed_id=last_id,
        )
        try:
            stored = self.checkpoint_store.save_checkpoint(checkpoint)
        except (DatabaseError, OSError) as e:
            raise PipelineFault(f"Could not save checkpoint: {str(e)}", phase=SyncState.CHECKPOINT.value,
                                stats=self.stats) from e
        self._checkpoint = stored or checkpoint

    async def analyze_record(self, transcript: Dict[str, Any]) -> Tuple[Optional[AnalysisResult], int]:
        """
        Run the LLM analysis of one transcript with retries

        Returns:
            (analysis, attempts)

        Raises:
            The last error once retries are exhausted or the error is not retryable
        """
        messages: List[ConversationMessage] = transcript.get('messages') or []
        attempts = 0

        async def attempt():
            nonlocal attempts
            attempts += 1
            return await self.analysis_client.analyze(messages)

        retrying = async_retry(
            max_attempts=max(1, self.config.max_retries),
            delay=self.config.retry_delay,
            backoff=2.0,
            exceptions=(ParseError, UpstreamError),
            should_retry=is_retryable,
            sleep=self.sleep,
            logger_func=lambda message: logger.warning(f"{transcript.get('vendor_call_key')}: {message}"),
        )(attempt)

        try:
            return await retrying(), attempts
        except Exception as e:
            e.attempts = attempts
            raise

    async def process_record(self, transcript: Dict[str, Any], semaphore: asyncio.Semaphore) -> bool:
        """
        Analyze, merge and store one transcript. Failures are recorded, never raised.

        Returns:
            True if the analysis was stored
        """
        key = transcript['vendor_call_key']

        async with semaphore:
            try:
                analysis, attempts = await self.analyze_record(transcript)
            except (InvalidInputError, ParseError, UpstreamError) as e:
                attempts = getattr(e, 'attempts', 1)
                logger.error(f"Analysis of {key} failed after {attempts} attempt(s): {str(e)}")
                self._record_failure(transcript, str(e), attempts)
                return False
            except Exception as e:
                logger.exception(f"Unexpected error analyzing {key}")
                self._record_failure(transcript, f"{type(e).__name__}: {str(e)}", getattr(e, 'attempts', 1))
                return False

        try:
            text = conversation_to_text(transcript.get('messages') or [])
            heuristic = self.analyzer.analyze(text, transcript.get('duration_seconds'))
            categorization = self.categorizer.categorize(text)
            record = build_analysis_record(transcript, analysis, heuristic, categorization, attempts,
                                           all_issues=self.categorizer.detect_all_issues(text))
        except Exception as e:
            logger.exception(f"Heuristic analysis of {key} failed")
            self._record_failure(transcript, f"{type(e).__name__}: {str(e)}", attempts)
            return False

        try:
            self.store.save_analysis(key, record)
        except DatabaseError as e:
            logger.error(f"Error saving analysis for {key}: {str(e)}")
            self.stats.record_error(key, f"save: {str(e)}")
            return False

        self.stats.analyzed += 1
        self.stats.total_tokens += analysis.total_tokens
        self.stats.estimated_cost += analysis.cost
        return True

    def _record_failure(self, transcript: Dict[str, Any], message: str, attempts: int) -> None:
        key = transcript['vendor_call_key']
        self.stats.record_error(key, message)
        try:
            self.store.save_failure(key, message, attempts, transcript.get('agent_name'))
        except DatabaseError as e:
            logger.error(f"Error recording failure for {key}: {str(e)}")

    async def analyze_pending(self, window: str, pending: List[Dict[str, Any]], resume_count: int = 0) -> None:
        """Analyze pending transcripts batch by batch, checkpointing after each batch"""
        batch_size = max(1, self.config.batch_size)
        semaphore = asyncio.Semaphore(max(1, self.config.max_concurrent))
        total = len(pending)
        total_batches = (total + batch_size - 1) // batch_size
        processed = 0

        for index in range(0, total, batch_size):
            if self.cancelled:
                break

            self._enter(SyncState.ANALYZE)
            batch = pending[index:index + batch_size]
            batch_number = index // batch_size + 1
            logger.info(f"Processing batch {batch_number}/{total_batches} ({len(batch)} records)")

            await asyncio.gather(*(self.process_record(t, semaphore) for t in batch))

            processed += len(batch)
            last = batch[-1]['vendor_call_key']
            self._save_checkpoint(window, resume_count + processed, last)

            if self.on_progress:
                self.on_progress(processed, total)
            logger.info(f"Completed batch {batch_number}/{total_batches} "
                        f"({self.stats.analyzed} analyzed, {self.stats.errors} errors)")

            if index + batch_size < total and not self.cancelled and self.config.batch_pause > 0:
                await self.sleep(self.config.batch_pause)

    # ------------------------------
    # Run
    # ------------------------------
    async def run(self) -> SyncStats:
        """
        Run one sync

        Returns:
            Run statistics (state DONE even if some records failed)

        Raises:
            PipelineFault: Storage or source failure; the stats are attached
        """
        self.stats = SyncStats()
        self._checkpoint = None
        try:
            await self._run()
        except PipelineFault as e:
            self._enter(SyncState.FAILED)
            e.stats = self.stats
            logger.error(f"Sync failed in {e.phase}: {str(e)}")
            raise
        finally:
            self.stats.cancelled = self.cancelled
            self.stats.finish()
            self._record_run()

        return self.stats

    async def _run(self) -> None:
        config = self.config

        self._enter(SyncState.DETERMINE_WINDOW)
        try:
            start, end = self.determine_window()
        except DatabaseError as e:
            raise PipelineFault(f"Could not determine sync window: {str(e)}",
                                phase=SyncState.DETERMINE_WINDOW.value, stats=self.stats) from e
        self.stats.sync_start_date = start
        self.stats.sync_end_date = end
        window = f"{start}..{end}"
        logger.info(f"Sync window: {start} to {end}")

        self._enter(SyncState.FETCH)
        try:
            records = await asyncio.to_thread(self.source.fetch_records, start, end)
        except Exception as e:
            raise PipelineFault(f"Could not fetch records: {str(e)}",
                                phase=SyncState.FETCH.value, stats=self.stats) from e
        self.stats.fetched = len(records)
        logger.info(f"Fetched {len(records)} records")

        self._enter(SyncState.IMPORT)
        imported = self.import_records(records)
        logger.info(f"Imported {self.stats.imported} records ({self.stats.skipped} without a call key)")

        self._enter(SyncState.SELECT_UNANALYZED)
        try:
            pending = self.select_pending(imported)
            resume_count = self._resume_count(window)
        except (DatabaseError, OSError) as e:
            raise PipelineFault(f"Could not select unanalyzed records: {str(e)}",
                                phase=SyncState.SELECT_UNANALYZED.value, stats=self.stats) from e

        pending_keys = {t['vendor_call_key'] for t in pending}
        already_analyzed = sum(1 for t in imported if t['vendor_call_key'] not in pending_keys)
        self.stats.skipped += already_analyzed
        logger.info(f"{len(pending)} records to analyze, {already_analyzed} already analyzed")

        if not records and not pending:
            logger.info("No new records to sync")
            self._enter(SyncState.DONE)
            return

        if config.dry_run:
            logger.info(f"Dry run: would analyze {len(pending)} records")
            self._enter(SyncState.DONE)
            return

        if pending:
            await self.analyze_pending(window, pending, resume_count)

        if self.cancelled:
            # Final write at the last completed batch boundary
            processed_count = resume_count
            last_id = None
            if self._checkpoint is not None and self._checkpoint.window == window:
                processed_count = max(resume_count, self._checkpoint.processed_count)
                last_id = self._checkpoint.last_processed_id
            self._save_checkpoint(window, processed_count, last_id)
            logger.info(f"Sync cancelled after {processed_count - resume_count} of {len(pending)} records")
        else:
            last_id = pending[-1]['vendor_call_key'] if pending else None
            if last_id is None and self._checkpoint is not None and self._checkpoint.window == window:
                last_id = self._checkpoint.last_processed_id
            self._save_checkpoint(window, resume_count + len(pending), last_id)

        self._enter(SyncState.DONE)
        logger.info(f"Sync complete: {self.stats.analyzed} analyzed, {self.stats.skipped} skipped, "
                    f"{self.stats.errors} errors, {self.stats.total_tokens} tokens, "
                    f"${self.stats.estimated_cost:.4f}")

    def _record_run(self) -> None:
        try:
            self.store.record_run(self.config.job_name, self.stats)
        except DatabaseError as e:
            logger.error(f"Could not record sync run: {str(e)}")
