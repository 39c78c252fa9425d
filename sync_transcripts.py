#!/usr/bin/env python3
"""
Servicing Insights command-line entry point.

Subcommands:
    sync          Delta sync from Domo (or a CSV export) and analyze new transcripts
    analyze-text  Heuristic analysis and categorization of a transcript file
    export        Export analyzed transcripts to CSV or JSON
    status        Checkpoint, analysis counts and recent runs
"""

import sys
import json
import signal
import asyncio
import logging
import argparse
from typing import Callable, Optional

from config import AppConfig, configure_logging
from config_manager import initialize_config
from database_manager import TranscriptStore
from db_export import export_analysis, summarize_analysis, EXPORT_FORMATS
from analysis.models import ConfidenceWeights
from analysis.normalizer import normalize
from analysis.category_definitions import load_category_definitions
from analysis.categorization import Categorizer
from analysis.transcript_analysis import TranscriptAnalyzer
from analysis.llm_analysis import LLMAnalysisClient
from api.clients.openrouter_client import OpenRouterClient
from api.clients.domo_client import DomoClient
from sync.pipeline import SyncPipeline, PipelineConfig
from sync.sources import DomoRecordSource, CsvRecordSource
from sync.checkpoint import FileCheckpointStore
from exceptions import PipelineFault, SourceError
from utils.error.error_handler import graceful_exit

logger = logging.getLogger(__name__)


# ------------------------------
# Signal Handling
# ------------------------------
class GracefulExit:
    def __init__(self, on_exit: Optional[Callable[[], None]] = None):
        self.exit_requested = False
        self.on_exit = on_exit
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, sig, frame):
        """Handle interrupt signal"""
        logger.info("Interrupt received, finishing current batch before exiting...")
        self.exit_requested = True
        if self.on_exit:
            self.on_exit()


# ------------------------------
# Command Line
# ------------------------------
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Servicing Insights transcript sync and analysis',
        formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    parser.add_argument('--db-path', help='Path to the database file')
    parser.add_argument('--config', help='Path to a JSON configuration file')
    parser.add_argument('--verbose', action='store_true', help='Log at DEBUG level')

    subparsers = parser.add_subparsers(dest='command', help='Command')

    sync_parser = subparsers.add_parser('sync', help='Sync new transcripts and analyze them')
    source_group = sync_parser.add_argument_group('Source Configuration')
    source_group.add_argument('--csv', help='Read records from a CSV export instead of Domo')
    source_group.add_argument('--dataset-id', help='Domo dataset id (default DOMO_DATASET_ID)')

    api_group = sync_parser.add_argument_group('API Configuration')
    api_group.add_argument('--model', help='Completion model')
    api_group.add_argument('--max-retries', type=int, help='Attempts per transcript')

    process_group = sync_parser.add_argument_group('Processing Options')
    process_group.add_argument('--job-name', help='Checkpoint key of the job')
    process_group.add_argument('--batch-size', type=int, help='Transcripts per batch')
    process_group.add_argument('--max-concurrent', type=int, help='Maximum concurrent completion calls')
    process_group.add_argument('--checkpoint-file', help='Keep the checkpoint in a JSON file')
    process_group.add_argument('--categories', help='Category definitions CSV')
    process_group.add_argument('--dry-run', action='store_true',
                               help='Import and report what would be analyzed, without analyzing')

    text_parser = subparsers.add_parser('analyze-text', help='Analyze a transcript text file')
    text_parser.add_argument('file', help='Transcript text file')
    text_parser.add_argument('--duration', type=float, help='Call duration in seconds')
    text_parser.add_argument('--categories', help='Category definitions CSV')

    export_parser = subparsers.add_parser('export', help='Export analyzed transcripts')
    export_parser.add_argument('--format', choices=EXPORT_FORMATS, default='csv', help='Output format')
    export_parser.add_argument('--output', help='Output file path (optional)')
    export_parser.add_argument('--start-date', help='First call day (YYYY-MM-DD)')
    export_parser.add_argument('--end-date', help='Last call day (YYYY-MM-DD)')
    export_parser.add_argument('--summary', action='store_true', help='Print a summary instead of exporting')

    status_parser = subparsers.add_parser('status', help='Show checkpoint and recent runs')
    status_parser.add_argument('--job-name', help='Checkpoint key of the job')
    status_parser.add_argument('--limit', type=int, default=5, help='Number of runs to show')

    return parser


def build_categorizer(category_file: Optional[str]) -> Categorizer:
    weights = ConfidenceWeights(
        base=AppConfig.CONFIDENCE_BASE,
        max_specificity_bonus=AppConfig.CONFIDENCE_MAX_SPECIFICITY,
        max_match_bonus=AppConfig.CONFIDENCE_MAX_MATCH,
        weight_share=AppConfig.CONFIDENCE_WEIGHT_SHARE,
        default_confidence=AppConfig.CONFIDENCE_DEFAULT,
    )
    return Categorizer(load_category_definitions(category_file or None), weights)


def print_stats(stats) -> None:
    print("\n" + "=" * 70)
    print(" SYNC SUMMARY ".center(70, "="))
    print(f"Window:     {stats.sync_start_date} to {stats.sync_end_date}")
    print(f"State:      {stats.state}{' (cancelled)' if stats.cancelled else ''}")
    print(f"Fetched:    {stats.fetched}")
    print(f"Imported:   {stats.imported}")
    print(f"Analyzed:   {stats.analyzed}")
    print(f"Skipped:    {stats.skipped}")
    print(f"Errors:     {stats.errors}")
    print(f"Tokens:     {stats.total_tokens}")
    print(f"Est. cost:  ${stats.estimated_cost:.4f}")
    print(f"Duration:   {stats.duration_seconds:.1f}s")
    for detail in stats.error_details[:10]:
        print(f"  - {detail['id']}: {detail['error']}")
    print("=" * 70)


# ------------------------------
# Commands
# ------------------------------
def run_sync(args, settings) -> int:
    job_name = args.job_name or settings.get('job_name')
    store = TranscriptStore(settings.get('db_path'), job_name=job_name)

    if args.csv:
        source = CsvRecordSource(args.csv)
    else:
        source = DomoRecordSource(
            DomoClient(settings.get('domo_client_id'), settings.get('domo_client_secret')),
            args.dataset_id or settings.get('domo_dataset_id'),
        )

    completion_client = OpenRouterClient(
        api_key=settings.get('openrouter_api_key'),
        model=args.model or settings.get('llm_model'),
        base_url=settings.get('openrouter_base_url'),
        timeout=settings.get('llm_timeout'),
    )
    analysis_client = LLMAnalysisClient(completion_client, settings.get('last_n_chars'))

    pipeline_settings = settings.get_sync_settings()
    pipeline_settings['job_name'] = job_name
    for name in ('batch_size', 'max_concurrent', 'max_retries'):
        if getattr(args, name) is not None:
            pipeline_settings[name] = getattr(args, name)
    pipeline_settings['dry_run'] = args.dry_run

    pipeline = SyncPipeline(
        store=store,
        source=source,
        analysis_client=analysis_client,
        config=PipelineConfig(**pipeline_settings),
        checkpoint_store=FileCheckpointStore(args.checkpoint_file) if args.checkpoint_file else None,
        categorizer=build_categorizer(args.categories or settings.get('category_file')),
        on_progress=lambda done, total: print(f"Progress: {done}/{total}"),
    )
    GracefulExit(on_exit=pipeline.cancel)

    try:
        stats = asyncio.run(pipeline.run())
    except PipelineFault as e:
        logger.error(f"Sync failed: {str(e)}")
        if e.stats is not None:
            print_stats(e.stats)
        return 1

    print_stats(stats)
    return 0


def run_analyze_text(args) -> int:
    with open(args.file, 'r', encoding='utf-8') as f:
        text = normalize(f.read())

    heuristic = TranscriptAnalyzer().analyze(text, args.duration)
    categorization = build_categorizer(args.categories).categorize(text)

    print(json.dumps({
        'analysis': heuristic.to_dict(),
        'categorization': categorization.to_dict(),
    }, indent=2))
    return 0


def run_export(args, settings) -> int:
    store = TranscriptStore(settings.get('db_path'))

    if args.summary:
        print(json.dumps(summarize_analysis(store, args.start_date, args.end_date), indent=2))
        return 0

    output_file = export_analysis(store, args.output, args.format, args.start_date, args.end_date)
    if not output_file:
        print("Nothing exported")
        return 1
    print(f"Exported to {output_file}")
    return 0


def run_status(args, settings) -> int:
    job_name = args.job_name or settings.get('job_name')
    store = TranscriptStore(settings.get('db_path'), job_name=job_name)

    checkpoint = store.load_checkpoint(job_name)
    print(f"Job: {job_name}")
    if checkpoint:
        print(f"Checkpoint: window {checkpoint.window}, {checkpoint.processed_count} processed, "
              f"last {checkpoint.last_processed_id} at {checkpoint.updated_at}")
    else:
        print("Checkpoint: none")

    stats = store.get_analysis_statistics()
    print(f"Transcripts: {stats.get('transcripts', 0)}, analyses completed: {stats.get('completed', 0)}, "
          f"failed: {stats.get('failed', 0)}")

    totals = store.get_run_totals()
    print(f"All runs: {totals.get('total_runs', 0)}, analyzed {totals.get('total_analyzed', 0)}, "
          f"errors {totals.get('total_errors', 0)}, cost ${totals.get('total_cost', 0) or 0:.4f}")

    print("Recent runs:")
    for run in store.get_recent_runs(args.limit, job_name):
        print(f"  {run['run_date']}  {run['state']:<8} fetched {run['fetched']}, analyzed {run['analyzed']}, "
              f"errors {run['errors']}")
    return 0


@graceful_exit(error_code=1)
def main(argv=None) -> int:
    """Main entry point"""
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(logging.DEBUG if args.verbose else logging.INFO)
    settings = initialize_config(args.config, args.db_path)

    if args.command == 'sync':
        try:
            return run_sync(args, settings)
        except SourceError as e:
            logger.error(f"Source error: {str(e)}")
            return 1
    if args.command == 'analyze-text':
        return run_analyze_text(args)
    if args.command == 'export':
        return run_export(args, settings)
    if args.command == 'status':
        return run_status(args, settings)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
