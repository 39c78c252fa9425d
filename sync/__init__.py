#!/usr/bin/env python3
"""
Batch/delta sync of call transcripts from an external source into storage,
followed by analysis of the records not analyzed yet.
"""

from sync.pipeline import SyncPipeline, PipelineConfig, BASELINE_DATE
from sync.sources import RecordSource, DomoRecordSource, CsvRecordSource
from sync.checkpoint import FileCheckpointStore
