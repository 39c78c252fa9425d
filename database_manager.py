#!/usr/bin/env python3
"""
Database Manager for the Servicing Insights system
Storage collaborator of the sync pipeline, built on the DAO classes.
"""

import logging
from typing import Dict, List, Any, Optional, Sequence

from dao import TranscriptDAO, AnalysisDAO, CheckpointDAO, SyncRunDAO
from analysis.models import Checkpoint, SyncStats
from exceptions import DatabaseError
from setup_database import DatabaseSetup

# Configure logging
logger = logging.getLogger(__name__)


class TranscriptStore:
    """
    Transcript/analysis store used by the sync pipeline.

    Every upsert is a single keyed statement, so concurrent workers never
    need a lock spanning several records.
    """

    def __init__(self, db_path: str, job_name: str = "daily_sync"):
        """
        Initialize the store, creating the schema if needed

        Args:
            db_path: Path to the SQLite database
            job_name: Checkpoint key used when none is passed explicitly

        Raises:
            DatabaseError: If the schema cannot be created
        """
        self.db_path = db_path
        self.job_name = job_name

        if not DatabaseSetup(db_path).setup():
            raise DatabaseError(f"Could not initialize database at {db_path}")

        self.transcript_dao = TranscriptDAO(db_path)
        self.analysis_dao = AnalysisDAO(db_path)
        self.checkpoint_dao = CheckpointDAO(db_path)
        self.sync_run_dao = SyncRunDAO(db_path)

    # Transcript operations
    def find_most_recent(self, date_field: str = "call_start") -> Optional[Dict[str, Any]]:
        """Get the transcript with the latest date in date_field"""
        return self.transcript_dao.find_most_recent(date_field)

    def upsert(self, unique_key: str, fields: Dict[str, Any]) -> bool:
        """Insert or update a transcript keyed by its vendor call key"""
        data = dict(fields)
        data[TranscriptDAO.ID_FIELD] = unique_key
        return self.transcript_dao.upsert(data)

    def get_transcript(self, key: str) -> Optional[Dict[str, Any]]:
        return self.transcript_dao.get_by_key(key)

    # Analysis operations
    def find_unanalyzed(self, id_list: Sequence[str]) -> List[Dict[str, Any]]:
        """
        Transcripts among id_list without a completed analysis

        Args:
            id_list: vendor_call_key values

        Returns:
            Transcript dictionaries, in id_list order
        """
        transcripts = self.transcript_dao.get_by_keys(id_list)
        completed = self.analysis_dao.get_completed_keys([t[TranscriptDAO.ID_FIELD] for t in transcripts])
        return [t for t in transcripts if t[TranscriptDAO.ID_FIELD] not in completed]

    def find_pending(self, since_date: str = None) -> List[Dict[str, Any]]:
        """
        Every stored transcript still waiting for a completed analysis,
        including those imported by earlier runs

        Returns:
            Dictionaries with vendor_call_key and call_start, oldest call first
        """
        return self.analysis_dao.get_pending(since_date)

    def save_analysis(self, key: str, record: Dict[str, Any]) -> bool:
        """Store a completed, merged analysis record"""
        return self.analysis_dao.save_analysis(key, record)

    def save_failure(self, key: str, error: str, attempts: int = 0,
                     agent_name: Optional[str] = None) -> bool:
        """Mark a transcript's analysis as failed so the next run selects it again"""
        return self.analysis_dao.save_failure(key, error, attempts, agent_name)

    def get_analysis(self, key: str) -> Optional[Dict[str, Any]]:
        return self.analysis_dao.get_by_key(key)

    def get_analysis_rows(self, start_date: str = None, end_date: str = None,
                          completed_only: bool = True) -> List[Dict[str, Any]]:
        return self.analysis_dao.get_joined(start_date, end_date, completed_only)

    def get_analysis_statistics(self) -> Dict[str, Any]:
        stats = self.analysis_dao.get_statistics()
        stats['transcripts'] = self.transcript_dao.count()
        return stats

    # Checkpoint operations
    def load_checkpoint(self, job_name: str = None) -> Optional[Checkpoint]:
        return self.checkpoint_dao.load(job_name or self.job_name)

    def save_checkpoint(self, checkpoint: Checkpoint) -> Checkpoint:
        return self.checkpoint_dao.save(checkpoint)

    def clear_checkpoint(self, job_name: str = None) -> bool:
        return self.checkpoint_dao.clear(job_name or self.job_name)

    # Run history
    def record_run(self, job_name: str, stats: SyncStats) -> Optional[int]:
        return self.sync_run_dao.save_run(job_name, stats)

    def get_recent_runs(self, limit: int = 5, job_name: str = None) -> List[Dict[str, Any]]:
        return self.sync_run_dao.get_recent_runs(limit, job_name)

    def get_run_totals(self) -> Dict[str, Any]:
        return self.sync_run_dao.get_summary_stats()
