#!/usr/bin/env python3
"""
Data Access Object (DAO) for sync run summaries.
Provides database operations for storing and retrieving run statistics.
"""

import json
import logging
from datetime import datetime
from typing import List, Dict, Any, Optional

from dao.base_dao import BaseDAO
from analysis.models import SyncStats

logger = logging.getLogger(__name__)


class SyncRunDAO(BaseDAO):
    """DAO for the sync_runs table"""

    TABLE_NAME = "sync_runs"

    def save_run(self, job_name: str, stats: SyncStats) -> Optional[int]:
        """
        Save the summary of a run

        Args:
            job_name: Job identifier
            stats: Final run statistics

        Returns:
            Run ID of the inserted row
        """
        data = {
            'job_name': job_name,
            'run_date': datetime.now().isoformat(),
            'state': stats.state,
            'sync_start_date': stats.sync_start_date,
            'sync_end_date': stats.sync_end_date,
            'fetched': stats.fetched,
            'imported': stats.imported,
            'analyzed': stats.analyzed,
            'skipped': stats.skipped,
            'errors': stats.errors,
            'total_tokens': stats.total_tokens,
            'estimated_cost': stats.estimated_cost,
            'cancelled': 1 if stats.cancelled else 0,
            'duration_seconds': stats.duration_seconds,
            'error_details': json.dumps(stats.error_details),
        }

        fields = list(data.keys())
        query = (f"INSERT INTO {self.TABLE_NAME} ({', '.join(fields)}) "
                 f"VALUES ({', '.join('?' for _ in fields)})")

        with self.get_connection() as conn:
            cursor = conn.execute(query, [data[f] for f in fields])
            conn.commit()
            run_id = cursor.lastrowid

        logger.debug(f"Saved sync run {run_id} for {job_name}")
        return run_id

    def get_recent_runs(self, limit: int = 10, job_name: str = None) -> List[Dict[str, Any]]:
        """
        Get the most recent runs

        Args:
            limit: Maximum number of runs to return
            job_name: Restrict to one job

        Returns:
            List of run dictionaries, newest first
        """
        query = f"SELECT * FROM {self.TABLE_NAME}"
        params = ()
        if job_name:
            query += " WHERE job_name = ?"
            params = (job_name,)
        query += " ORDER BY run_id DESC LIMIT ?"

        runs = self.execute_query(query, params + (limit,))
        for run in runs:
            try:
                run['error_details'] = json.loads(run.get('error_details') or '[]')
            except ValueError:
                run['error_details'] = []
        return runs

    def get_summary_stats(self) -> Dict[str, Any]:
        """
        Get totals across all runs

        Returns:
            Dictionary of summary statistics
        """
        rows = self.execute_query(f"""
            SELECT COUNT(*) AS total_runs,
                   COALESCE(SUM(fetched), 0) AS total_fetched,
                   COALESCE(SUM(analyzed), 0) AS total_analyzed,
                   COALESCE(SUM(errors), 0) AS total_errors,
                   COALESCE(SUM(total_tokens), 0) AS total_tokens,
                   COALESCE(SUM(estimated_cost), 0) AS total_cost
            FROM {self.TABLE_NAME}
        """)
        return rows[0] if rows else {}
