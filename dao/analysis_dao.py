#!/usr/bin/env python3
"""
Data Access Object (DAO) for transcript analysis results.
Provides database operations for the transcript_analysis table.
"""

import json
import sqlite3
import logging
from datetime import datetime
from typing import List, Dict, Any, Optional, Sequence, Set

from dao.base_dao import BaseDAO
from dao.transcript_dao import TranscriptDAO, _chunks
from exceptions import DatabaseError, ValidationError
from utils.error.error_handler import exception_mapper

logger = logging.getLogger(__name__)

STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

# Columns holding lists or dictionaries, stored as JSON text
JSON_FIELDS = ('key_issues', 'tags', 'all_issues', 'detected_topics', 'entities', 'self_service')


class AnalysisDAO(BaseDAO):
    """DAO for the transcript_analysis table"""

    TABLE_NAME = "transcript_analysis"
    ID_FIELD = "vendor_call_key"

    @staticmethod
    def _serialize(record: Dict[str, Any]) -> Dict[str, Any]:
        data = dict(record)
        for name in JSON_FIELDS:
            if name in data and data[name] is not None and not isinstance(data[name], str):
                data[name] = json.dumps(data[name])
        return data

    @staticmethod
    def _deserialize(row: Dict[str, Any]) -> Dict[str, Any]:
        for name in JSON_FIELDS:
            value = row.get(name)
            if isinstance(value, str):
                try:
                    row[name] = json.loads(value)
                except ValueError:
                    logger.warning(f"Invalid JSON in {name} for {row.get('vendor_call_key')}")
        return row

    @exception_mapper({sqlite3.Error: DatabaseError})
    def get_completed_keys(self, keys: Sequence[str]) -> Set[str]:
        """
        Which of the given transcripts already have a completed analysis

        Args:
            keys: vendor_call_key values

        Returns:
            Set of keys with analysis_status = 'completed'
        """
        completed = set()
        keys = list(dict.fromkeys(k for k in keys if k))
        for chunk in _chunks(keys):
            placeholders = ', '.join('?' for _ in chunk)
            rows = self.execute_query(
                f"SELECT {self.ID_FIELD} FROM {self.TABLE_NAME} "
                f"WHERE analysis_status = ? AND {self.ID_FIELD} IN ({placeholders})",
                (STATUS_COMPLETED,) + tuple(chunk),
            )
            completed.update(row[self.ID_FIELD] for row in rows)
        return completed

    @exception_mapper({sqlite3.Error: DatabaseError})
    def get_pending(self, since_date: str = None) -> List[Dict[str, Any]]:
        """
        Stored transcripts without a completed analysis (never analyzed, or failed)

        Args:
            since_date: Skip calls that started before this day (YYYY-MM-DD)

        Returns:
            vendor_call_key and call_start of each, ordered by (call_start, key)
        """
        query = f"""
        SELECT t.vendor_call_key, t.call_start
        FROM {TranscriptDAO.TABLE_NAME} t
        LEFT JOIN {self.TABLE_NAME} a ON a.vendor_call_key = t.vendor_call_key
        WHERE (a.analysis_status IS NULL OR a.analysis_status != ?)
        """
        params = [STATUS_COMPLETED]
        if since_date:
            query += " AND date(t.call_start) >= date(?)"
            params.append(since_date)
        query += " ORDER BY t.call_start, t.vendor_call_key"
        return self.execute_query(query, tuple(params))

    def save_analysis(self, vendor_call_key: str, record: Dict[str, Any]) -> bool:
        """
        Save a completed analysis (insert or update)

        Args:
            vendor_call_key: Transcript key
            record: Merged analysis fields

        Returns:
            Success flag

        Raises:
            ValidationError: If no key is given
            DatabaseError: If a database error occurs
        """
        if not vendor_call_key:
            raise ValidationError("Analysis has no vendor_call_key")

        data = self._serialize(record)
        data[self.ID_FIELD] = vendor_call_key
        data['analysis_status'] = STATUS_COMPLETED
        data['error'] = None
        data['analyzed_at'] = datetime.now().isoformat()
        return self.insert_or_update(self.TABLE_NAME, data, self.ID_FIELD)

    def save_failure(self, vendor_call_key: str, error: str, attempts: int = 0,
                     agent_name: Optional[str] = None) -> bool:
        """
        Record a failed analysis. A completed analysis is never downgraded.

        Args:
            vendor_call_key: Transcript key
            error: Error message of the last attempt
            attempts: Number of attempts made
            agent_name: Agent of the call, when known

        Returns:
            True if the failure was recorded
        """
        query = f"""
        INSERT INTO {self.TABLE_NAME} ({self.ID_FIELD}, analysis_status, agent_name, error, attempts, analyzed_at)
        VALUES (?, ?, ?, ?, ?, ?)
        ON CONFLICT({self.ID_FIELD}) DO UPDATE SET
            analysis_status = excluded.analysis_status,
            error = excluded.error,
            attempts = excluded.attempts,
            analyzed_at = excluded.analyzed_at
        WHERE {self.TABLE_NAME}.analysis_status != '{STATUS_COMPLETED}'
        """
        rows = self.execute_update(query, (vendor_call_key, STATUS_FAILED, agent_name, error, attempts,
                                           datetime.now().isoformat()))
        return rows > 0

    def get_by_key(self, vendor_call_key: str) -> Optional[Dict[str, Any]]:
        row = self.get_by_id(self.TABLE_NAME, self.ID_FIELD, vendor_call_key)
        return self._deserialize(row) if row else None

    def get_joined(self, start_date: str = None, end_date: str = None,
                   completed_only: bool = True) -> List[Dict[str, Any]]:
        """
        Transcripts joined with their analyses, for exports and summaries

        Args:
            start_date: First call_start day to include (YYYY-MM-DD)
            end_date: Last call_start day to include (YYYY-MM-DD)
            completed_only: Skip failed analyses

        Returns:
            List of row dictionaries (transcript messages left out)
        """
        where = []
        params = []
        if completed_only:
            where.append("a.analysis_status = ?")
            params.append(STATUS_COMPLETED)
        if start_date:
            where.append("date(t.call_start) >= date(?)")
            params.append(start_date)
        if end_date:
            where.append("date(t.call_start) <= date(?)")
            params.append(end_date)

        query = f"""
        SELECT t.call_start, t.call_end, t.duration_seconds, t.disposition, t.department,
               t.agent_role, t.agent_email, a.*
        FROM {self.TABLE_NAME} a
        JOIN {TranscriptDAO.TABLE_NAME} t ON t.vendor_call_key = a.vendor_call_key
        """
        if where:
            query += f" WHERE {' AND '.join(where)}"
        query += " ORDER BY t.call_start"

        return [self._deserialize(row) for row in self.execute_query(query, tuple(params))]

    def get_statistics(self) -> Dict[str, Any]:
        """
        Get analysis counts by status

        Returns:
            Dictionary with total, completed and failed counts
        """
        rows = self.execute_query(
            f"SELECT analysis_status, COUNT(*) AS count FROM {self.TABLE_NAME} GROUP BY analysis_status"
        )
        by_status = {row['analysis_status']: row['count'] for row in rows}
        return {
            'total': sum(by_status.values()),
            'completed': by_status.get(STATUS_COMPLETED, 0),
            'failed': by_status.get(STATUS_FAILED, 0),
        }
