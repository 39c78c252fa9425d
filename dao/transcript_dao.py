#!/usr/bin/env python3
"""
Data Access Object (DAO) for imported call transcripts.
Provides database operations for the transcripts table.
"""

import json
import sqlite3
import logging
from datetime import datetime
from typing import List, Dict, Any, Optional, Sequence

from dao.base_dao import BaseDAO
from analysis.models import ConversationMessage
from exceptions import DatabaseError, ValidationError
from utils.error.error_handler import exception_mapper

logger = logging.getLogger(__name__)

# SQLite host parameter limit is 999 on older builds
ID_CHUNK_SIZE = 500


def _chunks(values: Sequence[str], size: int = ID_CHUNK_SIZE):
    for start in range(0, len(values), size):
        yield values[start:start + size]


class TranscriptDAO(BaseDAO):
    """DAO for the transcripts table"""

    TABLE_NAME = "transcripts"
    ID_FIELD = "vendor_call_key"

    @staticmethod
    def _serialize_messages(messages) -> Optional[str]:
        if messages is None:
            return None
        return json.dumps([
            m.to_dict() if isinstance(m, ConversationMessage) else dict(m)
            for m in messages
        ])

    @staticmethod
    def _deserialize(row: Dict[str, Any]) -> Dict[str, Any]:
        raw = row.get('messages')
        messages = []
        if raw:
            try:
                messages = [ConversationMessage.from_dict(m) for m in json.loads(raw)]
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Unreadable messages for {row.get('vendor_call_key')}: {str(e)}")
        row['messages'] = messages
        return row

    def find_most_recent(self, date_field: str = "call_start") -> Optional[Dict[str, Any]]:
        """
        Get the transcript with the latest value of a date column

        Args:
            date_field: Date column to order by

        Returns:
            Transcript dictionary or None if the table has no dated rows

        Raises:
            ValidationError: If date_field is not a column of the table
        """
        if date_field not in self.get_table_columns(self.TABLE_NAME):
            raise ValidationError(f"Unknown date field: {date_field}")

        rows = self.execute_query(
            f"SELECT * FROM {self.TABLE_NAME} WHERE {date_field} IS NOT NULL "
            f"ORDER BY {date_field} DESC LIMIT 1"
        )
        return self._deserialize(rows[0]) if rows else None

    def upsert(self, transcript: Dict[str, Any]) -> bool:
        """
        Insert a transcript or update it in place, keyed by vendor_call_key

        Args:
            transcript: Transcript fields (messages as ConversationMessage list)

        Returns:
            Success flag

        Raises:
            ValidationError: If the transcript has no vendor_call_key
            DatabaseError: If a database error occurs
        """
        if not transcript.get(self.ID_FIELD):
            raise ValidationError("Transcript has no vendor_call_key")

        data = dict(transcript)
        if 'messages' in data:
            data['messages'] = self._serialize_messages(data['messages'])
        data['updated_at'] = datetime.now().isoformat()

        return self.insert_or_update(self.TABLE_NAME, data, self.ID_FIELD)

    def get_by_key(self, vendor_call_key: str) -> Optional[Dict[str, Any]]:
        row = self.get_by_id(self.TABLE_NAME, self.ID_FIELD, vendor_call_key)
        return self._deserialize(row) if row else None

    @exception_mapper({sqlite3.Error: DatabaseError})
    def get_by_keys(self, keys: Sequence[str]) -> List[Dict[str, Any]]:
        """
        Get transcripts for a list of keys, in the order the keys were given

        Args:
            keys: vendor_call_key values (unknown keys are ignored)

        Returns:
            List of transcript dictionaries
        """
        keys = list(dict.fromkeys(k for k in keys if k))
        found = {}
        for chunk in _chunks(keys):
            placeholders = ', '.join('?' for _ in chunk)
            rows = self.execute_query(
                f"SELECT * FROM {self.TABLE_NAME} WHERE {self.ID_FIELD} IN ({placeholders})",
                tuple(chunk),
            )
            for row in rows:
                found[row[self.ID_FIELD]] = self._deserialize(row)

        return [found[k] for k in keys if k in found]

    def count(self) -> int:
        rows = self.execute_query(f"SELECT COUNT(*) AS total FROM {self.TABLE_NAME}")
        return rows[0]['total'] if rows else 0
