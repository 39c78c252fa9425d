#!/usr/bin/env python3
"""
Data Access Object (DAO) for batch job checkpoints.
Provides database operations for the sync_checkpoints table.
"""

import sqlite3
import logging
from datetime import datetime
from typing import Optional

from dao.base_dao import BaseDAO
from analysis.models import Checkpoint
from exceptions import DatabaseError
from utils.error.error_handler import exception_mapper

logger = logging.getLogger(__name__)


class CheckpointDAO(BaseDAO):
    """DAO for the sync_checkpoints table"""

    TABLE_NAME = "sync_checkpoints"
    ID_FIELD = "job_name"

    def load(self, job_name: str) -> Optional[Checkpoint]:
        """
        Get the checkpoint of a job

        Args:
            job_name: Job identifier

        Returns:
            Checkpoint or None if the job never saved one
        """
        row = self.get_by_id(self.TABLE_NAME, self.ID_FIELD, job_name)
        return Checkpoint.from_dict(row) if row else None

    @exception_mapper({sqlite3.Error: DatabaseError})
    def save(self, checkpoint: Checkpoint) -> Checkpoint:
        """
        Save a checkpoint in one transaction.

        For the same window the stored processed_count never goes down: a
        lower count is ignored and the stored checkpoint is returned. A new
        window replaces the checkpoint.

        Args:
            checkpoint: Checkpoint to store

        Returns:
            The checkpoint now stored
        """
        checkpoint.updated_at = datetime.now().isoformat()

        with self.transaction() as conn:
            row = conn.execute(
                f"SELECT * FROM {self.TABLE_NAME} WHERE {self.ID_FIELD} = ?", (checkpoint.job_name,)
            ).fetchone()

            if row is not None:
                stored = Checkpoint.from_dict(dict(row))
                if stored.window == checkpoint.window and stored.processed_count > checkpoint.processed_count:
                    logger.warning(
                        f"Ignoring checkpoint for {checkpoint.job_name}: processed_count "
                        f"{checkpoint.processed_count} is below stored {stored.processed_count}"
                    )
                    return stored

            conn.execute(f"""
                INSERT INTO {self.TABLE_NAME} (job_name, sync_window, processed_count, last_processed_id, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(job_name) DO UPDATE SET
                    sync_window = excluded.sync_window,
                    processed_count = excluded.processed_count,
                    last_processed_id = excluded.last_processed_id,
                    updated_at = excluded.updated_at
            """, (checkpoint.job_name, checkpoint.window, checkpoint.processed_count,
                  checkpoint.last_processed_id, checkpoint.updated_at))

        logger.debug(f"Saved checkpoint {checkpoint.job_name}: {checkpoint.processed_count} processed")
        return checkpoint

    def clear(self, job_name: str) -> bool:
        return self.execute_update(f"DELETE FROM {self.TABLE_NAME} WHERE {self.ID_FIELD} = ?", (job_name,)) > 0
