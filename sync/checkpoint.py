#!/usr/bin/env python3
"""
JSON file checkpoint store, for runs that keep checkpoints outside the database.
"""

import os
import logging
from datetime import datetime
from typing import Optional

from analysis.models import Checkpoint
from utils.file.file_handler import FileHandler

logger = logging.getLogger(__name__)


class FileCheckpointStore:
    """
    Checkpoints of every job in one JSON file, replaced atomically on save.

    Same rule as the database store: within a window processed_count never
    goes down.
    """

    def __init__(self, file_path: str):
        self.file_path = file_path

    def _read_all(self):
        """
        Raises:
            OSError: If the file exists but does not hold a JSON object (it is left untouched)
        """
        if not os.path.exists(self.file_path):
            return {}
        data = FileHandler.load_json(self.file_path)
        if not isinstance(data, dict):
            raise OSError(f"Unreadable checkpoint file {self.file_path}")
        return data

    def load_checkpoint(self, job_name: str) -> Optional[Checkpoint]:
        data = self._read_all().get(job_name)
        return Checkpoint.from_dict(data) if isinstance(data, dict) else None

    def save_checkpoint(self, checkpoint: Checkpoint) -> Checkpoint:
        """
        Save a checkpoint

        Returns:
            The checkpoint now stored

        Raises:
            OSError: If the file could not be written
        """
        data = self._read_all()
        stored = data.get(checkpoint.job_name)
        if isinstance(stored, dict):
            previous = Checkpoint.from_dict(stored)
            if previous.window == checkpoint.window and previous.processed_count > checkpoint.processed_count:
                logger.warning(
                    f"Ignoring checkpoint for {checkpoint.job_name}: processed_count "
                    f"{checkpoint.processed_count} is below stored {previous.processed_count}"
                )
                return previous

        checkpoint.updated_at = datetime.now().isoformat()
        data[checkpoint.job_name] = checkpoint.to_dict()
        if not FileHandler.save_json(data, self.file_path):
            raise OSError(f"Could not write checkpoint file {self.file_path}")
        return checkpoint

    def clear_checkpoint(self, job_name: str) -> bool:
        data = self._read_all()
        if data.pop(job_name, None) is None:
            return False
        if not FileHandler.save_json(data, self.file_path):
            raise OSError(f"Could not write checkpoint file {self.file_path}")
        return True
