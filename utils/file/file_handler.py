#!/usr/bin/env python3
"""
File Handling Utilities
Atomic writes for exports and the file checkpoint store.
"""

import os
import json
import logging
from typing import Callable, Dict, Any, Optional

import pandas as pd

logger = logging.getLogger(__name__)


class FileHandler:
    """Utilities for handling files"""

    @staticmethod
    def ensure_directory(directory_path: str) -> bool:
        """
        Ensure a directory exists, creating it if necessary

        Returns:
            True if directory exists or was created, False otherwise
        """
        if not directory_path:
            return True
        try:
            os.makedirs(directory_path, exist_ok=True)
            return True
        except OSError as e:
            logger.error(f"Error creating directory {directory_path}: {str(e)}")
            return False

    @staticmethod
    def atomic_write(file_path: str, write: Callable[[str], None]) -> bool:
        """
        Write through a sibling temporary file renamed over file_path, so a
        reader sees the old content or the new content, never a partial file

        Args:
            file_path: Destination path
            write: Called with the temporary path; must create that file

        Returns:
            True if successful, False otherwise
        """
        temp_file = f"{file_path}.temp"
        try:
            FileHandler.ensure_directory(os.path.dirname(file_path))
            write(temp_file)
            os.replace(temp_file, file_path)
            return True
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Error writing {file_path}: {str(e)}")
            if os.path.exists(temp_file):
                os.remove(temp_file)
            return False

    @staticmethod
    def safe_write_csv(df: pd.DataFrame, file_path: str) -> bool:
        """Write a DataFrame to CSV atomically"""
        if not FileHandler.atomic_write(file_path, lambda path: df.to_csv(path, index=False)):
            return False
        logger.info(f"Wrote {len(df)} records to {file_path}")
        return True

    @staticmethod
    def safe_write_json_records(df: pd.DataFrame, file_path: str) -> bool:
        """Write a DataFrame to a JSON array of row objects atomically"""
        if not FileHandler.atomic_write(
                file_path, lambda path: df.to_json(path, orient="records", indent=2)):
            return False
        logger.info(f"Wrote {len(df)} records to {file_path}")
        return True

    @staticmethod
    def load_json(file_path: str) -> Optional[Dict[str, Any]]:
        """
        Load a JSON file

        Returns:
            Parsed JSON data or None if the file is missing or unreadable
        """
        if not os.path.exists(file_path):
            logger.debug(f"JSON file not found: {file_path}")
            return None
        try:
            with open(file_path, 'r', encoding='utf-8') as file:
                return json.load(file)
        except (OSError, ValueError) as e:
            logger.error(f"Error loading JSON from {file_path}: {str(e)}")
            return None

    @staticmethod
    def save_json(data: Dict[str, Any], file_path: str) -> bool:
        """Save data to a JSON file atomically, flushed to disk before the rename"""
        def write(path: str) -> None:
            with open(path, 'w', encoding='utf-8') as file:
                json.dump(data, file, indent=2, ensure_ascii=False)
                file.flush()
                os.fsync(file.fileno())

        return FileHandler.atomic_write(file_path, write)
