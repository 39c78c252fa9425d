#!/usr/bin/env python3
"""
Record sources for the sync pipeline.

A source returns the raw call records whose call start falls inside a date
window (both ends inclusive, YYYY-MM-DD).
"""

import os
import logging
from typing import Dict, List, Any

import pandas as pd

from api.clients.domo_client import DomoClient
from exceptions import SourceError

logger = logging.getLogger(__name__)

DEFAULT_DATE_COLUMN = "CallStartDateTime"


class RecordSource:
    """Interface of a raw record source"""

    def fetch_records(self, start_date: str, end_date: str) -> List[Dict[str, Any]]:
        raise NotImplementedError


class DomoRecordSource(RecordSource):
    """Records from a Domo dataset"""

    def __init__(self, client: DomoClient, dataset_id: str):
        if not dataset_id:
            raise SourceError("Domo dataset id is not configured")
        self.client = client
        self.dataset_id = dataset_id

    def fetch_records(self, start_date: str, end_date: str) -> List[Dict[str, Any]]:
        logger.info(f"Fetching Domo records from {start_date} to {end_date}")
        return self.client.fetch_all_records(self.dataset_id, start_date, end_date)


class CsvRecordSource(RecordSource):
    """Records from an exported CSV file, filtered by call start day"""

    def __init__(self, file_path: str, date_column: str = DEFAULT_DATE_COLUMN):
        self.file_path = file_path
        self.date_column = date_column

    def fetch_records(self, start_date: str, end_date: str) -> List[Dict[str, Any]]:
        """
        Read the CSV and keep rows inside the window

        Raises:
            SourceError: If the file is missing, unreadable or has no date column
        """
        if not os.path.exists(self.file_path):
            raise SourceError(f"CSV source not found: {self.file_path}")

        try:
            df = pd.read_csv(self.file_path, dtype=str, keep_default_na=False)
        except (OSError, ValueError) as e:
            raise SourceError(f"Could not read {self.file_path}: {str(e)}") from e

        if self.date_column not in df.columns:
            raise SourceError(f"CSV source has no {self.date_column} column")

        days = pd.to_datetime(df[self.date_column], errors="coerce", utc=True, format="mixed").dt.strftime("%Y-%m-%d").fillna("")
        mask = days != ""
        if start_date:
            mask &= days >= start_date
        if end_date:
            mask &= days <= end_date

        df = df[mask].sort_values(self.date_column, kind="stable")
        logger.info(f"Read {len(df)} records from {self.file_path} ({start_date} to {end_date})")

        records = df.to_dict("records")
        return [{k: (v if v != "" else None) for k, v in record.items()} for record in records]
