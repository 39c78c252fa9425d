#!/usr/bin/env python3
"""
Client for the Domo dataset API (call transcript export).
"""

import os
import time
import logging
from datetime import date, timedelta
from typing import Dict, List, Any, Optional

import requests

from exceptions import SourceError

logger = logging.getLogger(__name__)

DOMO_AUTH_URL = "https://api.domo.com/oauth/token"
DOMO_API_URL = "https://api.domo.com/v1"
PAGE_SIZE = 10000
# Refresh the token this many seconds before it expires
TOKEN_REFRESH_MARGIN = 60


class DomoClient:
    """
    Client for Domo OAuth and dataset SQL queries
    """

    def __init__(self, client_id: str = None, client_secret: str = None,
                 date_column: str = "CallStartDateTime", timeout: int = 120,
                 session: Optional[requests.Session] = None):
        """
        Initialize the Domo client

        Args:
            client_id: Domo client ID (if None, will use DOMO_CLIENT_ID)
            client_secret: Domo client secret (if None, will use DOMO_CLIENT_SECRET)
            date_column: Dataset column used for the date window
            timeout: HTTP timeout in seconds
            session: Optional requests session
        """
        self.client_id = client_id or os.environ.get("DOMO_CLIENT_ID")
        self.client_secret = client_secret or os.environ.get("DOMO_CLIENT_SECRET")
        if not self.client_id or not self.client_secret:
            logger.warning("Domo credentials not provided")

        self.date_column = date_column
        self.timeout = timeout
        self.session = session or requests.Session()
        self.access_token = None
        self.token_expiry = 0.0
        logger.info("Domo client initialized")

    def authenticate(self) -> None:
        """
        Obtain an access token with the client-credentials grant

        Raises:
            SourceError: If authentication fails
        """
        try:
            response = self.session.get(
                DOMO_AUTH_URL,
                params={"grant_type": "client_credentials"},
                auth=(self.client_id or "", self.client_secret or ""),
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise SourceError(f"Domo authentication request failed: {str(e)}") from e

        if response.status_code != 200:
            raise SourceError(f"Domo authentication failed: {response.status_code} - {response.text}",
                              status_code=response.status_code)

        data = response.json()
        self.access_token = data.get("access_token")
        self.token_expiry = time.time() + float(data.get("expires_in", 0))
        logger.info("Authenticated with Domo API")

    def ensure_authenticated(self) -> None:
        if not self.access_token or time.time() >= self.token_expiry - TOKEN_REFRESH_MARGIN:
            self.authenticate()

    def get_headers(self) -> Dict[str, str]:
        """
        Get API headers

        Returns:
            Headers dictionary
        """
        return {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def build_query(self, start_date: Optional[str], end_date: Optional[str],
                    limit: int = PAGE_SIZE, offset: int = 0) -> str:
        """
        Build the dataset SQL for a date window (both ends inclusive, day granularity)
        """
        clauses = []
        if start_date:
            start = date.fromisoformat(start_date)
            clauses.append(f"`{self.date_column}` >= '{start.isoformat()}'")
        if end_date:
            end = date.fromisoformat(end_date) + timedelta(days=1)
            clauses.append(f"`{self.date_column}` < '{end.isoformat()}'")

        query = "SELECT * FROM table"
        if clauses:
            query += f" WHERE {' AND '.join(clauses)}"
        query += f" ORDER BY `{self.date_column}` ASC LIMIT {int(limit)} OFFSET {int(offset)}"
        return query

    def fetch_dataset(self, dataset_id: str, start_date: str = None, end_date: str = None,
                      limit: int = PAGE_SIZE, offset: int = 0) -> List[Dict[str, Any]]:
        """
        Fetch one page of a dataset

        Args:
            dataset_id: Dataset GUID
            start_date: First day of the window (YYYY-MM-DD)
            end_date: Last day of the window (YYYY-MM-DD)
            limit: Page size
            offset: Rows to skip

        Returns:
            List of records keyed by column name

        Raises:
            SourceError: If the query fails
        """
        self.ensure_authenticated()

        query = self.build_query(start_date, end_date, limit, offset)
        url = f"{DOMO_API_URL}/datasets/query/execute/{dataset_id}"
        logger.debug(f"Domo query: {query}")

        try:
            response = self.session.post(url, json={"sql": query}, headers=self.get_headers(),
                                         timeout=self.timeout)
        except requests.RequestException as e:
            raise SourceError(f"Domo query request failed: {str(e)}") from e

        if response.status_code != 200:
            raise SourceError(f"Failed to fetch dataset: {response.status_code} - {response.text}",
                              status_code=response.status_code)

        data = response.json()
        columns = data.get("columns")
        rows = data.get("rows") or []
        if columns:
            return [dict(zip(columns, row)) for row in rows]
        return rows

    def fetch_all_records(self, dataset_id: str, start_date: str = None,
                          end_date: str = None) -> List[Dict[str, Any]]:
        """
        Fetch every record in the window, page by page until a short page
        """
        offset = 0
        records = []

        while True:
            batch = self.fetch_dataset(dataset_id, start_date, end_date, limit=PAGE_SIZE, offset=offset)
            records.extend(batch)
            if len(batch) < PAGE_SIZE:
                break
            offset += PAGE_SIZE
            logger.info(f"Fetched {len(records)} records so far...")

        logger.info(f"Fetched {len(records)} records from Domo dataset {dataset_id}")
        return records
