#!/usr/bin/env python3
"""
Data Access Objects (DAO) package for the Servicing Insights system.
Provides database interface classes that abstract database operations.
"""

from dao.base_dao import BaseDAO
from dao.transcript_dao import TranscriptDAO
from dao.analysis_dao import AnalysisDAO, STATUS_COMPLETED, STATUS_FAILED
from dao.checkpoint_dao import CheckpointDAO
from dao.sync_run_dao import SyncRunDAO
