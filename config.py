#!/usr/bin/env python3
"""
Configuration module for the Servicing Insights system
Centralizes configuration settings for the entire application
"""

import os
import logging
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def configure_logging(level: int = logging.INFO, log_file: Optional[str] = None) -> None:
    """
    Install the application log format on the root logger

    Args:
        level: Logging level
        log_file: Log file path (defaults to servicing_insights.log in the logs directory)
    """
    if log_file is None:
        log_file = os.path.join(AppConfig.get_logs_dir(), "servicing_insights.log")

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ],
        force=True,
    )


class AppConfig:
    """Application configuration settings"""

    # Default paths
    DEFAULT_DB_PATH = "./servicing_insights.db"
    DEFAULT_EXPORT_DIR = "./exports"
    DEFAULT_LOGS_DIR = "./logs"

    # Sync settings
    BASELINE_DATE = "2025-12-01"
    JOB_NAME = "daily_sync"
    BATCH_SIZE = 20
    MAX_CONCURRENT = 20
    MAX_RETRIES = 3
    RETRY_DELAY = 2.0
    BATCH_PAUSE = 0.5

    # LLM settings
    LLM_MODEL = "anthropic/claude-3.5-sonnet"
    OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
    LLM_TIMEOUT = 60
    LAST_N_CHARS = 1500

    # Categorizer confidence coefficients
    CONFIDENCE_BASE = 0.4
    CONFIDENCE_MAX_SPECIFICITY = 0.3
    CONFIDENCE_MAX_MATCH = 0.3
    CONFIDENCE_WEIGHT_SHARE = 0.4
    CONFIDENCE_DEFAULT = 0.3

    @classmethod
    def get_db_path(cls) -> str:
        """Get database path from environment variable or use default"""
        return os.environ.get("SERVICING_DB_PATH", cls.DEFAULT_DB_PATH)

    @classmethod
    def get_export_dir(cls) -> str:
        """Get export directory from environment variable or use default"""
        export_dir = os.environ.get("SERVICING_EXPORT_DIR", cls.DEFAULT_EXPORT_DIR)
        os.makedirs(export_dir, exist_ok=True)
        return export_dir

    @classmethod
    def get_logs_dir(cls) -> str:
        """Get logs directory from environment variable or use default"""
        logs_dir = os.environ.get("SERVICING_LOGS_DIR", cls.DEFAULT_LOGS_DIR)
        os.makedirs(logs_dir, exist_ok=True)
        return logs_dir

