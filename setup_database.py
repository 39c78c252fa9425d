#!/usr/bin/env python3
"""
Database Setup Script for the Servicing Insights system.
Creates all necessary tables and indexes.
"""

import os
import sys
import sqlite3
import logging
import argparse

logger = logging.getLogger(__name__)

TABLES_SQL = """
-- Imported call transcripts, keyed by the source's call identifier
CREATE TABLE IF NOT EXISTS transcripts (
    vendor_call_key TEXT PRIMARY KEY,
    call_start TEXT,
    call_end TEXT,
    duration_seconds INTEGER,
    number_of_holds INTEGER,
    hold_duration INTEGER,
    disposition TEXT,
    department TEXT,
    status TEXT,
    agent_name TEXT,
    agent_role TEXT,
    agent_profile TEXT,
    agent_email TEXT,
    messages TEXT,
    imported_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Merged LLM + heuristic analysis, one row per transcript
CREATE TABLE IF NOT EXISTS transcript_analysis (
    vendor_call_key TEXT PRIMARY KEY,
    analysis_status TEXT NOT NULL,
    agent_name TEXT,
    agent_sentiment TEXT,
    agent_sentiment_score REAL,
    agent_sentiment_reason TEXT,
    customer_sentiment TEXT,
    customer_sentiment_score REAL,
    customer_sentiment_reason TEXT,
    ai_discovered_topic TEXT,
    ai_discovered_subcategory TEXT,
    topic_confidence REAL,
    key_issues TEXT,
    resolution TEXT,
    tags TEXT,
    category TEXT,
    subcategory TEXT,
    category_confidence REAL,
    all_issues TEXT,
    customer_intent TEXT,
    resolution_status TEXT,
    overall_sentiment TEXT,
    customer_sentiment_heuristic TEXT,
    transcript_quality TEXT,
    call_quality_score INTEGER,
    primary_topic TEXT,
    detected_topics TEXT,
    entities TEXT,
    self_service TEXT,
    model TEXT,
    prompt_tokens INTEGER,
    completion_tokens INTEGER,
    cost REAL,
    attempts INTEGER,
    error TEXT,
    analyzed_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (vendor_call_key) REFERENCES transcripts(vendor_call_key) ON DELETE CASCADE
);

-- Resume points of batch jobs
CREATE TABLE IF NOT EXISTS sync_checkpoints (
    job_name TEXT PRIMARY KEY,
    sync_window TEXT NOT NULL,
    processed_count INTEGER NOT NULL DEFAULT 0,
    last_processed_id TEXT,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);

-- Summaries of sync runs
CREATE TABLE IF NOT EXISTS sync_runs (
    run_id INTEGER PRIMARY KEY AUTOINCREMENT,
    job_name TEXT NOT NULL,
    run_date TIMESTAMP NOT NULL,
    state TEXT NOT NULL,
    sync_start_date TEXT,
    sync_end_date TEXT,
    fetched INTEGER NOT NULL DEFAULT 0,
    imported INTEGER NOT NULL DEFAULT 0,
    analyzed INTEGER NOT NULL DEFAULT 0,
    skipped INTEGER NOT NULL DEFAULT 0,
    errors INTEGER NOT NULL DEFAULT 0,
    total_tokens INTEGER,
    estimated_cost REAL,
    cancelled BOOLEAN DEFAULT 0,
    duration_seconds REAL,
    error_details TEXT
);

-- Configuration table
CREATE TABLE IF NOT EXISTS config (
    config_key TEXT PRIMARY KEY,
    config_value TEXT,
    value_type TEXT,
    description TEXT,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_transcripts_call_start ON transcripts(call_start);
CREATE INDEX IF NOT EXISTS idx_transcripts_agent ON transcripts(agent_name);
CREATE INDEX IF NOT EXISTS idx_analysis_status ON transcript_analysis(analysis_status);
CREATE INDEX IF NOT EXISTS idx_analysis_category ON transcript_analysis(category);
CREATE INDEX IF NOT EXISTS idx_analysis_topic ON transcript_analysis(ai_discovered_topic);
CREATE INDEX IF NOT EXISTS idx_sync_runs_date ON sync_runs(run_date);
"""


class DatabaseSetup:
    """
    Sets up the database schema for the Servicing Insights system
    """

    def __init__(self, db_path: str):
        """
        Initialize with database path

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = db_path

        if not os.path.exists(db_path):
            logger.info(f"Creating new database at {db_path}")
        else:
            logger.debug(f"Using existing database at {db_path}")

    def connect(self) -> sqlite3.Connection:
        """
        Connect to the database

        Returns:
            SQLite connection
        """
        db_dir = os.path.dirname(self.db_path)
        if db_dir:
            os.makedirs(db_dir, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def setup(self) -> bool:
        """
        Create all tables and indexes

        Returns:
            Success flag
        """
        conn = None
        try:
            conn = self.connect()
            conn.executescript(TABLES_SQL)
            conn.executescript(INDEXES_SQL)
            conn.commit()
            logger.info("Database schema is up to date")
            return True
        except sqlite3.Error as e:
            logger.error(f"Error setting up database: {str(e)}")
            return False
        finally:
            if conn:
                conn.close()


def main():
    """Main entry point"""
    from config import AppConfig, configure_logging

    parser = argparse.ArgumentParser(description="Set up the database for the Servicing Insights system")
    parser.add_argument("--db-path", default=AppConfig.get_db_path(), help="Path to the database file")
    args = parser.parse_args()

    configure_logging()

    if DatabaseSetup(args.db_path).setup():
        logger.info("Database setup completed successfully")
        return 0
    logger.error("Database setup failed")
    return 1


if __name__ == "__main__":
    sys.exit(main())
