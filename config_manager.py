#!/usr/bin/env python3
"""
Configuration Manager for the Servicing Insights system.
Handles loading, reading, and modifying configuration.

Priority, lowest first: built-in defaults, JSON file, environment, database.
"""

import os
import json
import logging
from typing import Any, Dict
import sqlite3

from config import AppConfig

logger = logging.getLogger(__name__)

# Settings a sync run reads from the configuration
SYNC_KEYS = ("job_name", "baseline_date", "batch_size", "max_concurrent", "max_retries",
             "retry_delay", "batch_pause")


def _convert(value: str, template: Any) -> Any:
    """Convert a string to the type of an existing value"""
    if isinstance(template, bool):
        return value.lower() in ('true', 'yes', '1')
    if isinstance(template, int):
        return int(value)
    if isinstance(template, float):
        return float(value)
    return value


class ConfigManager:
    """
    Configuration Manager for the Servicing Insights system

    Handles:
    - Loading configurations from JSON files
    - Reading configurations from database
    - Merging configurations from multiple sources
    - Providing a single point of access for all configuration
    """

    def __init__(self, config_file: str = None, db_path: str = None):
        """
        Initialize the configuration manager

        Args:
            config_file: Path to the JSON configuration file
            db_path: Path to the SQLite database
        """
        # Default configuration values
        self.config = {
            "db_path": AppConfig.DEFAULT_DB_PATH,
            "export_dir": AppConfig.DEFAULT_EXPORT_DIR,
            "log_level": "INFO",
            "job_name": AppConfig.JOB_NAME,
            "baseline_date": AppConfig.BASELINE_DATE,
            "batch_size": AppConfig.BATCH_SIZE,
            "max_concurrent": AppConfig.MAX_CONCURRENT,
            "max_retries": AppConfig.MAX_RETRIES,
            "retry_delay": AppConfig.RETRY_DELAY,
            "batch_pause": AppConfig.BATCH_PAUSE,
            "llm_model": AppConfig.LLM_MODEL,
            "openrouter_base_url": AppConfig.OPENROUTER_BASE_URL,
            "llm_timeout": AppConfig.LLM_TIMEOUT,
            "last_n_chars": AppConfig.LAST_N_CHARS,
            "category_file": "",
        }

        # Load from file if specified
        if config_file and os.path.exists(config_file):
            self._load_from_file(config_file)

        # Load from environment variables
        self._load_from_env()

        # Set database path
        if db_path:
            self.config["db_path"] = db_path
        self.db_path = self.config.get("db_path")

        # Load from database
        self._load_from_db()

    def _load_from_file(self, config_file: str) -> None:
        """
        Load configuration from a JSON file

        Args:
            config_file: Path to the JSON configuration file
        """
        try:
            with open(config_file, 'r') as f:
                file_config = json.load(f)
            self.config.update(file_config)
            logger.info(f"Loaded configuration from {config_file}")
        except (OSError, ValueError) as e:
            logger.error(f"Error loading configuration from {config_file}: {str(e)}")

    def _load_from_env(self) -> None:
        """Load configuration from environment variables"""
        # Define environment variable mappings
        env_mappings = {
            "SERVICING_DB_PATH": "db_path",
            "SERVICING_EXPORT_DIR": "export_dir",
            "SERVICING_LOG_LEVEL": "log_level",
            "SERVICING_BASELINE_DATE": "baseline_date",
            "SERVICING_CATEGORY_FILE": "category_file",
            "BATCH_SIZE": "batch_size",
            "MAX_CONCURRENT": "max_concurrent",
            "MAX_RETRIES": "max_retries",
            "RETRY_DELAY": "retry_delay",
            "BATCH_PAUSE": "batch_pause",
            "OPENROUTER_API_KEY": "openrouter_api_key",
            "OPENROUTER_MODEL": "llm_model",
            "DOMO_CLIENT_ID": "domo_client_id",
            "DOMO_CLIENT_SECRET": "domo_client_secret",
            "DOMO_DATASET_ID": "domo_dataset_id",
        }

        # Update config with environment variables
        for env_var, config_key in env_mappings.items():
            if env_var not in os.environ:
                continue
            value = os.environ[env_var]
            if config_key in self.config:
                try:
                    value = _convert(value, self.config[config_key])
                except ValueError:
                    logger.warning(f"Ignoring invalid value for {env_var}: {value}")
                    continue

            self.config[config_key] = value
            logger.debug(f"Set {config_key} from environment variable {env_var}")

    def _load_from_db(self) -> None:
        """Load configuration from database"""
        if not self.db_path or not os.path.exists(self.db_path):
            logger.debug(f"Database {self.db_path} does not exist, skipping config load")
            return

        conn = None
        try:
            conn = sqlite3.connect(self.db_path)
            cursor = conn.cursor()

            # Check if config table exists
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table' AND name='config'")
            if not cursor.fetchone():
                logger.debug("Config table does not exist in database")
                return

            # Get all configurations
            cursor.execute("SELECT config_key, config_value, value_type FROM config")
            rows = cursor.fetchall()
        except sqlite3.Error as e:
            logger.warning(f"Could not load config from database: {str(e)}")
            return
        finally:
            if conn:
                conn.close()

        for key, value, value_type in rows:
            # Convert value based on type
            try:
                if value_type == 'int':
                    value = int(value)
                elif value_type == 'float':
                    value = float(value)
                elif value_type == 'bool':
                    value = value.lower() in ('true', 'yes', '1')
                elif value_type == 'json':
                    value = json.loads(value)
            except (ValueError, AttributeError):
                logger.warning(f"Failed to parse {value_type} value for config key {key}")
                continue

            self.config[key] = value
            logger.debug(f"Loaded config {key} from database")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        return self.config.get(key, default)

    def set(self, key: str, value: Any, description: str = None) -> bool:
        """
        Set a configuration value and save it to the database

        Args:
            key: Configuration key
            value: Configuration value
            description: Optional description

        Returns:
            Success flag
        """
        self.config[key] = value

        if self.db_path:
            return self._save_to_db(key, value, description)
        return True

    def _save_to_db(self, key: str, value: Any, description: str = None) -> bool:
        """
        Save a configuration to database

        Args:
            key: Configuration key
            value: Configuration value
            description: Optional description

        Returns:
            Success flag
        """
        # Determine value type (bool first, it is an int subclass)
        if isinstance(value, bool):
            value_type = 'bool'
            value = '1' if value else '0'
        elif isinstance(value, int):
            value_type = 'int'
        elif isinstance(value, float):
            value_type = 'float'
        elif isinstance(value, (dict, list)):
            value_type = 'json'
            value = json.dumps(value)
        else:
            value_type = 'string'
            value = str(value)

        conn = None
        try:
            db_dir = os.path.dirname(self.db_path)
            if db_dir:
                os.makedirs(db_dir, exist_ok=True)
            conn = sqlite3.connect(self.db_path)
            cursor = conn.cursor()

            # Create table if not exists
            cursor.execute("""
            CREATE TABLE IF NOT EXISTS config (
                config_key TEXT PRIMARY KEY,
                config_value TEXT,
                value_type TEXT,
                description TEXT,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
            """)

            cursor.execute("""
            INSERT INTO config (config_key, config_value, value_type, description, updated_at)
            VALUES (?, ?, ?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(config_key) DO UPDATE SET
                config_value = excluded.config_value,
                value_type = excluded.value_type,
                description = COALESCE(excluded.description, config.description),
                updated_at = CURRENT_TIMESTAMP
            """, (key, value, value_type, description))

            conn.commit()
            logger.debug(f"Saved config {key} to database")
            return True
        except sqlite3.Error as e:
            if conn:
                conn.rollback()
            logger.error(f"Error saving config to database: {str(e)}")
            return False
        finally:
            if conn:
                conn.close()

    def get_all(self) -> Dict[str, Any]:
        """
        Get all configuration values

        Returns:
            Dictionary of all configuration values
        """
        return self.config.copy()

    def get_sync_settings(self) -> Dict[str, Any]:
        """Settings of a sync run, ready for PipelineConfig(**settings)"""
        return {key: self.config[key] for key in SYNC_KEYS if key in self.config}

    def load_from_dict(self, config_dict: Dict[str, Any]) -> None:
        """
        Load configuration from a dictionary

        Args:
            config_dict: Dictionary of configuration values
        """
        self.config.update(config_dict)
        logger.debug(f"Loaded {len(config_dict)} config values from dictionary")

    def save_to_file(self, file_path: str) -> bool:
        """
        Save current configuration to a file (API keys are left out)

        Args:
            file_path: Path where to save the configuration

        Returns:
            Success flag
        """
        data = {k: v for k, v in self.config.items()
                if not k.endswith(("_api_key", "_secret"))}
        try:
            with open(file_path, 'w') as f:
                json.dump(data, f, indent=2)
            logger.info(f"Saved configuration to {file_path}")
            return True
        except OSError as e:
            logger.error(f"Error saving configuration to {file_path}: {str(e)}")
            return False


# Create a singleton instance
config = ConfigManager()


def initialize_config(config_file: str = None, db_path: str = None) -> ConfigManager:
    """
    Initialize the configuration manager

    Args:
        config_file: Path to the JSON configuration file
        db_path: Path to the SQLite database

    Returns:
        ConfigManager instance
    """
    global config
    config = ConfigManager(config_file, db_path)
    return config
