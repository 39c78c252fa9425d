#!/usr/bin/env python3
"""
Tests for layered configuration.
"""

import os
import sys
import json
import tempfile
import unittest
from unittest.mock import patch

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config_manager import ConfigManager
from sync.pipeline import PipelineConfig


class TestConfigManager(unittest.TestCase):

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.temp_dir.name, "config.db")

    def tearDown(self):
        self.temp_dir.cleanup()

    @patch.dict(os.environ, {}, clear=True)
    def test_defaults(self):
        manager = ConfigManager(db_path=self.db_path)
        self.assertEqual(manager.get("batch_size"), 20)
        self.assertEqual(manager.get("baseline_date"), "2025-12-01")
        self.assertEqual(manager.get("missing", "fallback"), "fallback")

        everything = manager.get_all()
        everything["batch_size"] = 1
        self.assertEqual(manager.get("batch_size"), 20)

    @patch.dict(os.environ, {"BATCH_SIZE": "50", "RETRY_DELAY": "0.25", "MAX_CONCURRENT": "many",
                             "OPENROUTER_MODEL": "test/model"}, clear=True)
    def test_environment_values_are_converted(self):
        manager = ConfigManager(db_path=self.db_path)
        self.assertEqual(manager.get("batch_size"), 50)
        self.assertEqual(manager.get("retry_delay"), 0.25)
        self.assertEqual(manager.get("max_concurrent"), 20)
        self.assertEqual(manager.get("llm_model"), "test/model")

    @patch.dict(os.environ, {"BATCH_SIZE": "50"}, clear=True)
    def test_file_then_environment(self):
        config_file = os.path.join(self.temp_dir.name, "config.json")
        with open(config_file, "w") as f:
            json.dump({"batch_size": 10, "job_name": "nightly"}, f)

        manager = ConfigManager(config_file, self.db_path)
        self.assertEqual(manager.get("job_name"), "nightly")
        self.assertEqual(manager.get("batch_size"), 50)

    @patch.dict(os.environ, {}, clear=True)
    def test_database_values_win(self):
        ConfigManager(db_path=self.db_path).set("max_retries", 5, "attempts per transcript")
        ConfigManager(db_path=self.db_path).set("dry_run_default", True)

        manager = ConfigManager(db_path=self.db_path)
        self.assertEqual(manager.get("max_retries"), 5)
        self.assertIs(manager.get("dry_run_default"), True)

    @patch.dict(os.environ, {"OPENROUTER_API_KEY": "secret-key"}, clear=True)
    def test_save_to_file_leaves_out_keys(self):
        manager = ConfigManager(db_path=self.db_path)
        output = os.path.join(self.temp_dir.name, "saved.json")
        self.assertTrue(manager.save_to_file(output))

        with open(output) as f:
            saved = json.load(f)
        self.assertNotIn("openrouter_api_key", saved)
        self.assertEqual(saved["batch_size"], 20)

    @patch.dict(os.environ, {}, clear=True)
    def test_sync_settings_build_pipeline_config(self):
        manager = ConfigManager(db_path=self.db_path)
        manager.load_from_dict({"batch_size": 7})
        config = PipelineConfig(**manager.get_sync_settings())
        self.assertEqual(config.batch_size, 7)
        self.assertEqual(config.job_name, "daily_sync")


if __name__ == "__main__":
    unittest.main()
