import json
import logging
import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from time_archive.config import DEFAULT_CONFIG, config_path, load_config, resolve_path  # noqa: E402
from time_archive.log import configure_logging  # noqa: E402


class ConfigTests(unittest.TestCase):
    def test_load_config_creates_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "nested" / "config.json"
            cfg = load_config(path)
            self.assertTrue(path.exists())
            self.assertEqual(cfg["page_size"], 1000)
            self.assertEqual(cfg["max_attempts"], 3)

    def test_missing_keys_are_merged(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            path.write_text(json.dumps({"page_size": 50}), encoding="utf-8")
            cfg = load_config(path)
            self.assertEqual(cfg["page_size"], 50)
            self.assertEqual(cfg["base_delay_seconds"], DEFAULT_CONFIG["base_delay_seconds"])
            stored = json.loads(path.read_text(encoding="utf-8"))
            self.assertIn("job_interval_seconds", stored)

    def test_env_overrides(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "config.json"
            env = {
                "TIME_ARCHIVE_DATA_ROOT": str(Path(tmp) / "data"),
                "TIME_ARCHIVE_CONFIG": str(path),
            }
            with patch.dict(os.environ, env):
                self.assertEqual(config_path(), path)
                cfg = load_config()
            self.assertEqual(resolve_path(cfg, "data_root"), Path(tmp) / "data")
            self.assertIsNone(resolve_path(cfg, "report_path"))
            stored = json.loads(path.read_text(encoding="utf-8"))
            self.assertEqual(stored["data_root"], DEFAULT_CONFIG["data_root"])

    def test_configure_logging_writes_file(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            log_path = Path(tmp) / "logs" / "archive.log"
            configure_logging("debug", log_path)
            logger = logging.getLogger("time_archive.engine.runner")
            try:
                logger.debug("hello %s", "there")
                for handler in logging.getLogger("time_archive").handlers:
                    handler.flush()
                self.assertIn("DEBUG time_archive.engine.runner: hello there", log_path.read_text(encoding="utf-8"))
            finally:
                package_logger = logging.getLogger("time_archive")
                for handler in list(package_logger.handlers):
                    package_logger.removeHandler(handler)
                    handler.close()


if __name__ == "__main__":
    unittest.main()
