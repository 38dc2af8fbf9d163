"""
Unit tests for configuration directory and file management.

Tests cover:
- Directory creation (config and log directories)
- Default config and models file creation
- Config file loading
- Initialization with and without force flag
"""

import json
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest.mock import Mock, patch

import yaml

from claude2openai.config_manager import (
    DEFAULT_CONFIG_TEMPLATE,
    DEFAULT_LOG_DIR,
    DEFAULT_MODELS_TEMPLATE,
    create_default_config_file,
    create_default_models_file,
    ensure_config_dir,
    get_default_log_file_path,
    initialize_config,
    load_config_file,
)


class TestEnsureConfigDir(unittest.TestCase):
    """Test cases for ensure_config_dir function."""

    @patch("claude2openai.config_manager.DEFAULT_CONFIG_DIR")
    def test_ensure_config_dir_creates_directory_if_not_exists(self, mock_dir):
        """Test ensure_config_dir creates directory when it doesn't exist."""
        mock_dir.exists.return_value = False
        mock_dir.mkdir = Mock()

        result = ensure_config_dir()

        mock_dir.mkdir.assert_called_once_with(parents=True, exist_ok=True)
        self.assertEqual(result, mock_dir)

    @patch("claude2openai.config_manager.DEFAULT_CONFIG_DIR")
    def test_ensure_config_dir_skips_existing_directory(self, mock_dir):
        """Test ensure_config_dir does nothing when the directory exists."""
        mock_dir.exists.return_value = True
        mock_dir.mkdir = Mock()

        ensure_config_dir()

        mock_dir.mkdir.assert_not_called()


class ConfigDirTestCase(unittest.TestCase):
    """Redirects the config directory to a temporary location."""

    def setUp(self):
        self.temp_dir = Path(tempfile.mkdtemp())
        self.config_dir = self.temp_dir / "config"
        self.log_dir = self.temp_dir / "log"
        self.models_file = self.config_dir / "models.yaml"
        self.config_file = self.config_dir / "config.json"

        for name, value in (
            ("DEFAULT_CONFIG_DIR", self.config_dir),
            ("DEFAULT_LOG_DIR", self.log_dir),
            ("DEFAULT_MODELS_FILE", self.models_file),
            ("DEFAULT_CONFIG_FILE", self.config_file),
        ):
            patcher = patch(f"claude2openai.config_manager.{name}", value)
            patcher.start()
            self.addCleanup(patcher.stop)

    def tearDown(self):
        shutil.rmtree(self.temp_dir, ignore_errors=True)


class TestCreateDefaultFiles(ConfigDirTestCase):
    """Test cases for default file creation."""

    def test_create_models_file(self):
        """Test the default models.yaml lists the four allowed models."""
        path = create_default_models_file()

        self.assertEqual(path, self.models_file)
        models = yaml.safe_load(self.models_file.read_text(encoding="utf-8"))
        self.assertEqual(
            [m["model_id"] for m in models],
            [
                "claude-3-haiku-20240307",
                "claude-3-sonnet-20240229",
                "claude-3-opus-20240229",
                "claude-3-5-sonnet-20240620",
            ],
        )
        self.assertTrue(all(m["max_tokens"] == 4096 for m in models))

    def test_models_file_not_overwritten_without_force(self):
        self.config_dir.mkdir(parents=True)
        self.models_file.write_text("- model_id: custom\n", encoding="utf-8")

        create_default_models_file()

        self.assertEqual(self.models_file.read_text(encoding="utf-8"), "- model_id: custom\n")

    def test_models_file_overwritten_with_force(self):
        self.config_dir.mkdir(parents=True)
        self.models_file.write_text("- model_id: custom\n", encoding="utf-8")

        create_default_models_file(force=True)

        self.assertEqual(self.models_file.read_text(encoding="utf-8"), DEFAULT_MODELS_TEMPLATE)

    def test_create_config_file(self):
        path = create_default_config_file()

        self.assertEqual(path, self.config_file)
        data = json.loads(self.config_file.read_text(encoding="utf-8"))
        self.assertEqual(data, DEFAULT_CONFIG_TEMPLATE)
        self.assertEqual(data["port"], 6600)
        self.assertEqual(data["host"], "0.0.0.0")


class TestInitializeConfig(ConfigDirTestCase):
    """Test cases for initialize_config."""

    def test_creates_everything(self):
        models_file, config_file = initialize_config()

        self.assertTrue(models_file.exists())
        self.assertTrue(config_file.exists())
        self.assertTrue(self.log_dir.exists())

    def test_force_resets_config_but_keeps_models(self):
        initialize_config()
        self.models_file.write_text("- model_id: custom\n", encoding="utf-8")
        self.config_file.write_text('{"port": 1}', encoding="utf-8")

        initialize_config(force=True)

        self.assertEqual(self.models_file.read_text(encoding="utf-8"), "- model_id: custom\n")
        self.assertEqual(json.loads(self.config_file.read_text(encoding="utf-8"))["port"], 6600)


class TestLoadConfigFile(ConfigDirTestCase):
    """Test cases for load_config_file."""

    def test_missing_file_returns_empty_dict(self):
        self.assertEqual(load_config_file(self.temp_dir / "nope.json"), {})

    def test_invalid_json_returns_empty_dict(self):
        path = self.temp_dir / "bad.json"
        path.write_text("{broken", encoding="utf-8")
        self.assertEqual(load_config_file(path), {})

    def test_non_object_returns_empty_dict(self):
        path = self.temp_dir / "list.json"
        path.write_text("[1, 2]", encoding="utf-8")
        self.assertEqual(load_config_file(path), {})

    def test_loads_default_location(self):
        self.config_dir.mkdir(parents=True)
        self.config_file.write_text('{"host": "127.0.0.1"}', encoding="utf-8")
        self.assertEqual(load_config_file(), {"host": "127.0.0.1"})


def test_default_log_file_path():
    assert get_default_log_file_path() == DEFAULT_LOG_DIR / "claude2openai.log"
