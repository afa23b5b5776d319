"""Tests for persisted user settings."""

from __future__ import annotations

from pathlib import Path
import tempfile
import unittest

from vision_chat.config import DEFAULT_CONFIG
from vision_chat.settings import SettingsStore
from vision_chat.storage import KeyValueStorage


class SettingsStoreTests(unittest.TestCase):
    """Validate defaults, provider switching and API key checks."""

    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        self.storage = KeyValueStorage(Path(self._temp_dir.name) / "storage.json")
        self.settings = SettingsStore(self.storage, DEFAULT_CONFIG["api"])

    def tearDown(self) -> None:
        self._temp_dir.cleanup()

    def test_fresh_install_uses_provider_defaults(self) -> None:
        settings = self.settings.load()
        api = DEFAULT_CONFIG["api"]
        self.assertEqual(settings.api_key, "")
        self.assertEqual(settings.provider, api["provider"])
        self.assertEqual(settings.model, api["default_models"][api["provider"]])
        self.assertEqual(settings.endpoint, api["endpoints"][api["provider"]])
        self.assertEqual(settings.system_prompt, api["default_system_prompt"])

    def test_saved_values_are_read_back_trimmed(self) -> None:
        self.assertIsNone(self.settings.save_api_key("  gsk_0123456789abcdef  "))
        self.settings.save_model(" my-vision-model ")
        self.settings.save_system_prompt("  Be brief.  ")

        settings = SettingsStore(self.storage, DEFAULT_CONFIG["api"]).load()
        self.assertEqual(settings.api_key, "gsk_0123456789abcdef")
        self.assertEqual(settings.model, "my-vision-model")
        self.assertEqual(settings.system_prompt, "Be brief.")

    def test_empty_system_prompt_is_respected(self) -> None:
        self.settings.save_system_prompt("")
        self.assertEqual(self.settings.load().system_prompt, "")

    def test_short_api_key_is_stored_with_warning(self) -> None:
        warning = self.settings.save_api_key("abc")
        self.assertIsNotNone(warning)
        self.assertIn("too short", warning or "")
        self.assertEqual(self.settings.load().api_key, "abc")

    def test_blank_api_key_is_refused(self) -> None:
        with self.assertRaises(ValueError):
            self.settings.save_api_key("   ")

    def test_switching_provider_changes_endpoint_and_default_model(self) -> None:
        self.settings.save_provider("OpenRouter")
        settings = self.settings.load()
        api = DEFAULT_CONFIG["api"]
        self.assertEqual(settings.provider, "openrouter")
        self.assertEqual(settings.endpoint, api["endpoints"]["openrouter"])
        self.assertEqual(settings.model, api["default_models"]["openrouter"])

    def test_unknown_provider_is_refused(self) -> None:
        with self.assertRaises(ValueError):
            self.settings.save_provider("mystery")

    def test_stale_stored_provider_falls_back_to_default(self) -> None:
        self.storage.set("chat_provider", "retired")
        with self.assertLogs("vision_chat.settings", level="WARNING"):
            settings = self.settings.load()
        self.assertEqual(settings.provider, DEFAULT_CONFIG["api"]["provider"])


if __name__ == "__main__":
    unittest.main()
