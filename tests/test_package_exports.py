"""Tests for top-level package lazy exports."""

from __future__ import annotations

import unittest

import vision_chat


class PackageExportTests(unittest.TestCase):
    """Ensure __getattr__ and exported symbols behave as expected."""

    def test_lazy_exports_resolve_known_symbols(self) -> None:
        for name in vision_chat.__all__:
            self.assertIsNotNone(getattr(vision_chat, name), name)
        self.assertTrue(callable(vision_chat.load_config))
        self.assertTrue(callable(vision_chat.build_session))
        self.assertTrue(callable(vision_chat.configure_logging))

    def test_unknown_symbol_raises_attribute_error(self) -> None:
        with self.assertRaises(AttributeError):
            getattr(vision_chat, "THIS_DOES_NOT_EXIST")


if __name__ == "__main__":
    unittest.main()
