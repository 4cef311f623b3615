"""Regression tests for importing the data layer without the web stack."""

from __future__ import annotations

import importlib
import sys
import types
import unittest


class StorageImportTests(unittest.TestCase):
    def tearDown(self) -> None:
        self._clear_package_modules()

    @staticmethod
    def _clear_package_modules() -> None:
        for name in [m for m in list(sys.modules.keys()) if m == "horoscope_store" or m.startswith("horoscope_store.")]:
            sys.modules.pop(name, None)

    def test_import_storage_without_fastapi(self) -> None:
        """Importing the storage backends should not require FastAPI."""

        self._clear_package_modules()

        fastapi_module: types.ModuleType | None = sys.modules.pop("fastapi", None)
        sys.modules["fastapi"] = None  # type: ignore[assignment]
        try:
            memory_module = importlib.import_module("horoscope_store.memory")
            self.assertTrue(hasattr(memory_module, "MemoryStorage"))

            package = sys.modules.get("horoscope_store")
            self.assertIsNotNone(package)
            self.assertTrue(hasattr(package, "create_storage"))
        finally:
            sys.modules.pop("fastapi", None)
            if fastapi_module is not None:
                sys.modules["fastapi"] = fastapi_module


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
