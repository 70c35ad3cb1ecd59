from __future__ import annotations

import logging
import os

import pytest

import imagevault.core.config as config_module

SETTINGS_PREFIX = "IMAGEVAULT_"


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path):
    """Run every test against default settings.

    Variables from the developer's shell are removed, the cached settings
    singleton is dropped and the working directory holds no .env file.
    """
    for name in list(os.environ):
        if name.startswith(SETTINGS_PREFIX):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.setattr(config_module, "_settings", None)
    monkeypatch.chdir(tmp_path)
    yield
    config_module._settings = None


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """Keep handlers installed by ``setup_logging`` from leaking between tests."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
