from __future__ import annotations

import logging

from dexmirror.core import logging as dex_logging


def test_level_names_resolve_case_insensitively(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    assert dex_logging._resolve_level("debug") == logging.DEBUG
    assert dex_logging._resolve_level(None) == logging.INFO
    assert dex_logging._resolve_level("chatty") == logging.INFO

    monkeypatch.setenv("LOG_LEVEL", "warning")
    assert dex_logging._resolve_level(None) == logging.WARNING


def test_configure_logging_applies_level_once(monkeypatch):
    root = logging.getLogger()
    original = root.level
    monkeypatch.setattr(dex_logging, "_configured", False)
    try:
        dex_logging.configure_logging(level="ERROR", quiet=("dexmirror.test.noisy",))
        assert root.level == logging.ERROR
        assert logging.getLogger("dexmirror.test.noisy").level == logging.WARNING

        dex_logging.configure_logging(level="DEBUG")
        assert root.level == logging.ERROR
    finally:
        root.setLevel(original)
