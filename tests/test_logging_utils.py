"""Tests for :mod:`grammy.utils.logging`."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from grammy.utils import logging as logging_utils


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


def test_setup_logging_writes_to_env_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GRAMMY_LOG_DIR", str(tmp_path / "custom"))

    log_path = logging_utils.setup_logging(debug=True, console=False, force=True)
    logging_utils.get_logger("grammy.test").debug("hello from test")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert log_path == tmp_path / "custom" / "grammy.log"
    assert logging_utils.get_log_path() == log_path
    assert "hello from test" in log_path.read_text(encoding="utf-8")


def test_noisy_loggers_are_quieted(tmp_path: Path) -> None:
    logging_utils.setup_logging(logging.DEBUG, log_dir=tmp_path, console=False, force=True)

    assert logging.getLogger("httpx").level == logging.WARNING
    assert logging.getLogger("openai").level == logging.WARNING


def test_repeat_calls_reuse_configuration(tmp_path: Path) -> None:
    first = logging_utils.setup_logging(log_dir=tmp_path / "a", console=False, force=True)
    second = logging_utils.setup_logging(log_dir=tmp_path / "b", console=False)

    assert second == first
