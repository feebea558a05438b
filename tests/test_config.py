# tests/test_config.py

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from tsk.config import Settings
from tsk.logging_setup import _ConsoleNoiseFilter

ENV_NAMES = (
    "TSK_APP_NAME",
    "TSK_LOG_LEVEL",
    "TSK_LOG_DIR",
    "TSK_DIR",
    "TSK_LOCK_TIMEOUT",
    "TSK_PREFIX",
    "TSK_SLUG_IDS",
)


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in ENV_NAMES:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env: pytest.MonkeyPatch) -> None:
    s = Settings.from_env()

    assert s.app_name == "tsk"
    assert s.log_level == "WARNING"
    assert s.log_dir is None
    assert s.store_dir == Path(".tsk")
    assert s.lock_timeout == 5.0
    assert s.default_prefix is None
    assert s.slug_ids is True


def test_values_from_environment(clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
    clean_env.setenv("TSK_LOG_LEVEL", " debug ")
    clean_env.setenv("TSK_LOG_DIR", str(tmp_path / "logs"))
    clean_env.setenv("TSK_DIR", str(tmp_path / "store"))
    clean_env.setenv("TSK_LOCK_TIMEOUT", "0.5")
    clean_env.setenv("TSK_PREFIX", " proj ")
    clean_env.setenv("TSK_SLUG_IDS", "no")

    s = Settings.from_env()

    assert s.log_level == "DEBUG"
    assert s.log_dir == tmp_path / "logs"
    assert s.store_dir == tmp_path / "store"
    assert s.lock_timeout == 0.5
    assert s.default_prefix == "proj"
    assert s.slug_ids is False


@pytest.mark.parametrize("raw", ["soon", "-1"])
def test_bad_lock_timeout_falls_back(clean_env: pytest.MonkeyPatch, raw: str) -> None:
    clean_env.setenv("TSK_LOCK_TIMEOUT", raw)

    assert Settings.from_env().lock_timeout == 5.0


def test_blank_prefix_means_unset(clean_env: pytest.MonkeyPatch) -> None:
    clean_env.setenv("TSK_PREFIX", "   ")

    assert Settings.from_env().default_prefix is None


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


def test_console_filter_keeps_own_logs_and_hides_library_noise() -> None:
    f = _ConsoleNoiseFilter()

    assert f.filter(_record("tsk.tasks.task_store", logging.DEBUG))
    assert f.filter(_record("tsk", logging.INFO))
    assert not f.filter(_record("filelock", logging.WARNING))
    assert not f.filter(_record("py.warnings", logging.WARNING))
    assert f.filter(_record("filelock", logging.ERROR))
