"""Tests for settings resolution and logging setup."""

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from habittimer.common.logger import ROOT_LOGGER, configure_logging, reset_logging
from habittimer.config import Settings


class TestSettings:
    def test_explicit_dir_wins(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HABITTIMER_HOME", "/somewhere/else")
        assert Settings.from_env(tmp_path).config_dir == tmp_path

    def test_dir_from_environment(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HABITTIMER_HOME", str(tmp_path))
        settings = Settings.from_env()
        assert settings.config_dir == tmp_path
        assert settings.log_dir == tmp_path / "logs"

    def test_log_level_from_environment(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HABITTIMER_LOG_LEVEL", "debug")
        assert Settings.from_env(tmp_path).log_level == logging.DEBUG

    def test_unknown_log_level_falls_back_to_info(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HABITTIMER_LOG_LEVEL", "chatty")
        assert Settings.from_env(tmp_path).log_level == logging.INFO


def _named(logger: logging.Logger) -> list[str]:
    return sorted(h.get_name() for h in logger.handlers if h.get_name())


class TestConfigureLogging:
    def test_file_handler_writes_under_log_dir(self, tmp_path: Path) -> None:
        logger = configure_logging(Settings(config_dir=tmp_path))
        logging.getLogger(f"{ROOT_LOGGER}.core.store").info("hello")
        for handler in logger.handlers:
            handler.flush()
        assert "hello" in (tmp_path / "logs" / "habittimer.log").read_text()

    def test_calling_twice_adds_no_duplicates(self, tmp_path: Path) -> None:
        settings = Settings(config_dir=tmp_path)
        configure_logging(settings, console=True)
        logger = configure_logging(settings, console=True)
        assert _named(logger) == ["habittimer:console", "habittimer:file"]

    def test_new_config_dir_replaces_file_handler(self, tmp_path: Path) -> None:
        configure_logging(Settings(config_dir=tmp_path / "one"))
        logger = configure_logging(Settings(config_dir=tmp_path / "two"))
        files = [h for h in logger.handlers if h.get_name() == "habittimer:file"]
        assert len(files) == 1
        assert "two" in files[0].baseFilename

    def test_reset_detaches_handlers(self, tmp_path: Path) -> None:
        configure_logging(Settings(config_dir=tmp_path), console=True)
        reset_logging()
        logger = logging.getLogger(ROOT_LOGGER)
        assert _named(logger) == []
        assert logger.propagate is True
