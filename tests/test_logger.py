"""Tests for logging setup."""
import logging

import pytest
from rich.logging import RichHandler

from pvelxc.core.logger import ROOT_LOGGER, get_logger, reset_file_logging, setup_file_logging


@pytest.fixture(autouse=True)
def console_only():
    reset_file_logging()
    yield
    reset_file_logging()


def test_module_loggers_share_one_console_handler():
    get_logger("pvelxc.core.retry")
    get_logger("pvelxc.services.proxmox.api")

    handlers = logging.getLogger(ROOT_LOGGER).handlers
    assert sum(1 for h in handlers if isinstance(h, RichHandler)) == 1


def test_outside_names_are_nested():
    assert get_logger("__main__").name == "pvelxc.__main__"
    assert get_logger("pvelxc.cli").name == "pvelxc.cli"


def test_file_logging_records_debug_when_verbose(tmp_path):
    target = tmp_path / "logs" / "pvelxc.log"

    assert setup_file_logging(str(target), verbose=True) == target
    get_logger("pvelxc.core.retry").debug("release: not confirmed yet (poll 1)")

    text = target.read_text()
    assert "pvelxc logging to" in text
    assert "| pvelxc.core.retry | DEBUG | release: not confirmed yet (poll 1)" in text


def test_file_logging_is_set_up_once(tmp_path):
    first = setup_file_logging(str(tmp_path / "a.log"))
    second = setup_file_logging(str(tmp_path / "b.log"))

    assert first == second == tmp_path / "a.log"
    assert not (tmp_path / "b.log").exists()


def test_log_file_from_environment(tmp_path, monkeypatch):
    monkeypatch.setenv("PVELXC_LOG_FILE", str(tmp_path / "env.log"))
    assert setup_file_logging() == tmp_path / "env.log"


def test_reset_restores_info_level(tmp_path):
    setup_file_logging(str(tmp_path / "x.log"), verbose=True)
    reset_file_logging()

    root = logging.getLogger(ROOT_LOGGER)
    assert root.level == logging.INFO
    assert not any(isinstance(h, logging.FileHandler) for h in root.handlers)
