from __future__ import annotations

import io
import logging

import pytest

from transaction_rules.logging_setup import (
    LOG_LEVEL_ENV,
    PACKAGE_LOGGER,
    configure_logging,
    get_logger,
    reset_logging,
    resolve_level,
)


@pytest.fixture(autouse=True)
def _restore_package_logger(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv(LOG_LEVEL_ENV, raising=False)
    yield
    reset_logging()


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (logging.DEBUG, logging.DEBUG),
        ("warning", logging.WARNING),
        (" Error ", logging.ERROR),
        ("15", 15),
        ("chatty", logging.INFO),
        (None, logging.INFO),
    ],
)
def test_resolve_level(value, expected):
    assert resolve_level(value) == expected


def test_resolve_level_reads_the_environment(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv(LOG_LEVEL_ENV, "DEBUG")
    assert resolve_level(None) == logging.DEBUG
    assert resolve_level("ERROR") == logging.ERROR


def test_configured_records_reach_the_stream():
    out = io.StringIO()
    configure_logging("WARNING", fmt="%(name)s|%(levelname)s|%(message)s", stream=out)

    log = get_logger("engine")
    log.info("rule:skipped id=%s", "r1")
    log.warning("rule:malformed id=%s", "r2")

    assert out.getvalue() == "transaction_rules.engine|WARNING|rule:malformed id=r2\n"
    assert logging.getLogger(PACKAGE_LOGGER).propagate is False


def test_reconfiguring_replaces_the_handler():
    first, second = io.StringIO(), io.StringIO()
    configure_logging("ERROR", stream=first)
    handler = configure_logging("DEBUG", stream=second)

    get_logger("evaluator").debug("rule:evaluated id=%s", "r1")

    pkg = logging.getLogger(PACKAGE_LOGGER)
    owned = [h for h in pkg.handlers if not isinstance(h, logging.NullHandler)]
    assert owned == [handler]
    assert first.getvalue() == ""
    assert "rule:evaluated id=r1" in second.getvalue()


def test_reset_hands_records_back_to_the_root_logger(caplog: pytest.LogCaptureFixture):
    out = io.StringIO()
    configure_logging(stream=out)
    reset_logging()

    with caplog.at_level(logging.WARNING):
        get_logger("cache").warning("cache:evicted size=%d", 3)

    assert out.getvalue() == ""
    assert "cache:evicted size=3" in caplog.text


def test_unconfigured_package_stays_quiet():
    pkg = logging.getLogger(PACKAGE_LOGGER)
    assert any(isinstance(h, logging.NullHandler) for h in pkg.handlers)
    assert pkg.propagate is True


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("engine", "transaction_rules.engine"),
        ("transaction_rules.engine", "transaction_rules.engine"),
        ("transaction_rules", "transaction_rules"),
        ("transaction_rules_extra", "transaction_rules.transaction_rules_extra"),
    ],
)
def test_get_logger_names_stay_under_the_package(name, expected):
    assert get_logger(name).name == expected
