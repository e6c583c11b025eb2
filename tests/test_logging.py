from __future__ import annotations

import io
import logging
from datetime import date

from bank_matching.conditions import evaluate
from bank_matching.config import EngineSettings
from bank_matching.logging_setup import configure_logging, get_logger
from bank_matching.models import BankTransaction, Condition


def _console_handlers() -> list[logging.Handler]:
    return [
        h
        for h in logging.getLogger("bank_matching").handlers
        if not isinstance(h, logging.NullHandler)
    ]


def test_level_comes_from_engine_settings():
    stream = io.StringIO()
    logger = configure_logging(EngineSettings(log_level="WARNING"), stream=stream)

    get_logger("bank_matching.bulk").info("hidden")
    get_logger("bank_matching.bulk").warning("shown")

    assert logger.level == logging.WARNING
    assert "hidden" not in stream.getvalue()
    assert "bank_matching.bulk WARNING shown" in stream.getvalue()


def test_level_is_read_from_environment(monkeypatch):
    monkeypatch.setenv("BANK_MATCHING_LOG_LEVEL", "debug")
    logger = configure_logging(stream=io.StringIO())
    assert logger.level == logging.DEBUG


def test_reconfiguring_keeps_a_single_handler():
    first = io.StringIO()
    configure_logging(EngineSettings(log_level="ERROR"), stream=first)
    configure_logging(EngineSettings(log_level="DEBUG"))

    (handler,) = _console_handlers()
    assert handler.level == logging.DEBUG
    get_logger("bank_matching.api").debug("still here")
    assert "still here" in first.getvalue()


def test_type_mismatch_is_logged_at_debug():
    stream = io.StringIO()
    configure_logging(EngineSettings(log_level="DEBUG"), stream=stream)
    tx = BankTransaction(id="t", booking_date=date(2025, 1, 3), amount_cents=100)

    cond = Condition(field="amount_cents", operator="greater_than", value="viel")
    assert not evaluate(cond, tx)
    assert "treated as non-match" in stream.getvalue()


def test_records_do_not_reach_the_root_logger():
    logger = configure_logging(EngineSettings(), stream=io.StringIO())
    assert logger.propagate is False
