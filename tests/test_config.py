from __future__ import annotations

import pytest

from bank_matching.config import EngineSettings, load_settings


def test_defaults_without_environment():
    assert load_settings() == EngineSettings(
        batch_size=100, auto_confidence=0.95, manual_confidence=1.0, booking_text_fallback=False
    )


def test_values_from_environment(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("BANK_MATCHING_BATCH_SIZE", "25")
    monkeypatch.setenv("BANK_MATCHING_AUTO_CONFIDENCE", "0.8")
    monkeypatch.setenv("BANK_MATCHING_MANUAL_CONFIDENCE", " 0.99 ")
    monkeypatch.setenv("BANK_MATCHING_BOOKING_TEXT_FALLBACK", "yes")
    s = load_settings()
    assert s.batch_size == 25
    assert s.auto_confidence == pytest.approx(0.8)
    assert s.manual_confidence == pytest.approx(0.99)
    assert s.booking_text_fallback is True


@pytest.mark.parametrize(
    ("name", "raw"),
    [
        ("BANK_MATCHING_BATCH_SIZE", "0"),
        ("BANK_MATCHING_BATCH_SIZE", "lots"),
        ("BANK_MATCHING_AUTO_CONFIDENCE", "1.5"),
        ("BANK_MATCHING_AUTO_CONFIDENCE", "high"),
        ("BANK_MATCHING_BOOKING_TEXT_FALLBACK", "maybe"),
        ("BANK_MATCHING_BATCH_SIZE", "   "),
    ],
)
def test_invalid_values_fall_back_to_defaults(monkeypatch: pytest.MonkeyPatch, name, raw):
    monkeypatch.setenv(name, raw)
    assert load_settings() == EngineSettings()


def test_log_level_is_normalized(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("BANK_MATCHING_LOG_LEVEL", " warning ")
    assert load_settings().log_level == "WARNING"


def test_unknown_log_level_falls_back(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("BANK_MATCHING_LOG_LEVEL", "chatty")
    assert load_settings().log_level == "INFO"
