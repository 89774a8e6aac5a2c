"""Tests for the per-service logging configuration."""

from trendpulse.core import logging as trendpulse_logging
from trendpulse.core.logging import LIBRARY_LOG_LEVELS, get_logging_config


def test_console_lines_carry_service_name(monkeypatch):
    monkeypatch.setattr(trendpulse_logging.settings, "environment", "development")

    config = get_logging_config("trendpulse-heat")

    assert config["handlers"]["console"]["formatter"] == "console"
    assert "[trendpulse-heat]" in config["formatters"]["console"]["format"]


def test_production_uses_json_with_service_field(monkeypatch):
    monkeypatch.setattr(trendpulse_logging.settings, "environment", "production")

    config = get_logging_config("trendpulse-embed")

    formatter = config["formatters"]["json"]
    assert config["handlers"]["console"]["formatter"] == "json"
    assert formatter["()"] == "pythonjsonlogger.jsonlogger.JsonFormatter"
    assert formatter["static_fields"] == {"service": "trendpulse-embed"}


def test_level_override_only_raises_trendpulse_loggers(monkeypatch):
    monkeypatch.setattr(trendpulse_logging.settings, "log_level", "INFO")

    config = get_logging_config("trendpulse-trends", level="debug")

    assert config["loggers"]["trendpulse"]["level"] == "DEBUG"
    assert config["handlers"]["console"]["level"] == "DEBUG"
    for name, level in LIBRARY_LOG_LEVELS.items():
        assert config["loggers"][name]["level"] == level


def test_default_service_name():
    config = get_logging_config()
    assert config["formatters"]["json"]["static_fields"] == {"service": "trendpulse"}
