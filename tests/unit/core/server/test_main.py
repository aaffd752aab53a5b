"""Tests for the server entry point's bind guard and startup summary."""

from __future__ import annotations

import logging

import pytest

from carecheck.core.config.settings import Settings
from carecheck.core.server import main


@pytest.mark.parametrize("host", ["localhost", "LOCALHOST", "127.0.0.1", "127.8.0.1", "::1", "[::1]"])
def test_loopback_hosts(host):
    assert main.is_loopback_host(host)


@pytest.mark.parametrize("host", ["0.0.0.0", "192.168.1.20", "::", "carecheck.example.org"])
def test_non_loopback_hosts(host):
    assert not main.is_loopback_host(host)


def test_check_bind_allows_loopback():
    main.check_bind(Settings(carecheck_host="127.0.0.1"))


def test_check_bind_refuses_public_host():
    with pytest.raises(RuntimeError, match="CARECHECK_ALLOW_INSECURE_BIND"):
        main.check_bind(Settings(carecheck_host="0.0.0.0"))


def test_check_bind_override_warns(caplog):
    settings = Settings(carecheck_host="0.0.0.0", carecheck_allow_insecure_bind=True)
    with caplog.at_level(logging.WARNING, logger=main.__name__):
        main.check_bind(settings)
    assert "without authentication" in caplog.text


def test_run_refuses_public_host_before_building_app(monkeypatch):
    monkeypatch.setattr(main, "get_settings", lambda: Settings(carecheck_host="0.0.0.0"))

    def _fail(**kwargs):
        raise AssertionError("app built despite refused bind")

    monkeypatch.setattr(main, "create_app", _fail)
    with pytest.raises(RuntimeError, match="non-loopback"):
        main.run()


def test_startup_summary_reports_engine_settings(caplog):
    settings = Settings(
        llm_provider="mock", privacy_mode="strict", encryption_key="", check_interval_minutes=5
    )
    with caplog.at_level(logging.INFO, logger=main.__name__):
        main.log_startup_summary(settings)
    assert "llm=mock" in caplog.text
    assert "privacy=strict" in caplog.text
    assert "unencrypted" in caplog.text
    assert "tick every 5 min" in caplog.text
    assert "PRIVACY_MODE=standard" not in caplog.text


def test_startup_summary_warns_when_standard_privacy_uses_remote_llm(caplog):
    settings = Settings(llm_provider="openai", privacy_mode="standard")
    with caplog.at_level(logging.WARNING, logger=main.__name__):
        main.log_startup_summary(settings)
    assert "medication names and event titles are sent to openai" in caplog.text
