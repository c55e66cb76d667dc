"""Tests for the shared logging configuration and its event processors."""

from decimal import Decimal

import pytest

from common.core.request_context import RequestContext
from common.logging.std_logging_config import _attach_request_context, _clean_values, build_logging_config, use_json_logs
from storefront_db.models.order import OrderStatus


class TestCleanValues:
    def test_redacts_secrets_at_any_depth(self) -> None:
        event = {"event": "login", "api_key": "sk_live", "payload": {"password": "hunter2", "user": "admin"}}

        cleaned = _clean_values(None, "info", event)

        assert cleaned["api_key"] == "***"
        assert cleaned["payload"] == {"password": "***", "user": "admin"}

    def test_flattens_values_and_drops_none(self) -> None:
        event = {"event": "priced", "total": Decimal("4.00"), "status": OrderStatus.FULFILLED, "address": None}

        cleaned = _clean_values(None, "info", event)

        assert cleaned == {"event": "priced", "total": "4.00", "status": "fulfilled"}

    def test_request_context_is_attached_inside_a_request(self) -> None:
        assert "requestContext" not in _attach_request_context(None, "info", {"event": "outside"})

        with RequestContext.context() as context:
            event = _attach_request_context(None, "info", {"event": "inside"})

        assert event["requestContext"] is context


class TestBuildLoggingConfig:
    @pytest.mark.parametrize(("app_env", "flag", "expected"), [("local", None, False), ("local", "true", True), ("production", None, True)])
    def test_json_logs_follow_environment(self, monkeypatch: pytest.MonkeyPatch, app_env: str, flag: str | None, expected: bool) -> None:
        monkeypatch.setenv("APP_ENV", app_env)
        if flag is None:
            monkeypatch.delenv("LOG_JSON_FORMAT", raising=False)
        else:
            monkeypatch.setenv("LOG_JSON_FORMAT", flag)

        assert use_json_logs() is expected

    def test_console_config_is_synchronous(self) -> None:
        config = build_logging_config(json_logs=False, root_level="debug")

        assert config["root"]["level"] == "DEBUG"
        assert config["handlers"]["default"]["formatter"] == "console"

    def test_json_config_writes_through_a_queue(self) -> None:
        config = build_logging_config(json_logs=True)

        assert config["handlers"]["stream"]["formatter"] == "json"
        assert config["handlers"]["default"]["handlers"] == ["stream"]
