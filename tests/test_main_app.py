"""
Tests for waitwise/main.py - app factory, error rendering, lifespan.
"""
import json
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from waitwise.errors import ConflictAlreadyServing, StoreWriteFailure
from waitwise.main import create_app, lifespan, validation_error_handler, waitwise_error_handler


def _make_mock_settings(**overrides):
    defaults = {
        "app_env": "test",
        "app_base_url": "http://localhost:8000",
        "allowed_origins": "https://book.example.com, https://admin.example.com",
        "log_level": "WARNING",
        "sentry_dsn": "",
        "twilio_account_sid": "AC123",
        "twilio_auth_token": "token",
    }
    defaults.update(overrides)
    settings = MagicMock()
    for k, v in defaults.items():
        setattr(settings, k, v)
    return settings


class TestCreateApp:
    def test_returns_fastapi_instance(self):
        with (
            patch("waitwise.main.get_settings", return_value=_make_mock_settings()),
            patch("waitwise.main.configure_structured_logging"),
        ):
            app = create_app()

        assert isinstance(app, FastAPI)
        paths = {getattr(route, "path", None) for route in app.routes}
        assert "/api/v1/slots" in paths
        assert "/api/v1/queue/{entry_id}/start" in paths
        assert "/health/ready" in paths


class TestErrorHandler:
    @pytest.mark.asyncio
    async def test_renders_error_envelope(self):
        request = MagicMock()
        request.url.path = "/api/v1/queue/x/start"

        response = await waitwise_error_handler(request, ConflictAlreadyServing("busy"))

        assert response.status_code == 409
        assert json.loads(response.body) == {"error": "busy"}
        assert "retry-after" not in response.headers

    @pytest.mark.asyncio
    async def test_retryable_sets_retry_after(self):
        request = MagicMock()
        request.url.path = "/api/v1/queue"

        response = await waitwise_error_handler(request, StoreWriteFailure("try again"))

        assert response.status_code == 503
        assert response.headers["retry-after"] == "1"


class TestValidationErrorHandler:
    @pytest.mark.asyncio
    async def test_names_the_bad_field(self):
        request = MagicMock()
        request.url.path = "/api/v1/slots"
        exc = RequestValidationError([
            {"type": "list_type", "loc": ("body", "service_ids"), "msg": "Input should be a valid list"},
        ])

        response = await validation_error_handler(request, exc)

        assert response.status_code == 400
        assert json.loads(response.body) == {
            "error": "Invalid service_ids: Input should be a valid list",
        }

    @pytest.mark.asyncio
    async def test_unparseable_body(self):
        request = MagicMock()
        request.url.path = "/api/v1/slots"
        exc = RequestValidationError([
            {"type": "json_invalid", "loc": ("body", 1), "msg": "JSON decode error"},
        ])

        response = await validation_error_handler(request, exc)

        assert response.status_code == 400
        assert json.loads(response.body) == {"error": "Invalid request: JSON decode error"}


class TestLifespan:
    @pytest.mark.asyncio
    async def test_sentry_initialized_when_configured(self):
        settings = _make_mock_settings(sentry_dsn="https://key@sentry.example.com/1")
        with (
            patch("waitwise.main.get_settings", return_value=settings),
            patch("sentry_sdk.init") as mock_init,
            patch("waitwise.utils.redis_client.close_redis", new_callable=AsyncMock) as mock_close,
        ):
            async with lifespan(FastAPI()):
                pass

        mock_init.assert_called_once()
        assert mock_init.call_args.kwargs["environment"] == "test"
        mock_close.assert_awaited_once()
