"""
Unit tests for shared configuration, errors, metrics and logging.
"""

import httpx
import pytest
from prometheus_client import CollectorRegistry

from portal_client.app.endpoints import Methods, create_endpoint
from shared.config import PortalConfig, get_config
from shared.errors import (
    AuthenticationError,
    ContractValidationError,
    FieldError,
    FormValidationError,
    HttpError,
    MutationError,
    normalize_error,
)
from shared.logging import (
    add_correlation_context,
    clear_context,
    configure_logging,
    get_logger,
    set_request_id,
    set_signature,
)
from shared.metrics import MetricsCollector


class TestPortalConfig:
    """Test cases for PortalConfig."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("PORTAL_APP_NAME", raising=False)
        config = PortalConfig(_env_file=None)

        assert config.default_stale_time == 60_000
        assert config.default_cache_time == 300_000
        assert config.default_refetch_on_focus is False
        assert config.deduplicate_requests is True
        assert config.refresh_delay_ms == 50
        assert config.cache_max_age_ms == 3_600_000
        assert config.storage_backend == "local"
        assert config.path_prefix == "api"

    def test_environment_prefix(self, monkeypatch):
        monkeypatch.setenv("PORTAL_APP_NAME", "courier-app")
        monkeypatch.setenv("PORTAL_DEFAULT_STALE_TIME", "1000")

        config = PortalConfig(_env_file=None)

        assert config.app_name == "courier-app"
        assert config.default_stale_time == 1000
        assert config.cache_key_prefix == "courier-app-cache-"
        assert config.token_storage_key == "courier-app-auth-token"

    def test_overrides(self):
        config = get_config(app_name="x", auth_token_key="session")

        assert config.app_name == "x"
        assert config.token_storage_key == "session"

    def test_path_prefix_setting(self):
        assert "path_prefix" in PortalConfig.model_fields
        assert get_config(path_prefix="rest").path_prefix == "rest"

    def test_endpoints_use_configured_prefix(self, monkeypatch):
        monkeypatch.setenv("PORTAL_PATH_PREFIX", "rest")

        configured = create_endpoint(method=Methods.GET, path=("v1", "ping"))[Methods.GET]
        explicit = create_endpoint(method=Methods.GET, path=("v1", "ping"), path_prefix="api")[Methods.GET]

        assert configured.path == ("rest", "v1", "ping")
        assert explicit.path == ("api", "v1", "ping")


class TestErrors:
    """Test cases for the error taxonomy."""

    def test_to_response(self):
        error = HttpError("Bad request", status_code=400)

        response = error.to_response("Mutation api/v1/earnings")

        assert response.code == "HTTP_ERROR"
        assert response.status_code == 400
        assert response.context == "Mutation api/v1/earnings"

    def test_mutation_error_wraps_cause(self):
        cause = AuthenticationError()

        error = MutationError("DELETE", "api/v1/earnings/e1", cause)

        assert error.code == "AUTH_ERROR"
        assert error.message == "DELETE /api/v1/earnings/e1: Authentication required but no token available"
        assert error.cause is cause

    def test_validation_error_details(self):
        error = ContractValidationError("Request validation error: amount: too small", [
            FieldError(path="amount", message="too small"),
        ])

        assert error.details == {"errors": [{"path": "amount", "message": "too small"}]}

    def test_form_validation_error(self):
        error = FormValidationError([
            FieldError(path="amount", message="required"),
            FieldError(path="amount", message="must be positive"),
            FieldError(path="date", message="required"),
        ])

        assert error.field_errors() == {"amount": "required", "date": "required"}
        assert str(error) == "amount: required, amount: must be positive, date: required"

    def test_normalize_error(self):
        existing = HttpError("x")
        assert normalize_error(existing) is existing

        transport = normalize_error(httpx.ReadTimeout("timed out"))
        assert transport.code == "HTTP_ERROR"
        assert transport.message == "API request failed: timed out"

        unknown = normalize_error(KeyError("boom"))
        assert unknown.code == "INTERNAL_ERROR"
        assert unknown.details == {"exception": "KeyError"}


class TestMetricsCollector:
    """Test cases for MetricsCollector."""

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("portal-test", CollectorRegistry())

    def test_record_request(self, metrics):
        metrics.record_request("api/v1/earnings", "GET", "success", 0.05)

        assert metrics.sample(
            "portal_requests_total", endpoint="api/v1/earnings", method="GET", outcome="success"
        ) == 1.0
        assert metrics.sample(
            "portal_request_duration_seconds_count", endpoint="api/v1/earnings", method="GET"
        ) == 1.0

    def test_counters_and_gauges(self, metrics):
        metrics.increment_counter("portal_background_refreshes_total", outcome="error")
        metrics.set_gauge("portal_in_flight_requests", 3)
        metrics.increment_counter("not_a_metric")

        assert metrics.sample("portal_background_refreshes_total", outcome="error") == 1.0
        assert metrics.sample("portal_in_flight_requests") == 3.0

    def test_separate_registries(self):
        first = MetricsCollector("a")
        second = MetricsCollector("b")

        first.record_cache_read("memory", True)

        assert first.sample("portal_cache_reads_total", tier="memory", result="hit") == 1.0
        assert second.sample("portal_cache_reads_total", tier="memory", result="hit") == 0.0

    def test_get_metric(self, metrics):
        assert metrics.get_metric("portal_in_flight_requests") is not None
        assert metrics.get_metric("missing") is None


class TestLogging:
    """Test cases for structured logging helpers."""

    def test_correlation_context(self):
        request_id = set_request_id()
        set_signature("abc123")

        event = add_correlation_context(None, "info", {"event": "x"})

        assert event["request_id"] == request_id
        assert event["signature"] == "abc123"

        clear_context()
        assert add_correlation_context(None, "info", {"event": "x"}) == {"event": "x"}

    def test_configure_logging(self):
        configure_logging("portal-test", "debug")

        logger = get_logger("portal.test")
        logger.info("Logging configured", component="tests")
