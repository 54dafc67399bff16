"""Tests for the error taxonomy and APIError semantic properties."""
import pytest

from outlook_sync.core.exceptions import (
    APIError,
    ConfigurationError,
    DeliveryError,
    OAuthError,
    OutlookSyncException,
    TransportError,
)

URL = "https://graph.microsoft.com/v1.0/me/sendMail"


class TestErrorCategory:
    @pytest.mark.parametrize(
        "status,category",
        [
            (401, "auth_error"),
            (403, "forbidden"),
            (404, "not_found"),
            (410, "gone"),
            (429, "rate_limited"),
            (500, "server_error"),
            (503, "server_error"),
            (400, "client_error"),
        ],
    )
    def test_category(self, status, category):
        assert APIError(status, URL).error_category == category

    def test_retryable_only_for_429_and_5xx(self):
        assert APIError(429, URL).is_retryable is True
        assert APIError(502, URL).is_retryable is True
        assert APIError(401, URL).is_retryable is False


class TestRetryAfter:
    def test_header_lookup_is_case_insensitive(self):
        assert APIError(429, URL, headers={"retry-after": "30"}).retry_after_seconds == 30

    def test_http_date_value_is_ignored(self):
        e = APIError(429, URL, headers={"Retry-After": "Wed, 21 Oct 2026 07:28:00 GMT"})
        assert e.retry_after_seconds is None


class TestProviderMessage:
    def test_graph_nested_error(self):
        e = APIError(400, URL, body={"error": {"code": "ErrorInvalidRecipients", "message": "Bad recipient"}})
        assert e.provider_message == "Bad recipient"
        assert e.provider_error_code == "ErrorInvalidRecipients"
        assert "Bad recipient" in e.message

    def test_oauth_style_body(self):
        e = APIError(400, URL, body={"error": "invalid_request", "error_description": "Missing scope"})
        assert e.provider_message == "Missing scope"

    def test_string_body_is_truncated(self):
        e = APIError(500, URL, body="x" * 800)
        assert len(e.provider_message) == 500

    def test_empty_body(self):
        e = APIError(500, URL)
        assert e.provider_message == ""
        assert e.provider_error_code is None


class TestShapes:
    def test_all_errors_share_the_base(self):
        errors = [
            ConfigurationError("missing"),
            OAuthError("acquire", "rejected"),
            TransportError("GET request", URL, "ConnectError"),
            APIError(500, URL),
            DeliveryError(401, URL),
        ]
        assert all(isinstance(e, OutlookSyncException) for e in errors)

    def test_to_dict_reports_code_message_details(self):
        e = APIError(401, URL, status_message="Unauthorized", body={"error": {"message": "expired"}})
        report = e.to_dict()
        assert report["code"] == "API_ERROR"
        assert report["details"]["http_status"] == 401
        assert report["details"]["status_message"] == "Unauthorized"
        assert report["details"]["body"] == {"error": {"message": "expired"}}

    def test_delivery_error_keeps_api_error_fields(self):
        api = APIError(401, URL, status_message="Unauthorized", body="nope", headers={"Retry-After": "5"})
        delivery = DeliveryError.from_api_error(api)
        assert isinstance(delivery, APIError)
        assert delivery.error_code == "DELIVERY_ERROR"
        assert (delivery.http_status, delivery.status_message, delivery.body) == (401, "Unauthorized", "nope")
        assert delivery.retry_after_seconds == 5

    def test_oauth_error_names_the_step(self):
        e = OAuthError("refresh", "HTTP 400: invalid_grant", http_status=400, provider_error="invalid_grant")
        assert e.message.startswith("OAuth token refresh failed")
        assert e.details == {"step": "refresh", "http_status": 400, "provider_error": "invalid_grant"}
