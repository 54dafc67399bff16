"""Custom exceptions for Outlook Sync.

Taxonomy:
- ConfigurationError: missing/invalid required field, raised before any network call
- OAuthError: the identity provider rejected a grant
- TransportError: network-level failure, no HTTP response
- APIError: non-2xx HTTP response from Microsoft Graph
- DeliveryError: APIError raised by a send operation
"""

from typing import Any


class OutlookSyncException(Exception):
    """Base exception class for Outlook Sync."""

    def __init__(
        self,
        message: str,
        error_code: str,
        status_code: int = 500,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.error_code, "message": self.message, "details": dict(self.details)}


class ConfigurationError(OutlookSyncException):
    """Raised when a required field is missing or invalid."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(
            message=message,
            error_code="CONFIGURATION_ERROR",
            status_code=400,
            details=details,
        )


class OAuthError(OutlookSyncException):
    """Raised when the token endpoint rejects an acquire or refresh grant."""

    def __init__(
        self,
        step: str,
        reason: str,
        *,
        http_status: int | None = None,
        provider_error: str | None = None,
        provider_description: str | None = None,
    ):
        self.step = step
        self.http_status = http_status
        self.provider_error = provider_error
        self.provider_description = provider_description
        details: dict[str, Any] = {"step": step}
        if http_status is not None:
            details["http_status"] = http_status
        if provider_error:
            details["provider_error"] = provider_error
        if provider_description:
            details["provider_description"] = provider_description
        super().__init__(
            message=f"OAuth token {step} failed: {reason}",
            error_code="OAUTH_ERROR",
            status_code=401,
            details=details,
        )


class TransportError(OutlookSyncException):
    """Raised when a request fails before any HTTP response was received."""

    def __init__(self, step: str, url: str, reason: str):
        self.step = step
        self.url = url
        super().__init__(
            message=f"Transport failure during {step} calling {url}: {reason}",
            error_code="TRANSPORT_ERROR",
            status_code=503,
            details={"step": step, "url": url, "reason": reason},
        )


class APIError(OutlookSyncException):
    """Raised when Microsoft Graph returns a non-2xx status.

    Attributes:
        http_status: int HTTP status
        status_message: reason phrase returned with the status
        url: str request URL
        body: parsed body (dict/list/str), never discarded
        headers: dict of response headers
    """

    error_code_value = "API_ERROR"

    def __init__(
        self,
        http_status: int,
        url: str,
        *,
        status_message: str = "",
        body: object = None,
        headers: dict | None = None,
    ):
        self.http_status = int(http_status)
        self.status_message = status_message or ""
        self.url = str(url)
        self.body = body
        self.headers = dict(headers or {})
        msg = f"HTTP {self.http_status} {self.status_message}".rstrip() + f" calling {self.url}"
        if self.provider_message:
            msg += f": {self.provider_message}"
        details: dict[str, Any] = {
            "http_status": self.http_status,
            "status_message": self.status_message,
            "url": self.url,
            "body": self.body,
            "error_category": self.error_category,
            "is_retryable": self.is_retryable,
        }
        if self.provider_error_code:
            details["provider_error_code"] = self.provider_error_code
        if self.retry_after_seconds is not None:
            details["retry_after_seconds"] = self.retry_after_seconds
        super().__init__(
            message=msg,
            error_code=self.error_code_value,
            status_code=self.http_status,
            details=details,
        )

    @property
    def error_category(self) -> str:
        """Semantic error category based on HTTP status code."""
        if self.http_status == 401:
            return "auth_error"
        elif self.http_status == 403:
            return "forbidden"
        elif self.http_status == 404:
            return "not_found"
        elif self.http_status == 410:
            return "gone"
        elif self.http_status == 429:
            return "rate_limited"
        elif self.http_status >= 500:
            return "server_error"
        else:
            return "client_error"

    @property
    def is_retryable(self) -> bool:
        """True for errors that may succeed on a later invocation (429, 5xx)."""
        return self.http_status == 429 or self.http_status >= 500

    @property
    def retry_after_seconds(self) -> int | None:
        """Parse Retry-After header if present. Returns seconds or None."""
        retry_after = None
        for key, value in self.headers.items():
            if key.lower() == "retry-after":
                retry_after = value
                break
        if not retry_after:
            return None
        try:
            return int(retry_after)
        except (ValueError, TypeError):
            return None

    @property
    def provider_message(self) -> str:
        """Best-effort extraction of the error message from the response body.

        Handles {"error": {"message": ...}} (Graph), {"error_description": ...}
        (OAuth), {"message": ...} and plain string bodies.
        """
        if self.body is None:
            return ""
        if isinstance(self.body, str):
            return self.body[:500]
        if isinstance(self.body, dict):
            error_obj = self.body.get("error")
            if isinstance(error_obj, dict):
                msg = error_obj.get("message")
                if msg:
                    return str(msg)
            for key in ("error_description", "message", "error", "detail"):
                val = self.body.get(key)
                if val and isinstance(val, str):
                    return val
        return str(self.body)[:500]

    @property
    def provider_error_code(self) -> str | None:
        """Provider-specific error code, e.g. {"error": {"code": "InvalidAuthenticationToken"}}."""
        if not isinstance(self.body, dict):
            return None
        error_obj = self.body.get("error")
        if isinstance(error_obj, dict):
            code = error_obj.get("code")
            if code:
                return str(code)
        code = self.body.get("code")
        if code:
            return str(code)
        return None


class DeliveryError(APIError):
    """Raised when a sendMail request is not accepted."""

    error_code_value = "DELIVERY_ERROR"

    @classmethod
    def from_api_error(cls, e: APIError) -> "DeliveryError":
        return cls(e.http_status, e.url, status_message=e.status_message, body=e.body, headers=e.headers)
