"""Tests for settings and agent option validation."""
from datetime import UTC, datetime

import pytest

from outlook_sync.core.config import AgentOptions, Settings, parse_since
from outlook_sync.core.exceptions import ConfigurationError

OAUTH = {"client_id": "cid", "client_secret": "secret", "tenant_id": "tid"}


class TestSettings:
    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("OUTLOOK_SYNC_GRAPH_BASE_URL", raising=False)
        s = Settings()
        assert s.graph_base_url == "https://graph.microsoft.com/v1.0"
        assert s.default_token_ttl == 3600
        assert s.token_url("t1") == "https://login.microsoftonline.com/t1/oauth2/v2.0/token"

    def test_env_aliases(self, monkeypatch):
        monkeypatch.setenv("OUTLOOK_SYNC_LOG_LEVEL", "debug")
        monkeypatch.setenv("OUTLOOK_SYNC_HTTP_TIMEOUT", "5")
        s = Settings()
        assert s.log_level == "DEBUG"
        assert s.http_timeout == 5.0

    def test_invalid_log_format_rejected(self, monkeypatch):
        monkeypatch.setenv("OUTLOOK_SYNC_LOG_FORMAT", "xml")
        with pytest.raises(ValueError):
            Settings()


class TestParseSince:
    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_empty_means_no_bound(self, value):
        assert parse_since(value) is None

    def test_iso_with_zulu(self):
        assert parse_since("2024-01-15T10:00:00Z") == datetime(2024, 1, 15, 10, 0, tzinfo=UTC)

    def test_unparsable_is_configuration_error(self):
        with pytest.raises(ConfigurationError) as exc:
            parse_since("yesterday")
        assert exc.value.details["field"] == "since"


class TestAgentOptions:
    def test_valid_receive_with_static_token(self):
        opts = AgentOptions.load({"mode": "receive", "auth_method": "token", "access_token": "t", "folder": "inbox"})
        assert opts.mark_as_read is False
        assert opts.content_type == "HTML"

    def test_mode_required(self):
        with pytest.raises(ConfigurationError) as exc:
            AgentOptions.load({"mode": "", "auth_method": "token", "access_token": "t"})
        assert "Mode is required" in exc.value.details["errors"]

    def test_oauth_requires_credentials(self):
        with pytest.raises(ConfigurationError) as exc:
            AgentOptions.load({"mode": "receive", "auth_method": "oauth"})
        errors = exc.value.details["errors"]
        assert "Client ID is required for OAuth" in errors
        assert "Client Secret is required for OAuth" in errors
        assert "Tenant ID is required for OAuth" in errors

    def test_token_auth_requires_access_token(self):
        with pytest.raises(ConfigurationError) as exc:
            AgentOptions.load({"mode": "receive", "auth_method": "token", "access_token": ""})
        assert exc.value.details["errors"] == ["Access token is required"]

    def test_send_mode_requirements(self):
        with pytest.raises(ConfigurationError) as exc:
            AgentOptions.load({"mode": "send", **OAUTH})
        errors = exc.value.details["errors"]
        assert "Recipient (to) is required for send mode" in errors
        assert "Subject is required for send mode" in errors
        assert "Body is required for send mode" in errors

    def test_folder_validated_in_receive_mode(self):
        with pytest.raises(ConfigurationError) as exc:
            AgentOptions.load({"mode": "receive", "folder": "archive", **OAUTH})
        assert "Folder must be 'inbox', 'sent', 'drafts', or 'deleted'" in exc.value.details["errors"]

    def test_content_type_validated(self):
        with pytest.raises(ConfigurationError) as exc:
            AgentOptions.load({"mode": "receive", "content_type": "markdown", **OAUTH})
        assert "Content type must be 'HTML' or 'Text'" in exc.value.details["errors"]

    def test_unparsable_since_rejected(self):
        with pytest.raises(ConfigurationError) as exc:
            AgentOptions.load({"mode": "receive", "since": "soon", **OAUTH})
        assert any("since" in e for e in exc.value.details["errors"])

    def test_secrets_hidden_from_repr(self):
        opts = AgentOptions.load({"mode": "receive", **OAUTH, "refresh_token": "R1"})
        assert "secret" not in repr(opts)
        assert "R1" not in repr(opts)
