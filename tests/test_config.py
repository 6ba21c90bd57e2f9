"""
Tests for settings and saved API credentials.

Tests cover:
- Settings snapshots and overrides
- SettingsStore persistence
- Secret masking and key validation

Run with: pytest tests/test_config.py -v
"""
import json
from unittest.mock import AsyncMock, Mock

import anthropic
import httpx
import pytest

from screener.config import Settings, SettingsStore, validate_settings


class TestSettings:
    """Tests for Settings snapshots."""

    def test_overrides_ignore_empty_values(self, settings):
        """Should only apply non-empty overrides and leave the original intact."""
        updated = settings.with_overrides(greenhouse_api_key="new", anthropic_api_key="")

        assert updated.greenhouse_api_key == "new"
        assert updated.anthropic_api_key == "sk-ant-test-key"
        assert settings.greenhouse_api_key == "gh-key"

    def test_missing_credentials(self):
        """Should list missing runtime keys in upper case."""
        settings = Settings(_env_file=None, greenhouse_api_key="", greenhouse_user_id="1", anthropic_api_key="")

        assert settings.missing_credentials() == ["GREENHOUSE_API_KEY", "ANTHROPIC_API_KEY"]
        assert validate_settings(settings) is False


class TestSettingsStore:
    """Tests for SettingsStore."""

    def test_update_persists_and_swaps_snapshot(self, settings, tmp_path):
        """Should save new keys and return a fresh snapshot."""
        store = SettingsStore(settings, tmp_path / "settings.json")
        before = store.current

        after = store.update(anthropic_api_key="sk-ant-new", greenhouse_user_id=None)

        assert after.anthropic_api_key == "sk-ant-new"
        assert before.anthropic_api_key == "sk-ant-test-key"
        assert json.loads((tmp_path / "settings.json").read_text()) == {"anthropic_api_key": "sk-ant-new"}

    def test_saved_keys_layer_over_environment(self, settings, tmp_path):
        """Should apply saved keys when a new store starts."""
        path = tmp_path / "settings.json"
        path.write_text(json.dumps({"greenhouse_api_key": "saved", "port": 9999}))

        store = SettingsStore(settings, path)

        assert store.current.greenhouse_api_key == "saved"
        assert store.current.port == settings.port

    def test_corrupt_file_is_ignored(self, settings, tmp_path):
        """Should fall back to environment settings on unreadable JSON."""
        path = tmp_path / "settings.json"
        path.write_text("{not json")

        store = SettingsStore(settings, path)

        assert store.current.greenhouse_api_key == "gh-key"


class TestCredentials:
    """Tests for masking and key validation."""

    def test_mask_secret(self):
        """Should keep only the last four characters visible."""
        from screener.services.credentials import mask_secret, unmasked

        assert mask_secret("abcdefgh") == "••••efgh"
        assert mask_secret("abc") == "abc"
        assert mask_secret("") == ""
        assert unmasked("••••efgh") is None
        assert unmasked("plain") == "plain"

    @pytest.mark.asyncio
    async def test_greenhouse_key_statuses(self, http_factory):
        """Should explain 401 and 403 responses."""
        from screener.services.credentials import validate_greenhouse_key

        for status, expected in ((200, None), (401, "Invalid API key"), (403, "API key lacks required permissions")):
            http = http_factory(lambda request, status=status: httpx.Response(status, json=[]))
            result = await validate_greenhouse_key("key", "1", "https://harvest.test/v1", http_client=http)
            assert result.valid is (status == 200)
            assert result.error == expected

    @pytest.mark.asyncio
    async def test_greenhouse_key_required(self):
        from screener.services.credentials import validate_greenhouse_key

        result = await validate_greenhouse_key("", "1", "https://harvest.test/v1")
        assert result.error == "No API key provided"

    @pytest.mark.asyncio
    async def test_anthropic_key(self):
        """Should report an authentication failure as an invalid key."""
        from screener.services.credentials import validate_anthropic_key

        request = httpx.Request("POST", "https://api.anthropic.test/v1/messages")
        auth_error = anthropic.AuthenticationError(
            "invalid x-api-key", response=httpx.Response(401, request=request), body=None
        )
        client = Mock()
        client.messages.create = AsyncMock(side_effect=auth_error)

        result = await validate_anthropic_key("sk-ant-bad", "claude-3-haiku-20240307", client=client)

        assert result.valid is False
        assert result.error == "Invalid API key"

        client.messages.create = AsyncMock(return_value=Mock())
        result = await validate_anthropic_key("sk-ant-good", "claude-3-haiku-20240307", client=client)
        assert result.valid is True
