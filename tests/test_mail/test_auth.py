"""Tests for AuthCache and DeviceCodeCredential — msal's app object is mocked."""

import json
import os
from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from agent_console.mail.auth import (
    GRAPH_SCOPES,
    AuthCache,
    AuthenticationError,
    AuthRecord,
    DeviceCodeCredential,
)

_ACCOUNT = {
    "home_account_id": "uid.tid",
    "username": "me@outlook.com",
    "environment": "login.microsoftonline.com",
}


def make_record(**overrides: str) -> AuthRecord:
    fields = dict(
        home_account_id="uid.tid",
        username="me@outlook.com",
        environment="login.microsoftonline.com",
        tenant_id="consumers",
        client_id="app-id",
    )
    fields.update(overrides)
    return AuthRecord(**fields)


@pytest.fixture
def msal_app() -> Iterator[MagicMock]:
    app = MagicMock()
    app.get_accounts.return_value = []
    app.acquire_token_silent.return_value = None
    app.initiate_device_flow.return_value = {"user_code": "ABCD", "message": "Go to https://microsoft.com/devicelogin"}
    app.acquire_token_by_device_flow.return_value = {"access_token": "fresh-token"}
    with patch("agent_console.mail.auth.msal.PublicClientApplication", return_value=app) as ctor:
        app.ctor = ctor
        yield app


# ── AuthRecord / AuthCache ─────────────────────────────────────────────────────


class TestAuthRecord:
    def test_json_round_trip(self) -> None:
        record = make_record()
        assert AuthRecord.from_json(record.to_json()) == record

    def test_missing_field_rejected(self) -> None:
        with pytest.raises(ValueError, match="missing field"):
            AuthRecord.from_json(json.dumps({"username": "x"}))

    def test_record_holds_no_token_material(self) -> None:
        text = make_record().to_json()
        assert "token" not in text.lower()


class TestAuthCache:
    def test_missing_file_loads_none(self, tmp_path: Path) -> None:
        assert AuthCache(tmp_path / "record.json").load() is None

    def test_save_creates_parents_and_loads_back(self, tmp_path: Path) -> None:
        cache = AuthCache(tmp_path / "a" / "b" / "record.json")
        cache.save(make_record())
        assert cache.load() == make_record()

    def test_save_replaces_previous_record(self, tmp_path: Path) -> None:
        cache = AuthCache(tmp_path / "record.json")
        cache.save(make_record(username="old@outlook.com"))
        cache.save(make_record(username="new@outlook.com"))
        loaded = cache.load()
        assert loaded is not None
        assert loaded.username == "new@outlook.com"

    @pytest.mark.parametrize("content", ["not json", "[1, 2]", '{"username": "x"}', ""])
    def test_corrupt_file_is_treated_as_absent(self, tmp_path: Path, content: str) -> None:
        path = tmp_path / "record.json"
        path.write_text(content)
        assert AuthCache(path).load() is None

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions only")
    def test_saved_file_is_owner_only(self, tmp_path: Path) -> None:
        cache = AuthCache(tmp_path / "record.json")
        cache.save(make_record())
        assert (cache.path.stat().st_mode & 0o777) == 0o600

    def test_clear(self, tmp_path: Path) -> None:
        cache = AuthCache(tmp_path / "record.json")
        assert cache.clear() is False
        cache.save(make_record())
        assert cache.clear() is True
        assert cache.load() is None


# ── DeviceCodeCredential ───────────────────────────────────────────────────────


class TestDeviceCodeCredential:
    def test_construction_does_not_contact_authority(self, msal_app: MagicMock) -> None:
        DeviceCodeCredential("app-id", "consumers")
        msal_app.ctor.assert_not_called()

    def test_uses_tenant_authority(self, msal_app: MagicMock) -> None:
        DeviceCodeCredential("app-id", "consumers", prompt=lambda m: None).get_token()
        args, kwargs = msal_app.ctor.call_args
        assert args[0] == "app-id"
        assert kwargs["authority"] == "https://login.microsoftonline.com/consumers"

    def test_device_flow_when_no_cached_account(self, msal_app: MagicMock) -> None:
        prompts: list[str] = []
        credential = DeviceCodeCredential("app-id", prompt=prompts.append)

        assert credential.get_token() == "fresh-token"
        assert prompts == ["Go to https://microsoft.com/devicelogin"]
        msal_app.initiate_device_flow.assert_called_once_with(scopes=list(GRAPH_SCOPES))

    def test_silent_acquisition_for_recorded_account(self, msal_app: MagicMock) -> None:
        msal_app.get_accounts.return_value = [_ACCOUNT]
        msal_app.acquire_token_silent.return_value = {"access_token": "cached-token"}
        credential = DeviceCodeCredential("app-id", record=make_record(), prompt=lambda m: None)

        assert credential.get_token() == "cached-token"
        msal_app.acquire_token_silent.assert_called_once_with(list(GRAPH_SCOPES), account=_ACCOUNT)
        msal_app.initiate_device_flow.assert_not_called()

    def test_silent_failure_falls_back_to_device_flow(self, msal_app: MagicMock) -> None:
        msal_app.get_accounts.return_value = [_ACCOUNT]
        msal_app.acquire_token_silent.return_value = None
        credential = DeviceCodeCredential("app-id", record=make_record(), prompt=lambda m: None)
        assert credential.get_token() == "fresh-token"

    def test_declined_login_raises(self, msal_app: MagicMock) -> None:
        msal_app.acquire_token_by_device_flow.return_value = {
            "error": "authorization_declined",
            "error_description": "User declined",
        }
        credential = DeviceCodeCredential("app-id", prompt=lambda m: None)
        with pytest.raises(AuthenticationError, match="User declined"):
            credential.get_token()

    def test_flow_that_cannot_start_raises(self, msal_app: MagicMock) -> None:
        msal_app.initiate_device_flow.return_value = {"error": "invalid_client", "error_description": "Bad app"}
        credential = DeviceCodeCredential("app-id", prompt=lambda m: None)
        with pytest.raises(AuthenticationError, match="Bad app"):
            credential.get_token()

    def test_unreachable_authority_raises_authentication_error(self, msal_app: MagicMock) -> None:
        msal_app.ctor.side_effect = ValueError("Unable to get authority configuration")
        credential = DeviceCodeCredential("app-id", prompt=lambda m: None)
        with pytest.raises(AuthenticationError, match="Unable to get authority configuration"):
            credential.get_token()

    def test_network_failure_during_device_flow(self, msal_app: MagicMock) -> None:
        msal_app.initiate_device_flow.side_effect = requests.exceptions.ConnectionError("offline")
        credential = DeviceCodeCredential("app-id", prompt=lambda m: None)
        with pytest.raises(AuthenticationError, match="offline"):
            credential.get_token()

    def test_network_failure_during_silent_acquisition(self, msal_app: MagicMock) -> None:
        msal_app.get_accounts.return_value = [_ACCOUNT]
        msal_app.acquire_token_silent.side_effect = requests.exceptions.ConnectionError("offline")
        credential = DeviceCodeCredential("app-id", record=make_record(), prompt=lambda m: None)
        with pytest.raises(AuthenticationError):
            credential.get_token()

    def test_authenticate_surfaces_network_failure(self, msal_app: MagicMock) -> None:
        msal_app.initiate_device_flow.side_effect = requests.exceptions.Timeout("slow")
        credential = DeviceCodeCredential("app-id", prompt=lambda m: None)
        with pytest.raises(AuthenticationError):
            credential.authenticate()
        assert credential.record is None

    def test_authenticate_returns_record_for_signed_in_account(self, msal_app: MagicMock) -> None:
        accounts: list[dict[str, str]] = []
        msal_app.get_accounts.side_effect = lambda: list(accounts)

        def sign_in(flow: dict[str, str]) -> dict[str, str]:
            accounts.append(_ACCOUNT)
            return {"access_token": "fresh-token"}

        msal_app.acquire_token_by_device_flow.side_effect = sign_in
        credential = DeviceCodeCredential("app-id", "consumers", prompt=lambda m: None)

        record = credential.authenticate()

        assert record == make_record()
        assert credential.record == record

    def test_token_cache_written_beside_record(self, msal_app: MagicMock, tmp_path: Path) -> None:
        cache_path = tmp_path / "tokens.bin"
        credential = DeviceCodeCredential("app-id", token_cache_path=cache_path, prompt=lambda m: None)
        credential._cache.has_state_changed = True
        credential.get_token()
        assert cache_path.exists()

    def test_corrupt_token_cache_is_ignored(self, msal_app: MagicMock, tmp_path: Path) -> None:
        cache_path = tmp_path / "tokens.bin"
        cache_path.write_text("{not json")
        DeviceCodeCredential("app-id", token_cache_path=cache_path)
