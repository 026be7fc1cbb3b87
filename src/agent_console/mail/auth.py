"""Device-code authentication for Graph and the on-disk auth record cache.

Two files live in the per-user data directory:

- ``graph_auth_record.json`` — the continuation record (which account signed
  in, against which tenant/app).  No secrets; handled by AuthCache.
- ``graph_token_cache.bin`` — msal's serialized token cache, owned by the
  credential.  Neither file is encrypted, so the directory must only be
  readable by the current user.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import msal
import requests

logger = logging.getLogger(__name__)

GRAPH_SCOPES: tuple[str, ...] = ("User.Read", "Mail.Read", "Mail.ReadWrite", "Mail.Send")
AUTHORITY_URL = "https://login.microsoftonline.com/{tenant}"
# msal reports an unreachable or misconfigured authority with ValueError.
_SIGN_IN_ERRORS = (ValueError, requests.exceptions.RequestException)


class AuthenticationError(Exception):
    """Raised when a Graph token cannot be obtained (declined, expired, misconfigured)."""


@dataclass(frozen=True)
class AuthRecord:
    """Opaque continuation record for silent re-authentication.

    Identifies the signed-in account so the credential can look it up in
    the token cache on the next start instead of prompting again.
    """

    home_account_id: str
    username: str
    environment: str
    tenant_id: str
    client_id: str

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2)

    @classmethod
    def from_json(cls, text: str) -> AuthRecord:
        """Parse a serialized record.

        Raises:
            ValueError: if the text is not a JSON object with every field.
        """
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("auth record must be a JSON object")
        try:
            return cls(**{name: str(data[name]) for name in cls.__dataclass_fields__})
        except KeyError as exc:
            raise ValueError(f"auth record missing field {exc}") from exc


class AuthCache:
    """Persists a single AuthRecord at a fixed path.

    A missing or unreadable file is reported as "no record"; the caller then
    falls back to interactive login.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> AuthRecord | None:
        if not self.path.exists():
            return None
        try:
            return AuthRecord.from_json(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable auth record at %s: %s", self.path, exc)
            return None

    def save(self, record: AuthRecord) -> None:
        """Write the record, replacing any previous one, creating parent dirs."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(record.to_json(), encoding="utf-8")
        _restrict_permissions(self.path)
        logger.info("Saved auth record for %s", record.username)

    def clear(self) -> bool:
        """Delete the record. Returns True if a file was removed."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        return True


def _restrict_permissions(path: Path) -> None:
    if os.name == "posix":
        try:
            path.chmod(0o600)
        except OSError as exc:
            logger.debug("Could not chmod %s: %s", path, exc)


def _print_prompt(message: str) -> None:
    print(message, flush=True)


class DeviceCodeCredential:
    """Token provider backed by msal's public-client device-code flow.

    ``get_token`` first tries a silent acquisition for the account named by
    the auth record (or any cached account), and only falls back to the
    device-code prompt when that fails.  The msal token cache is persisted
    to ``token_cache_path`` whenever it changes.
    """

    def __init__(
        self,
        client_id: str,
        tenant_id: str = "consumers",
        *,
        scopes: tuple[str, ...] = GRAPH_SCOPES,
        record: AuthRecord | None = None,
        token_cache_path: Path | None = None,
        prompt: Callable[[str], None] = _print_prompt,
    ) -> None:
        self._client_id = client_id
        self._tenant_id = tenant_id
        self._scopes = list(scopes)
        self._record = record
        self._cache_path = token_cache_path
        self._prompt = prompt
        self._cache = msal.SerializableTokenCache()
        self._load_token_cache()
        self._app: msal.PublicClientApplication | None = None

    @property
    def record(self) -> AuthRecord | None:
        return self._record

    def get_token(self) -> str:
        """Return a Graph access token, prompting for device login if needed.

        Raises:
            AuthenticationError: if the device flow fails or is declined, or
                the sign-in service cannot be reached.
        """
        try:
            result = self._acquire_silent()
            if result is None:
                result = self._acquire_device_flow()
        except _SIGN_IN_ERRORS as exc:
            raise AuthenticationError(f"Sign-in service unavailable: {exc}") from exc
        return self._access_token(result)

    def authenticate(self) -> AuthRecord:
        """Force a token acquisition and return the record for that account."""
        self.get_token()
        accounts = self._application().get_accounts()
        account = self._find_account(accounts) or (accounts[0] if accounts else None)
        if account is None:
            raise AuthenticationError("Sign-in completed but no account was cached")
        self._record = AuthRecord(
            home_account_id=str(account.get("home_account_id", "")),
            username=str(account.get("username", "")),
            environment=str(account.get("environment", "")),
            tenant_id=self._tenant_id,
            client_id=self._client_id,
        )
        return self._record

    # ── Internal helpers ───────────────────────────────────────────────────────

    def _application(self) -> msal.PublicClientApplication:
        # Built on first use: construction contacts the authority over the network.
        if self._app is None:
            self._app = msal.PublicClientApplication(
                self._client_id,
                authority=AUTHORITY_URL.format(tenant=self._tenant_id),
                token_cache=self._cache,
            )
        return self._app

    def _find_account(self, accounts: list[dict[str, Any]]) -> dict[str, Any] | None:
        if self._record is None:
            return None
        for account in accounts:
            if account.get("home_account_id") == self._record.home_account_id:
                return account
        return None

    def _acquire_silent(self) -> dict[str, Any] | None:
        accounts = self._application().get_accounts()
        account = self._find_account(accounts)
        if account is None and self._record is None and accounts:
            account = accounts[0]
        if account is None:
            return None
        result = self._application().acquire_token_silent(self._scopes, account=account)
        if result and "access_token" in result:
            self._save_token_cache()
            return result
        logger.debug("Silent token acquisition failed; falling back to device flow")
        return None

    def _acquire_device_flow(self) -> dict[str, Any]:
        flow = self._application().initiate_device_flow(scopes=self._scopes)
        if "user_code" not in flow:
            raise AuthenticationError(
                flow.get("error_description") or "Could not start device-code sign-in"
            )
        self._prompt(str(flow.get("message", "")))
        result = self._application().acquire_token_by_device_flow(flow)
        self._save_token_cache()
        return result

    @staticmethod
    def _access_token(result: dict[str, Any]) -> str:
        token = result.get("access_token")
        if not token:
            reason = result.get("error_description") or result.get("error") or "unknown error"
            raise AuthenticationError(str(reason))
        return str(token)

    def _load_token_cache(self) -> None:
        if self._cache_path is None or not self._cache_path.exists():
            return
        try:
            self._cache.deserialize(self._cache_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            logger.warning("Ignoring unreadable token cache at %s: %s", self._cache_path, exc)

    def _save_token_cache(self) -> None:
        if self._cache_path is None or not self._cache.has_state_changed:
            return
        self._cache_path.parent.mkdir(parents=True, exist_ok=True)
        self._cache_path.write_text(self._cache.serialize(), encoding="utf-8")
        _restrict_permissions(self._cache_path)
