"""Microsoft Graph mail client — typed async wrapper over the v1.0 REST API."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from agent_console.mail.types import MailMessage

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"

_LIST_FIELDS = "id,subject,from,receivedDateTime,isRead"
_READ_FIELDS = "id,subject,from,toRecipients,receivedDateTime,body"


def _segment(value: str) -> str:
    """Escape one URL path segment so ids and folder names can't reach other resources."""
    escaped = quote(value, safe="")
    if escaped in (".", ".."):
        escaped = escaped.replace(".", "%2E")
    return escaped


class GraphError(Exception):
    """Raised when a Graph request fails, in transport or with an error response."""

    def __init__(self, message: str, *, status: int | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.code = code


class TokenProvider(Protocol):
    """Anything that can hand out a bearer token for Graph (blocking call)."""

    def get_token(self) -> str: ...


class GraphMailClient:
    """Thin async wrapper around the Graph ``/me`` mail endpoints.

    Every call fetches a token from the credential (which may block on a
    device-code login, so it runs in a worker thread) and is bounded by the
    HTTP client's timeout.  Use ``aclose()`` to release the connection pool.
    """

    def __init__(
        self,
        credential: TokenProvider,
        http: httpx.AsyncClient | None = None,
        *,
        base_url: str = GRAPH_BASE_URL,
        timeout: float = 30.0,
    ) -> None:
        self._credential = credential
        self._http = http or httpx.AsyncClient(timeout=timeout)
        self._base_url = base_url.rstrip("/")

    async def aclose(self) -> None:
        await self._http.aclose()

    # ── Public API ─────────────────────────────────────────────────────────────

    async def list_folder(self, folder: str, top: int = 10) -> list[MailMessage]:
        """Return the newest ``top`` messages in ``folder`` (id or well-known name)."""
        data = await self._request(
            "GET",
            f"/me/mailFolders/{_segment(folder)}/messages",
            params={
                "$top": str(top),
                "$select": _LIST_FIELDS,
                "$orderby": "receivedDateTime desc",
            },
        )
        return self._parse_list(data)

    async def get_message(self, message_id: str) -> MailMessage | None:
        """Return a single message with recipients and body, or None if it is gone."""
        try:
            data = await self._request(
                "GET", f"/me/messages/{_segment(message_id)}", params={"$select": _READ_FIELDS}
            )
        except GraphError as exc:
            if exc.status == 404:
                return None
            raise
        return MailMessage.from_graph(data) if isinstance(data, dict) else None

    async def send_mail(self, to: str, subject: str, body: str) -> None:
        """Send a plain-text message; a copy is always kept in Sent Items."""
        payload = {
            "message": {
                "subject": subject,
                "body": {"contentType": "Text", "content": body},
                "toRecipients": [{"emailAddress": {"address": to}}],
            },
            "saveToSentItems": True,
        }
        await self._request("POST", "/me/sendMail", json=payload)
        logger.info("Sent email to %s: %r", to, subject)

    async def search(self, query: str, top: int = 10) -> list[MailMessage]:
        """Full-text search across every folder of the mailbox."""
        data = await self._request(
            "GET",
            "/me/messages",
            params={
                "$top": str(top),
                "$search": f'"{query}"',
                "$select": _LIST_FIELDS,
            },
        )
        return self._parse_list(data)

    async def delete_message(self, message_id: str) -> None:
        await self._request("DELETE", f"/me/messages/{_segment(message_id)}")
        logger.info("Deleted message %s", message_id)

    async def move_message(self, message_id: str, destination: str) -> None:
        await self._request(
            "POST",
            f"/me/messages/{_segment(message_id)}/move",
            json={"destinationId": destination},
        )
        logger.info("Moved message %s to %s", message_id, destination)

    # ── Internal helpers ───────────────────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        """Send an authenticated request and return the decoded JSON body.

        Raises GraphError for transport failures and non-2xx responses.  Empty
        bodies (202/204) come back as None.
        """
        token = await asyncio.to_thread(self._credential.get_token)
        headers = {"Authorization": f"Bearer {token}"}
        if params and "$search" in params:
            # $search across /me/messages requires eventual consistency.
            headers["ConsistencyLevel"] = "eventual"

        logger.debug("Graph → %s %s %s", method, path, params or "")
        try:
            response = await self._http.request(
                method, self._base_url + path, params=params, json=json, headers=headers
            )
        except httpx.HTTPError as exc:
            raise GraphError(f"{type(exc).__name__}: {exc}") from exc

        if response.is_error:
            raise self._error_from(response)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    @staticmethod
    def _error_from(response: httpx.Response) -> GraphError:
        """Build a GraphError, preferring the OData ``error.message`` text."""
        message = f"HTTP {response.status_code}"
        code = None
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if isinstance(payload, dict) and isinstance(payload.get("error"), dict):
            err = payload["error"]
            message = str(err.get("message") or message)
            code = str(err["code"]) if err.get("code") else None
        return GraphError(message, status=response.status_code, code=code)

    @staticmethod
    def _parse_list(data: Any) -> list[MailMessage]:
        if not isinstance(data, dict):
            return []
        return [
            MailMessage.from_graph(item)
            for item in data.get("value", [])
            if isinstance(item, dict)
        ]
