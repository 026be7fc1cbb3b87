"""Mailbox data types and folder alias resolution."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

# Graph well-known folder names, used verbatim on the wire.
FOLDER_INBOX = "inbox"
FOLDER_JUNK = "junkemail"
FOLDER_SENT = "sentitems"
FOLDER_DRAFTS = "drafts"
FOLDER_DELETED = "deleteditems"
FOLDER_ARCHIVE = "archive"

WELL_KNOWN_FOLDERS: frozenset[str] = frozenset(
    {FOLDER_INBOX, FOLDER_JUNK, FOLDER_SENT, FOLDER_DRAFTS, FOLDER_DELETED, FOLDER_ARCHIVE}
)

FOLDER_ALIASES: dict[str, str] = {
    "inbox": FOLDER_INBOX,
    "spam": FOLDER_JUNK,
    "junk": FOLDER_JUNK,
    "junkmail": FOLDER_JUNK,
    "junkemail": FOLDER_JUNK,
    "sent": FOLDER_SENT,
    "sentitems": FOLDER_SENT,
    "drafts": FOLDER_DRAFTS,
    "deleted": FOLDER_DELETED,
    "deleteditems": FOLDER_DELETED,
    "trash": FOLDER_DELETED,
    "archive": FOLDER_ARCHIVE,
}


def resolve_folder(name: str) -> str:
    """Map a human folder alias onto its well-known folder id.

    Matching is case-insensitive; anything not in the alias table is a custom
    folder and is returned unchanged, case included.
    """
    return FOLDER_ALIASES.get(name.strip().lower(), name)


def _parse_datetime(raw: Any) -> datetime | None:
    if not raw:
        return None
    try:
        return datetime.fromisoformat(str(raw).replace("Z", "+00:00"))
    except ValueError:
        return None


def _address(entry: Any) -> str | None:
    if not isinstance(entry, dict):
        return None
    email = entry.get("emailAddress")
    if not isinstance(email, dict):
        return None
    address = email.get("address")
    return str(address) if address else None


@dataclass(frozen=True)
class MailMessage:
    """A mailbox message as returned by Microsoft Graph.

    Listing and search responses only populate the summary fields
    (id, subject, sender, received, is_read); a single-message fetch adds
    ``to`` and ``body``.
    """

    id: str
    subject: str = ""
    sender: str | None = None
    received: datetime | None = None
    is_read: bool = False
    to: list[str] = field(default_factory=list)
    body: str | None = None

    @classmethod
    def from_graph(cls, data: dict[str, Any]) -> MailMessage:
        """Map a Graph ``message`` resource onto a MailMessage."""
        body = data.get("body")
        content = body.get("content") if isinstance(body, dict) else None
        return cls(
            id=str(data.get("id", "")),
            subject=str(data.get("subject") or ""),
            sender=_address(data.get("from")),
            received=_parse_datetime(data.get("receivedDateTime")),
            is_read=bool(data.get("isRead", False)),
            to=[a for a in (_address(r) for r in data.get("toRecipients") or []) if a],
            body=str(content) if content else None,
        )
