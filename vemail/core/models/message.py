"""Mailbox store message models"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from vemail.utils.errors import InvalidFolderError


class Folder(str, Enum):
    """Valid mailbox folder names."""

    INBOX = "inbox"
    SENT = "sent"
    DRAFTS = "drafts"
    STARRED = "starred"
    ARCHIVE = "archive"
    TRASH = "trash"

    @property
    def is_virtual(self) -> bool:
        """Starred is a server-side filter over the starred flag, not a storage folder."""
        return self is Folder.STARRED

    @classmethod
    def from_string(cls, value: "str | Folder") -> "Folder":
        """Create Folder from string.

        Raises:
            InvalidFolderError: If the folder name is unknown.
        """
        if isinstance(value, Folder):
            return value

        try:
            return cls(str(value).strip().lower())

        except ValueError:
            raise InvalidFolderError(
                f"Invalid folder name: {value}",
                details={"folder": value, "valid_folders": [f.value for f in cls]},
            )


class StoredMessage(BaseModel):
    """Header-level view of a message held by the mailbox store."""

    model_config = ConfigDict(extra="ignore")

    id: str
    user_email: str = ""
    message_id: Optional[str] = None
    folder: str = Folder.INBOX.value
    from_address: str = ""
    from_name: Optional[str] = None
    to_address: str = ""
    cc: Optional[str] = None
    bcc: Optional[str] = None
    subject: Optional[str] = None
    snippet: Optional[str] = None
    has_attachments: bool = False
    read: bool = False
    starred: bool = False
    received_at: str = ""
    created_at: Optional[str] = None

    @property
    def display_subject(self) -> str:
        return self.subject or "(no subject)"

    @property
    def sender_name(self) -> str:
        return self.from_name or self.from_address

    @property
    def preview(self) -> str:
        return self.snippet or ""

    @property
    def received_datetime(self) -> Optional[datetime]:
        """Parsed ``received_at``, or None when the store sent something unparseable."""
        if not self.received_at:
            return None
        try:
            return datetime.fromisoformat(self.received_at.replace("Z", "+00:00"))
        except ValueError:
            return None


class StoredMessageFull(StoredMessage):
    """Full header record; object-store keys for the bodies ride along."""

    body_r2_key: Optional[str] = None
    body_text_r2_key: Optional[str] = None
    raw_r2_key: Optional[str] = None


class MessageDetail(BaseModel):
    """A single message with its lazily fetched bodies."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    message: StoredMessageFull = Field(alias="email")
    body_html: Optional[str] = Field(default=None, alias="bodyHtml")
    body_text: Optional[str] = Field(default=None, alias="bodyText")

    @property
    def body(self) -> str:
        """Best available body: HTML, then plain text, then the snippet."""
        return self.body_html or self.body_text or self.message.preview


class MessagePatch(BaseModel):
    """Partial flag/folder update sent to the mailbox store."""

    read: Optional[bool] = None
    starred: Optional[bool] = None
    folder: Optional[Folder] = None

    def to_payload(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)

    def is_empty(self) -> bool:
        return not self.to_payload()
