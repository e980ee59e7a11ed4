"""Domain models shared by the account and mailbox layers."""

from .account import Account, AccountDraft, AccountPatch, AccountType
from .message import Folder, MessageDetail, MessagePatch, StoredMessage, StoredMessageFull

__all__ = [
    "Account",
    "AccountDraft",
    "AccountPatch",
    "AccountType",
    "Folder",
    "MessageDetail",
    "MessagePatch",
    "StoredMessage",
    "StoredMessageFull",
]
