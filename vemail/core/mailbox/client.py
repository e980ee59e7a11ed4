"""Mailbox store client - list, fetch, flag, move and delete messages.

Read paths collapse every failure to "no data": ``list_messages`` returns an
empty list and ``fetch_full`` returns None, so an empty folder and an
unreachable store look the same to the caller. Writes report a boolean.

Each call resolves its store endpoint in three tiers: the explicit
``endpoint`` argument, else the account's configured mailbox endpoint, else
the default store.
"""

from typing import Any, Callable, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from vemail.core.http import ServiceTransport, path_segment, response_json
from vemail.core.models.account import Account
from vemail.core.models.message import Folder, MessageDetail, MessagePatch, StoredMessage
from vemail.utils.errors import InvalidFolderError, NetworkError, ValidationError
from vemail.utils.logging import async_log_call, get_logger

logger = get_logger(__name__)

EMAILS_PATH = "/emails"
DEFAULT_PAGE_SIZE = 50

AccountLookup = Callable[[str], Optional[Account]]
PatchInput = Union[MessagePatch, Mapping[str, Any]]


class MailboxClient:
    """Client for the per-account mailbox store."""

    def __init__(
        self,
        transport: ServiceTransport,
        account_lookup: Optional[AccountLookup] = None,
    ):
        """Initialise the mailbox client.

        Args:
            transport: Transport whose base URL is the default mailbox store
            account_lookup: Finds an account by email, for its endpoint override
        """
        self.transport = transport
        self.account_lookup = account_lookup

    @property
    def default_endpoint(self) -> str:
        return self.transport.base_url

    def resolve_endpoint(self, account_email: str, endpoint: Optional[str] = None) -> str:
        if endpoint:
            return endpoint.rstrip("/")

        if self.account_lookup is not None:
            account = self.account_lookup(account_email)
            if account is not None and account.mailbox_endpoint:
                return account.mailbox_endpoint.rstrip("/")

        return self.default_endpoint

    @async_log_call
    async def list_messages(
        self,
        account_email: str,
        folder: Union[str, Folder] = Folder.INBOX,
        page_size: int = DEFAULT_PAGE_SIZE,
        offset: int = 0,
        endpoint: Optional[str] = None,
    ) -> List[StoredMessage]:
        """List one page of message headers, newest first as the store orders them.

        ``starred`` is filtered server-side across all folders.

        Raises:
            InvalidFolderError: If ``folder`` is not a known folder.
            ValidationError: If ``page_size`` < 1 or ``offset`` < 0.
        """
        folder = Folder.from_string(folder)
        if page_size < 1 or offset < 0:
            raise ValidationError(
                "page_size must be positive and offset non-negative",
                details={"page_size": page_size, "offset": offset},
            )

        base = self.resolve_endpoint(account_email, endpoint)
        params = {
            "user": account_email,
            "folder": folder.value,
            "limit": page_size,
            "offset": offset,
        }

        try:
            response = await self.transport.request("GET", EMAILS_PATH, base_url=base, params=params)

        except NetworkError as e:
            logger.warning(
                f"Listing {folder.value} failed, returning no messages: {e.message}",
                extra={"folder": folder.value, "store": base},
            )
            return []

        records = response_json(response).get("emails") or []
        if not isinstance(records, list):
            logger.warning("Mailbox store returned a non-list 'emails' field")
            return []

        messages = []
        for record in records:
            try:
                messages.append(StoredMessage.model_validate(record))
            except PydanticValidationError as e:
                logger.warning(f"Skipping malformed message record: {e.error_count()} error(s)")

        logger.debug(f"Listed {len(messages)} message(s) in {folder.value} (offset {offset})")
        return messages

    @async_log_call
    async def fetch_full(
        self,
        account_email: str,
        message_id: str,
        endpoint: Optional[str] = None,
    ) -> Optional[MessageDetail]:
        """Fetch full headers and bodies for one message, or None on any failure."""
        base = self.resolve_endpoint(account_email, endpoint)

        try:
            response = await self.transport.request(
                "GET",
                f"{EMAILS_PATH}/{path_segment(message_id)}",
                base_url=base,
                params={"user": account_email},
            )

        except NetworkError as e:
            logger.warning(
                f"Fetching message {message_id} failed: {e.message}",
                extra={"message_ref": message_id, "store": base},
            )
            return None

        try:
            return MessageDetail.model_validate(response_json(response))
        except PydanticValidationError as e:
            logger.warning(f"Message {message_id} response malformed: {e.error_count()} error(s)")
            return None

    @async_log_call
    async def mutate(
        self,
        account_email: str,
        message_id: str,
        patch: PatchInput,
        endpoint: Optional[str] = None,
    ) -> bool:
        """Apply a read/starred/folder change; the store resolves races (last write wins).

        Raises:
            InvalidFolderError: If the target folder is unknown or virtual.
            ValidationError: If the patch is empty.
        """
        patch = self._coerce_patch(patch)
        base = self.resolve_endpoint(account_email, endpoint)

        body = {"userEmail": account_email, **patch.to_payload()}

        try:
            await self.transport.request(
                "PUT",
                f"{EMAILS_PATH}/{path_segment(message_id)}",
                base_url=base,
                json=body,
            )

        except NetworkError as e:
            logger.warning(
                f"Updating message {message_id} failed: {e.message}",
                extra={"message_ref": message_id, "store": base},
            )
            return False

        logger.info(f"Updated message {message_id}: {sorted(patch.to_payload())}")
        return True

    @async_log_call
    async def delete(
        self,
        account_email: str,
        message_id: str,
        endpoint: Optional[str] = None,
    ) -> bool:
        base = self.resolve_endpoint(account_email, endpoint)

        try:
            await self.transport.request(
                "DELETE",
                f"{EMAILS_PATH}/{path_segment(message_id)}",
                base_url=base,
                params={"user": account_email},
            )

        except NetworkError as e:
            logger.warning(
                f"Deleting message {message_id} failed: {e.message}",
                extra={"message_ref": message_id, "store": base},
            )
            return False

        logger.info(f"Deleted message {message_id}")
        return True

    ## Convenience wrappers

    async def mark_read(self, account_email: str, message_id: str, read: bool = True,
                        endpoint: Optional[str] = None) -> bool:
        return await self.mutate(account_email, message_id, MessagePatch(read=read), endpoint)

    async def set_starred(self, account_email: str, message_id: str, starred: bool = True,
                          endpoint: Optional[str] = None) -> bool:
        return await self.mutate(account_email, message_id, MessagePatch(starred=starred), endpoint)

    async def move(self, account_email: str, message_id: str, folder: Union[str, Folder],
                   endpoint: Optional[str] = None) -> bool:
        return await self.mutate(account_email, message_id, {"folder": folder}, endpoint)

    @staticmethod
    def _coerce_patch(patch: PatchInput) -> MessagePatch:
        if not isinstance(patch, MessagePatch):
            fields = dict(patch)
            if fields.get("folder") is not None:
                fields["folder"] = Folder.from_string(fields["folder"])
            try:
                patch = MessagePatch.model_validate(fields)
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid message update: {e.error_count()} error(s)") from e

        if patch.folder is not None and patch.folder.is_virtual:
            raise InvalidFolderError(
                f"Cannot move a message into '{patch.folder.value}'; star it instead",
                details={"folder": patch.folder.value},
            )

        if patch.is_empty():
            raise ValidationError("Message update has no fields to change")

        return patch
