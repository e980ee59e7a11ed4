"""Per-session wiring of accounts, mailbox, sending and cloud sync.

One ``MailSession`` is built per signed-in user and handed to every consumer,
so nothing reaches into the account cache behind the manager's back.

Usage Examples
--------------

    >>> async with MailSessionFactory.create() as session:
    ...     await session.bootstrap()
    ...     if session.needs_configuration:
    ...         print("Add an account first")
    ...     messages = await session.select_folder("inbox")
"""

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import httpx

from vemail.core.accounts.cache import AccountCache, JsonFileStore, KeyValueStore
from vemail.core.accounts.cloud import CloudAccountClient
from vemail.core.accounts.manager import AccountManager
from vemail.core.accounts.sync_queue import CloudSyncQueue, RetryPolicy
from vemail.core.http import ServiceTransport, create_http_client
from vemail.core.mailbox.client import MailboxClient
from vemail.core.mailbox.tracker import LatestRequestTracker
from vemail.core.models.account import Account
from vemail.core.models.message import Folder, MessageDetail, StoredMessage
from vemail.core.send.router import SendRequest, SendResult, SendRouter
from vemail.utils.config import ConfigManager
from vemail.utils.logging import async_log_call, get_logger

logger = get_logger(__name__)

LIST_CHANNEL = "list"
MESSAGE_CHANNEL = "message"


class MailSession:
    """State of one signed-in session: active account, folder and selection."""

    def __init__(
        self,
        user_email: str,
        accounts: AccountManager,
        mailbox: MailboxClient,
        sender: SendRouter,
        sync_queue: Optional[CloudSyncQueue] = None,
        page_size: int = 50,
        default_folder: Union[str, Folder] = Folder.INBOX,
    ):
        self.user_email = user_email
        self.accounts = accounts
        self.mailbox = mailbox
        self.sender = sender
        self.sync_queue = sync_queue
        self.page_size = page_size

        self.tracker = LatestRequestTracker()
        self.active_account: Optional[Account] = None
        self.folder = Folder.from_string(default_folder)
        self.messages: List[StoredMessage] = []
        self.selected: Optional[MessageDetail] = None
        self.loading = False
        self._bootstrapped = False

    @property
    def needs_configuration(self) -> bool:
        return self.active_account is None

    @property
    def mailbox_email(self) -> str:
        """Address whose mailbox is shown: the active account, else the user."""
        if self.active_account is not None:
            return self.active_account.email
        return self.user_email

    @property
    def mailbox_endpoint(self) -> Optional[str]:
        return self.active_account.mailbox_endpoint if self.active_account else None

    @async_log_call
    async def bootstrap(self) -> Optional[Account]:
        """Run the account bootstrap once and pick the active account."""
        if not self._bootstrapped:
            await self.accounts.bootstrap()
            self._bootstrapped = True

        self.active_account = self.accounts.resolve_active()
        if self.active_account is None:
            logger.info("No account configured for this session")
        return self.active_account

    def select_account(self, account_id: Optional[str] = None) -> Optional[Account]:
        """Switch the active account; in-flight loads for the old one are discarded."""
        self.active_account = self.accounts.resolve_active(account_id)
        self.tracker.cancel(LIST_CHANNEL)
        self.tracker.cancel(MESSAGE_CHANNEL)
        self.messages = []
        self.selected = None
        self.loading = False
        return self.active_account

    async def select_folder(
        self, folder: Union[str, Folder], offset: int = 0
    ) -> Optional[List[StoredMessage]]:
        """Load a page of ``folder``.

        Returns the messages, or None if a newer request superseded this one
        while it was in flight (its result is dropped).
        """
        folder = Folder.from_string(folder)
        self.folder = folder

        email = self.mailbox_email
        if not email:
            self.messages = []
            return self.messages

        token = self.tracker.begin(LIST_CHANNEL, (email, folder, offset))
        self.loading = True
        self.messages = []

        messages = await self.mailbox.list_messages(
            email, folder, self.page_size, offset, endpoint=self.mailbox_endpoint
        )

        if not self.tracker.is_current(token):
            logger.debug(f"Discarding stale listing for {folder.value}")
            return None

        self.messages = messages
        self.loading = False
        return messages

    async def open_message(self, message_id: Optional[str]) -> Optional[MessageDetail]:
        """Fetch the full message for the selection; None clears it."""
        if not message_id or not self.mailbox_email:
            self.tracker.cancel(MESSAGE_CHANNEL)
            self.selected = None
            return None

        token = self.tracker.begin(MESSAGE_CHANNEL, (self.mailbox_email, message_id))
        detail = await self.mailbox.fetch_full(
            self.mailbox_email, message_id, endpoint=self.mailbox_endpoint
        )

        if not self.tracker.is_current(token):
            logger.debug(f"Discarding stale message fetch for {message_id}")
            return None

        self.selected = detail
        return detail

    async def send(self, request: SendRequest) -> SendResult:
        return await self.sender.send(self.user_email, request)

    async def close(self) -> None:
        if self.sync_queue is not None:
            await self.sync_queue.stop(drain=True)


class MailSessionFactory:
    """Factory for MailSession with resource lifecycle management."""

    @classmethod
    @asynccontextmanager
    async def create(
        cls,
        config: Optional[ConfigManager] = None,
        *,
        user_email: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        store: Optional[KeyValueStore] = None,
    ):
        """Create a session with automatic resource management (recommended).

        Args:
            config: ConfigManager instance (creates new if None)
            user_email: Overrides the configured user identity
            transport: httpx transport override, for tests
            store: Key-value backend override for the account cache

        Yields:
            MailSession ready to bootstrap
        """
        resources = cls.create_resources(
            config, user_email=user_email, transport=transport, store=store
        )
        session = cls.create_session(resources)
        await resources["sync_queue"].start()

        try:
            yield session
        finally:
            await cls.cleanup_resources(resources)

    @classmethod
    def create_resources(
        cls,
        config: Optional[ConfigManager] = None,
        *,
        user_email: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        store: Optional[KeyValueStore] = None,
    ) -> Dict[str, Any]:
        """Create all required resources.

        Returns:
            Dictionary containing: config, user_email, http_client, cache,
            cloud, sync_queue, accounts, mailbox, sender
        """
        if config is None:
            config = ConfigManager()

        settings = config.config
        user_email = user_email if user_email is not None else config.user_email

        http_client = create_http_client(
            settings.service.request_timeout,
            settings.service.connect_timeout,
            transport=transport,
        )

        cache = AccountCache(
            store or JsonFileStore(Path(settings.cache.path)),
            key=settings.cache.namespace_key,
        )
        cloud = CloudAccountClient(
            ServiceTransport(http_client, settings.service.account_service_url)
        )
        sync_queue = CloudSyncQueue(
            RetryPolicy(
                max_attempts=settings.sync.max_attempts,
                backoff_seconds=settings.sync.backoff_seconds,
                max_backoff_seconds=settings.sync.max_backoff_seconds,
            )
        )
        accounts = AccountManager(cache, cloud, sync_queue, user_email=user_email)
        mailbox = MailboxClient(
            ServiceTransport(http_client, settings.service.default_store_url),
            account_lookup=accounts.find_by_email,
        )
        sender = SendRouter(
            accounts, ServiceTransport(http_client, settings.service.account_service_url)
        )

        logger.debug("Created all resources for MailSession")

        return {
            "config": config,
            "user_email": user_email,
            "http_client": http_client,
            "cache": cache,
            "cloud": cloud,
            "sync_queue": sync_queue,
            "accounts": accounts,
            "mailbox": mailbox,
            "sender": sender,
        }

    @classmethod
    def create_session(cls, resources: Dict[str, Any]) -> MailSession:
        """Create a session from resources; the caller owns their cleanup."""
        session_settings = resources["config"].config.session

        return MailSession(
            user_email=resources["user_email"],
            accounts=resources["accounts"],
            mailbox=resources["mailbox"],
            sender=resources["sender"],
            sync_queue=resources["sync_queue"],
            page_size=session_settings.page_size,
            default_folder=session_settings.default_folder,
        )

    @classmethod
    async def cleanup_resources(cls, resources: Dict[str, Any]) -> None:
        """Flush pending cloud sync, then close the HTTP client."""
        if "sync_queue" in resources:
            try:
                await resources["sync_queue"].stop(drain=True)
                logger.debug("Cloud sync queue drained")
            except Exception as e:
                logger.error(f"Error draining cloud sync queue: {e}")

        if "http_client" in resources:
            try:
                await resources["http_client"].aclose()
                logger.debug("HTTP client closed")
            except Exception as e:
                logger.error(f"Error closing HTTP client: {e}")

        logger.debug("All resources cleaned up")
