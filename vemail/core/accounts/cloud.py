"""Cloud account sync client.

Talks to the account service, which alone stores credentials. Every call is
best effort: failures are logged and reported as a falsy result, never
raised, so a dropped sync can't undo or block a local change.

Endpoints
---------
- ``POST   /email-accounts``            create/update, optional ``appPassword``
- ``DELETE /email-accounts?user=&id=``  remove one record
- ``GET    /email-accounts?user=``      list metadata (never credentials)
- ``PUT    /email-accounts/sync``       replace the full metadata list
"""

from typing import List, Optional, Sequence

from pydantic import ValidationError

from vemail.core.http import ServiceTransport, response_json
from vemail.core.models.account import Account
from vemail.utils.errors import NetworkError
from vemail.utils.logging import async_log_call, get_logger

logger = get_logger(__name__)

ACCOUNTS_PATH = "/email-accounts"
SYNC_PATH = "/email-accounts/sync"


class CloudAccountClient:
    """Reads and writes account metadata on the account service."""

    def __init__(self, transport: ServiceTransport):
        self.transport = transport

    @async_log_call
    async def push(
        self, user_email: str, account: Account, credential: Optional[str] = None
    ) -> bool:
        """Create or update one account, forwarding ``credential`` when given.

        The credential is write-only: it goes out in this request body and is
        never read back or kept.
        """
        body = {"userEmail": user_email, "account": account.to_record()}
        if credential:
            body["appPassword"] = credential

        try:
            await self.transport.request("POST", ACCOUNTS_PATH, json=body)

        except NetworkError as e:
            logger.warning(
                f"Cloud push failed for account {account.id}: {e.message}",
                extra={"account_id": account.id, "with_credential": bool(credential)},
            )
            return False

        logger.info(f"Pushed account {account.id} to cloud")
        return True

    @async_log_call
    async def remove(self, user_email: str, account_id: str) -> bool:
        try:
            await self.transport.request(
                "DELETE", ACCOUNTS_PATH, params={"user": user_email, "id": account_id}
            )

        except NetworkError as e:
            logger.warning(
                f"Cloud remove failed for account {account_id}: {e.message}",
                extra={"account_id": account_id},
            )
            return False

        logger.info(f"Removed account {account_id} from cloud")
        return True

    @async_log_call
    async def pull(self, user_email: str) -> Optional[List[Account]]:
        """Fetch remote account metadata.

        Returns:
            The remote list (possibly empty) when the service answered with an
            ``accounts`` array, or None when there is nothing to hydrate from
            (transport failure, non-2xx, or no ``accounts`` array).
        """
        try:
            response = await self.transport.request(
                "GET", ACCOUNTS_PATH, params={"user": user_email}
            )

        except NetworkError as e:
            logger.warning(f"Cloud pull failed: {e.message}")
            return None

        records = response_json(response).get("accounts")
        if not isinstance(records, list):
            logger.info("Cloud returned no account list")
            return None

        accounts = []
        for record in records:
            try:
                accounts.append(Account.model_validate(record))
            except ValidationError as e:
                logger.warning(f"Skipping invalid remote account record: {e.error_count()} error(s)")

        logger.info(f"Pulled {len(accounts)} account(s) from cloud")
        return accounts

    @async_log_call
    async def sync_all(self, user_email: str, accounts: Sequence[Account]) -> bool:
        """Replace the remote metadata list with ``accounts`` (full replace, not a merge)."""
        body = {
            "userEmail": user_email,
            "accounts": [account.to_record() for account in accounts],
        }

        try:
            await self.transport.request("PUT", SYNC_PATH, json=body)

        except NetworkError as e:
            logger.warning(f"Cloud sync of {len(accounts)} account(s) failed: {e.message}")
            return False

        logger.info(f"Synced {len(accounts)} account(s) to cloud")
        return True
