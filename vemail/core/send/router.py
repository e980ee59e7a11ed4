"""Send router - picks the outbound transport for an account and submits mail.

Credentials never leave the server: the request names the account by id and
the send service looks up the app password itself. ``send`` never raises;
every failure comes back as ``SendResult(success=False, error=...)``.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from vemail.core.accounts.manager import AccountManager
from vemail.core.http import ServiceTransport, response_json
from vemail.core.models.account import Account, AccountType
from vemail.utils.errors import ErrorHandler, NetworkError, NetworkTimeoutError
from vemail.utils.logging import async_log_call, get_logger, log_event

logger = get_logger(__name__)

GMAIL_SEND_PATH = "/send-gmail-email"
SMTP_SEND_PATH = "/send-email"
GMAIL_SYNC_PATH = "/gmail/sync-now"

NO_ACCOUNT_MESSAGE = "No email account configured. Add one with 'vemail account add'."
NETWORK_ERROR_MESSAGE = "Network error - could not reach email service"
TIMEOUT_MESSAGE = "The email service did not respond in time"
SEND_FAILED_MESSAGE = "Failed to send email"
SYNC_FAILED_MESSAGE = "Failed to sync Gmail inbox"
SYNC_NETWORK_MESSAGE = "Network error - could not reach sync service"


@dataclass
class SendRequest:
    """An outgoing message; ``account_id`` None means the default account."""

    to: str
    subject: str
    html: str
    account_id: Optional[str] = None
    from_email: Optional[str] = None


@dataclass
class SendResult:
    success: bool
    error: Optional[str] = None

    @classmethod
    def ok(cls) -> "SendResult":
        return cls(success=True)

    @classmethod
    def failure(cls, error: str) -> "SendResult":
        return cls(success=False, error=error)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"success": self.success}
        if self.error is not None:
            result["error"] = self.error
        return result


def transport_path(account_type: AccountType) -> str:
    """Gmail accounts use the Gmail API path; everything else goes through the SMTP relay."""
    return GMAIL_SEND_PATH if account_type.uses_gmail_transport else SMTP_SEND_PATH


class SendRouter:
    """Routes outgoing mail for the session's accounts."""

    def __init__(self, accounts: AccountManager, transport: ServiceTransport):
        self.accounts = accounts
        self.transport = transport

    @async_log_call
    async def send(self, sender_identity: str, request: SendRequest) -> SendResult:
        """Send ``request`` as the resolved account.

        With no account configured this fails with a configuration prompt and
        makes no network call.
        """
        account = self.accounts.resolve_active(request.account_id)
        if account is None:
            logger.info("Send refused: no account configured")
            return SendResult.failure(NO_ACCOUNT_MESSAGE)

        from_email = request.from_email or account.email
        if not account.can_send_as(from_email):
            return SendResult.failure(
                f"{from_email} is not an address or alias of account {account.email}"
            )

        path = transport_path(account.account_type)
        body = {
            "userEmail": sender_identity,
            "accountId": account.id,
            "fromEmail": from_email,
            "toEmail": request.to,
            "subject": request.subject,
            "html": request.html,
        }

        result = await self._post(path, body, SEND_FAILED_MESSAGE, NETWORK_ERROR_MESSAGE)
        self._record(account, path, result)
        return result

    @async_log_call
    async def trigger_gmail_sync(self, user_email: str) -> SendResult:
        """Ask the service to pull new Gmail messages into the mailbox store now."""
        return await self._post(
            GMAIL_SYNC_PATH, {"userEmail": user_email}, SYNC_FAILED_MESSAGE, SYNC_NETWORK_MESSAGE
        )

    async def _post(
        self, path: str, body: Dict[str, Any], failed_message: str, network_message: str
    ) -> SendResult:
        try:
            response = await self.transport.request("POST", path, json=body, raise_for_status=False)

        except NetworkTimeoutError as e:
            logger.warning(f"POST {path} timed out: {e.message}")
            return SendResult.failure(TIMEOUT_MESSAGE)
        except NetworkError as e:
            logger.warning(f"POST {path} failed: {e.message}")
            return SendResult.failure(network_message)
        except Exception as e:
            ErrorHandler.handle(e, f"POST {path}", log_traceback=True)
            return SendResult.failure(failed_message)

        data = response_json(response)
        if not response.is_success or not data.get("success"):
            error = data.get("error") or failed_message
            logger.warning(
                f"POST {path} rejected: {error}", extra={"status_code": response.status_code}
            )
            return SendResult.failure(str(error))

        return SendResult.ok()

    @staticmethod
    def _record(account: Account, path: str, result: SendResult) -> None:
        if result.success:
            log_event("email_sent", f"Email sent via {path}", account_id=account.id)
        else:
            log_event(
                "email_send_failed",
                f"Email send via {path} failed: {result.error}",
                level="WARNING",
                account_id=account.id,
            )
