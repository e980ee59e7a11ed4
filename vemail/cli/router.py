"""Routes CLI commands to the session's account, mailbox and send layers."""

import html
from typing import Any, Callable, Dict, Optional

from rich.console import Console
from rich.markup import escape

from vemail.core.models.message import Folder
from vemail.core.send.router import SendRequest
from vemail.core.session import MailSession
from vemail.utils.config import ConfigManager
from vemail.utils.console import get_console, print_error, print_status, print_success, print_warning
from vemail.utils.logging import async_log_call, get_logger

from .display import AccountTable, MessagePanel, MessageTable, ask_password

logger = get_logger(__name__)

SESSIONLESS_COMMANDS = {"config"}


def text_to_html(text: str) -> str:
    """Escape a plain text body and keep its line breaks."""
    return html.escape(text).replace("\n", "<br>\n")


class CommandRouter:
    """Routes commands to handlers acting on one mail session."""

    def __init__(
        self,
        console: Optional[Console] = None,
        session: Optional[MailSession] = None,
        config: Optional[ConfigManager] = None,
    ):
        self.console = console or get_console()
        self.session = session
        self.config = config

    @async_log_call
    async def route(self, command: str, args: Optional[Dict[str, Any]] = None) -> bool:
        """Route command to its handler.

        Args:
            command: Command name
            args: Parsed arguments dictionary

        Returns:
            True if command executed successfully

        Raises:
            ValueError: If command is unknown or needs a session that is missing
        """
        if args is None:
            args = {}

        handler = self._get_handler(command, args)
        if not handler:
            raise ValueError(f"Unknown command: {command}")

        if command not in SESSIONLESS_COMMANDS and self.session is None:
            raise ValueError(f"Command '{command}' needs a mail session")

        try:
            return await handler(args)
        except Exception as e:
            logger.error(f"Command '{command}' failed: {e}")
            raise

    def _get_handler(self, command: str, args: Dict[str, Any]) -> Optional[Callable]:
        """Get handler function for command and optional subcommand."""
        if command == "send":
            return self._handle_send
        if command == "gmail-sync":
            return self._handle_gmail_sync

        if command == "account":
            if args.get("account_command") == "alias":
                return {
                    "add": self._handle_alias_add,
                    "remove": self._handle_alias_remove,
                }.get(args.get("alias_command"))
            return {
                "list": self._handle_account_list,
                "add": self._handle_account_add,
                "edit": self._handle_account_edit,
                "remove": self._handle_account_remove,
                "default": self._handle_account_default,
                "push": self._handle_account_push,
            }.get(args.get("account_command"))

        if command == "mail":
            return {
                "list": self._handle_mail_list,
                "show": self._handle_mail_show,
                "mark": self._handle_mail_mark,
                "move": self._handle_mail_move,
                "delete": self._handle_mail_delete,
            }.get(args.get("mail_command"))

        if command == "config":
            return {
                "get": self._handle_config_get,
                "set": self._handle_config_set,
            }.get(args.get("config_command"))

        return None

    ## Account Commands

    async def _handle_account_list(self, args: Dict[str, Any]) -> bool:
        AccountTable(self.console).display(self.session.accounts.list_accounts())
        return True

    async def _handle_account_add(self, args: Dict[str, Any]) -> bool:
        draft = {
            "name": args.get("name") or "",
            "email": args["email"],
            "aliases": args.get("aliases") or [],
            "is_default": bool(args.get("make_default")),
            "mailbox_endpoint": args.get("store_url"),
            "account_type": args.get("account_type"),
        }

        credential = None
        if not args.get("no_password"):
            credential = ask_password(self.console)

        accounts = self.session.accounts.add(draft, credential=credential)
        added = accounts[-1]
        print_success(f"Added account {added.id} ({escape(added.email)})", self.console)
        if credential is None:
            print_warning("No app password stored; sending may fail until one is set", self.console)
        return True

    async def _handle_account_edit(self, args: Dict[str, Any]) -> bool:
        account_id = args["id"]
        if self.session.accounts.get(account_id) is None:
            print_error(f"No account with id {account_id}", self.console)
            return False

        fields: Dict[str, Any] = {}
        for arg_name, field in (
            ("name", "name"),
            ("email", "email"),
            ("account_type", "account_type"),
            ("store_url", "mailbox_endpoint"),
        ):
            if args.get(arg_name) is not None:
                fields[field] = args[arg_name]
        if args.get("make_default"):
            fields["is_default"] = True

        credential = ask_password(self.console) if args.get("ask_password") else None

        if not fields and credential is None:
            print_warning("Nothing to change", self.console)
            return True

        self.session.accounts.update(account_id, fields, credential=credential)
        print_success(f"Updated account {account_id}", self.console)
        return True

    async def _handle_account_remove(self, args: Dict[str, Any]) -> bool:
        account_id = args["id"]
        if self.session.accounts.get(account_id) is None:
            print_error(f"No account with id {account_id}", self.console)
            return False

        self.session.accounts.remove(account_id)
        print_success(f"Removed account {account_id}", self.console)
        return True

    async def _handle_account_default(self, args: Dict[str, Any]) -> bool:
        account_id = args["id"]
        if self.session.accounts.get(account_id) is None:
            print_error(f"No account with id {account_id}", self.console)
            return False

        self.session.accounts.set_default(account_id)
        print_success(f"Account {account_id} is now the default", self.console)
        return True

    async def _handle_alias_add(self, args: Dict[str, Any]) -> bool:
        if self.session.accounts.get(args["id"]) is None:
            print_error(f"No account with id {args['id']}", self.console)
            return False

        self.session.accounts.add_alias(args["id"], args["alias"])
        print_success(f"Alias {escape(args['alias'])} added", self.console)
        return True

    async def _handle_alias_remove(self, args: Dict[str, Any]) -> bool:
        if self.session.accounts.get(args["id"]) is None:
            print_error(f"No account with id {args['id']}", self.console)
            return False

        self.session.accounts.remove_alias(args["id"], args["alias"])
        print_success(f"Alias {escape(args['alias'])} removed", self.console)
        return True

    async def _handle_account_push(self, args: Dict[str, Any]) -> bool:
        if not self.session.accounts.push_all():
            print_error("Cloud sync is unavailable: set a user identity with --user or VEMAIL_USER", self.console)
            return False

        print_status("Account list queued for sync", self.console)
        return True

    ## Mail Commands

    def _select_account(self, args: Dict[str, Any]) -> bool:
        account = self.session.select_account(args.get("account"))
        if account is None and not self.session.mailbox_email:
            print_error("No email account configured. Add one with 'vemail account add'.", self.console)
            return False
        return True

    async def _handle_mail_list(self, args: Dict[str, Any]) -> bool:
        if not self._select_account(args):
            return False

        if args.get("limit") is not None:
            self.session.page_size = args["limit"]

        folder = Folder.from_string(args.get("folder") or self.session.folder)
        messages = await self.session.select_folder(folder, offset=args.get("offset", 0))

        title = f"{folder.value.title()} - {self.session.mailbox_email}"
        MessageTable(self.console).display(messages or [], title=escape(title))
        return True

    async def _handle_mail_show(self, args: Dict[str, Any]) -> bool:
        if not self._select_account(args):
            return False

        detail = await self.session.open_message(args["id"])
        if detail is None:
            print_error(f"Could not load message {escape(args['id'])}", self.console)
            return False

        MessagePanel(self.console).display(detail)
        return True

    async def _handle_mail_mark(self, args: Dict[str, Any]) -> bool:
        if not self._select_account(args):
            return False

        mailbox = self.session.mailbox
        email, endpoint = self.session.mailbox_email, self.session.mailbox_endpoint
        flag = args["flag"]

        if flag in ("read", "unread"):
            ok = await mailbox.mark_read(email, args["id"], flag == "read", endpoint=endpoint)
        else:
            ok = await mailbox.set_starred(email, args["id"], flag == "star", endpoint=endpoint)

        return self._report(ok, f"Marked message {escape(args['id'])} as {flag}")

    async def _handle_mail_move(self, args: Dict[str, Any]) -> bool:
        if not self._select_account(args):
            return False

        ok = await self.session.mailbox.move(
            self.session.mailbox_email, args["id"], args["folder"],
            endpoint=self.session.mailbox_endpoint,
        )
        return self._report(ok, f"Moved message {escape(args['id'])} to {args['folder']}")

    async def _handle_mail_delete(self, args: Dict[str, Any]) -> bool:
        if not self._select_account(args):
            return False

        ok = await self.session.mailbox.delete(
            self.session.mailbox_email, args["id"], endpoint=self.session.mailbox_endpoint
        )
        return self._report(ok, f"Deleted message {escape(args['id'])}")

    ## Send Commands

    async def _handle_send(self, args: Dict[str, Any]) -> bool:
        body = args.get("html")
        if body is None:
            body = text_to_html(args.get("text") or "")

        result = await self.session.send(SendRequest(
            to=args["to"],
            subject=args["subject"],
            html=body,
            account_id=args.get("account"),
            from_email=args.get("from_email"),
        ))

        if not result.success:
            print_error(f"Send failed: {escape(result.error or '')}", self.console)
            return False

        print_success(f"Email sent to {escape(args['to'])}", self.console)
        return True

    async def _handle_gmail_sync(self, args: Dict[str, Any]) -> bool:
        if not self.session.user_email:
            print_error("Set a user identity with --user or VEMAIL_USER first", self.console)
            return False

        result = await self.session.sender.trigger_gmail_sync(self.session.user_email)
        if not result.success:
            print_error(escape(result.error or ""), self.console)
            return False

        print_success("Gmail sync started", self.console)
        return True

    ## Config Commands

    async def _handle_config_get(self, args: Dict[str, Any]) -> bool:
        config = self.config or ConfigManager()
        missing = object()
        value = config.get_config(args["key"], missing)

        if value is missing:
            print_error(f"Unknown config key: {escape(args['key'])}", self.console)
            return False

        self.console.print(f"{escape(args['key'])} = {escape(repr(value))}")
        return True

    async def _handle_config_set(self, args: Dict[str, Any]) -> bool:
        config = self.config or ConfigManager()
        config.set_config(args["key"], args["value"])
        print_success(f"{escape(args['key'])} updated", self.console)
        return True

    ## Helper Methods

    def _report(self, ok: bool, message: str) -> bool:
        if ok:
            print_success(message, self.console)
        else:
            print_error("Network error - could not reach email service", self.console)
        return ok
