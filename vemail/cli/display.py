"""Rich display components for accounts and messages."""

from typing import List, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Prompt
from rich.table import Table

from vemail.core.models.account import Account
from vemail.core.models.message import MessageDetail, StoredMessage
from vemail.utils.console import get_console


def _truncate(text: str, length: int) -> str:
    if len(text) <= length:
        return text
    return text[: length - 3] + "..."


class AccountTable:
    """Table of configured accounts, default marked with a star."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or get_console()

    def display(self, accounts: List[Account], title: str = "Accounts") -> None:
        if not accounts:
            self.console.print("[yellow]No accounts configured[/yellow]")
            return

        table = Table(title=title)
        table.add_column("", style="yellow", width=2, justify="center")
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Name", style="magenta")
        table.add_column("Email", style="green")
        table.add_column("Type", style="white")
        table.add_column("Aliases", style="white")
        table.add_column("Password", style="blue", justify="center")
        table.add_column("Store", style="dim")

        for account in accounts:
            table.add_row(
                "*" if account.is_default else "",
                account.id,
                escape(account.name),
                escape(account.email),
                account.account_type.value,
                escape(", ".join(account.aliases)),
                "yes" if account.has_password else "",
                escape(account.mailbox_endpoint or "default"),
            )

        self.console.print(table)


class MessageTable:
    """Table of message headers for one folder page."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or get_console()

    def display(self, messages: List[StoredMessage], title: str = "Messages") -> None:
        if not messages:
            self.console.print("[yellow]No emails to display[/yellow]")
            return

        table = Table(title=title)
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("From", style="magenta", min_width=20)
        table.add_column("Subject", style="green", min_width=20)
        table.add_column("Received", style="yellow", justify="right")
        table.add_column("", style="blue", width=3, justify="center")
        table.add_column("", style="red", width=3, justify="center")

        for message in messages:
            subject = escape(_truncate(message.display_subject, 40))
            if not message.read:
                subject = f"[bold]{subject}[/bold]"

            received = message.received_datetime
            table.add_row(
                message.id,
                escape(_truncate(message.sender_name, 25)),
                subject,
                received.strftime("%Y-%m-%d %H:%M") if received else message.received_at,
                "@" if message.has_attachments else "",
                "*" if message.starred else "",
            )

        self.console.print(table)


class MessagePanel:
    """Header and body panels for a single message."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or get_console()

    def display(self, detail: MessageDetail) -> None:
        message = detail.message
        header = [
            f"[bold]From:[/bold] {escape(message.sender_name)} <{escape(message.from_address)}>",
            f"[bold]To:[/bold] {escape(message.to_address)}",
        ]
        if message.cc:
            header.append(f"[bold]Cc:[/bold] {escape(message.cc)}")
        header.append(f"[bold]Date:[/bold] {escape(message.received_at)}")
        header.append(f"[bold]Subject:[/bold] {escape(message.display_subject)}")

        self.console.print(Panel(
            "\n".join(header),
            title=f"[bold]Email {escape(message.id)}[/bold]",
            border_style="cyan",
            padding=(1, 2),
        ))

        # Terminals read plain text better than markup
        body = detail.body_text or detail.body
        self.console.print(Panel(
            escape(body) if body.strip() else "[italic dim]No content[/italic dim]",
            title="[bold]Body[/bold]",
            border_style="cyan dim",
            padding=(1, 2),
        ))


def ask_password(console: Optional[Console] = None, message: str = "App password") -> Optional[str]:
    """Hidden prompt for an app password; None if skipped or cancelled."""
    try:
        value = Prompt.ask(
            f"{message} [dim](leave blank to skip)[/dim]",
            password=True,
            default="",
            show_default=False,
            console=console or get_console(),
        )
    except (KeyboardInterrupt, EOFError):
        return None
    return value or None
