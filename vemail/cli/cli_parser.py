"""Argument parser configuration for the vemail CLI"""

import argparse

from vemail import __version__
from vemail.core.models.account import AccountType
from vemail.core.models.message import Folder

ACCOUNT_TYPES = [t.value for t in AccountType]
FOLDERS = [f.value for f in Folder]
MOVE_TARGETS = [f.value for f in Folder if not f.is_virtual]


## Argument Adding Utilities

def add_account_option(parser: argparse.ArgumentParser) -> None:
    """Add --account for picking a non-default account."""

    parser.add_argument(
        "--account",
        metavar="ID",
        help="Account id to act as (default: the default account)"
    )

def add_account_fields(parser: argparse.ArgumentParser, editing: bool = False) -> None:
    """Add the account metadata options shared by add and edit."""

    parser.add_argument(
        "--email",
        required=not editing,
        help="Primary address of the account"
    )
    parser.add_argument(
        "--name",
        help="Display name"
    )
    parser.add_argument(
        "--type",
        dest="account_type",
        choices=ACCOUNT_TYPES,
        default=None if editing else AccountType.GMAIL.value,
        help="Outbound transport" + ("" if editing else " (default: gmail)")
    )
    parser.add_argument(
        "--store-url",
        dest="store_url",
        help="Mailbox store endpoint for this account (empty string for the default store)"
    )
    parser.add_argument(
        "--default",
        dest="make_default",
        action="store_true",
        help="Make this the default account"
    )


## Command Setup Functions

def setup_account_commands(subparsers) -> None:
    """Setup account management commands."""

    account_parser = subparsers.add_parser(
        "account",
        help="Manage email accounts",
        description="Add, edit and remove the email accounts this client sends and reads as"
    )

    account_subparsers = account_parser.add_subparsers(
        dest="account_command",
        required=True,
        help="Account operation to perform"
    )

    account_subparsers.add_parser(
        "list",
        help="List configured accounts"
    )

    add_parser = account_subparsers.add_parser(
        "add",
        help="Add an account"
    )
    add_account_fields(add_parser)
    add_parser.add_argument(
        "--alias",
        dest="aliases",
        action="append",
        help="Send-as alias (repeatable)"
    )
    add_parser.add_argument(
        "--no-password",
        dest="no_password",
        action="store_true",
        help="Do not prompt for an app password"
    )

    edit_parser = account_subparsers.add_parser(
        "edit",
        help="Edit an account"
    )
    edit_parser.add_argument("id", help="Account id")
    add_account_fields(edit_parser, editing=True)
    edit_parser.add_argument(
        "--password",
        dest="ask_password",
        action="store_true",
        help="Prompt for a new app password"
    )

    remove_parser = account_subparsers.add_parser(
        "remove",
        help="Remove an account"
    )
    remove_parser.add_argument("id", help="Account id")

    default_parser = account_subparsers.add_parser(
        "default",
        help="Set the default account"
    )
    default_parser.add_argument("id", help="Account id")

    alias_parser = account_subparsers.add_parser(
        "alias",
        help="Manage send-as aliases"
    )
    alias_subparsers = alias_parser.add_subparsers(
        dest="alias_command",
        required=True,
        help="Alias operation to perform"
    )
    for name, help_text in (("add", "Add an alias"), ("remove", "Remove an alias")):
        op_parser = alias_subparsers.add_parser(name, help=help_text)
        op_parser.add_argument("id", help="Account id")
        op_parser.add_argument("alias", help="Alias address")

    account_subparsers.add_parser(
        "push",
        help="Push all account metadata to the account service"
    )

def setup_mail_commands(subparsers) -> None:
    """Setup mailbox commands."""

    mail_parser = subparsers.add_parser(
        "mail",
        help="Read and organise mail",
        description="List, show, flag, move and delete messages in the mailbox store"
    )

    mail_subparsers = mail_parser.add_subparsers(
        dest="mail_command",
        required=True,
        help="Mailbox operation to perform"
    )

    list_parser = mail_subparsers.add_parser(
        "list",
        help="List messages in a folder"
    )
    list_parser.add_argument(
        "--folder",
        choices=FOLDERS,
        help="Folder to list (default: session.default_folder)"
    )
    list_parser.add_argument(
        "--limit",
        type=int,
        help="Page size (default: session.page_size)"
    )
    list_parser.add_argument(
        "--offset",
        type=int,
        default=0,
        help="Number of messages to skip (default: 0)"
    )
    add_account_option(list_parser)

    show_parser = mail_subparsers.add_parser(
        "show",
        help="Show a message"
    )
    show_parser.add_argument("id", help="Message id")
    add_account_option(show_parser)

    mark_parser = mail_subparsers.add_parser(
        "mark",
        help="Change read or starred state"
    )
    mark_parser.add_argument("id", help="Message id")
    flag_group = mark_parser.add_mutually_exclusive_group(required=True)
    flag_group.add_argument("--read", dest="flag", action="store_const", const="read")
    flag_group.add_argument("--unread", dest="flag", action="store_const", const="unread")
    flag_group.add_argument("--star", dest="flag", action="store_const", const="star")
    flag_group.add_argument("--unstar", dest="flag", action="store_const", const="unstar")
    add_account_option(mark_parser)

    move_parser = mail_subparsers.add_parser(
        "move",
        help="Move a message to another folder"
    )
    move_parser.add_argument("id", help="Message id")
    move_parser.add_argument("folder", choices=MOVE_TARGETS, help="Destination folder")
    add_account_option(move_parser)

    delete_parser = mail_subparsers.add_parser(
        "delete",
        help="Delete a message"
    )
    delete_parser.add_argument("id", help="Message id")
    add_account_option(delete_parser)

def setup_send_command(subparsers) -> None:
    """Setup the send command."""

    send_parser = subparsers.add_parser(
        "send",
        help="Send an email",
        description="Send an email through the account's transport"
    )
    send_parser.add_argument("--to", required=True, help="Recipient address")
    send_parser.add_argument("--subject", required=True, help="Subject line")

    body_group = send_parser.add_mutually_exclusive_group(required=True)
    body_group.add_argument("--html", help="HTML body")
    body_group.add_argument("--text", help="Plain text body")

    add_account_option(send_parser)
    send_parser.add_argument(
        "--from",
        dest="from_email",
        help="Send as this address (the account email or one of its aliases)"
    )

def setup_gmail_sync_command(subparsers) -> None:
    """Setup the manual Gmail sync command."""

    subparsers.add_parser(
        "gmail-sync",
        help="Pull new Gmail messages into the mailbox store now"
    )

def setup_config_commands(subparsers) -> None:
    """Setup configuration management commands."""

    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="Manage application configuration settings"
    )

    config_subparsers = config_parser.add_subparsers(
        dest="config_command",
        required=True,
        help="Configuration operation to perform"
    )

    get_parser = config_subparsers.add_parser(
        "get",
        help="Get a setting value"
    )
    get_parser.add_argument("key", help="Config key to get, e.g. service.request_timeout")

    set_parser = config_subparsers.add_parser(
        "set",
        help="Set a setting value"
    )
    set_parser.add_argument("key", help="Config key to set")
    set_parser.add_argument("value", help="New value for the config key")


## Main Parser Setup

def setup_argument_parser() -> argparse.ArgumentParser:
    """Setup the main argument parser for the vemail CLI."""

    parser = argparse.ArgumentParser(
        prog="vemail",
        description="Vemail client - manage accounts, read and send mail",
        epilog="Use 'vemail <command> --help' for command-specific help."
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"vemail {__version__}",
    )
    parser.add_argument(
        "--user",
        help="Signed-in user identity (default: VEMAIL_USER or session.user_email)"
    )

    subparsers = parser.add_subparsers(
        dest="command",
        required=True,
        help="Command to execute"
    )

    setup_account_commands(subparsers)
    setup_mail_commands(subparsers)
    setup_send_command(subparsers)
    setup_gmail_sync_command(subparsers)
    setup_config_commands(subparsers)

    return parser
