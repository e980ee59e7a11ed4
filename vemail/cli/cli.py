"""Main CLI entry point."""

import asyncio
from typing import Any, Dict, Optional

from rich.console import Console

from vemail.core.session import MailSessionFactory
from vemail.utils.config import ConfigManager
from vemail.utils.errors import VemailError, format_error_message
from vemail.utils.logging import async_log_call, get_logger, init_logging

from .cli_parser import setup_argument_parser
from .router import SESSIONLESS_COMMANDS, CommandRouter

logger = get_logger(__name__)


def _args_to_dict(args) -> Dict[str, Any]:
    """Convert argparse Namespace to dictionary."""
    result = {}
    for key, value in vars(args).items():
        if key != "command" and value is not None:
            result[key] = value
    return result


@async_log_call
async def dispatch_command(args, console: Console, config: Optional[ConfigManager] = None) -> int:
    """Dispatch command via router inside a mail session.

    Args:
        args: Parsed arguments
        console: Rich console
        config: Loaded configuration (creates new if None)

    Returns:
        Exit code (0 = success, 1 = error)
    """
    command = args.command
    config = config or ConfigManager()
    args_dict = _args_to_dict(args)

    try:
        if command in SESSIONLESS_COMMANDS:
            router = CommandRouter(console, config=config)
            success = await router.route(command, args_dict)
            return 0 if success else 1

        async with MailSessionFactory.create(config, user_email=getattr(args, "user", None)) as session:
            await session.bootstrap()
            router = CommandRouter(console, session=session, config=config)
            success = await router.route(command, args_dict)

        return 0 if success else 1

    except VemailError as e:
        logger.error(f"Command '{command}' failed: {e.message}")
        console.print(f"[red]Error: {format_error_message(e)}[/red]")
        return 1

    except ValueError as e:
        logger.error(f"Invalid command: {e}")
        console.print(f"[red]Error: {e}[/red]")
        return 1

    except Exception as e:
        logger.error(f"Command failed: {e}")
        console.print(f"[red]Unexpected error: {format_error_message(e)}[/red]")
        return 1


def setup_logging(config: ConfigManager):
    """Apply the logging section of the config to the already running log manager."""
    settings = config.config.logging
    log_manager = init_logging(
        settings.log_level,
        force=True,
        max_file_size=settings.max_file_size,
        backup_count=settings.backup_count,
    )
    log_manager.set_level(settings.console_level)
    return log_manager


def main() -> int:
    """Main CLI entry point.

    Returns:
        Exit code
    """
    console = Console()

    try:
        parser = setup_argument_parser()
        args = parser.parse_args()

        try:
            config = ConfigManager()
        except Exception as e:
            logger.error(f"Configuration error: {e}")
            console.print(f"[red]Configuration error: {e}[/red]")
            return 1

        setup_logging(config)

        return asyncio.run(dispatch_command(args, console, config))

    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        return 130  # Standard SIGINT exit code

    except Exception as e:
        logger.error(f"Fatal error: {e}")
        console.print(f"[red]Fatal error: {e}[/red]")
        return 1


if __name__ == "__main__":
    exit(main())
