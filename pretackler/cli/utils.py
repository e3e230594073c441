"""Shared CLI utilities.

Provides config loading, error-to-exit-code mapping and display helpers
for all commands.
"""

import functools
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

import structlog
import typer

from pretackler.models.config import PretacklerConfig
from pretackler.observability.logging import configure_logging
from pretackler.services.config_manager import ConfigManager
from pretackler.utils.exceptions import ConfigError

EXIT_OK = 0
EXIT_ITEMS_FAILED = 1
EXIT_CONFIG_ERROR = 2
EXIT_INTERRUPTED = 130

configure_logging()
logger = structlog.get_logger()

F = TypeVar("F", bound=Callable)


def load_config(
    config_path: Optional[Path],
    overrides: Optional[Dict[str, Any]] = None,
) -> PretacklerConfig:
    """Load configuration file (if any) and apply CLI overrides.

    Raises:
        ConfigError: File missing or settings invalid.
    """
    manager = ConfigManager(config_path=config_path)
    return manager.load_config(overrides)


def split_extensions(values: Optional[List[str]]) -> Optional[List[str]]:
    """Accept both repeated flags and comma-separated lists."""
    if not values:
        return None
    extensions = []
    for value in values:
        extensions.extend(part for part in value.split(",") if part.strip())
    return extensions


def handle_errors(func: F) -> F:
    """Decorator mapping exceptions to exit codes.

    ConfigError exits with 2, interruption with 130, anything else with 1.
    """

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except typer.Exit:
            raise
        except ConfigError as e:
            display_error(f"Configuration Error: {e}")
            raise typer.Exit(code=EXIT_CONFIG_ERROR)
        except KeyboardInterrupt:
            display_warning("Interrupted; in-flight temporary files were removed.")
            raise typer.Exit(code=EXIT_INTERRUPTED)
        except Exception as e:
            logger.exception("command_failed")
            display_error(f"Error: {e}")
            raise typer.Exit(code=EXIT_ITEMS_FAILED)

    return wrapper  # type: ignore[return-value]


def display_success(message: str) -> None:
    typer.secho(message, fg=typer.colors.GREEN)


def display_warning(message: str) -> None:
    typer.secho(message, fg=typer.colors.YELLOW)


def display_error(message: str) -> None:
    typer.secho(message, fg=typer.colors.RED, err=True)


def display_info(message: str) -> None:
    typer.secho(message, fg=typer.colors.CYAN)
