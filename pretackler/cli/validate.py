"""Validate command for configuration files."""

from pathlib import Path

import typer

from pretackler.cli.utils import display_success, handle_errors, load_config
from pretackler.orchestration.batch import BatchRunner


@handle_errors
def validate_command(
    config_path: Path = typer.Argument(..., help="Config file to validate"),
):
    """Validate configuration file syntax and semantics."""
    config = load_config(config_path)
    # Same startup checks as a run; no key or prompt is needed for them
    BatchRunner(config, api_key="", prompt="").validate()
    display_success("Configuration is valid!")
