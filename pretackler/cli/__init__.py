"""PreTackler CLI Package.

Usage:
    pretackler run ./project --version v2 --concurrency-ceil 8
    pretackler run big_file.rs --dry-run
    pretackler validate config/pretackler.yaml
"""

import typer

from pretackler.cli.run import run_command
from pretackler.cli.validate import validate_command

app = typer.Typer(help="PreTackler: batch source-file summarization")

app.command(name="run")(run_command)
app.command(name="validate")(validate_command)

__all__ = ["app", "run_command", "validate_command"]
