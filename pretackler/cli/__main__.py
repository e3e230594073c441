"""CLI entry point.

Allows running the CLI as a module: python -m pretackler.cli
"""

from pretackler.cli import app

if __name__ == "__main__":
    app()
