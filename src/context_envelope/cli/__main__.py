"""CLI module entry point.

Enables running the CLI via: python -m context_envelope.cli
"""

from context_envelope.cli.main import cli

if __name__ == "__main__":
    cli()
