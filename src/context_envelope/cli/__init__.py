"""context-envelope command line interface.

JSON output for building, budgeting and inspecting context envelopes.
"""

from context_envelope.cli.main import cli

__all__ = ["cli"]
