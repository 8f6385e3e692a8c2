"""Core functionality for context-envelope."""
