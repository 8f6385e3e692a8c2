"""context-envelope: token-budgeted, multi-modal context for LLM requests."""

from importlib.metadata import PackageNotFoundError, version as _get_package_version

try:
    __version__ = _get_package_version("context-envelope")
except PackageNotFoundError:
    __version__ = "0.3.0"  # Fallback for dev without install

__all__ = ["__version__"]
