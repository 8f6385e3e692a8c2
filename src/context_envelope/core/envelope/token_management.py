"""Token estimation for envelope budgeting.

The budget ladder only needs token counts that are deterministic and never
decrease as text grows. The default estimator is the ``ceil(len / 4)``
character heuristic; callers with a real tokenizer can register one per
provider, and tiktoken is used when installed and a model is named.

Key Components:
    - TokenEstimator: Callable type accepted by the builder and budget engine
    - estimate_tokens(): Estimation with fallback chain and caching
    - register_provider_tokenizer(): Plug in a provider-native tokenizer
    - budget_for_capabilities(): Derive a token ceiling from model limits

Usage:
    from context_envelope.core.envelope.token_management import estimate_tokens

    tokens = estimate_tokens("Hello, world!")  # 4
    tokens = estimate_tokens(text, provider="openai", model="gpt-4o")
"""

import hashlib
import logging
import math
from typing import TYPE_CHECKING, Callable, Optional

if TYPE_CHECKING:
    from context_envelope.core.gateway.models import ModelCapabilities

logger = logging.getLogger(__name__)

# Optional tiktoken import for accurate token counting
try:
    import tiktoken
    _TIKTOKEN_AVAILABLE = True
except ImportError:
    tiktoken = None  # type: ignore
    _TIKTOKEN_AVAILABLE = False

CHARS_PER_TOKEN = 4

TokenEstimator = Callable[[str], int]

_MAX_CACHE_SIZE = 10_000
_TOKEN_ESTIMATE_CACHE: dict[tuple[str, str, str], int] = {}

_PROVIDER_TOKENIZERS: dict[str, TokenEstimator] = {}


def register_provider_tokenizer(provider: str, tokenizer: TokenEstimator) -> None:
    """Register a provider-specific tokenizer function.

    Args:
        provider: Provider identifier (e.g., "anthropic", "ollama")
        tokenizer: Function that takes content and returns a token count

    Example:
        register_provider_tokenizer("my_provider", lambda s: len(s.split()))
    """
    _PROVIDER_TOKENIZERS[provider.lower()] = tokenizer
    clear_token_cache()


def unregister_provider_tokenizer(provider: str) -> bool:
    """Remove a registered tokenizer. Returns True if one was removed."""
    removed = _PROVIDER_TOKENIZERS.pop(provider.lower(), None) is not None
    if removed:
        clear_token_cache()
    return removed


def _content_hash(content: str) -> str:
    return hashlib.sha256(content.encode("utf-8", errors="replace")).hexdigest()[:16]


def _estimate_with_tiktoken(content: str, model: str) -> Optional[int]:
    if not _TIKTOKEN_AVAILABLE or tiktoken is None:
        return None

    try:
        try:
            encoding = tiktoken.encoding_for_model(model)
        except KeyError:
            encoding = tiktoken.get_encoding("cl100k_base")
        return len(encoding.encode(content))
    except Exception as e:
        logger.debug(f"tiktoken estimation failed: {e}")
        return None


def estimate_heuristic(content: str) -> int:
    """Estimate tokens as ``ceil(len / 4)``; 0 for empty content."""
    return math.ceil(len(content) / CHARS_PER_TOKEN)


def estimate_tokens(
    content: str,
    provider: Optional[str] = None,
    model: Optional[str] = None,
    *,
    use_cache: bool = True,
) -> int:
    """Estimate the token count for content.

    Fallback chain:
    1. Provider-native tokenizer (if registered for ``provider``)
    2. tiktoken (if installed and ``model`` is given)
    3. Character/4 heuristic (always available)

    Without a provider or model the heuristic is used directly, which keeps
    envelope budgeting reproducible across environments.

    Args:
        content: Text content to estimate tokens for
        provider: Optional provider for provider-specific estimation
        model: Optional model for model-specific estimation
        use_cache: Whether to use/update the cache (default True)

    Returns:
        Estimated token count (0 for empty content)
    """
    if not content:
        return 0

    provider_key = (provider or "").lower()
    model_key = model or ""
    if not provider_key and not model_key:
        return estimate_heuristic(content)

    cache_key = (_content_hash(content), provider_key, model_key)
    if use_cache and cache_key in _TOKEN_ESTIMATE_CACHE:
        return _TOKEN_ESTIMATE_CACHE[cache_key]

    estimate: Optional[int] = None

    if provider_key and provider_key in _PROVIDER_TOKENIZERS:
        try:
            estimate = _PROVIDER_TOKENIZERS[provider_key](content)
        except Exception as e:
            logger.debug(f"Provider tokenizer failed for {provider_key}: {e}")

    if estimate is None and model_key:
        estimate = _estimate_with_tiktoken(content, model_key)

    if estimate is None:
        estimate = estimate_heuristic(content)
        logger.debug(
            f"Used character heuristic for token estimation (provider={provider or 'unknown'})"
        )

    if use_cache:
        if len(_TOKEN_ESTIMATE_CACHE) >= _MAX_CACHE_SIZE:
            # Simple eviction: clear half the cache
            for key in list(_TOKEN_ESTIMATE_CACHE.keys())[: _MAX_CACHE_SIZE // 2]:
                del _TOKEN_ESTIMATE_CACHE[key]
        _TOKEN_ESTIMATE_CACHE[cache_key] = estimate

    return estimate


def make_estimator(provider: Optional[str] = None, model: Optional[str] = None) -> TokenEstimator:
    """Bind provider/model into a single-argument estimator."""

    def _estimator(content: str) -> int:
        return estimate_tokens(content, provider, model)

    return _estimator


def clear_token_cache() -> int:
    """Clear the token estimation cache. Returns the number of entries cleared."""
    count = len(_TOKEN_ESTIMATE_CACHE)
    _TOKEN_ESTIMATE_CACHE.clear()
    return count


def get_cache_stats() -> dict[str, int]:
    """Return cache 'size' and 'max_size'."""
    return {"size": len(_TOKEN_ESTIMATE_CACHE), "max_size": _MAX_CACHE_SIZE}


def budget_for_capabilities(
    capabilities: "ModelCapabilities",
    *,
    reserved_output: int = 0,
    safety_margin: float = 0.0,
) -> int:
    """Derive an envelope token ceiling from a model's input limit.

    Args:
        capabilities: Resolved model capabilities
        reserved_output: Tokens to hold back from the input window
        safety_margin: Fraction (0.0-1.0) of the remaining window to leave unused

    Returns:
        Token ceiling, or 0 (no limit) when the model reports no input limit

    Raises:
        ValueError: If reserved_output is negative or safety_margin is out of range
    """
    if reserved_output < 0:
        raise ValueError(f"reserved_output must be non-negative, got {reserved_output}")
    if not 0.0 <= safety_margin < 1.0:
        raise ValueError(f"safety_margin must be in [0.0, 1.0), got {safety_margin}")

    limit = capabilities.max_input_tokens
    if not limit:
        return 0

    available = max(limit - reserved_output, 1)
    return max(int(available * (1.0 - safety_margin)), 1)
