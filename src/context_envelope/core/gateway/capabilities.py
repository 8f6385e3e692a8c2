"""Model capability resolution.

Answers "what can this model accept?" with a strict precedence chain. The
first source that knows the model wins and is laid over the provider-family
defaults; sources are never blended with each other.

Precedence:
    1. Local override file (exact model name, re-read on every resolution)
    2. Built-in table of well-known models
    3. Remote catalog metadata (gateway-routed models only)
    4. Provider-family defaults (text-only)

Key Components:
    - CapabilityResolver: Resolver with injectable table, file and client
    - get_model_capabilities(): Resolve using global configuration
    - provider_defaults(): Family defaults used as the merge base

Usage:
    from context_envelope.core.gateway.capabilities import get_model_capabilities
    from context_envelope.core.gateway.models import ModelSelector, ProviderKind

    caps = await get_model_capabilities(
        ModelSelector(provider_kind=ProviderKind.PORTKEY, model="gpt-4o")
    )
    if not caps.supports_vision:
        ...
"""

import json
import logging
import re
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from context_envelope.core.gateway.metadata import PortkeyMetadataClient
from context_envelope.core.gateway.models import (
    ModelCapabilities,
    ModelMetadata,
    ModelSelector,
    ProviderKind,
)

logger = logging.getLogger(__name__)

LOCAL_PROVIDERS = frozenset({"ollama", "lmstudio", "local-openai-compatible"})

_VISION = {"supports_text": True, "supports_vision": True}

STATIC_CAPABILITIES: dict[str, dict[str, Any]] = {
    "gpt-4o": dict(_VISION),
    "gpt-4o-mini": dict(_VISION),
    "claude-3-5-sonnet-20241022": dict(_VISION),
    "claude-3-7-sonnet-20250219": dict(_VISION),
    "gemini-2.0-flash-exp": dict(_VISION),
}

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")
_CAPABILITY_FIELDS = frozenset(ModelCapabilities.model_fields)


TEXT_ONLY = ModelCapabilities(supports_text=True)

FAMILY_DEFAULTS: dict[str, ModelCapabilities] = {name: TEXT_ONLY for name in LOCAL_PROVIDERS}


def provider_defaults(provider: Optional[str] = None) -> ModelCapabilities:
    """Defaults for a provider family.

    Local families and every unrecognized provider are text-only.
    """
    return FAMILY_DEFAULTS.get((provider or "").lower(), TEXT_ONLY)


def _normalize_keys(entry: Mapping[str, Any]) -> dict[str, Any]:
    """Accept ``supportsVision`` as well as ``supports_vision``."""
    normalized = {}
    for key, value in entry.items():
        snake = _CAMEL_BOUNDARY.sub("_", key).lower()
        if snake in _CAPABILITY_FIELDS:
            normalized[snake] = value
    return normalized


def _merge(defaults: ModelCapabilities, partial: Mapping[str, Any]) -> ModelCapabilities:
    return ModelCapabilities.model_validate({**defaults.model_dump(), **partial})


def capabilities_from_metadata(metadata: ModelMetadata) -> dict[str, Any]:
    """Translate catalog metadata into capability fields.

    Without a modality list the booleans are left to the provider defaults;
    with one, each flag is a membership test.
    """
    fields: dict[str, Any] = {}
    modalities = metadata.modalities
    if modalities is not None:
        fields.update(
            supports_text="text" in modalities,
            supports_vision="image" in modalities,
            supports_audio_input="audio" in modalities,
            supports_audio_output="audio_output" in modalities,
            supports_pdf_native="pdf" in modalities,
            supports_image_generation="image_generation" in modalities,
        )
    for name in (
        "max_input_tokens",
        "max_output_tokens",
        "requires_images_first",
        "requires_base64_images",
    ):
        value = getattr(metadata, name)
        if value is not None:
            fields[name] = value
    return fields


class CapabilityResolver:
    """Resolve ``ModelCapabilities`` for a model selector."""

    def __init__(
        self,
        override_path: Optional[Path] = None,
        *,
        static_table: Optional[Mapping[str, Mapping[str, Any]]] = None,
        metadata_client: Optional[PortkeyMetadataClient] = None,
    ):
        """Initialize the resolver.

        Args:
            override_path: Local JSON override file keyed by model name
            static_table: Built-in capability table (default: STATIC_CAPABILITIES)
            metadata_client: Remote catalog client (default: built from env)
        """
        self.override_path = Path(override_path) if override_path else None
        self.static_table = STATIC_CAPABILITIES if static_table is None else static_table
        self.metadata_client = metadata_client or PortkeyMetadataClient()

    def load_overrides(self) -> dict[str, dict[str, Any]]:
        """Read the override file; missing or malformed files yield no overrides."""
        if self.override_path is None:
            return {}
        try:
            data = json.loads(self.override_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.debug(f"No capability override file at {self.override_path}")
            return {}
        except (OSError, ValueError) as e:
            logger.debug(f"Ignoring unreadable capability override file {self.override_path}: {e}")
            return {}

        if not isinstance(data, dict):
            logger.debug(f"Ignoring capability override file {self.override_path}: not an object")
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, dict)}

    async def resolve(
        self, selector: ModelSelector, api_key: Optional[str] = None
    ) -> ModelCapabilities:
        """Resolve capabilities for a selector.

        Never raises for lookup failures: remote errors are logged and the
        provider defaults are returned instead.

        Args:
            selector: Model and route
            api_key: Gateway key for remote lookups (falls back to the client's)

        Returns:
            Resolved capabilities
        """
        defaults = provider_defaults(selector.provider)

        override = self.load_overrides().get(selector.model)
        if override is not None:
            try:
                resolved = _merge(defaults, _normalize_keys(override))
                logger.debug(f"Capabilities for {selector.model} from local override")
                return resolved
            except ValidationError as e:
                logger.warning(f"Invalid capability override for {selector.model}: {e}")

        static = self.static_table.get(selector.model)
        if static is not None:
            logger.debug(f"Capabilities for {selector.model} from built-in table")
            return _merge(defaults, _normalize_keys(static))

        if selector.provider_kind == ProviderKind.PORTKEY:
            metadata = await self._fetch_metadata(selector.model, api_key)
            if metadata is not None:
                try:
                    resolved = _merge(defaults, capabilities_from_metadata(metadata))
                    logger.debug(f"Capabilities for {selector.model} from remote metadata")
                    return resolved
                except ValidationError as e:
                    logger.warning(f"Invalid remote metadata for {selector.model}: {e}")

        logger.debug(f"Capabilities for {selector.model} from provider defaults")
        return defaults

    async def _fetch_metadata(
        self, model: str, api_key: Optional[str]
    ) -> Optional[ModelMetadata]:
        try:
            return await self.metadata_client.get_model_metadata(model, api_key)
        except Exception as e:
            logger.warning(f"Model metadata unavailable for {model}: {e}")
            return None


async def get_model_capabilities(
    selector: ModelSelector,
    api_key: Optional[str] = None,
    *,
    resolver: Optional[CapabilityResolver] = None,
) -> ModelCapabilities:
    """Resolve capabilities, building a resolver from configuration if needed."""
    if resolver is None:
        from context_envelope.config import get_config

        settings = get_config().capabilities
        resolver = CapabilityResolver(
            settings.override_file,
            metadata_client=PortkeyMetadataClient(
                api_key=settings.metadata_api_key,
                base_url=settings.metadata_base_url,
                timeout=settings.metadata_timeout,
                max_retries=settings.metadata_max_retries,
            ),
        )
    return await resolver.resolve(selector, api_key)
