"""Model selection: resolve a requested model id to a host model.

Every dialect accepts a synthetic default id (``lmbridge`` unless
configured otherwise) meaning "whatever model is configured as the
default for this provider". The ``claude`` provider additionally remaps
Claude Code's model aliases onto two configured models: one for
background work (haiku) and one for thinking (sonnet, opus).
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from ..core.exceptions import BridgeError, ModelNotFoundError
from .base import HostModel, ModelInfo

logger = logging.getLogger("lmbridge")

DEFAULT_MODEL_ALIAS = "lmbridge"

PROVIDER_OPENAI = "openai"
PROVIDER_ANTHROPIC = "anthropic"
PROVIDER_CLAUDE = "claude"


@dataclass
class ModelSelectionSettings:
    """Configured default models per provider."""
    default_model_alias: str = DEFAULT_MODEL_ALIAS
    openai_default: Optional[str] = None
    anthropic_default: Optional[str] = None
    background_model: Optional[str] = None
    thinking_model: Optional[str] = None

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "ModelSelectionSettings":
        models_cfg = config.get("models") or {}
        return cls(
            default_model_alias=str(models_cfg.get("default_model_alias") or DEFAULT_MODEL_ALIAS),
            openai_default=models_cfg.get("openai_default"),
            anthropic_default=models_cfg.get("anthropic_default"),
            background_model=models_cfg.get("background_model"),
            thinking_model=models_cfg.get("thinking_model"),
        )


class ModelSelector:
    """Resolves requested model ids against the host model's catalogue."""

    def __init__(self, host: HostModel, settings: Optional[ModelSelectionSettings] = None) -> None:
        self.host = host
        self.settings = settings or ModelSelectionSettings()

    @property
    def default_model_alias(self) -> str:
        return self.settings.default_model_alias

    def _provider_default(self, provider: str) -> Optional[str]:
        if provider == PROVIDER_OPENAI:
            return self.settings.openai_default
        return self.settings.anthropic_default

    def select_model_id(self, requested: str, provider: str) -> Optional[str]:
        """Apply alias rules. Returns None when the provider default should be used."""
        selected: Optional[str] = requested
        if requested == self.settings.default_model_alias:
            selected = self._provider_default(provider)

        if provider == PROVIDER_CLAUDE:
            if "haiku" in requested:
                selected = self.settings.background_model or self._provider_default(provider)
            elif "sonnet" in requested or "opus" in requested:
                selected = self.settings.thinking_model or self._provider_default(provider)
        return selected

    async def resolve(self, requested: str, provider: str) -> ModelInfo:
        """Resolve ``requested`` for ``provider`` to a host model.

        Raises:
            ModelNotFoundError: If no matching model exists.
        """
        selected = self.select_model_id(requested, provider)
        try:
            models = await self.host.list_models()
        except BridgeError as exc:
            raise ModelNotFoundError(f"Unable to list models: {exc.message}") from exc

        if selected is None:
            if not models:
                raise ModelNotFoundError(f"No valid {provider} model selected")
            logger.debug("No %s default configured, using first model %s", provider, models[0].id)
            return models[0]

        for model in models:
            if model.id == selected:
                logger.debug("Resolved model %s -> %s (provider=%s)", requested, model.id, provider)
                return model
        raise ModelNotFoundError(f"Model {selected} not found")
