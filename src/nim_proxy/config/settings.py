"""
Dataclasses pour la configuration.
"""
from dataclasses import dataclass, field
from typing import Dict, Any, FrozenSet, Tuple

from ..core.constants import (
    DEFAULT_NIM_API_BASE,
    PROBE_TIMEOUT,
    REQUEST_TIMEOUT,
    DEFAULT_TEMPERATURE,
    DEFAULT_MAX_TOKENS,
    SHOW_REASONING,
    ENABLE_THINKING_MODE,
    DEFAULT_MODEL_ALIASES,
    DEFAULT_THINKING_CAPABLE_MODELS,
    FALLBACK_LARGE_MODEL,
    FALLBACK_MEDIUM_MODEL,
    FALLBACK_SMALL_MODEL,
)
from ..core.exceptions import ConfigurationError
from ..core.models import ModelAlias


@dataclass(frozen=True)
class UpstreamConfig:
    """Connexion à l'API NIM."""
    base_url: str = DEFAULT_NIM_API_BASE
    api_key: str = ""
    probe_timeout: float = PROBE_TIMEOUT
    request_timeout: float = REQUEST_TIMEOUT

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UpstreamConfig":
        """Crée une instance depuis un dictionnaire."""
        return cls(
            base_url=(data.get("base_url") or DEFAULT_NIM_API_BASE).rstrip("/"),
            api_key=data.get("api_key", ""),
            probe_timeout=float(data.get("probe_timeout", PROBE_TIMEOUT)),
            request_timeout=float(data.get("request_timeout", REQUEST_TIMEOUT))
        )

    def validate(self) -> None:
        """Une clé absente (ou ${VAR} non résolue) est fatale au démarrage."""
        if not self.api_key or self.api_key.startswith("${"):
            raise ConfigurationError(
                message="NIM_API_KEY n'est pas défini",
                config_key="upstream.api_key"
            )


@dataclass(frozen=True)
class DisplayConfig:
    """Modes d'affichage du raisonnement."""
    show_reasoning: bool = SHOW_REASONING
    enable_thinking_mode: bool = ENABLE_THINKING_MODE

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DisplayConfig":
        """Crée une instance depuis un dictionnaire."""
        return cls(
            show_reasoning=bool(data.get("show_reasoning", SHOW_REASONING)),
            enable_thinking_mode=bool(data.get("enable_thinking_mode", ENABLE_THINKING_MODE))
        )


@dataclass(frozen=True)
class RequestDefaults:
    """Valeurs appliquées quand le client ne les fournit pas."""
    temperature: float = DEFAULT_TEMPERATURE
    max_tokens: int = DEFAULT_MAX_TOKENS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RequestDefaults":
        """Crée une instance depuis un dictionnaire."""
        return cls(
            temperature=float(data.get("temperature", DEFAULT_TEMPERATURE)),
            max_tokens=int(data.get("max_tokens", DEFAULT_MAX_TOKENS))
        )


@dataclass(frozen=True)
class FallbackModels:
    """Modèles de repli quand la sonde échoue."""
    large: str = FALLBACK_LARGE_MODEL
    medium: str = FALLBACK_MEDIUM_MODEL
    small: str = FALLBACK_SMALL_MODEL

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FallbackModels":
        """Crée une instance depuis un dictionnaire."""
        return cls(
            large=data.get("large", FALLBACK_LARGE_MODEL),
            medium=data.get("medium", FALLBACK_MEDIUM_MODEL),
            small=data.get("small", FALLBACK_SMALL_MODEL)
        )


@dataclass(frozen=True)
class Settings:
    """Configuration globale de l'application."""
    upstream: UpstreamConfig = field(default_factory=UpstreamConfig)
    display: DisplayConfig = field(default_factory=DisplayConfig)
    defaults: RequestDefaults = field(default_factory=RequestDefaults)
    fallback: FallbackModels = field(default_factory=FallbackModels)
    aliases: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_MODEL_ALIASES))
    thinking_capable: FrozenSet[str] = DEFAULT_THINKING_CAPABLE_MODELS

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> "Settings":
        """
        Crée une instance depuis la configuration chargée.

        Raises:
            ConfigurationError: Si la clé API est absente
        """
        aliases = config.get("aliases")
        thinking = config.get("thinking", {}).get("models")

        settings = cls(
            upstream=UpstreamConfig.from_dict(config.get("upstream", {})),
            display=DisplayConfig.from_dict(config.get("display", {})),
            defaults=RequestDefaults.from_dict(config.get("defaults", {})),
            fallback=FallbackModels.from_dict(config.get("fallback", {})),
            aliases=dict(aliases) if aliases else dict(DEFAULT_MODEL_ALIASES),
            thinking_capable=(
                frozenset(thinking) if thinking is not None
                else DEFAULT_THINKING_CAPABLE_MODELS
            )
        )
        settings.upstream.validate()
        return settings

    def model_aliases(self) -> Tuple[ModelAlias, ...]:
        """Alias configurés, dans l'ordre du fichier."""
        return tuple(
            ModelAlias(public_name=name, backend_name=backend)
            for name, backend in self.aliases.items()
        )

    @classmethod
    def load(cls, config_path: str = None) -> "Settings":
        """Charge config.toml (+ env) et construit les settings."""
        from .loader import load_config

        return cls.from_config(load_config(config_path))
