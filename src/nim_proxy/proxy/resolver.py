"""
Résolution des noms de modèles publics vers les modèles NIM.

Ordre de résolution:
1. Table d'alias statique (aucun appel réseau)
2. Cache des sondes précédentes (None = sonde échouée)
3. Sonde upstream: le nom est-il lui-même un modèle NIM valide ?
4. Heuristique de repli sur le nom en minuscules

Un échec de sonde est mis en cache pour toute la durée de vie du process:
si NIM ajoute plus tard ce modèle, il faut redémarrer le proxy.
"""
import logging
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, Optional, Tuple, Protocol

from ..config.settings import FallbackModels
from ..core.constants import FALLBACK_LARGE_HINTS, FALLBACK_MEDIUM_HINTS
from ..core.models import ModelAlias, Resolution, UpstreamResult, is_success

logger = logging.getLogger(__name__)


class Prober(Protocol):
    async def probe(self, model: str) -> UpstreamResult:
        ...


class AliasTable:
    """Table immuable nom public → modèle NIM, chargée une fois au démarrage."""

    def __init__(self, mapping: Dict[str, str]):
        self._mapping = MappingProxyType(dict(mapping))

    @classmethod
    def from_aliases(cls, aliases: Iterable[ModelAlias]) -> "AliasTable":
        return cls({alias.public_name: alias.backend_name for alias in aliases})

    def get(self, public_name: str) -> Optional[str]:
        return self._mapping.get(public_name)

    def aliases(self) -> Tuple[ModelAlias, ...]:
        return tuple(
            ModelAlias(public_name=name, backend_name=backend)
            for name, backend in self._mapping.items()
        )

    def __contains__(self, public_name: object) -> bool:
        return public_name in self._mapping

    def __iter__(self) -> Iterator[str]:
        return iter(self._mapping)

    def __len__(self) -> int:
        return len(self._mapping)


def fallback_model(public_name: str, fallback: FallbackModels) -> str:
    """
    Choisit un modèle de repli d'après le nom demandé.

    La première règle qui correspond gagne: "gpt-4-70b" donne le grand
    modèle, pas le moyen.
    """
    lowered = public_name.lower()
    if any(hint in lowered for hint in FALLBACK_LARGE_HINTS):
        return fallback.large
    if any(hint in lowered for hint in FALLBACK_MEDIUM_HINTS):
        return fallback.medium
    return fallback.small


class ModelResolver:
    """
    Résout un nom public en modèle NIM utilisable. Ne lève jamais.

    Le cache est propre à l'instance et partagé par toutes les requêtes de la
    boucle asyncio. Deux sondes concurrentes pour le même nom peuvent partir
    en parallèle; chacune écrit son résultat (identique) dans le cache.
    """

    def __init__(
        self,
        aliases: AliasTable,
        prober: Prober,
        fallback: FallbackModels = None,
        thinking_capable: Iterable[str] = (),
        thinking_enabled: bool = True
    ):
        self.aliases = aliases
        self.prober = prober
        self.fallback = fallback or FallbackModels()
        self.thinking_capable = frozenset(thinking_capable)
        self.thinking_enabled = thinking_enabled
        self._cache: Dict[str, Optional[str]] = {}

    @property
    def cache(self) -> Dict[str, Optional[str]]:
        """Vue en lecture du cache (copie)."""
        return dict(self._cache)

    def is_thinking_capable(self, backend_name: str) -> bool:
        return self.thinking_enabled and backend_name in self.thinking_capable

    async def resolve(self, public_name: str) -> Resolution:
        """
        Résout un nom public.

        Args:
            public_name: Nom du modèle envoyé par le client

        Returns:
            Resolution (modèle NIM, éligibilité thinking, source)
        """
        backend = self.aliases.get(public_name)
        if backend is not None:
            return self._finish(public_name, backend, "alias")

        if public_name in self._cache:
            backend = self._cache[public_name]
            source = "cache"
        else:
            backend = await self._probe(public_name)
            source = "probe"

        if backend is None:
            backend = fallback_model(public_name, self.fallback)
            source = "fallback"

        return self._finish(public_name, backend, source)

    async def _probe(self, public_name: str) -> Optional[str]:
        result = await self.prober.probe(public_name)
        backend = public_name if is_success(result) else None
        # Mis en cache avant utilisation
        self._cache[public_name] = backend
        return backend

    def _finish(self, public_name: str, backend: str, source: str) -> Resolution:
        resolution = Resolution(
            public_name=public_name,
            backend_name=backend,
            thinking=self.is_thinking_capable(backend),
            source=source
        )
        logger.info(
            "[PROXY] %s -> %s | thinking: %s (%s)",
            public_name, backend, resolution.thinking, source
        )
        return resolution

    def forget(self, public_name: str) -> None:
        """Retire un nom du cache (outil opérateur, jamais appelé par les requêtes)."""
        self._cache.pop(public_name, None)

    def clear_cache(self) -> None:
        self._cache.clear()
