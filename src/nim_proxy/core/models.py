"""
Dataclasses métier pour NIM Proxy.
"""
from dataclasses import dataclass
from typing import Optional, Union

import httpx


@dataclass(frozen=True)
class ModelAlias:
    """Couple immuable nom public → nom du modèle NIM."""
    public_name: str
    backend_name: str


@dataclass(frozen=True)
class Resolution:
    """
    Résultat de la résolution d'un modèle.

    source vaut "alias", "cache", "probe" ou "fallback".
    thinking est vrai si la directive de raisonnement doit être envoyée.
    """
    public_name: str
    backend_name: str
    thinking: bool = False
    source: str = "alias"


@dataclass
class StreamState:
    """État mutable d'un flux SSE en cours (un par requête streaming)."""
    buffer: str = ""
    reasoning_open: bool = False


# ============================================================================
# RÉSULTATS D'APPEL UPSTREAM
# ============================================================================

@dataclass(frozen=True)
class UpstreamOk:
    """Réponse 2xx de l'API NIM."""
    response: httpx.Response


@dataclass(frozen=True)
class ProbeFailed:
    """La sonde n'a pas validé le modèle (erreur, timeout, non-2xx)."""
    reason: str


@dataclass(frozen=True)
class UpstreamFailure:
    """Échec d'une requête réelle, à propager au client."""
    status_code: int
    message: str


UpstreamResult = Union[UpstreamOk, ProbeFailed, UpstreamFailure]


def is_success(result: Optional[UpstreamResult]) -> bool:
    """Vrai si le résultat est une réponse 2xx."""
    return isinstance(result, UpstreamOk)
