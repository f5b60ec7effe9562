"""
Transformations entre le format OpenAI (client) et l'API NIM (upstream).
"""
import logging
import re
import time
from typing import Dict, Any, List, Optional, Tuple

from ..config.settings import RequestDefaults
from ..core.constants import (
    REASONING_FIELD,
    THINK_OPEN_TAG,
    THINK_CLOSE_TAG,
    THINKING_DIRECTIVE,
)
from ..core.models import Resolution

logger = logging.getLogger(__name__)

# Raisonnement embarqué en texte brut par un modèle non-thinking
_INLINE_THINK_RE = re.compile(
    "^" + re.escape(THINK_OPEN_TAG) + r"(.*?)" + re.escape(THINK_CLOSE_TAG) + r"\s*(.*)$",
    re.DOTALL
)

EMPTY_USAGE = {
    "prompt_tokens": 0,
    "completion_tokens": 0,
    "total_tokens": 0
}


def wrap_reasoning(reasoning: str, content: str) -> str:
    """Encadre le raisonnement entre balises <think> devant le contenu."""
    return f"{THINK_OPEN_TAG}\n{reasoning}\n{THINK_CLOSE_TAG}\n\n{content}"


def split_inline_reasoning(content: str) -> Optional[Tuple[str, str]]:
    """
    Sépare un bloc <think>...</think> placé en tête du contenu.

    Returns:
        (raisonnement, contenu) nettoyés, ou None si le contenu ne commence
        pas par un bloc complet
    """
    match = _INLINE_THINK_RE.match(content)
    if not match:
        return None
    return match.group(1).strip(), match.group(2).strip()


class RequestTranslator:
    """Construit le corps de requête NIM à partir de la requête client."""

    def __init__(self, defaults: RequestDefaults = None):
        self.defaults = defaults or RequestDefaults()

    def build(self, inbound: Dict[str, Any], resolution: Resolution) -> Dict[str, Any]:
        """
        Args:
            inbound: Corps JSON reçu du client
            resolution: Modèle NIM résolu

        Returns:
            Corps JSON à envoyer à l'API NIM
        """
        temperature = inbound.get("temperature")
        max_tokens = inbound.get("max_tokens")

        upstream = {
            "model": resolution.backend_name,
            "messages": inbound["messages"],
            "temperature": self.defaults.temperature if temperature is None else temperature,
            "max_tokens": self.defaults.max_tokens if max_tokens is None else max_tokens,
            "stream": bool(inbound.get("stream", False)),
        }

        # Omission (pas de false): certains modèles rejettent les champs inconnus
        if resolution.thinking:
            upstream.update(
                {key: dict(value) for key, value in THINKING_DIRECTIVE.items()}
            )

        return upstream


class ResponseBuilder:
    """Traduit une réponse NIM complète (non-streaming) au format OpenAI."""

    def __init__(self, show_reasoning: bool = False):
        self.show_reasoning = show_reasoning

    def build(
        self,
        requested_model: str,
        upstream: Dict[str, Any],
        thinking: bool = False
    ) -> Dict[str, Any]:
        """
        Args:
            requested_model: Nom de modèle demandé par le client (renvoyé tel quel)
            upstream: Réponse JSON de l'API NIM
            thinking: Vrai si le modèle résolu a reçu la directive thinking

        Returns:
            Réponse chat.completion
        """
        now = time.time()
        choices = upstream.get("choices") or []

        return {
            "id": f"chatcmpl-{int(now * 1000)}",
            "object": "chat.completion",
            "created": int(now),
            "model": requested_model,
            "choices": [self._build_choice(choice, thinking) for choice in choices],
            "usage": upstream.get("usage") or dict(EMPTY_USAGE),
        }

    def _build_choice(self, choice: Dict[str, Any], thinking: bool) -> Dict[str, Any]:
        message = choice.get("message") or {}
        content = message.get("content") or ""
        reasoning = message.get(REASONING_FIELD) or ""

        if not thinking and not reasoning and THINK_OPEN_TAG in content:
            inline = split_inline_reasoning(content)
            if inline is not None:
                extracted_reasoning, extracted_content = inline
                logger.debug("[RESPONSE] Raisonnement inline extrait (%d caractères)", len(extracted_reasoning))
                if self.show_reasoning:
                    content = wrap_reasoning(extracted_reasoning, extracted_content)
                else:
                    content = extracted_content
                return self._choice(choice, message, content)

        if self.show_reasoning and reasoning:
            content = wrap_reasoning(reasoning, content)

        return self._choice(choice, message, content)

    @staticmethod
    def _choice(choice: Dict[str, Any], message: Dict[str, Any], content: str) -> Dict[str, Any]:
        return {
            "index": choice.get("index", 0),
            "message": {"role": message.get("role", "assistant"), "content": content},
            "finish_reason": choice.get("finish_reason"),
        }


def build_choices_summary(choices: List[Dict[str, Any]]) -> str:
    """Résumé court pour les logs de debug."""
    if not choices:
        return "aucun choix"
    content = (choices[0].get("message") or {}).get("content") or ""
    return f"{len(choices)} choix, {len(content)} caractères"
