"""
Réécriture du flux SSE NIM vers le format OpenAI.

Pourquoi cette complexité:
- Les chunks réseau ne s'alignent ni sur les lignes ni sur les caractères UTF-8
- Le raisonnement (reasoning_content) et la réponse (content) doivent être
  fusionnés dans un seul champ content
- La balise fermante </think> doit partir dans son propre événement: les
  clients affichent les deltas en ajout pur
- Une ligne malformée ne doit jamais casser un flux sain
"""
import codecs
import json
import logging
from datetime import datetime
from typing import Any, AsyncGenerator, Dict, List, Optional

import httpx

from ..core.constants import (
    REASONING_FIELD,
    STREAM_OPEN_MARKER,
    STREAM_CLOSE_MARKER,
)
from ..core.exceptions import StreamingError
from ..core.models import StreamState

logger = logging.getLogger(__name__)

DONE_PAYLOAD = "[DONE]"
DONE_EVENT = b"data: [DONE]\n\n"

# Types d'erreurs streaming connus
STREAMING_ERROR_TYPES = {
    "read_error": "Connexion interrompue par le provider",
    "connect_error": "Impossible de se connecter au provider",
    "timeout_error": "Timeout lors de la lecture du stream",
    "unknown": "Erreur streaming inconnue"
}


def format_event(data: Any) -> bytes:
    """Sérialise un payload en événement SSE `data: <json>`."""
    return f"data: {json.dumps(data, ensure_ascii=False)}\n\n".encode("utf-8")


class StreamTransformer:
    """
    Machine à états d'un flux SSE (une instance par requête streaming).

    feed(chunk) et finish() retournent zéro ou plusieurs événements complets,
    prêts à être envoyés au client.
    """

    def __init__(self, show_reasoning: bool = False):
        self.show_reasoning = show_reasoning
        self.state = StreamState()
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: bytes) -> List[bytes]:
        """Ajoute un chunk réseau et retourne les événements complets."""
        self.state.buffer += self._decoder.decode(chunk)
        lines = self.state.buffer.split("\n")
        self.state.buffer = lines.pop()

        events: List[bytes] = []
        for line in lines:
            events.extend(self._process_line(line))
        return events

    def finish(self) -> List[bytes]:
        """Fin du flux upstream: vide le buffer et ferme le raisonnement ouvert."""
        self.state.buffer += self._decoder.decode(b"", final=True)
        tail, self.state.buffer = self.state.buffer, ""

        events: List[bytes] = []
        if tail:
            events.extend(self._process_line(tail))

        if self.show_reasoning and self.state.reasoning_open:
            events.append(self._closing_event())
            self.state.reasoning_open = False
        return events

    def _process_line(self, raw_line: str) -> List[bytes]:
        line = raw_line[:-1] if raw_line.endswith("\r") else raw_line
        if not line.startswith("data:"):
            return []

        payload = line[len("data:"):].strip()
        if payload == DONE_PAYLOAD:
            events = []
            if self.state.reasoning_open:
                events.append(self._closing_event())
                self.state.reasoning_open = False
            events.append(DONE_EVENT)
            return events

        try:
            data = json.loads(payload)
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning("[STREAM] Ligne SSE ignorée (JSON invalide): %s", e)
            return []

        events: List[bytes] = []
        delta = _first_delta(data)
        if delta is not None:
            events.extend(self._merge_delta(data, delta))
        events.append(format_event(data))
        return events

    def _merge_delta(self, data: Dict[str, Any], delta: Dict[str, Any]) -> List[bytes]:
        """
        Fusionne reasoning_content dans content (modifie delta en place).

        Retourne l'éventuel événement de fermeture à émettre avant data.
        """
        reasoning = delta.pop(REASONING_FIELD, None)
        content = delta.get("content")

        if not self.show_reasoning:
            delta["content"] = content or ""
            return []

        events: List[bytes] = []
        if self.state.reasoning_open and not reasoning and content:
            events.append(self._closing_event(data))
            self.state.reasoning_open = False

        combined = ""
        if reasoning and not self.state.reasoning_open:
            combined = STREAM_OPEN_MARKER + reasoning
            self.state.reasoning_open = True
        elif reasoning:
            combined = reasoning
        if content:
            combined += content

        delta["content"] = combined
        return events

    @staticmethod
    def _closing_event(template: Optional[Dict[str, Any]] = None) -> bytes:
        event: Dict[str, Any] = {}
        if template is not None:
            for key in ("id", "object"):
                if key in template:
                    event[key] = template[key]
        choice: Dict[str, Any] = {"index": 0, "delta": {"content": STREAM_CLOSE_MARKER}}
        if template is not None:
            choice["finish_reason"] = None
        event["choices"] = [choice]
        return format_event(event)


def _first_delta(data: Any) -> Optional[Dict[str, Any]]:
    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    first = choices[0]
    if not isinstance(first, dict):
        return None
    delta = first.get("delta")
    return delta if isinstance(delta, dict) else None


async def stream_generator(
    response: httpx.Response,
    transformer: StreamTransformer
) -> AsyncGenerator[bytes, None]:
    """
    Générateur de streaming: lit la réponse NIM et émet les événements réécrits.

    Pourquoi le finally: si le client se déconnecte, Starlette ferme le
    générateur et la requête upstream est interrompue avec lui.

    Args:
        response: Réponse HTTPX en streaming (statut 2xx)
        transformer: État du flux pour cette requête

    Yields:
        Événements SSE complets

    Raises:
        Aucune: les erreurs sont loggées et le flux se termine proprement
    """
    chunk_count = 0
    stream_start_time = datetime.now()

    try:
        async for chunk in response.aiter_bytes():
            chunk_count += 1
            for event in transformer.feed(chunk):
                yield event

        for event in transformer.finish():
            yield event

    except httpx.ReadError as e:
        _log_streaming_error("read_error", chunk_count, e, stream_start_time)

    except httpx.ConnectError as e:
        _log_streaming_error("connect_error", chunk_count, e, stream_start_time)

    except httpx.TimeoutException as e:
        _log_streaming_error("timeout_error", chunk_count, e, stream_start_time)

    except Exception as e:
        _log_streaming_error("unknown", chunk_count, e, stream_start_time)

    finally:
        await response.aclose()


def _log_streaming_error(
    error_type: str,
    chunks_received: int,
    error: BaseException,
    start_time: datetime
) -> None:
    """Log structuré d'une erreur streaming (le flux client se termine ici)."""
    duration = (datetime.now() - start_time).total_seconds()
    err = StreamingError(
        message=STREAMING_ERROR_TYPES.get(error_type, STREAMING_ERROR_TYPES["unknown"]),
        error_type=error_type,
        chunks_received=chunks_received
    )
    logger.error(
        "[STREAM_ERROR] %s | durée: %.2fs | détail: %s",
        err, duration, str(error)[:200]
    )
