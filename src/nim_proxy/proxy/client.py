"""
Client HTTPX vers l'API NIM.

Les appels ne lèvent jamais: ils retournent un résultat typé
(UpstreamOk | ProbeFailed | UpstreamFailure). Aucun retry, que ce soit
pour la sonde ou pour la requête réelle.
"""
import json
import logging
from typing import Dict, Any, Optional

import httpx

from ..config.settings import UpstreamConfig
from ..core.constants import CONNECT_TIMEOUT, PROBE_MESSAGES
from ..core.models import UpstreamOk, ProbeFailed, UpstreamFailure, UpstreamResult

logger = logging.getLogger(__name__)


def extract_error_message(response: httpx.Response, body: bytes = None) -> str:
    """
    Extrait un message lisible d'une réponse d'erreur upstream.

    Formats reconnus: {"error": {"message": ...}}, {"error": "..."},
    {"detail": "..."}; sinon le texte brut tronqué.
    """
    raw = body if body is not None else response.content
    text = raw.decode("utf-8", errors="ignore").strip()
    try:
        data = json.loads(text)
    except (json.JSONDecodeError, ValueError):
        data = None

    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(error, str):
            return error
        if isinstance(data.get("detail"), str):
            return data["detail"]

    if text:
        return text[:500]
    return f"Request failed with status code {response.status_code}"


class UpstreamClient:
    """
    Client HTTP partagé pour l'API NIM.

    Gère:
    - Un httpx.AsyncClient unique (ouvert au démarrage, fermé à l'arrêt)
    - Timeout court pour la sonde, long pour les requêtes réelles
    - Conversion des erreurs en résultats typés
    """

    def __init__(
        self,
        config: UpstreamConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.config = config
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def completions_url(self) -> str:
        return f"{self.config.base_url}/chat/completions"

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    async def __aenter__(self) -> "UpstreamClient":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.aclose()

    async def open(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.config.request_timeout, connect=CONNECT_TIMEOUT),
                limits=httpx.Limits(
                    max_keepalive_connections=20,
                    max_connections=50
                ),
                transport=self._transport
            )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("UpstreamClient non ouvert (appeler open())")
        return self._client

    def build_request(self, payload: Dict[str, Any], timeout: float) -> httpx.Request:
        """Construit une requête POST /chat/completions."""
        return self.client.build_request(
            "POST",
            self.completions_url,
            headers=self.headers,
            json=payload,
            timeout=httpx.Timeout(timeout, connect=min(CONNECT_TIMEOUT, timeout))
        )

    async def probe(self, model: str) -> UpstreamResult:
        """
        Vérifie qu'un nom de modèle est accepté tel quel par l'API NIM.

        Requête minimale (1 token) avec timeout court. Seul un statut 2xx
        valide le modèle.
        """
        payload = {"model": model, "messages": PROBE_MESSAGES, "max_tokens": 1}
        # ValueError: corps non encodable (surrogate isolé, NaN)
        try:
            request = self.build_request(payload, self.config.probe_timeout)
            response = await self.client.send(request)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("[PROBE] Échec de la sonde pour '%s': %s", model, e)
            return ProbeFailed(reason=str(e) or type(e).__name__)

        if 200 <= response.status_code < 300:
            return UpstreamOk(response=response)

        logger.warning("[PROBE] Modèle '%s' refusé: HTTP %s", model, response.status_code)
        return ProbeFailed(reason=f"HTTP {response.status_code}")

    async def send(self, payload: Dict[str, Any]) -> UpstreamResult:
        """Envoie une requête non-streaming et lit la réponse complète."""
        try:
            request = self.build_request(payload, self.config.request_timeout)
            response = await self.client.send(request)
        except (httpx.HTTPError, ValueError) as e:
            logger.error("[CLIENT] Erreur réseau vers %s: %s", self.completions_url, e)
            return UpstreamFailure(status_code=500, message=str(e) or type(e).__name__)

        if not 200 <= response.status_code < 300:
            message = extract_error_message(response)
            logger.error("[CLIENT] Erreur %s: %s", response.status_code, message[:200])
            return UpstreamFailure(status_code=response.status_code, message=message)

        return UpstreamOk(response=response)

    async def send_streaming(self, payload: Dict[str, Any]) -> UpstreamResult:
        """
        Envoie une requête en mode streaming.

        En cas de succès, la réponse reste ouverte: l'appelant doit la fermer
        (aclose) une fois le flux consommé.
        """
        try:
            request = self.build_request(payload, self.config.request_timeout)
            response = await self.client.send(request, stream=True)
        except (httpx.HTTPError, ValueError) as e:
            logger.error("[CLIENT] Erreur réseau (stream) vers %s: %s", self.completions_url, e)
            return UpstreamFailure(status_code=500, message=str(e) or type(e).__name__)

        if not 200 <= response.status_code < 300:
            try:
                body = await response.aread()
            except httpx.HTTPError:
                body = b""
            finally:
                await response.aclose()
            message = extract_error_message(response, body)
            logger.error("[CLIENT] Erreur %s (stream): %s", response.status_code, message[:200])
            return UpstreamFailure(status_code=response.status_code, message=message)

        return UpstreamOk(response=response)


def create_upstream_client(
    config: UpstreamConfig,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> UpstreamClient:
    """
    Crée un client upstream (non ouvert).

    Args:
        config: Connexion NIM (URL, clé, timeouts)
        transport: Transport httpx alternatif (tests)

    Returns:
        Instance de UpstreamClient
    """
    return UpstreamClient(config=config, transport=transport)
