"""
Route proxy principale /chat/completions.
"""
import json
import logging
from typing import Dict, Any

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse, JSONResponse

from ...core.exceptions import InvalidRequestError, UpstreamError
from ...core.models import UpstreamFailure
from ...proxy.stream import StreamTransformer, stream_generator
from ...proxy.transformers import build_choices_summary

logger = logging.getLogger(__name__)

router = APIRouter()

# Pourquoi ces headers: certains clients ont besoin de ces headers SSE
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no"  # Désactive buffering nginx
}


def _reject_constant(name: str):
    """NaN/Infinity sont acceptés par json.loads mais pas par le JSON standard."""
    raise InvalidRequestError(f"Invalid numeric value in request body: {name}")


def validate_chat_request(body: Any) -> Dict[str, Any]:
    """
    Valide le corps d'une requête chat avant toute résolution ou appel upstream.

    Raises:
        InvalidRequestError: Corps non-objet, messages absents/vides, modèle absent
    """
    if not isinstance(body, dict):
        raise InvalidRequestError("Request body must be a JSON object")

    messages = body.get("messages")
    if not isinstance(messages, list) or not messages:
        raise InvalidRequestError(
            "'messages' is required and must be a non-empty array",
            param="messages"
        )

    model = body.get("model")
    if not isinstance(model, str) or not model.strip():
        raise InvalidRequestError("'model' is required and must be a string", param="model")
    try:
        model.encode("utf-8")
    except UnicodeEncodeError:
        raise InvalidRequestError("'model' must be valid UTF-8 text", param="model") from None

    return body


@router.post("/v1/chat/completions")
@router.post("/chat/completions")
async def proxy_chat(request: Request):
    """
    Proxy vers l'API NIM:
    - Validation des messages
    - Résolution du modèle (alias, cache, sonde, repli)
    - Streaming SSE réécrit ou réponse complète traduite
    """
    raw = await request.body()
    try:
        body = json.loads(raw, parse_constant=_reject_constant)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidRequestError("Request body must be valid JSON") from None

    body = validate_chat_request(body)
    model = body["model"]

    state = request.app.state
    resolution = await state.resolver.resolve(model)
    payload = state.translator.build(body, resolution)

    logger.debug(
        "[PROXY] Requête: model=%s, stream=%s, messages=%d",
        payload["model"], payload["stream"], len(payload["messages"])
    )

    if payload["stream"]:
        result = await state.upstream.send_streaming(payload)
        if isinstance(result, UpstreamFailure):
            raise UpstreamError(result.message, status_code=result.status_code)

        return StreamingResponse(
            stream_generator(
                result.response,
                StreamTransformer(show_reasoning=state.settings.display.show_reasoning)
            ),
            headers=SSE_HEADERS,
            media_type="text/event-stream"
        )

    result = await state.upstream.send(payload)
    if isinstance(result, UpstreamFailure):
        raise UpstreamError(result.message, status_code=result.status_code)

    try:
        upstream_data = result.response.json()
    except ValueError:
        raise UpstreamError("Upstream returned an invalid JSON body") from None
    if not isinstance(upstream_data, dict):
        raise UpstreamError("Upstream returned an unexpected JSON body")
    logger.debug("[PROXY] Réponse NIM: %s", build_choices_summary(upstream_data.get("choices") or []))

    return JSONResponse(
        content=state.response_builder.build(model, upstream_data, resolution.thinking)
    )
