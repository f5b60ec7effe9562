"""Routes API pour la liste des modèles.

Endpoint OpenAI-compatible minimal (object/list/data), exposé sous `/v1/models`
et `/models`. Seuls les alias publics sont listés.
"""

from __future__ import annotations

import time
from typing import Any, Dict, List

from fastapi import APIRouter, Request

from ...core.constants import MODEL_OWNER
from ...proxy.resolver import AliasTable

router = APIRouter()


def _build_openai_models_list(aliases: AliasTable) -> List[Dict[str, Any]]:
    created = int(time.time())
    return [
        {
            "id": alias.public_name,
            "object": "model",
            "created": created,
            "owned_by": MODEL_OWNER,
        }
        for alias in aliases.aliases()
    ]


@router.get("/v1/models")
@router.get("/models")
async def openai_models(request: Request) -> Dict[str, Any]:
    """Endpoint OpenAI-compatible: GET /v1/models."""
    return {
        "object": "list",
        "data": _build_openai_models_list(request.app.state.resolver.aliases),
    }
